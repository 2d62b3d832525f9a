"""Position source protocol — per-account deposited and borrowed entries."""
from typing import Protocol

from ..models import RawPositionEntry


class PositionSource(Protocol):
    """Abstract interface for fetching an account's lending positions.

    Amounts are already converted from pool/debt shares to underlying units.
    """

    async def fetch_positions(
        self, account: str
    ) -> tuple[list[RawPositionEntry], list[RawPositionEntry]]: ...

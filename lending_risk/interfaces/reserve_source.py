"""Reserve-configuration protocol — per-asset risk parameters."""
from typing import Protocol

from ..models import ReserveConfig


class ReserveConfigSource(Protocol):
    """Abstract interface for fetching a reserve's ltv/threshold/borrow factor."""

    async def fetch_reserve_config(self, coin_type: str) -> ReserveConfig: ...

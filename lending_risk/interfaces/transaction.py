"""Transaction layer protocol — builds, signs and submits lending actions."""
from typing import Protocol

from ..models import ActionKind, TransactionReceipt


class TransactionLayer(Protocol):
    """Abstract interface for submitting a validated action on-chain."""

    async def submit(
        self, kind: ActionKind, coin_type: str, amount: float
    ) -> TransactionReceipt: ...

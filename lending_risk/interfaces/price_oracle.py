"""Price oracle protocol — price feed abstraction."""
from collections.abc import Iterable
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching USD unit prices keyed by coin type."""

    async def fetch_prices(self, coin_types: Iterable[str]) -> dict[str, float]: ...

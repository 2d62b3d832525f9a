"""Price oracle decorator backed by an explicit TTL cache."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from ..cache import TTLCache
from ..interfaces.price_oracle import PriceOracle

logger = logging.getLogger(__name__)


class CachedPriceOracle:
    """Serve fresh-enough prices from cache, fetching only the rest."""

    def __init__(self, inner: PriceOracle, cache: TTLCache[float]) -> None:
        self._inner = inner
        self._cache = cache

    async def fetch_prices(self, coin_types: Iterable[str]) -> dict[str, float]:
        wanted = list(dict.fromkeys(coin_types))
        prices: dict[str, float] = {}
        missing: list[str] = []
        for coin_type in wanted:
            cached = self._cache.get(coin_type)
            if cached is None:
                missing.append(coin_type)
            else:
                prices[coin_type] = cached

        if missing:
            fetched = await self._inner.fetch_prices(missing)
            for coin_type, price in fetched.items():
                self._cache.set(coin_type, price)
            prices.update(fetched)
            logger.debug(
                "Price cache: %d hit(s), %d fetched", len(wanted) - len(missing), len(fetched)
            )

        return prices

    def invalidate(self, coin_type: str | None = None) -> None:
        self._cache.invalidate(coin_type)

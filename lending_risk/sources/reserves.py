"""Reserve-configuration sources."""
from __future__ import annotations

import logging
from collections.abc import Mapping

from ..cache import TTLCache
from ..errors import DataUnavailableError
from ..interfaces.reserve_source import ReserveConfigSource
from ..models import ReserveConfig

logger = logging.getLogger(__name__)


class StaticReserveConfigSource:
    """Serve reserve parameters from configuration."""

    def __init__(self, reserves: Mapping[str, ReserveConfig]) -> None:
        self._reserves = dict(reserves)

    async def fetch_reserve_config(self, coin_type: str) -> ReserveConfig:
        try:
            return self._reserves[coin_type]
        except KeyError:
            raise DataUnavailableError(f"Unknown reserve: {coin_type}") from None


class CachedReserveConfigSource:
    """Wrap a reserve source with a TTL cache."""

    def __init__(self, inner: ReserveConfigSource, cache: TTLCache[ReserveConfig]) -> None:
        self._inner = inner
        self._cache = cache

    async def fetch_reserve_config(self, coin_type: str) -> ReserveConfig:
        cached = self._cache.get(coin_type)
        if cached is not None:
            return cached
        reserve = await self._inner.fetch_reserve_config(coin_type)
        self._cache.set(coin_type, reserve)
        logger.debug("Cached reserve config for %s", coin_type)
        return reserve

    def invalidate(self, coin_type: str | None = None) -> None:
        self._cache.invalidate(coin_type)

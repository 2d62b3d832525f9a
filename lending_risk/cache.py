"""Explicit TTL cache with an injectable clock."""
from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


class TTLCache(Generic[V]):
    """Key → value store whose entries expire ``ttl`` seconds after insertion.

    The clock is injected so tests can advance time deterministically.
    """

    def __init__(self, ttl: float, clock: Clock = time.monotonic) -> None:
        if ttl < 0:
            raise ValueError("ttl must not be negative")
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one entry, or everything when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

"""Position and reserve-configuration sources."""
from .http_positions import HttpPositionSource
from .reserves import CachedReserveConfigSource, StaticReserveConfigSource

__all__ = [
    "HttpPositionSource",
    "CachedReserveConfigSource",
    "StaticReserveConfigSource",
]

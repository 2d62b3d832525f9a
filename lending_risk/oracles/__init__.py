"""Price oracles."""
from .cached import CachedPriceOracle
from .pyth import PythOracle

__all__ = ["CachedPriceOracle", "PythOracle"]

"""Protocol interfaces for external collaborators."""
from .position_source import PositionSource
from .price_oracle import PriceOracle
from .reserve_source import ReserveConfigSource
from .transaction import TransactionLayer

__all__ = ["PositionSource", "PriceOracle", "ReserveConfigSource", "TransactionLayer"]

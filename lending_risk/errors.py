"""Error types for the lending risk engine."""
from __future__ import annotations

import math


class LendingRiskError(Exception):
    """Base class for all lending risk errors."""


class InputError(LendingRiskError):
    """Amount or asset rejected before any simulation runs."""


class UnsafeOperationError(LendingRiskError):
    """Projected action would breach the safety threshold."""

    def __init__(self, message: str, health_factor: float) -> None:
        super().__init__(message)
        self.health_factor = health_factor

    def __str__(self) -> str:
        hf = "inf" if math.isinf(self.health_factor) else f"{self.health_factor:.4f}"
        return f"{self.args[0]} (health factor {hf})"


class DataUnavailableError(LendingRiskError):
    """A position, price or reserve-config fetch failed."""


class MalformedDataError(DataUnavailableError):
    """External data failed validation at the parse boundary."""


class ComputationError(LendingRiskError):
    """Degenerate asset configuration, e.g. a non-positive borrow factor."""

    def __init__(self, message: str, coin_type: str) -> None:
        super().__init__(message)
        self.coin_type = coin_type

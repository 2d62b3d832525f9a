"""Data models — all frozen (immutable)."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

# Debt below this USD value counts as "no meaningful debt".
DEBT_EPSILON_USD = 0.01
# Positions below this amount are pruned after a simulated reduction.
AMOUNT_EPSILON = 1e-9

INFINITE_HEALTH_FACTOR = math.inf


class ActionKind(str, Enum):
    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"


class HealthStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"
    LIQUIDATABLE = "liquidatable"


@dataclass(frozen=True)
class AssetPosition:
    """Single asset within a portfolio, ratios stored as 0-100 percentages."""

    coin_type: str
    symbol: str
    amount: float
    price_usd: float
    ltv: float = 0.0
    liquidation_threshold: float = 0.0
    borrow_factor: float = 100.0

    @property
    def usd_value(self) -> float:
        return self.amount * self.price_usd


@dataclass(frozen=True)
class DepositPosition(AssetPosition):
    """Supplied asset. ``amount`` is already in underlying units."""

    lp_amount: float = 0.0


@dataclass(frozen=True)
class BorrowPosition(AssetPosition):
    """Borrowed asset. ``amount`` is already in underlying units."""

    borrow_share: float = 0.0


@dataclass(frozen=True)
class PortfolioRiskMetrics:
    """Derived solvency snapshot. Never persisted."""

    total_supplied_usd: float
    total_borrowed_usd: float
    borrowing_power: float
    adjusted_borrow_value: float
    liquidation_value: float
    health_factor: float
    borrow_limit_percent: float
    available_to_borrow_usd: float
    is_healthy: bool
    is_liquidatable: bool
    excluded_assets: tuple[str, ...] = ()

    @property
    def has_debt(self) -> bool:
        return not math.isinf(self.health_factor)


@dataclass(frozen=True)
class ReserveConfig:
    """Per-asset risk parameters as percentages."""

    coin_type: str
    ltv: float
    liquidation_threshold: float
    borrow_factor: float = 100.0
    decimals: int = 8
    symbol: str = ""


@dataclass(frozen=True)
class RawPositionEntry:
    """Position entry as handed over by a position source."""

    coin_type: str
    amount: float
    shares: float = 0.0


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Committed view of an account at a point in time."""

    deposits: tuple[DepositPosition, ...]
    borrows: tuple[BorrowPosition, ...]
    prices: dict[str, float]
    metrics: PortfolioRiskMetrics
    timestamp: float
    sequence: int = 0
    stale: bool = False
    last_error: str = ""


@dataclass(frozen=True)
class HealthFactorSimulation:
    """Outcome of a what-if action compared to the current position."""

    action: ActionKind
    current_health_factor: float
    projected_health_factor: float
    current_status: HealthStatus
    projected_status: HealthStatus
    projected: PortfolioRiskMetrics
    warning: str = ""

    @property
    def change(self) -> float:
        if math.isinf(self.current_health_factor) or math.isinf(
            self.projected_health_factor
        ):
            return 0.0
        return self.projected_health_factor - self.current_health_factor

    @property
    def change_percent(self) -> float:
        if math.isinf(self.current_health_factor) or self.current_health_factor <= 0:
            return 0.0
        return self.change / self.current_health_factor * 100

    @property
    def is_safe(self) -> bool:
        return not self.projected.is_liquidatable


@dataclass(frozen=True)
class TransactionReceipt:
    """Result reported by the transaction layer."""

    success: bool
    tx_hash: str = ""
    error: str = ""


@dataclass(frozen=True)
class ValidationResult:
    """Typed outcome of an action check; ``error`` is set when refused."""

    error: Exception | None = None
    warning: str = ""
    simulation: HealthFactorSimulation | None = None
    amount: float = 0.0

    @property
    def is_valid(self) -> bool:
        return self.error is None

"""Pure risk aggregation functions — no I/O, O(n) in position count.

Every metric in :class:`PortfolioRiskMetrics` is produced by
:func:`compute_portfolio_risk`; other modules call it instead of re-deriving
the formulas.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from ..errors import ComputationError
from ..models import (
    DEBT_EPSILON_USD,
    INFINITE_HEALTH_FACTOR,
    AssetPosition,
    BorrowPosition,
    DepositPosition,
    HealthStatus,
    PortfolioRiskMetrics,
)

logger = logging.getLogger(__name__)

LIQUIDATION_HEALTH_FACTOR = 1.0
DANGER_HEALTH_FACTOR = 1.2
WARNING_HEALTH_FACTOR = 1.5


def check_borrow_factor(position: AssetPosition) -> None:
    """Raise ComputationError when the borrow factor cannot divide debt."""
    bf = position.borrow_factor
    if not math.isfinite(bf) or bf <= 0:
        raise ComputationError(
            f"Invalid borrow factor {bf!r} for {position.coin_type}",
            position.coin_type,
        )


def _usable_borrows(
    borrows: Sequence[BorrowPosition],
) -> tuple[list[BorrowPosition], tuple[str, ...]]:
    """Split borrows into aggregatable entries and excluded coin types."""
    usable: list[BorrowPosition] = []
    excluded: list[str] = []
    for b in borrows:
        try:
            check_borrow_factor(b)
        except ComputationError as e:
            logger.warning("Excluding %s from debt aggregation: %s", e.coin_type, e)
            excluded.append(e.coin_type)
            continue
        usable.append(b)
    return usable, tuple(excluded)


def borrowing_power(deposits: Sequence[DepositPosition]) -> float:
    """Σ amount × price × ltv% — maximum debt the collateral could secure."""
    return sum(d.amount * d.price_usd * (d.ltv / 100) for d in deposits)


def _adjusted_sum(usable: Sequence[BorrowPosition]) -> float:
    return sum(b.amount * b.price_usd / (b.borrow_factor / 100) for b in usable)


def adjusted_borrow_value(borrows: Sequence[BorrowPosition]) -> float:
    """Σ amount × price / borrow_factor%.

    Entries with a non-positive borrow factor are skipped with a warning.
    """
    usable, _ = _usable_borrows(borrows)
    return _adjusted_sum(usable)


def liquidation_value(deposits: Sequence[DepositPosition]) -> float:
    """Σ amount × price × liquidation_threshold%."""
    return sum(
        d.amount * d.price_usd * (d.liquidation_threshold / 100) for d in deposits
    )


def health_factor(liquidation_value: float, adjusted_borrow_value: float) -> float:
    """liquidation_value / adjusted_borrow_value, or the infinite sentinel."""
    if adjusted_borrow_value < DEBT_EPSILON_USD:
        return INFINITE_HEALTH_FACTOR
    return liquidation_value / adjusted_borrow_value


def borrow_limit_percent(adjusted_borrow_value: float, borrowing_power: float) -> float:
    if borrowing_power == 0:
        return 0.0
    return adjusted_borrow_value / borrowing_power * 100


def available_to_borrow_usd(borrowing_power: float, adjusted_borrow_value: float) -> float:
    return max(0.0, borrowing_power - adjusted_borrow_value)


def is_liquidatable(hf: float) -> bool:
    return hf < LIQUIDATION_HEALTH_FACTOR


def compute_portfolio_risk(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
) -> PortfolioRiskMetrics:
    """Compose all risk metrics for one (deposits, borrows) pair."""
    usable_borrows, excluded = _usable_borrows(borrows)

    total_supplied = sum(d.usd_value for d in deposits)
    total_borrowed = sum(b.usd_value for b in usable_borrows)

    power = borrowing_power(deposits)
    adjusted = _adjusted_sum(usable_borrows)
    liq_value = liquidation_value(deposits)
    hf = health_factor(liq_value, adjusted)

    return PortfolioRiskMetrics(
        total_supplied_usd=total_supplied,
        total_borrowed_usd=total_borrowed,
        borrowing_power=power,
        adjusted_borrow_value=adjusted,
        liquidation_value=liq_value,
        health_factor=hf,
        borrow_limit_percent=borrow_limit_percent(adjusted, power),
        available_to_borrow_usd=available_to_borrow_usd(power, adjusted),
        is_healthy=adjusted <= power,
        is_liquidatable=is_liquidatable(hf),
        excluded_assets=excluded,
    )


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def health_status(hf: float) -> HealthStatus:
    """Bucket a health factor into a status category."""
    if hf < LIQUIDATION_HEALTH_FACTOR:
        return HealthStatus.LIQUIDATABLE
    if hf < DANGER_HEALTH_FACTOR:
        return HealthStatus.DANGER
    if hf < WARNING_HEALTH_FACTOR:
        return HealthStatus.WARNING
    return HealthStatus.SAFE


def format_health_factor(hf: float) -> str:
    if math.isinf(hf) or hf > 999:
        return "∞"
    return f"{hf:.2f}"


def current_ltv_percent(metrics: PortfolioRiskMetrics) -> float:
    """Raw borrowed / supplied USD as a percentage."""
    if metrics.total_supplied_usd <= 0:
        return 0.0
    return metrics.total_borrowed_usd / metrics.total_supplied_usd * 100


def liquidation_price(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    coin_type: str,
) -> float | None:
    """Price of one collateral asset at which the health factor hits 1.0.

    All other prices and amounts are held fixed. Returns ``None`` when there is
    no meaningful debt, or the asset is not deposited or carries a zero
    liquidation threshold. A result of 0.0 means the position stays solvent
    even if the asset becomes worthless.
    """
    target = next((d for d in deposits if d.coin_type == coin_type), None)
    if target is None:
        return None
    weight = target.amount * (target.liquidation_threshold / 100)
    if weight <= 0:
        return None

    metrics = compute_portfolio_risk(deposits, borrows)
    if not metrics.has_debt:
        return None

    others = metrics.liquidation_value - weight * target.price_usd
    price = (metrics.adjusted_borrow_value - others) / weight
    return max(0.0, price)

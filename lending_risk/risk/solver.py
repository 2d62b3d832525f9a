"""Safe-limit solvers — bounded bisection on top of the simulator.

Both searches rely on monotonicity: withdrawing more collateral or borrowing
more never raises the health factor, so the "safe" region is an interval
starting at zero.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence

from ..models import BorrowPosition, DepositPosition, PortfolioRiskMetrics
from .calculator import compute_portfolio_risk
from .simulator import simulate_borrow, simulate_withdraw

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_THRESHOLD = 1.2
SOLVER_TOLERANCE = 0.001
SOLVER_MAX_ITERATIONS = 64


def _bisect(
    is_safe: Callable[[float], bool],
    high: float,
    tolerance: float,
    max_iterations: int,
) -> float:
    """Largest x in [0, high] with ``is_safe(x)``, to within ``tolerance``."""
    low = 0.0
    best = 0.0
    iterations = 0
    while high - low > tolerance and iterations < max_iterations:
        mid = (low + high) / 2
        if is_safe(mid):
            best = mid
            low = mid
        else:
            high = mid
        iterations += 1
    return best


def max_safe_withdrawal(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    coin_type: str,
    safety_threshold: float = DEFAULT_SAFETY_THRESHOLD,
    tolerance: float = SOLVER_TOLERANCE,
    max_iterations: int = SOLVER_MAX_ITERATIONS,
) -> float:
    """Largest amount of ``coin_type`` that keeps health factor ≥ threshold.

    Returns 0 when the asset is not deposited and the whole deposit when there
    is no meaningful debt.
    """
    deposit = next((d for d in deposits if d.coin_type == coin_type), None)
    if deposit is None or deposit.amount <= 0:
        return 0.0

    current = compute_portfolio_risk(deposits, borrows)
    if not current.has_debt:
        return deposit.amount

    def is_safe(amount: float) -> bool:
        simulated = simulate_withdraw(deposits, borrows, coin_type, amount)
        return simulated.health_factor >= safety_threshold

    if is_safe(deposit.amount):
        return deposit.amount

    result = _bisect(is_safe, deposit.amount, tolerance, max_iterations)
    logger.debug(
        "Max safe withdrawal of %s at HF>=%.2f: %.6f", coin_type, safety_threshold, result
    )
    return result


def _borrow_upper_bound(
    current: PortfolioRiskMetrics, template: BorrowPosition
) -> float:
    """Amount of ``template`` that exactly exhausts the borrowing power."""
    raw = current.available_to_borrow_usd / template.price_usd
    # A borrow factor above 100 weighs the new debt down, so more fits.
    return raw * (template.borrow_factor / 100)


def max_safe_borrow(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    borrow_template: BorrowPosition,
    safety_threshold: float = DEFAULT_SAFETY_THRESHOLD,
    tolerance: float = SOLVER_TOLERANCE,
    max_iterations: int = SOLVER_MAX_ITERATIONS,
) -> float:
    """Largest amount of ``borrow_template`` that keeps the position safe.

    Both ``health_factor >= safety_threshold`` and ``is_healthy`` must hold:
    per-asset borrow factors and liquidation thresholds mean either one can
    bind first. The template's own ``amount`` is ignored.
    """
    price = borrow_template.price_usd
    bf = borrow_template.borrow_factor
    if price <= 0 or not math.isfinite(price) or not math.isfinite(bf) or bf <= 0:
        return 0.0

    current = compute_portfolio_risk(deposits, borrows)
    # New debt would merge into an entry the calculator cannot count.
    if borrow_template.coin_type in current.excluded_assets:
        return 0.0
    if current.health_factor <= safety_threshold:
        return 0.0

    upper = _borrow_upper_bound(current, borrow_template)
    if upper <= 0:
        return 0.0

    def is_safe(amount: float) -> bool:
        hypothetical = BorrowPosition(
            coin_type=borrow_template.coin_type,
            symbol=borrow_template.symbol,
            amount=amount,
            price_usd=price,
            ltv=borrow_template.ltv,
            liquidation_threshold=borrow_template.liquidation_threshold,
            borrow_factor=bf,
        )
        simulated = simulate_borrow(deposits, borrows, hypothetical)
        return simulated.health_factor >= safety_threshold and simulated.is_healthy

    if is_safe(upper):
        return upper

    result = _bisect(is_safe, upper, tolerance, max_iterations)
    logger.debug(
        "Max safe borrow of %s at HF>=%.2f: %.6f",
        borrow_template.coin_type, safety_threshold, result,
    )
    return result

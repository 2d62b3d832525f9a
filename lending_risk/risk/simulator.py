"""What-if simulation — builds new position tuples and reruns the calculator.

Inputs are never mutated; every function returns fresh tuples. Cheap enough to
run on every keystroke of an amount field.
"""
from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import TypeVar

from ..models import (
    AMOUNT_EPSILON,
    ActionKind,
    AssetPosition,
    BorrowPosition,
    DepositPosition,
    HealthFactorSimulation,
    PortfolioRiskMetrics,
)
from .calculator import (
    DANGER_HEALTH_FACTOR,
    compute_portfolio_risk,
    health_status,
)

P = TypeVar("P", bound=AssetPosition)


def _add_amount(positions: Sequence[P], addition: P) -> tuple[P, ...]:
    """Merge ``addition`` into a same-asset entry or append it."""
    merged = False
    result: list[P] = []
    for p in positions:
        if not merged and p.coin_type == addition.coin_type:
            result.append(dataclasses.replace(p, amount=p.amount + addition.amount))
            merged = True
        else:
            result.append(p)
    if not merged:
        result.append(addition)
    return tuple(result)


def _remove_amount(positions: Sequence[P], coin_type: str, amount: float) -> tuple[P, ...]:
    """Reduce the first matching entry (floored at 0) and prune it near zero."""
    removed = False
    result: list[P] = []
    for p in positions:
        if not removed and p.coin_type == coin_type:
            removed = True
            remaining = max(0.0, p.amount - amount)
            if remaining < AMOUNT_EPSILON:
                continue
            p = dataclasses.replace(p, amount=remaining)
        result.append(p)
    return tuple(result)


def simulate_borrow(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    hypothetical_borrow: BorrowPosition,
) -> PortfolioRiskMetrics:
    return compute_portfolio_risk(deposits, _add_amount(borrows, hypothetical_borrow))


def simulate_withdraw(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    coin_type: str,
    amount: float,
) -> PortfolioRiskMetrics:
    return compute_portfolio_risk(_remove_amount(deposits, coin_type, amount), borrows)


def simulate_supply(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    hypothetical_deposit: DepositPosition,
) -> PortfolioRiskMetrics:
    return compute_portfolio_risk(_add_amount(deposits, hypothetical_deposit), borrows)


def simulate_repay(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    coin_type: str,
    amount: float,
) -> PortfolioRiskMetrics:
    return compute_portfolio_risk(deposits, _remove_amount(borrows, coin_type, amount))


def simulate_action(
    kind: ActionKind,
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    position: AssetPosition,
    amount: float,
) -> HealthFactorSimulation:
    """Run one action and compare against the current metrics.

    ``position`` supplies the asset template (coin type, price, risk params);
    its own ``amount`` is ignored in favour of ``amount``.
    """
    current = compute_portfolio_risk(deposits, borrows)

    if kind is ActionKind.SUPPLY:
        dep = DepositPosition(**_asset_fields(position, amount))
        projected = simulate_supply(deposits, borrows, dep)
    elif kind is ActionKind.BORROW:
        bor = BorrowPosition(**_asset_fields(position, amount))
        projected = simulate_borrow(deposits, borrows, bor)
    elif kind is ActionKind.WITHDRAW:
        projected = simulate_withdraw(deposits, borrows, position.coin_type, amount)
    elif kind is ActionKind.REPAY:
        projected = simulate_repay(deposits, borrows, position.coin_type, amount)
    else:
        raise ValueError(f"Unknown action kind: {kind!r}")

    warning = ""
    if kind in (ActionKind.WITHDRAW, ActionKind.BORROW):
        if projected.is_liquidatable:
            warning = f"This {kind.value} would put your position at risk of liquidation!"
        elif projected.health_factor < DANGER_HEALTH_FACTOR:
            warning = "Your health factor would be in the danger zone."

    return HealthFactorSimulation(
        action=kind,
        current_health_factor=current.health_factor,
        projected_health_factor=projected.health_factor,
        current_status=health_status(current.health_factor),
        projected_status=health_status(projected.health_factor),
        projected=projected,
        warning=warning,
    )


def _asset_fields(position: AssetPosition, amount: float) -> dict:
    return {
        "coin_type": position.coin_type,
        "symbol": position.symbol,
        "amount": amount,
        "price_usd": position.price_usd,
        "ltv": position.ltv,
        "liquidation_threshold": position.liquidation_threshold,
        "borrow_factor": position.borrow_factor,
    }

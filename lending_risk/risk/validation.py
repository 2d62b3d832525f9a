"""Action validation — typed results instead of exceptions.

Each ``validate_*`` function checks the raw input first (``InputError``), then
runs the simulator and refuses actions that would breach the safety threshold
(``UnsafeOperationError``). Borrows against an asset whose borrow factor
cannot be aggregated are refused with ``ComputationError``. Refusals are
returned inside a :class:`ValidationResult`, never raised.
"""
from __future__ import annotations

import math
from collections.abc import Sequence

from ..errors import ComputationError, InputError, UnsafeOperationError
from ..models import (
    ActionKind,
    AssetPosition,
    BorrowPosition,
    DepositPosition,
    ValidationResult,
)
from .calculator import WARNING_HEALTH_FACTOR, check_borrow_factor, format_health_factor
from .simulator import simulate_action
from .solver import DEFAULT_SAFETY_THRESHOLD

MIN_ACTION_AMOUNT = 0.001


def _check_amount(amount: float, symbol: str, min_amount: float) -> InputError | None:
    if not math.isfinite(amount) or amount <= 0:
        return InputError("Amount must be greater than 0")
    if amount < min_amount:
        return InputError(f"Minimum amount is {min_amount} {symbol}")
    return None


def _find(positions: Sequence[AssetPosition], coin_type: str) -> AssetPosition | None:
    return next((p for p in positions if p.coin_type == coin_type), None)


def _check_borrow_factors(*positions: AssetPosition | None) -> ComputationError | None:
    """Debt with an unusable borrow factor would vanish from the projection."""
    for position in positions:
        if position is None:
            continue
        try:
            check_borrow_factor(position)
        except ComputationError as e:
            return e
    return None


def _check_projection(
    kind: ActionKind,
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    asset: AssetPosition,
    amount: float,
    safety_threshold: float,
    warning_threshold: float,
) -> ValidationResult:
    simulation = simulate_action(kind, deposits, borrows, asset, amount)
    projected = simulation.projected
    hf = projected.health_factor

    if projected.is_liquidatable:
        error = UnsafeOperationError(
            f"Cannot {kind.value}: position would become liquidatable", hf
        )
        return ValidationResult(error=error, simulation=simulation, amount=amount)
    if hf < safety_threshold:
        error = UnsafeOperationError(
            f"Cannot {kind.value}: health factor would drop below "
            f"{safety_threshold:.2f}",
            hf,
        )
        return ValidationResult(error=error, simulation=simulation, amount=amount)
    if kind is ActionKind.BORROW and not projected.is_healthy:
        error = UnsafeOperationError(
            "Cannot borrow: adjusted debt would exceed borrowing power", hf
        )
        return ValidationResult(error=error, simulation=simulation, amount=amount)

    warning = ""
    if hf < warning_threshold:
        warning = (
            f"Health factor will be {format_health_factor(hf)}. "
            f"Consider a smaller {kind.value}."
        )
    return ValidationResult(warning=warning, simulation=simulation, amount=amount)


def validate_supply(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    asset: AssetPosition,
    amount: float,
    wallet_balance: float,
    min_amount: float = MIN_ACTION_AMOUNT,
) -> ValidationResult:
    error = _check_amount(amount, asset.symbol, min_amount)
    if error is None and amount > wallet_balance:
        error = InputError(
            f"Insufficient balance. You have {wallet_balance:.6f} {asset.symbol}"
        )
    if error is not None:
        return ValidationResult(error=error, amount=amount)
    simulation = simulate_action(ActionKind.SUPPLY, deposits, borrows, asset, amount)
    return ValidationResult(simulation=simulation, amount=amount)


def validate_withdraw(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    coin_type: str,
    amount: float,
    safety_threshold: float = DEFAULT_SAFETY_THRESHOLD,
    warning_threshold: float = WARNING_HEALTH_FACTOR,
    min_amount: float = MIN_ACTION_AMOUNT,
) -> ValidationResult:
    deposit = _find(deposits, coin_type)
    if deposit is None:
        return ValidationResult(
            error=InputError(f"No {coin_type} supplied"), amount=amount
        )
    error = _check_amount(amount, deposit.symbol, min_amount)
    if error is None and amount > deposit.amount:
        error = InputError(
            f"Insufficient supply. You have {deposit.amount:.6f} "
            f"{deposit.symbol} supplied"
        )
    if error is not None:
        return ValidationResult(error=error, amount=amount)
    return _check_projection(
        ActionKind.WITHDRAW, deposits, borrows, deposit, amount,
        safety_threshold, warning_threshold,
    )


def validate_borrow(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    asset: AssetPosition,
    amount: float,
    available_liquidity: float | None = None,
    safety_threshold: float = DEFAULT_SAFETY_THRESHOLD,
    warning_threshold: float = WARNING_HEALTH_FACTOR,
    min_amount: float = MIN_ACTION_AMOUNT,
) -> ValidationResult:
    error = _check_amount(amount, asset.symbol, min_amount)
    if error is None and not deposits:
        error = InputError("You must supply collateral before borrowing")
    if (
        error is None
        and available_liquidity is not None
        and amount > available_liquidity
    ):
        error = InputError(
            f"Insufficient liquidity. Only {available_liquidity:.6f} "
            f"{asset.symbol} available"
        )
    if error is None:
        error = _check_borrow_factors(asset, _find(borrows, asset.coin_type))
    if error is not None:
        return ValidationResult(error=error, amount=amount)
    return _check_projection(
        ActionKind.BORROW, deposits, borrows, asset, amount,
        safety_threshold, warning_threshold,
    )


def validate_repay(
    deposits: Sequence[DepositPosition],
    borrows: Sequence[BorrowPosition],
    coin_type: str,
    amount: float,
    wallet_balance: float,
    min_amount: float = MIN_ACTION_AMOUNT,
) -> ValidationResult:
    """Repaying more than is owed is clamped to the outstanding debt."""
    borrow = _find(borrows, coin_type)
    if borrow is None:
        return ValidationResult(
            error=InputError(f"No {coin_type} borrowed"), amount=amount
        )
    error = _check_amount(amount, borrow.symbol, min_amount)
    if error is None and amount > wallet_balance:
        error = InputError(
            f"Insufficient balance. You have {wallet_balance:.6f} {borrow.symbol}"
        )
    if error is not None:
        return ValidationResult(error=error, amount=amount)

    warning = ""
    if amount > borrow.amount:
        warning = (
            f"Repay amount exceeds borrowed amount. Will repay "
            f"{borrow.amount:.6f} {borrow.symbol}"
        )
        amount = borrow.amount
    simulation = simulate_action(ActionKind.REPAY, deposits, borrows, borrow, amount)
    return ValidationResult(warning=warning, simulation=simulation, amount=amount)

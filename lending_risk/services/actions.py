"""Per-action flow: validate → simulate → submit → confirm/fail."""
from __future__ import annotations

import logging
import math
from enum import Enum

from ..config import RiskConfig
from ..errors import DataUnavailableError, InputError
from ..interfaces import TransactionLayer
from ..models import (
    ActionKind,
    AssetPosition,
    TransactionReceipt,
    ValidationResult,
)
from ..risk import (
    validate_borrow,
    validate_repay,
    validate_supply,
    validate_withdraw,
)
from .session import PortfolioSession

logger = logging.getLogger(__name__)


class ActionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SIMULATING = "simulating"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ActionFlow:
    """Drives one supply/withdraw/borrow/repay action against a session.

    ``update_amount`` runs on every input change and leaves the flow in
    VALIDATING (input refused) or SIMULATING (projection ready). ``submit``
    hands the amount to the transaction layer; success refreshes the session
    snapshot, failure keeps it untouched.
    """

    def __init__(
        self,
        session: PortfolioSession,
        transactions: TransactionLayer,
        kind: ActionKind,
        asset: AssetPosition,
        risk: RiskConfig | None = None,
        wallet_balance: float = math.inf,
        available_liquidity: float | None = None,
    ) -> None:
        self._session = session
        self._transactions = transactions
        self.kind = kind
        self.asset = asset
        self._risk = risk or RiskConfig()
        self.wallet_balance = wallet_balance
        self.available_liquidity = available_liquidity

        self.state = ActionState.IDLE
        self.result: ValidationResult | None = None
        self.receipt: TransactionReceipt | None = None
        self.error: Exception | None = None

    def _validate(self, amount: float) -> ValidationResult:
        snapshot = self._session.snapshot
        if snapshot is None:
            return ValidationResult(
                error=DataUnavailableError("Portfolio not loaded yet"), amount=amount
            )

        deposits, borrows = snapshot.deposits, snapshot.borrows
        min_amount = self._risk.min_action_amount
        if self.kind is ActionKind.SUPPLY:
            return validate_supply(
                deposits, borrows, self.asset, amount, self.wallet_balance, min_amount
            )
        if self.kind is ActionKind.WITHDRAW:
            return validate_withdraw(
                deposits, borrows, self.asset.coin_type, amount,
                self._risk.safety_threshold, self._risk.warning_health_factor, min_amount,
            )
        if self.kind is ActionKind.BORROW:
            return validate_borrow(
                deposits, borrows, self.asset, amount, self.available_liquidity,
                self._risk.safety_threshold, self._risk.warning_health_factor, min_amount,
            )
        return validate_repay(
            deposits, borrows, self.asset.coin_type, amount, self.wallet_balance, min_amount
        )

    def update_amount(self, amount: float) -> ValidationResult:
        """Re-validate and re-simulate for a new input amount."""
        if self.state is ActionState.SUBMITTING:
            raise RuntimeError("Cannot change the amount while submitting")

        self.state = ActionState.VALIDATING
        self.receipt = None
        self.error = None
        self.result = self._validate(amount)
        if self.result.is_valid:
            self.state = ActionState.SIMULATING
        return self.result

    def max_amount(self) -> float:
        """Largest amount the flow would accept right now."""
        snapshot = self._session.snapshot
        if snapshot is None:
            return 0.0
        threshold = self._risk.safety_threshold
        if self.kind is ActionKind.WITHDRAW:
            return self._session.max_safe_withdrawal(self.asset.coin_type, threshold)
        if self.kind is ActionKind.BORROW:
            limit = self._session.max_safe_borrow(self.asset, threshold)
            if self.available_liquidity is not None:
                limit = min(limit, self.available_liquidity)
            return limit
        if self.kind is ActionKind.REPAY:
            borrow = self._session.borrow(self.asset.coin_type)
            return min(self.wallet_balance, borrow.amount) if borrow else 0.0
        return self.wallet_balance

    async def submit(self) -> TransactionReceipt:
        """Submit the last validated amount.

        The amount is re-validated against the current snapshot first, since a
        refresh may have landed after the last ``update_amount``.
        """
        if self.state is not ActionState.SIMULATING or self.result is None:
            raise RuntimeError(f"Cannot submit from state {self.state.value}")

        result = self._validate(self.result.amount)
        if not result.is_valid:
            self.result = result
            return self._fail(result.error or InputError("Invalid amount"))

        self.result = result
        self.state = ActionState.SUBMITTING
        logger.info(
            "Submitting %s of %.6f %s", self.kind.value, result.amount, self.asset.symbol
        )

        try:
            receipt = await self._transactions.submit(
                self.kind, self.asset.coin_type, result.amount
            )
        except Exception as e:
            logger.error("Transaction layer failed: %s", e)
            return self._fail(e)

        if not receipt.success:
            self.receipt = receipt
            return self._fail(RuntimeError(receipt.error or "Transaction failed"))

        self.receipt = receipt
        self.state = ActionState.CONFIRMED
        logger.info("%s confirmed: %s", self.kind.value.capitalize(), receipt.tx_hash)

        try:
            await self._session.refresh(force=True)
        except DataUnavailableError as e:
            logger.warning("Post-transaction refresh failed: %s", e)
        return receipt

    def _fail(self, error: Exception) -> TransactionReceipt:
        self.state = ActionState.FAILED
        self.error = error
        if self.receipt is None:
            self.receipt = TransactionReceipt(success=False, error=str(error))
        logger.warning("%s failed: %s", self.kind.value.capitalize(), error)
        return self.receipt

    def reset(self) -> None:
        self.state = ActionState.IDLE
        self.result = None
        self.receipt = None
        self.error = None

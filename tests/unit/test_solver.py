"""Unit tests for the safe-limit solvers."""
from __future__ import annotations

import pytest

from conftest import APT, ETH, make_borrow, make_deposit
from lending_risk.risk.calculator import compute_portfolio_risk
from lending_risk.risk.simulator import simulate_borrow, simulate_withdraw
from lending_risk.risk.solver import (
    SOLVER_TOLERANCE,
    max_safe_borrow,
    max_safe_withdrawal,
)


class TestMaxSafeWithdrawal:
    def test_moderate_debt_at_default_threshold(self, moderate_debt) -> None:
        amount = max_safe_withdrawal(*moderate_debt, APT, 1.2)
        exact = 1000.0 - 6000.0 / 8.5
        assert exact - SOLVER_TOLERANCE <= amount <= exact

    def test_result_is_tight(self, moderate_debt) -> None:
        amount = max_safe_withdrawal(*moderate_debt, APT, 1.2)
        assert simulate_withdraw(*moderate_debt, APT, amount).health_factor >= 1.2
        over = amount + 2 * SOLVER_TOLERANCE
        assert simulate_withdraw(*moderate_debt, APT, over).health_factor < 1.2

    def test_no_debt_returns_full_deposit(self, no_debt) -> None:
        assert max_safe_withdrawal(*no_debt, APT) == 1000.0

    def test_asset_not_deposited(self, moderate_debt) -> None:
        assert max_safe_withdrawal(*moderate_debt, ETH) == 0.0

    def test_full_withdrawal_when_still_safe(self) -> None:
        deposits = (
            make_deposit(),
            make_deposit(coin_type=ETH, amount=2.0, price=2000.0, symbol="WETH"),
        )
        borrows = (make_borrow(amount=1000.0),)
        assert max_safe_withdrawal(deposits, borrows, ETH) == 2.0

    def test_already_below_threshold_returns_zero(self, boundary_debt) -> None:
        assert max_safe_withdrawal(*boundary_debt, APT, 1.2) == 0.0

    def test_higher_threshold_allows_less(self, moderate_debt) -> None:
        loose = max_safe_withdrawal(*moderate_debt, APT, 1.1)
        strict = max_safe_withdrawal(*moderate_debt, APT, 1.5)
        assert strict < loose


class TestMaxSafeBorrow:
    def test_health_factor_binds(self, moderate_debt, usdc_template) -> None:
        amount = max_safe_borrow(*moderate_debt, usdc_template, 1.2)
        exact = 8500.0 / 1.2 - 5000.0
        assert exact - SOLVER_TOLERANCE <= amount <= exact
        simulated = simulate_borrow(*moderate_debt, make_borrow(amount=amount))
        assert simulated.health_factor >= 1.2

    def test_result_is_tight(self, moderate_debt, usdc_template) -> None:
        amount = max_safe_borrow(*moderate_debt, usdc_template, 1.2)
        over = make_borrow(amount=amount + 2 * SOLVER_TOLERANCE)
        assert simulate_borrow(*moderate_debt, over).health_factor < 1.2

    def test_borrowing_power_binds(self, usdc_template) -> None:
        deposits = (make_deposit(ltv=50.0),)
        amount = max_safe_borrow(deposits, (), usdc_template, 1.2)
        assert amount == pytest.approx(5000.0)
        assert simulate_borrow(deposits, (), make_borrow(amount=amount)).is_healthy

    def test_borrow_factor_above_100_allows_more(self, no_debt) -> None:
        template = make_borrow(amount=0.0, borrow_factor=200.0)
        amount = max_safe_borrow(*no_debt, template, 1.2)
        exact = 8500.0 / 1.2 * 2
        assert exact - SOLVER_TOLERANCE <= amount <= exact

    def test_at_or_below_threshold_returns_zero(self, boundary_debt, usdc_template) -> None:
        assert max_safe_borrow(*boundary_debt, usdc_template, 1.2) == 0.0

    def test_zero_price_returns_zero(self, moderate_debt) -> None:
        assert max_safe_borrow(*moderate_debt, make_borrow(amount=0.0, price=0.0)) == 0.0

    def test_invalid_borrow_factor_returns_zero(self, moderate_debt) -> None:
        template = make_borrow(amount=0.0, borrow_factor=0.0)
        assert max_safe_borrow(*moderate_debt, template) == 0.0

    def test_existing_borrow_with_invalid_factor_returns_zero(self, usdc_template) -> None:
        borrows = (make_borrow(amount=1000.0, borrow_factor=0.0),)
        assert max_safe_borrow((make_deposit(),), borrows, usdc_template) == 0.0

    def test_no_collateral_returns_zero(self, usdc_template) -> None:
        assert max_safe_borrow((), (), usdc_template) == 0.0

    def test_does_not_change_current_metrics(self, moderate_debt, usdc_template) -> None:
        before = compute_portfolio_risk(*moderate_debt)
        max_safe_borrow(*moderate_debt, usdc_template)
        assert compute_portfolio_risk(*moderate_debt) == before

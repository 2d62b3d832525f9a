"""Pure risk computation: calculator, simulator, safe-limit solvers, validation."""
from .calculator import (
    compute_portfolio_risk,
    format_health_factor,
    health_status,
    liquidation_price,
)
from .simulator import (
    simulate_action,
    simulate_borrow,
    simulate_repay,
    simulate_supply,
    simulate_withdraw,
)
from .solver import max_safe_borrow, max_safe_withdrawal
from .validation import (
    validate_borrow,
    validate_repay,
    validate_supply,
    validate_withdraw,
)

__all__ = [
    "compute_portfolio_risk",
    "format_health_factor",
    "health_status",
    "liquidation_price",
    "simulate_action",
    "simulate_borrow",
    "simulate_repay",
    "simulate_supply",
    "simulate_withdraw",
    "max_safe_borrow",
    "max_safe_withdrawal",
    "validate_borrow",
    "validate_repay",
    "validate_supply",
    "validate_withdraw",
]

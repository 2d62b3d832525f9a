"""Service modules"""
from .actions import ActionFlow, ActionState
from .session import PortfolioSession

__all__ = ["ActionFlow", "ActionState", "PortfolioSession"]

"""Capital allocation -- strategy book, weighting engine, and rebalance execution."""

from .book import StrategyBook
from .engine import AllocationEngine, blended_apy, portfolio_risk, risk_score
from .executor import RebalanceExecutor, operation_id

__all__ = [
    "AllocationEngine",
    "RebalanceExecutor",
    "StrategyBook",
    "blended_apy",
    "operation_id",
    "portfolio_risk",
    "risk_score",
]

"""Strategy adapter interface and the in-memory reference adapter."""

from .base import StrategyAdapter
from .simulated import SimulatedStrategyAdapter

__all__ = ["SimulatedStrategyAdapter", "StrategyAdapter"]

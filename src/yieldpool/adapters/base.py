"""Abstract strategy adapter interface.

This module defines the contract every yield-source integration must satisfy.
The ledger never looks inside an adapter: it only converts between amounts and
adapter shares, moves capital in and out, and collects harvested yield.

Design principles:
- Synchronous calls: the ledger is a single-writer store and every mutating
  operation runs to completion under one lock.
- Integer amounts in the asset's smallest unit, integer adapter shares.
- Adapters may fail by raising any exception; callers wrap failures in
  ``AdapterError`` and abort the enclosing operation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class StrategyAdapter(ABC):
    """One external yield source, addressed per asset."""

    #: Unique identity used by the allocation engine and the strategy book
    name: str

    @abstractmethod
    def get_apy(self, asset: str) -> int:
        """Current APY in basis points."""

    @abstractmethod
    def get_tvl(self, asset: str) -> int:
        """Total value this adapter currently holds for ``asset``."""

    @abstractmethod
    def deposit(self, asset: str, amount: int, min_shares: int) -> int:
        """Deploy ``amount``; return adapter shares received (at least ``min_shares``)."""

    @abstractmethod
    def withdraw(self, asset: str, shares: int, min_amount: int) -> int:
        """Redeem ``shares``; return the amount received (at least ``min_amount``)."""

    @abstractmethod
    def harvest(self, asset: str) -> int:
        """Collect accrued yield; return the amount paid out."""

    @abstractmethod
    def shares_to_amount(self, asset: str, shares: int) -> int:
        """Convert adapter shares to an asset amount at the current rate."""

    @abstractmethod
    def amount_to_shares(self, asset: str, amount: int) -> int:
        """Convert an asset amount to adapter shares at the current rate."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

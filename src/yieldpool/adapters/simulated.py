"""In-memory strategy adapter for local runs and tests."""

from collections import defaultdict

from yieldpool.adapters.base import StrategyAdapter
from yieldpool.logging import get_logger

logger = get_logger(__name__)


class SimulatedStrategyAdapter(StrategyAdapter):
    """Share-based vault simulation with injectable yield and failures.

    Two kinds of yield are modelled:
    - ``compound(asset, amount)`` raises the adapter's share price, so the
      pool's holdings become worth more without any harvest.
    - ``accrue_rewards(asset, amount)`` parks rewards that only reach the pool
      through ``harvest``.
    """

    def __init__(self, name: str, apy_bps: int = 0) -> None:
        self.name = name
        self._default_apy = apy_bps
        self._asset_apy: dict[str, int] = {}
        self._assets: dict[str, int] = defaultdict(int)
        self._shares: dict[str, int] = defaultdict(int)
        self._rewards: dict[str, int] = defaultdict(int)
        self._failing: set[str] = set()

    # -- simulation controls -------------------------------------------------

    def set_apy(self, apy_bps: int, asset: str | None = None) -> None:
        if asset is None:
            self._default_apy = apy_bps
        else:
            self._asset_apy[asset] = apy_bps

    def compound(self, asset: str, amount: int) -> None:
        self._assets[asset] += amount

    def accrue_rewards(self, asset: str, amount: int) -> None:
        self._rewards[asset] += amount

    def fail_on(self, *actions: str) -> None:
        """Make the named actions (``deposit``, ``withdraw``, ...) raise."""
        self._failing.update(actions)

    def recover(self) -> None:
        self._failing.clear()

    def _maybe_fail(self, action: str) -> None:
        if action in self._failing:
            raise RuntimeError(f"{self.name}: simulated {action} failure")

    # -- StrategyAdapter -----------------------------------------------------

    def get_apy(self, asset: str) -> int:
        self._maybe_fail("get_apy")
        return self._asset_apy.get(asset, self._default_apy)

    def get_tvl(self, asset: str) -> int:
        return self._assets.get(asset, 0)

    def shares_to_amount(self, asset: str, shares: int) -> int:
        total = self._shares.get(asset, 0)
        if total == 0:
            return shares
        return shares * self._assets.get(asset, 0) // total

    def amount_to_shares(self, asset: str, amount: int) -> int:
        total = self._shares.get(asset, 0)
        held = self._assets.get(asset, 0)
        if total == 0 or held == 0:
            return amount
        return amount * total // held

    def deposit(self, asset: str, amount: int, min_shares: int) -> int:
        self._maybe_fail("deposit")
        shares = self.amount_to_shares(asset, amount)
        if shares < min_shares:
            raise ValueError(f"{self.name}: minted {shares} shares < {min_shares}")
        self._assets[asset] += amount
        self._shares[asset] += shares
        return shares

    def withdraw(self, asset: str, shares: int, min_amount: int) -> int:
        self._maybe_fail("withdraw")
        if shares > self._shares.get(asset, 0):
            raise ValueError(f"{self.name}: cannot redeem {shares} shares")
        amount = self.shares_to_amount(asset, shares)
        if amount < min_amount:
            raise ValueError(f"{self.name}: redeemed {amount} < {min_amount}")
        self._assets[asset] -= amount
        self._shares[asset] -= shares
        return amount

    def harvest(self, asset: str) -> int:
        self._maybe_fail("harvest")
        paid = self._rewards.pop(asset, 0)
        if paid:
            logger.debug(f"{self.name}: harvested {paid} {asset}")
        return paid

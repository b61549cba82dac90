"""Where pooled capital sits: the idle balance and each strategy adapter."""

import threading
from collections import defaultdict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from yieldpool.adapters.base import StrategyAdapter
from yieldpool.core.errors import (
    ActivePositionsExist,
    AdapterError,
    InsufficientPoolValue,
    InvalidAmount,
    StrategyAlreadyRegistered,
    UnknownStrategy,
    YieldPoolError,
)
from yieldpool.core.types import BPS_DENOMINATOR
from yieldpool.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _min_after_slippage(expected: int, max_slippage_bps: int) -> int:
    return expected * (BPS_DENOMINATOR - max_slippage_bps) // BPS_DENOMINATOR


class StrategyBook:
    """Tracks every unit of pooled capital per asset.

    ``pooled_value(asset)`` is the idle balance plus the current value of the
    adapter shares held for that asset; it is the figure the ledger prices
    shares against.

    The book also owns the single writer lock. Every mutating vault or
    rebalance operation holds ``lock`` for its full duration, so no operation
    observes another half-applied. Multi-step movements run inside
    ``atomic()``, which reverses every completed step if a later one fails.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._adapters: dict[str, StrategyAdapter] = {}
        self._idle: dict[str, int] = defaultdict(int)
        # (asset, strategy) -> adapter shares held
        self._holdings: dict[tuple[str, str], int] = defaultdict(int)
        self._targets: dict[str, str] = {}
        # (kind, strategy, quantity) for each movement inside atomic()
        self._moves: list[tuple[str, str, int]] | None = None

    # ------------------------------------------------------------------
    # Adapter registry
    # ------------------------------------------------------------------

    def register(self, adapter: StrategyAdapter) -> None:
        if adapter.name in self._adapters:
            raise StrategyAlreadyRegistered(adapter.name)
        self._adapters[adapter.name] = adapter
        logger.info(f"Strategy registered: {adapter.name}")

    def unregister(self, name: str) -> None:
        self.adapter(name)
        held = {asset: s for (asset, strategy), s in self._holdings.items() if strategy == name and s}
        if held:
            asset = next(iter(held))
            raise ActivePositionsExist(asset, held[asset])
        del self._adapters[name]
        for asset in [a for a, target in self._targets.items() if target == name]:
            del self._targets[asset]
        logger.info(f"Strategy unregistered: {name}")

    def adapter(self, name: str) -> StrategyAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise UnknownStrategy(name)
        return adapter

    def strategies(self) -> list[str]:
        return list(self._adapters)

    def has_strategy(self, name: str) -> bool:
        return name in self._adapters

    def deposit_target(self, asset: str) -> str | None:
        return self._targets.get(asset)

    def set_deposit_target(self, asset: str, strategy: str | None) -> None:
        if strategy is None:
            self._targets.pop(asset, None)
            return
        self.adapter(strategy)
        self._targets[asset] = strategy
        logger.info(f"Deposit target for {asset} -> {strategy}")

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def idle(self, asset: str) -> int:
        return self._idle.get(asset, 0)

    def holdings(self, asset: str, strategy: str) -> int:
        return self._holdings.get((asset, strategy), 0)

    def strategy_balances(self, asset: str) -> dict[str, int]:
        """Current value held in each strategy for ``asset`` (nonzero only)."""
        balances: dict[str, int] = {}
        for (a, strategy), shares in self._holdings.items():
            if a != asset or shares == 0:
                continue
            adapter = self.adapter(strategy)
            balances[strategy] = self._call(
                strategy, "shares_to_amount", lambda: adapter.shares_to_amount(asset, shares)
            )
        return balances

    def pooled_value(self, asset: str) -> int:
        return self.idle(asset) + sum(self.strategy_balances(asset).values())

    def current_apy(self, asset: str) -> int:
        """Blended APY of where ``asset`` is deployed now; idle capital earns nothing."""
        balances = self.strategy_balances(asset)
        pooled = self.idle(asset) + sum(balances.values())
        if pooled == 0:
            return 0
        blended = 0
        for strategy, value in balances.items():
            adapter = self.adapter(strategy)
            apy = self._call(strategy, "get_apy", lambda: adapter.get_apy(asset))
            blended += apy * (value * BPS_DENOMINATOR // pooled) // BPS_DENOMINATOR
        return blended

    # ------------------------------------------------------------------
    # Capital movements
    # ------------------------------------------------------------------

    def accept(self, asset: str, amount: int, max_slippage_bps: int = 0) -> str | None:
        """Take in deposited capital: straight into the deposit target if one is set,
        otherwise onto the idle balance. Returns the strategy used, if any.
        """
        strategy = self.deposit_target(asset)
        if strategy is None:
            self._idle[asset] += amount
            return None
        self._deposit_to(asset, strategy, amount, max_slippage_bps)
        return strategy

    def deploy(self, asset: str, strategy: str, amount: int, max_slippage_bps: int = 0) -> int:
        """Move ``amount`` from the idle balance into ``strategy``."""
        if amount > self.idle(asset):
            raise InsufficientPoolValue(
                f"Cannot deploy {amount} {asset}: only {self.idle(asset)} idle"
            )
        shares = self._deposit_to(asset, strategy, amount, max_slippage_bps)
        self._idle[asset] -= amount
        self._record("deploy", strategy, shares)
        return shares

    def recall(self, asset: str, strategy: str, amount: int, max_slippage_bps: int = 0) -> int:
        """Pull roughly ``amount`` out of ``strategy`` onto the idle balance.

        Returns what the adapter actually paid out. Asking for at least the full
        balance redeems every share.
        """
        adapter = self.adapter(strategy)
        held = self.holdings(asset, strategy)
        if held == 0 or amount <= 0:
            return 0
        balance = self._call(strategy, "shares_to_amount", lambda: adapter.shares_to_amount(asset, held))
        if amount >= balance:
            shares = held
        else:
            shares = min(
                held,
                self._call(strategy, "amount_to_shares", lambda: adapter.amount_to_shares(asset, amount)),
            )
        expected = self._call(
            strategy, "shares_to_amount", lambda: adapter.shares_to_amount(asset, shares)
        )
        # Share conversion floors; top up until the redemption covers ``amount``.
        while expected < amount and shares < held:
            missing = amount - expected
            step = max(
                1,
                self._call(strategy, "amount_to_shares", lambda: adapter.amount_to_shares(asset, missing)),
            )
            shares = min(held, shares + step)
            expected = self._call(
                strategy, "shares_to_amount", lambda: adapter.shares_to_amount(asset, shares)
            )
        received = self._redeem(
            asset, strategy, shares, _min_after_slippage(expected, max_slippage_bps)
        )
        self._record("recall", strategy, received)
        logger.debug(f"Recalled {received} {asset} from {strategy} ({shares} shares)")
        return received

    def ensure_liquidity(self, asset: str, amount: int, max_slippage_bps: int = 0) -> None:
        """Recall from strategies, largest balance first, until ``amount`` is idle.

        Either the full amount ends up idle or nothing moves: the plan is
        checked against current balances before any adapter is touched, and
        recalls already made are reversed if a later one fails.
        """
        shortfall = amount - self.idle(asset)
        if shortfall <= 0:
            return
        balances = sorted(self.strategy_balances(asset).items(), key=lambda kv: kv[1], reverse=True)
        if sum(value for _, value in balances) < shortfall:
            raise InsufficientPoolValue(
                f"Only {self.pooled_value(asset)} {asset} is pooled, {amount} required"
            )
        with self.atomic(asset):
            for strategy, _ in balances:
                self.recall(asset, strategy, shortfall, max_slippage_bps)
                shortfall = amount - self.idle(asset)
                if shortfall <= 0:
                    return
            raise InsufficientPoolValue(
                f"Only {self.idle(asset)} {asset} could be made liquid, {amount} required"
            )

    @contextmanager
    def atomic(self, asset: str) -> Iterator[None]:
        """Reverse every deploy and recall made inside the block if it raises.

        Nested blocks join the outermost one. Recalls are undone by depositing
        what was received back into the same strategy, deploys by redeeming
        the shares they minted.
        """
        with self.lock:
            if self._moves is not None:
                yield
                return
            self._moves = []
            try:
                yield
            except YieldPoolError:
                moves, self._moves = self._moves, None
                self._unwind(asset, moves)
                raise
            finally:
                self._moves = None

    def pay_out(self, asset: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Payout must be non-negative, got {amount}")
        if amount > self.idle(asset):
            raise InsufficientPoolValue(f"Cannot pay {amount} {asset}: only {self.idle(asset)} idle")
        self._idle[asset] -= amount

    def harvest(self, asset: str) -> dict[str, int]:
        """Collect yield from every strategy holding ``asset`` into the idle balance."""
        collected: dict[str, int] = {}
        for strategy in [s for (a, s), shares in self._holdings.items() if a == asset and shares]:
            adapter = self.adapter(strategy)
            amount = self._call(strategy, "harvest", lambda: adapter.harvest(asset))
            if amount:
                self._idle[asset] += amount
                collected[strategy] = amount
        return collected

    def _deposit_to(self, asset: str, strategy: str, amount: int, max_slippage_bps: int) -> int:
        adapter = self.adapter(strategy)
        if amount <= 0:
            return 0
        expected = self._call(strategy, "amount_to_shares", lambda: adapter.amount_to_shares(asset, amount))
        min_shares = _min_after_slippage(expected, max_slippage_bps)
        shares = self._call(strategy, "deposit", lambda: adapter.deposit(asset, amount, min_shares))
        self._holdings[(asset, strategy)] += shares
        logger.debug(f"Deployed {amount} {asset} into {strategy} ({shares} shares)")
        return shares

    def _redeem(self, asset: str, strategy: str, shares: int, min_amount: int) -> int:
        adapter = self.adapter(strategy)
        received = self._call(strategy, "withdraw", lambda: adapter.withdraw(asset, shares, min_amount))
        self._holdings[(asset, strategy)] -= shares
        self._idle[asset] += received
        return received

    def _record(self, kind: str, strategy: str, quantity: int) -> None:
        if self._moves is not None and quantity:
            self._moves.append((kind, strategy, quantity))

    def _unwind(self, asset: str, moves: list[tuple[str, str, int]]) -> None:
        for kind, strategy, quantity in reversed(moves):
            try:
                if kind == "recall":
                    self._deposit_to(asset, strategy, quantity, 0)
                    self._idle[asset] -= quantity
                else:
                    self._redeem(asset, strategy, quantity, 0)
            except YieldPoolError as e:
                # Capital stays on the idle balance; pooled value is unchanged.
                logger.error(f"Could not reverse {kind} of {quantity} {asset} on {strategy}: {e}")
            else:
                logger.warning(f"Reversed {kind} of {quantity} {asset} on {strategy}")

    @staticmethod
    def _call(strategy: str, action: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except YieldPoolError:
            raise
        except Exception as e:
            logger.error(f"Adapter {strategy} failed during {action}: {e}")
            raise AdapterError(strategy, action, e) from e

"""Vault facade: the caller and administrative surface over the ledger core.

Deposit path:  registry (supported? within bounds?) -> fee policy (net) ->
ledger (shares priced against the current pooled value) -> strategy book
(capital forwarded to the current deposit target).

Withdraw path: ledger preview (shares held? gross within bound?) -> strategy
book (recall liquidity) -> ledger burn -> payout minus the withdrawal fee.

Every mutating method holds the book's lock from its first read to its last
write, takes the pooled value once, and performs all checks before any state
changes. Adapter calls happen before the ledger is touched, so an adapter
failure leaves positions and totals exactly as they were.
"""

from collections.abc import Sequence

from yieldpool.adapters.base import StrategyAdapter
from yieldpool.allocation.book import StrategyBook
from yieldpool.allocation.engine import AllocationEngine
from yieldpool.allocation.executor import RebalanceExecutor
from yieldpool.config import YieldPoolSettings, settings
from yieldpool.core.capabilities import Capabilities
from yieldpool.core.errors import InsufficientShares, InvalidAmount, SlippageExceeded
from yieldpool.core.types import (
    AllocationResult,
    AssetRecord,
    DepositReceipt,
    FeeKind,
    PositionView,
    RebalanceOperation,
    RebalanceReport,
    StrategyMetrics,
    WithdrawalReceipt,
)
from yieldpool.ledger.fees import FeePolicy, apply_fee
from yieldpool.ledger.receipt import ReceiptToken
from yieldpool.ledger.registry import AssetRegistry
from yieldpool.ledger.store import LedgerStore, amount_for_shares
from yieldpool.logging import clear_ledger_context, get_logger, set_ledger_context
from yieldpool.observability.journal import JournalEvent, LedgerJournal

logger = get_logger(__name__)


class YieldVault:
    """Multi-asset share vault with risk-adjusted strategy allocation."""

    def __init__(
        self,
        config: YieldPoolSettings | None = None,
        *,
        journal: LedgerJournal | None = None,
    ) -> None:
        cfg = config or settings
        self._max_slippage_bps = cfg.max_slippage_bps
        self._registry = AssetRegistry()
        self._ledger = LedgerStore(self._registry)
        self._fees = FeePolicy(
            deposit_fee_bps=cfg.deposit_fee_bps,
            withdrawal_fee_bps=cfg.withdrawal_fee_bps,
            recipient=cfg.fee_recipient,
        )
        self._book = StrategyBook()
        self._engine = AllocationEngine(risk_free_rate_bps=cfg.risk_free_rate_bps)
        self._journal = journal if journal is not None else LedgerJournal(cfg.journal_dir)
        self._executor = RebalanceExecutor(
            self._book,
            self._engine,
            self._journal,
            min_yield_improvement_bps=cfg.min_yield_improvement_bps,
            max_slippage_bps=cfg.max_slippage_bps,
            deadline_seconds=cfg.rebalance_deadline_seconds,
        )
        self._receipts = ReceiptToken(self._ledger) if cfg.receipt_tokens_enabled else None
        logger.info(
            f"Vault initialized (deposit_fee={cfg.deposit_fee_bps} bps, "
            f"withdrawal_fee={cfg.withdrawal_fee_bps} bps, receipts={self._receipts is not None})"
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def registry(self) -> AssetRegistry:
        return self._registry

    @property
    def ledger(self) -> LedgerStore:
        return self._ledger

    @property
    def fees(self) -> FeePolicy:
        return self._fees

    @property
    def book(self) -> StrategyBook:
        return self._book

    @property
    def engine(self) -> AllocationEngine:
        return self._engine

    @property
    def executor(self) -> RebalanceExecutor:
        return self._executor

    @property
    def journal(self) -> LedgerJournal:
        return self._journal

    @property
    def receipts(self) -> ReceiptToken | None:
        return self._receipts

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    def deposit(
        self, caps: Capabilities, asset: str, amount: int, min_shares: int = 0
    ) -> DepositReceipt:
        caps.require_active()
        depositor = caps.caller
        set_ledger_context(asset=asset, depositor=depositor)
        try:
            with self._book.lock:
                if amount <= 0:
                    raise InvalidAmount(f"Deposit amount must be positive, got {amount}")
                self._registry.check_deposit_bounds(asset, amount)
                net, fee = self._fees.apply(FeeKind.DEPOSIT, amount)
                pooled = self._book.pooled_value(asset)
                self._ledger.preview_mint(asset, net, pooled, min_shares)

                strategy = self._book.accept(asset, net, self._max_slippage_bps)

                shares = self._ledger.mint_shares(
                    asset,
                    depositor,
                    net,
                    pooled,
                    gross_amount=amount,
                    min_shares_accepted=min_shares,
                )
                self._fees.accrue(asset, fee)
                if self._receipts:
                    self._receipts.mint(asset, depositor, shares)

                self._journal.record(
                    JournalEvent.DEPOSIT,
                    {"gross": amount, "fee": fee, "net": net, "shares": shares,
                     "pooled_before": pooled, "strategy": strategy},
                    asset=asset,
                    actor=depositor,
                )
                self._record_fee(asset, fee, depositor)
        finally:
            clear_ledger_context()

        logger.info(f"Deposit {asset}: {depositor} paid {amount}, minted {shares} shares (fee={fee})")
        return DepositReceipt(
            asset=asset,
            depositor=depositor,
            gross_amount=amount,
            fee_amount=fee,
            net_amount=net,
            shares_minted=shares,
            strategy=strategy,
        )

    def withdraw(
        self,
        caps: Capabilities,
        asset: str,
        shares: int,
        min_amount: int = 0,
        *,
        min_net_amount: int = 0,
    ) -> WithdrawalReceipt:
        """Burn ``shares`` and pay out their value minus the withdrawal fee.

        ``min_amount`` bounds the gross, pre-fee amount. ``min_net_amount``
        optionally bounds what the caller actually receives.
        """
        caps.require_active()
        depositor = caps.caller
        set_ledger_context(asset=asset, depositor=depositor)
        try:
            with self._book.lock:
                fee_bps = self._fees.withdrawal_fee_bps
                pooled = self._book.pooled_value(asset)
                redemption = self._ledger.preview_burn(
                    asset, depositor, shares, pooled, min_amount, fee_bps
                )
                if redemption.net_amount < min_net_amount:
                    raise SlippageExceeded(redemption.net_amount, min_net_amount, what="net amount")
                if self._receipts and self._receipts.balance_of(asset, depositor) < shares:
                    raise InsufficientShares(shares, self._receipts.balance_of(asset, depositor))

                self._book.ensure_liquidity(asset, redemption.gross_amount, self._max_slippage_bps)

                self._ledger.burn_shares(asset, depositor, shares, pooled, min_amount, fee_bps)
                self._book.pay_out(asset, redemption.gross_amount)
                self._fees.accrue(asset, redemption.fee_amount)
                if self._receipts:
                    self._receipts.burn(asset, depositor, shares)

                self._journal.record(
                    JournalEvent.WITHDRAWAL,
                    {"shares": shares, "gross": redemption.gross_amount,
                     "fee": redemption.fee_amount, "net": redemption.net_amount,
                     "pooled_before": pooled},
                    asset=asset,
                    actor=depositor,
                )
                self._record_fee(asset, redemption.fee_amount, depositor)
        finally:
            clear_ledger_context()

        logger.info(
            f"Withdrawal {asset}: {depositor} burned {shares} shares for "
            f"{redemption.net_amount} (gross={redemption.gross_amount}, fee={redemption.fee_amount})"
        )
        return WithdrawalReceipt(
            asset=asset,
            depositor=depositor,
            shares_burned=shares,
            gross_amount=redemption.gross_amount,
            fee_amount=redemption.fee_amount,
            net_amount=redemption.net_amount,
        )

    def preview_deposit(self, asset: str, amount: int) -> int:
        """Shares a deposit of ``amount`` would mint right now."""
        with self._book.lock:
            net, _ = self._fees.apply(FeeKind.DEPOSIT, amount)
            return self._ledger.preview_mint(asset, net, self._book.pooled_value(asset))

    def preview_withdraw(self, asset: str, shares: int) -> int:
        """Net amount ``shares`` would redeem for right now."""
        with self._book.lock:
            record = self._registry.get(asset)
            if shares <= 0:
                raise InvalidAmount(f"Shares to redeem must be positive, got {shares}")
            if shares > record.total_shares:
                raise InsufficientShares(shares, record.total_shares)
            gross = amount_for_shares(shares, record.total_shares, self._book.pooled_value(asset))
            net, _ = apply_fee(gross, self._fees.withdrawal_fee_bps)
            return net

    def get_position(self, depositor: str, asset: str) -> PositionView:
        with self._book.lock:
            record = self._registry.get(asset)
            shares = self._ledger.shares_of(asset, depositor)
            pooled = self._book.pooled_value(asset)
            return PositionView(
                asset=asset,
                shares=shares,
                value=amount_for_shares(shares, record.total_shares, pooled),
                apy_bps=self._book.current_apy(asset),
            )

    def get_portfolio(self, depositor: str) -> list[PositionView]:
        with self._book.lock:
            return [
                self.get_position(depositor, asset)
                for asset in self._registry.assets()
                if self._ledger.shares_of(asset, depositor) > 0
            ]

    def transfer_shares(self, caps: Capabilities, asset: str, recipient: str, shares: int) -> None:
        caps.require_active()
        with self._book.lock:
            if self._receipts:
                self._receipts.transfer(asset, caps.caller, recipient, shares)
            else:
                self._ledger.transfer_shares(asset, caps.caller, recipient, shares)
            self._journal.record(
                JournalEvent.SHARE_TRANSFER,
                {"recipient": recipient, "shares": shares},
                asset=asset,
                actor=caps.caller,
            )

    # ------------------------------------------------------------------
    # Reads for operators
    # ------------------------------------------------------------------

    def pooled_value(self, asset: str) -> int:
        with self._book.lock:
            self._registry.get(asset)
            return self._book.pooled_value(asset)

    def asset_record(self, asset: str) -> AssetRecord:
        with self._book.lock:
            record = self._registry.get(asset)
            return AssetRecord(**vars(record))

    # ------------------------------------------------------------------
    # Administrative surface
    # ------------------------------------------------------------------

    def add_asset(
        self,
        caps: Capabilities,
        asset: str,
        min_deposit: int = 0,
        max_deposit: int = 0,
        symbol: str = "",
    ) -> AssetRecord:
        caps.require_admin()
        with self._book.lock:
            record = self._registry.add_asset(asset, min_deposit, max_deposit, symbol)
            self._journal.record(
                JournalEvent.ASSET_ADDED,
                {"min_deposit": min_deposit, "max_deposit": max_deposit, "symbol": record.symbol},
                asset=asset,
                actor=caps.caller,
            )
            return AssetRecord(**vars(record))

    def remove_asset(self, caps: Capabilities, asset: str) -> None:
        caps.require_admin()
        with self._book.lock:
            self._registry.remove_asset(asset)
            self._ledger.forget_asset(asset)
            if self._book.pooled_value(asset):
                logger.warning(f"Asset {asset} removed with {self._book.pooled_value(asset)} unclaimed value")
            self._book.set_deposit_target(asset, None)
            self._journal.record(JournalEvent.ASSET_REMOVED, {}, asset=asset, actor=caps.caller)

    def update_limits(
        self, caps: Capabilities, asset: str, min_deposit: int, max_deposit: int
    ) -> None:
        caps.require_admin()
        with self._book.lock:
            self._registry.update_limits(asset, min_deposit, max_deposit)
            self._journal.record(
                JournalEvent.LIMITS_UPDATED,
                {"min_deposit": min_deposit, "max_deposit": max_deposit},
                asset=asset,
                actor=caps.caller,
            )

    def set_fee(self, caps: Capabilities, kind: FeeKind | str, rate_bps: int) -> None:
        caps.require_admin()
        with self._book.lock:
            kind = FeeKind(kind)
            self._fees.set_fee(kind, rate_bps)
            self._journal.record(
                JournalEvent.FEE_UPDATED, {"kind": kind.value, "rate_bps": rate_bps}, actor=caps.caller
            )

    def set_fee_recipient(self, caps: Capabilities, recipient: str) -> None:
        caps.require_admin()
        with self._book.lock:
            self._fees.set_recipient(recipient)
            self._journal.record(
                JournalEvent.FEE_UPDATED, {"recipient": recipient}, actor=caps.caller
            )

    def register_strategy(self, caps: Capabilities, adapter: StrategyAdapter) -> None:
        caps.require_admin()
        with self._book.lock:
            self._book.register(adapter)

    def set_deposit_target(self, caps: Capabilities, asset: str, strategy: str | None) -> None:
        caps.require_admin()
        with self._book.lock:
            self._registry.get(asset)
            self._book.set_deposit_target(asset, strategy)

    # ------------------------------------------------------------------
    # Yield and allocation
    # ------------------------------------------------------------------

    def harvest(self, caps: Capabilities, asset: str) -> dict[str, int]:
        """Collect strategy yield into the pool; share price rises for every holder."""
        caps.require_rebalancer()
        set_ledger_context(asset=asset)
        try:
            with self._book.lock:
                self._registry.get(asset)
                collected = self._book.harvest(asset)
                if collected:
                    self._journal.record(
                        JournalEvent.HARVEST,
                        {"collected": collected, "total": sum(collected.values())},
                        asset=asset,
                        actor=caps.caller,
                    )
        finally:
            clear_ledger_context()
        logger.info(f"Harvested {asset}: {collected}")
        return collected

    def allocate(self, metrics: Sequence[StrategyMetrics]) -> AllocationResult:
        return self._engine.compute_allocation(metrics)

    def propose_rebalance(
        self,
        caps: Capabilities,
        asset: str,
        allocation: AllocationResult,
        *,
        deadline: float | None = None,
        nonce: str | None = None,
    ) -> RebalanceOperation:
        caps.require_rebalancer()
        self._registry.get(asset)
        return self._executor.propose(asset, allocation, deadline=deadline, nonce=nonce)

    def execute_rebalance(
        self, caps: Capabilities, operation: RebalanceOperation, now: float | None = None
    ) -> RebalanceReport:
        caps.require_rebalancer()
        self._registry.get(operation.asset)
        return self._executor.execute(operation, now=now)

    def rebalance(
        self, caps: Capabilities, asset: str, metrics: Sequence[StrategyMetrics]
    ) -> RebalanceReport:
        """Compute, propose and execute in one call."""
        allocation = self.allocate(metrics)
        operation = self.propose_rebalance(caps, asset, allocation)
        return self.execute_rebalance(caps, operation)

    def _record_fee(self, asset: str, fee: int, payer: str) -> None:
        if fee > 0:
            self._journal.record(
                JournalEvent.FEE_ACCRUED,
                {"amount": fee, "recipient": self._fees.recipient, "payer": payer},
                asset=asset,
                actor=payer,
            )

"""Idempotent, slippage-bounded execution of rebalance operations."""

import hashlib
import json
import time
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from yieldpool.allocation.book import StrategyBook
from yieldpool.allocation.engine import AllocationEngine, blended_apy
from yieldpool.config import settings
from yieldpool.core.errors import (
    AlreadyExecuted,
    InsufficientImprovement,
    InvalidAllocation,
    OperationExpired,
    YieldPoolError,
)
from yieldpool.core.types import (
    BPS_DENOMINATOR,
    AllocationResult,
    RebalanceOperation,
    RebalanceReport,
    RebalanceStatus,
)
from yieldpool.logging import clear_ledger_context, get_logger, set_ledger_context
from yieldpool.observability.journal import JournalEvent, LedgerJournal

logger = get_logger(__name__)


def operation_id(asset: str, allocation: AllocationResult, deadline: float, nonce: str) -> str:
    """Deterministic identifier: SHA-256 of the canonical operation parameters."""
    payload = json.dumps(
        {
            "asset": asset,
            "targets": allocation.targets,
            "weights_bps": allocation.weights_bps,
            "expected_yields_bps": allocation.expected_yields_bps,
            "risk_scores_bps": allocation.risk_scores_bps,
            "blended_apy_bps": allocation.blended_apy_bps,
            "deadline": deadline,
            "nonce": nonce,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode()).hexdigest()


class RebalanceExecutor:
    """Applies validated allocations to strategy balances exactly once.

    Execution order:
    1. reject an identifier that already executed
    2. reject an expired operation
    3. validate the allocation and that every target is a registered strategy
    4. require the target blended APY to beat the current one by the
       configured minimum improvement
    5. mark the identifier executed, then move capital

    Step 5 marks before any adapter call, so a retried or re-entrant
    submission can never apply the same movements twice. If an adapter fails
    mid-way the movements already made are reversed, but the identifier is
    never reverted to pending.
    """

    def __init__(
        self,
        book: StrategyBook,
        engine: AllocationEngine,
        journal: LedgerJournal | None = None,
        *,
        min_yield_improvement_bps: int | None = None,
        max_slippage_bps: int | None = None,
        deadline_seconds: int | None = None,
    ) -> None:
        self._book = book
        self._engine = engine
        self._journal = journal
        self._min_improvement = (
            settings.min_yield_improvement_bps
            if min_yield_improvement_bps is None
            else min_yield_improvement_bps
        )
        self._max_slippage = (
            settings.max_slippage_bps if max_slippage_bps is None else max_slippage_bps
        )
        self._deadline_seconds = (
            settings.rebalance_deadline_seconds if deadline_seconds is None else deadline_seconds
        )
        self._operations: dict[str, RebalanceOperation] = {}
        self._executed: set[str] = set()

    @property
    def min_yield_improvement_bps(self) -> int:
        return self._min_improvement

    @property
    def max_slippage_bps(self) -> int:
        return self._max_slippage

    def propose(
        self,
        asset: str,
        allocation: AllocationResult,
        *,
        deadline: float | None = None,
        nonce: str | None = None,
        now: float | None = None,
    ) -> RebalanceOperation:
        """Record a pending operation; an identical proposal returns the stored one."""
        if deadline is None:
            deadline = (now if now is not None else time.time()) + self._deadline_seconds
        nonce = nonce or uuid.uuid4().hex
        op_id = operation_id(asset, allocation, deadline, nonce)
        with self._book.lock:
            existing = self._operations.get(op_id)
            if existing is not None:
                return existing
            operation = RebalanceOperation(
                operation_id=op_id,
                asset=asset,
                allocation=allocation,
                deadline=deadline,
                nonce=nonce,
            )
            self._operations[op_id] = operation
        logger.info(f"Rebalance proposed for {asset}: {op_id[:12]} (deadline={deadline:.0f})")
        return operation

    def execute(self, operation: RebalanceOperation, now: float | None = None) -> RebalanceReport:
        now = time.time() if now is None else now
        op_id = operation.operation_id
        set_ledger_context(asset=operation.asset, operation_id=op_id)
        try:
            with self._book.lock:
                try:
                    previous_apy = self._check(operation, now)
                except YieldPoolError as e:
                    self._journal_rejection(operation, e)
                    raise

                self._mark_executed(operation)
                try:
                    with self._book.atomic(operation.asset):
                        return self._apply(operation, previous_apy)
                except YieldPoolError as e:
                    self._journal_rejection(operation, e)
                    raise
        finally:
            clear_ledger_context()

    def execute_batch(
        self, operations: Iterable[RebalanceOperation], now: float | None = None
    ) -> list[RebalanceReport | YieldPoolError]:
        """Execute each operation independently; one outcome per operation."""
        outcomes: list[RebalanceReport | YieldPoolError] = []
        for operation in operations:
            try:
                outcomes.append(self.execute(operation, now=now))
            except YieldPoolError as e:
                logger.warning(f"Batch rebalance {operation.operation_id[:12]} rejected: {e}")
                outcomes.append(e)
        return outcomes

    def is_executed(self, op_id: str) -> bool:
        return op_id in self._executed

    def get_operation(self, op_id: str) -> RebalanceOperation | None:
        return self._operations.get(op_id)

    def pending(self) -> list[RebalanceOperation]:
        return [op for op in self._operations.values() if op.status == RebalanceStatus.PENDING]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check(self, operation: RebalanceOperation, now: float) -> int:
        """Run every precondition; return the current blended APY."""
        op_id = operation.operation_id
        if op_id in self._executed:
            raise AlreadyExecuted(op_id)
        expected_id = operation_id(
            operation.asset, operation.allocation, operation.deadline, operation.nonce
        )
        if expected_id != op_id:
            raise InvalidAllocation(f"Operation id {op_id[:12]} does not match its parameters")
        if now > operation.deadline:
            raise OperationExpired(op_id, operation.deadline, now)

        allocation = operation.allocation
        self._engine.ensure_valid(allocation, self._max_slippage, self._min_improvement)
        for strategy in allocation.targets:
            if not self._book.has_strategy(strategy):
                raise InvalidAllocation(f"Allocation targets unregistered strategy {strategy}")

        target_apy = blended_apy(allocation.expected_yields_bps, allocation.weights_bps)
        previous_apy = self._book.current_apy(operation.asset)
        if target_apy < previous_apy + self._min_improvement:
            raise InsufficientImprovement(target_apy, previous_apy, self._min_improvement)
        return previous_apy

    def _mark_executed(self, operation: RebalanceOperation) -> None:
        self._executed.add(operation.operation_id)
        operation.status = RebalanceStatus.EXECUTED
        operation.executed_at = datetime.now(UTC)
        self._operations[operation.operation_id] = operation

    def _apply(self, operation: RebalanceOperation, previous_apy: int) -> RebalanceReport:
        asset = operation.asset
        allocation = operation.allocation
        report = RebalanceReport(
            operation_id=operation.operation_id,
            asset=asset,
            previous_apy_bps=previous_apy,
            target_apy_bps=allocation.blended_apy_bps,
        )

        pooled = self._book.pooled_value(asset)
        balances = self._book.strategy_balances(asset)
        targets = {
            strategy: pooled * allocation.weight_of(strategy) // BPS_DENOMINATOR
            for strategy in allocation.targets
        }

        # Recall first so the deposits below are funded from the idle balance.
        for strategy, current in balances.items():
            excess = current - targets.get(strategy, 0)
            if excess > 0:
                report.withdrawn[strategy] = self._book.recall(
                    asset, strategy, excess, self._max_slippage
                )

        balances = self._book.strategy_balances(asset)
        for strategy in allocation.targets:
            shortfall = min(targets[strategy] - balances.get(strategy, 0), self._book.idle(asset))
            if shortfall > 0:
                self._book.deploy(asset, strategy, shortfall, self._max_slippage)
                report.deposited[strategy] = shortfall

        heaviest = max(range(len(allocation.targets)), key=lambda i: allocation.weights_bps[i])
        report.deposit_target = allocation.targets[heaviest]
        self._book.set_deposit_target(asset, report.deposit_target)

        logger.info(
            f"Rebalance executed for {asset}: withdrawn={report.withdrawn}, "
            f"deposited={report.deposited}, apy {previous_apy} -> {allocation.blended_apy_bps} bps"
        )
        if self._journal:
            self._journal.record(
                JournalEvent.REBALANCE_EXECUTED,
                {
                    "targets": allocation.targets,
                    "weights_bps": allocation.weights_bps,
                    "withdrawn": report.withdrawn,
                    "deposited": report.deposited,
                    "previous_apy_bps": previous_apy,
                    "target_apy_bps": allocation.blended_apy_bps,
                },
                asset=asset,
                correlation_id=operation.operation_id,
            )
        return report

    def _journal_rejection(self, operation: RebalanceOperation, error: YieldPoolError) -> None:
        logger.warning(f"Rebalance {operation.operation_id[:12]} rejected: {error}")
        if self._journal:
            self._journal.record(
                JournalEvent.REBALANCE_REJECTED,
                {"reason": type(error).__name__, "detail": str(error)},
                asset=operation.asset,
                correlation_id=operation.operation_id,
            )

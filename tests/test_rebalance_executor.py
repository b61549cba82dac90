"""Tests for rebalance proposal and exactly-once execution."""

import dataclasses

import pytest

from conftest import ASSET, safe_metrics
from yieldpool.allocation.executor import operation_id
from yieldpool.core.errors import (
    AdapterError,
    AlreadyExecuted,
    InsufficientImprovement,
    InvalidAllocation,
    OperationExpired,
    Unauthorized,
)
from yieldpool.core.types import RebalanceStatus
from yieldpool.observability.journal import JournalEvent

BASE_METRICS = [safe_metrics("aave", 300), safe_metrics("compound", 600), safe_metrics("curve", 900)]


@pytest.fixture
def funded(vault, alice):
    vault.deposit(alice, ASSET, 10_000)
    return vault


def test_operation_id_is_deterministic(vault) -> None:
    allocation = vault.allocate(BASE_METRICS)
    first = operation_id(ASSET, allocation, 1_000.0, "n1")
    assert first == operation_id(ASSET, allocation, 1_000.0, "n1")
    assert first != operation_id(ASSET, allocation, 1_000.0, "n2")
    assert first != operation_id("DAI", allocation, 1_000.0, "n1")
    assert len(first) == 64


def test_identical_proposal_returns_stored_operation(funded, operator) -> None:
    allocation = funded.allocate(BASE_METRICS)
    first = funded.propose_rebalance(operator, ASSET, allocation, deadline=9e9, nonce="n")
    second = funded.propose_rebalance(operator, ASSET, allocation, deadline=9e9, nonce="n")
    assert first is second
    assert funded.executor.pending() == [first]


def test_execute_deploys_idle_capital(funded, operator) -> None:
    allocation = funded.allocate(BASE_METRICS)
    operation = funded.propose_rebalance(operator, ASSET, allocation)

    report = funded.execute_rebalance(operator, operation)

    assert report.previous_apy_bps == 0
    assert report.target_apy_bps == 698
    assert report.deposited == {"aave": 1_666, "compound": 3_333, "curve": 5_001}
    assert report.withdrawn == {}
    assert report.deposit_target == "curve"
    assert funded.book.idle(ASSET) == 0
    assert funded.pooled_value(ASSET) == 10_000
    assert funded.book.current_apy(ASSET) == 698
    assert operation.status == RebalanceStatus.EXECUTED
    assert funded.executor.is_executed(operation.operation_id)


def test_second_execution_rejected_without_moving_capital(funded, operator) -> None:
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(BASE_METRICS))
    funded.execute_rebalance(operator, operation)
    balances = funded.book.strategy_balances(ASSET)

    with pytest.raises(AlreadyExecuted):
        funded.execute_rebalance(operator, operation)
    assert funded.book.strategy_balances(ASSET) == balances


def test_reallocation_recalls_then_deploys(funded, operator, adapters) -> None:
    funded.rebalance(operator, ASSET, BASE_METRICS)

    shifted = [safe_metrics("aave", 2_000), safe_metrics("compound", 600), safe_metrics("curve", 100)]
    report = funded.rebalance(operator, ASSET, shifted)

    assert report.withdrawn == {"compound": 1_111, "curve": 4_631}
    assert report.deposited == {"aave": 5_742}
    assert funded.book.strategy_balances(ASSET) == {"aave": 7_408, "compound": 2_222, "curve": 370}
    assert funded.book.deposit_target(ASSET) == "aave"
    assert funded.pooled_value(ASSET) == 10_000


def test_insufficient_improvement_rejected(funded, operator) -> None:
    funded.rebalance(operator, ASSET, BASE_METRICS)
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(BASE_METRICS))

    with pytest.raises(InsufficientImprovement) as exc_info:
        funded.execute_rebalance(operator, operation)
    assert exc_info.value.reference_apy_bps == 698
    assert not funded.executor.is_executed(operation.operation_id)

    rejected = funded.journal.entries(JournalEvent.REBALANCE_REJECTED)
    assert rejected[-1].correlation_id == operation.operation_id


def test_expired_operation_rejected(funded, operator) -> None:
    operation = funded.propose_rebalance(
        operator, ASSET, funded.allocate(BASE_METRICS), deadline=1_000.0
    )
    with pytest.raises(OperationExpired):
        funded.execute_rebalance(operator, operation, now=1_001.0)
    assert funded.book.idle(ASSET) == 10_000


def test_tampered_operation_rejected(funded, operator) -> None:
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(BASE_METRICS))
    forged = dataclasses.replace(operation, nonce="other")
    with pytest.raises(InvalidAllocation):
        funded.execute_rebalance(operator, forged)


def test_unregistered_target_rejected(funded, operator) -> None:
    metrics = [safe_metrics("aave", 300), safe_metrics("yearn", 900)]
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(metrics))
    with pytest.raises(InvalidAllocation):
        funded.execute_rebalance(operator, operation)


def test_depositor_cannot_rebalance(funded, alice) -> None:
    with pytest.raises(Unauthorized):
        funded.propose_rebalance(alice, ASSET, funded.allocate(BASE_METRICS))


def test_adapter_failure_keeps_operation_executed(funded, operator, adapters, alice) -> None:
    adapters["curve"].fail_on("deposit")
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(BASE_METRICS))

    with pytest.raises(AdapterError):
        funded.execute_rebalance(operator, operation)
    chain = funded.journal.get_chain(operation.operation_id)
    assert [e.event for e in chain] == [JournalEvent.REBALANCE_REJECTED.value]

    assert funded.executor.is_executed(operation.operation_id)
    with pytest.raises(AlreadyExecuted):
        funded.execute_rebalance(operator, operation)
    # Deploys into aave and compound were reversed.
    assert funded.book.idle(ASSET) == 10_000
    assert funded.book.strategy_balances(ASSET) == {}
    assert funded.book.deposit_target(ASSET) is None
    assert funded.get_position("alice", ASSET).value == 10_000


def test_failed_reallocation_restores_previous_placement(funded, operator, adapters) -> None:
    funded.rebalance(operator, ASSET, BASE_METRICS)
    before = funded.book.strategy_balances(ASSET)
    adapters["aave"].fail_on("deposit")

    shifted = [safe_metrics("aave", 2_000), safe_metrics("compound", 600), safe_metrics("curve", 100)]
    with pytest.raises(AdapterError):
        funded.rebalance(operator, ASSET, shifted)

    assert funded.book.strategy_balances(ASSET) == before
    assert funded.book.idle(ASSET) == 0
    assert funded.book.deposit_target(ASSET) == "curve"


def test_allocation_with_inflated_blended_apy_rejected(funded, operator) -> None:
    honest = funded.allocate([safe_metrics("aave", 10)])
    assert not funded.engine.validate(honest, 100, 50)

    inflated = honest.model_copy(update={"blended_apy_bps": 9_000, "risk_scores_bps": [0]})
    operation = funded.propose_rebalance(operator, ASSET, inflated)
    with pytest.raises(InvalidAllocation):
        funded.execute_rebalance(operator, operation)

    assert funded.book.idle(ASSET) == 10_000
    assert funded.book.strategy_balances(ASSET) == {}


def test_allocation_changed_after_proposal_rejected(funded, operator) -> None:
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(BASE_METRICS))
    altered = operation.allocation.model_copy(update={"risk_scores_bps": [0, 0, 0]})
    with pytest.raises(InvalidAllocation):
        funded.execute_rebalance(operator, dataclasses.replace(operation, allocation=altered))
    assert funded.book.idle(ASSET) == 10_000


def test_execute_batch_reports_each_outcome(funded, operator) -> None:
    operation = funded.propose_rebalance(operator, ASSET, funded.allocate(BASE_METRICS))
    outcomes = funded.executor.execute_batch([operation, operation])

    assert outcomes[0].target_apy_bps == 698
    assert isinstance(outcomes[1], AlreadyExecuted)


def test_executed_rebalance_is_journaled(funded, operator) -> None:
    report = funded.rebalance(operator, ASSET, BASE_METRICS)
    chain = funded.journal.get_chain(report.operation_id)
    assert [e.event for e in chain] == [JournalEvent.REBALANCE_EXECUTED.value]
    assert chain[0].data["deposited"] == report.deposited

"""Tests for risk scoring, weighting and allocation validation."""

import pytest

from conftest import safe_metrics
from yieldpool.allocation.engine import (
    PRECISION,
    AllocationEngine,
    blended_apy,
    portfolio_risk,
    risk_score,
)
from yieldpool.core.errors import (
    InsufficientImprovement,
    InvalidAllocation,
    RiskCeilingExceeded,
)
from yieldpool.core.types import AllocationResult, StrategyMetrics


@pytest.fixture
def engine() -> AllocationEngine:
    return AllocationEngine(risk_free_rate_bps=200)


class TestRiskScore:
    def test_safe_strategy_is_volatility_only(self) -> None:
        assert risk_score(safe_metrics("a", 500, volatility_bps=1_200)) == 1_200

    def test_thin_liquidity_and_small_cap_penalties(self) -> None:
        metrics = StrategyMetrics(
            identity="a",
            current_apy_bps=500,
            volatility_bps=2_000,
            liquidity_depth_usd=50_000,
            market_cap_usd=500_000,
        )
        assert risk_score(metrics) == 3_500

    def test_clamped_to_full_scale(self) -> None:
        metrics = StrategyMetrics(identity="a", current_apy_bps=500, volatility_bps=9_800)
        assert risk_score(metrics) == 10_000


class TestWeights:
    def test_equal_risk_weights_follow_apy(self, engine: AllocationEngine) -> None:
        """APYs 300/600/900 at identical risk: 1666/3333/5001, remainder on the largest."""
        metrics = [safe_metrics("a", 300), safe_metrics("b", 600), safe_metrics("c", 900)]
        assert engine.compute_weights(metrics) == [1_666, 3_333, 5_001]

    def test_weights_always_sum_to_full_scale(self, engine: AllocationEngine) -> None:
        metrics = [
            safe_metrics("a", 137, volatility_bps=900),
            safe_metrics("b", 811, volatility_bps=3_100),
            safe_metrics("c", 45, volatility_bps=50),
            safe_metrics("d", 1_999, volatility_bps=7_000),
        ]
        assert sum(engine.compute_weights(metrics)) == 10_000

    def test_small_weight_lifted_before_renormalization(self, engine: AllocationEngine) -> None:
        metrics = [safe_metrics("a", 10_000), safe_metrics("b", 10)]
        # raw 9990/9 -> floored 9990/100 -> renormalized
        assert engine.compute_weights(metrics) == [9_901, 99]

    def test_zero_apy_gets_zero_weight(self, engine: AllocationEngine) -> None:
        metrics = [safe_metrics("a", 0), safe_metrics("b", 600)]
        assert engine.compute_weights(metrics) == [0, 10_000]

    def test_all_zero_scores_split_equally(self, engine: AllocationEngine) -> None:
        metrics = [safe_metrics("a", 0), safe_metrics("b", 0), safe_metrics("c", 0)]
        assert engine.compute_weights(metrics) == [3_334, 3_333, 3_333]

    def test_riskier_strategy_gets_less(self, engine: AllocationEngine) -> None:
        metrics = [
            safe_metrics("calm", 600, volatility_bps=1_000),
            safe_metrics("wild", 600, volatility_bps=3_000),
        ]
        calm, wild = engine.compute_weights(metrics)
        assert calm > wild

    def test_no_candidates(self, engine: AllocationEngine) -> None:
        with pytest.raises(InvalidAllocation):
            engine.compute_weights([])


class TestAllocation:
    def test_blended_apy_and_return(self, engine: AllocationEngine) -> None:
        metrics = [safe_metrics("a", 300), safe_metrics("b", 600), safe_metrics("c", 900)]
        allocation = engine.compute_allocation(metrics)

        assert allocation.targets == ["a", "b", "c"]
        assert allocation.blended_apy_bps == 698
        assert allocation.risk_scores_bps == [0, 0, 0]
        # zero portfolio risk is floored to 1 bps
        assert allocation.risk_adjusted_return == (698 - 200) * PRECISION
        assert engine.risk_adjusted_return(allocation) == allocation.risk_adjusted_return

    def test_return_below_risk_free_rate_is_zero(self, engine: AllocationEngine) -> None:
        allocation = engine.compute_allocation([safe_metrics("a", 150, volatility_bps=500)])
        assert allocation.risk_adjusted_return == 0

    def test_duplicate_identities_rejected(self, engine: AllocationEngine) -> None:
        with pytest.raises(InvalidAllocation):
            engine.compute_allocation([safe_metrics("a", 300), safe_metrics("a", 600)])

    def test_helpers_floor(self) -> None:
        assert blended_apy([300, 600, 900], [1_666, 3_333, 5_001]) == 698
        assert portfolio_risk([1_000, 3_000], [3_333, 6_667]) == 2_333


def _allocation(weights: list[int], yields: list[int], risks: list[int]) -> AllocationResult:
    targets = [f"s{i}" for i in range(len(weights))]
    return AllocationResult(
        targets=targets,
        weights_bps=weights,
        expected_yields_bps=yields,
        risk_scores_bps=risks,
        blended_apy_bps=blended_apy(yields, weights),
        risk_adjusted_return=0,
    )


class TestValidation:
    def test_valid_allocation(self, engine: AllocationEngine) -> None:
        allocation = _allocation([5_000, 5_000], [600, 800], [1_000, 2_000])
        engine.ensure_valid(allocation, max_slippage_bps=100, min_yield_improvement_bps=50)
        assert engine.validate(allocation, 100, 50)

    def test_weight_sum_tolerance(self, engine: AllocationEngine) -> None:
        engine.ensure_valid(_allocation([5_000, 4_950], [600, 600], [0, 0]), 100, 50)
        with pytest.raises(InvalidAllocation):
            engine.ensure_valid(_allocation([5_000, 4_800], [600, 600], [0, 0]), 100, 50)

    def test_slippage_out_of_range(self, engine: AllocationEngine) -> None:
        with pytest.raises(InvalidAllocation):
            engine.ensure_valid(_allocation([10_000], [600], [0]), 10_001, 50)

    def test_yield_below_minimum(self, engine: AllocationEngine) -> None:
        with pytest.raises(InsufficientImprovement):
            engine.ensure_valid(_allocation([10_000], [40], [0]), 100, 50)

    def test_risk_ceiling_is_a_hard_rail(self, engine: AllocationEngine) -> None:
        allocation = _allocation([5_000, 5_000], [1_000, 1_000], [9_000, 9_000])
        with pytest.raises(RiskCeilingExceeded) as exc_info:
            engine.ensure_valid(allocation, 100, 50)
        assert exc_info.value.portfolio_risk_bps == 9_000
        assert not engine.validate(allocation, 100, 50)

    def test_reported_blended_apy_must_match_inputs(self, engine: AllocationEngine) -> None:
        honest = _allocation([10_000], [10], [0])
        assert not engine.validate(honest, 100, 50)

        inflated = honest.model_copy(update={"blended_apy_bps": 9_000})
        with pytest.raises(InvalidAllocation):
            engine.ensure_valid(inflated, 100, 50)

    def test_duplicate_targets_rejected(self, engine: AllocationEngine) -> None:
        allocation = _allocation([5_000, 5_000], [600, 800], [0, 0]).model_copy(
            update={"targets": ["s0", "s0"]}
        )
        with pytest.raises(InvalidAllocation):
            engine.ensure_valid(allocation, 100, 50)

    def test_risk_score_out_of_range_rejected(self, engine: AllocationEngine) -> None:
        with pytest.raises(InvalidAllocation):
            engine.ensure_valid(_allocation([10_000], [600], [-9_000]), 100, 50)
        with pytest.raises(InvalidAllocation):
            engine.ensure_valid(_allocation([10_000], [600], [10_001]), 100, 50)

    def test_mismatched_lengths_rejected_at_construction(self) -> None:
        with pytest.raises(ValueError):
            AllocationResult(
                targets=["a", "b"],
                weights_bps=[10_000],
                expected_yields_bps=[600, 600],
                risk_scores_bps=[0, 0],
                blended_apy_bps=600,
                risk_adjusted_return=0,
            )

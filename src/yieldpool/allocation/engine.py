"""Risk-adjusted capital allocation across strategies."""

from collections.abc import Sequence

from yieldpool.config import settings
from yieldpool.core.errors import (
    InsufficientImprovement,
    InvalidAllocation,
    RiskCeilingExceeded,
)
from yieldpool.core.types import BPS_DENOMINATOR, AllocationResult, StrategyMetrics
from yieldpool.logging import get_logger

logger = get_logger(__name__)

PRECISION = 10**18

MAX_RISK_BPS = 10_000
LOW_LIQUIDITY_USD = 100_000
LOW_LIQUIDITY_PENALTY_BPS = 1_000
SMALL_MARKET_CAP_USD = 1_000_000
SMALL_MARKET_CAP_PENALTY_BPS = 500

MIN_ALLOCATION_BPS = 100
WEIGHT_TOLERANCE_BPS = 100
# Hard rail, not configurable.
PORTFOLIO_RISK_CEILING_BPS = 8_000


def risk_score(metrics: StrategyMetrics) -> int:
    """Volatility plus thin-liquidity and small-cap penalties, clamped to 0..10000 bps."""
    score = metrics.volatility_bps
    if metrics.liquidity_depth_usd < LOW_LIQUIDITY_USD:
        score += LOW_LIQUIDITY_PENALTY_BPS
    if metrics.market_cap_usd < SMALL_MARKET_CAP_USD:
        score += SMALL_MARKET_CAP_PENALTY_BPS
    return max(0, min(MAX_RISK_BPS, score))


def blended_apy(yields_bps: Sequence[int], weights_bps: Sequence[int]) -> int:
    """Weighted APY; each term is floored so rounding error is at most one unit per term."""
    return sum(y * w // BPS_DENOMINATOR for y, w in zip(yields_bps, weights_bps, strict=True))


def portfolio_risk(risk_scores_bps: Sequence[int], weights_bps: Sequence[int]) -> int:
    return (
        sum(r * w for r, w in zip(risk_scores_bps, weights_bps, strict=True)) // BPS_DENOMINATOR
    )


def _renormalize(weights: list[int]) -> list[int]:
    """Rescale to exactly 10000 bps; the floor remainder goes to the largest weight."""
    total = sum(weights)
    scaled = [w * BPS_DENOMINATOR // total for w in weights]
    remainder = BPS_DENOMINATOR - sum(scaled)
    if remainder:
        largest = max(range(len(scaled)), key=lambda i: scaled[i])
        scaled[largest] += remainder
    return scaled


def _equal_weights(n: int) -> list[int]:
    base, remainder = divmod(BPS_DENOMINATOR, n)
    return [base + (1 if i < remainder else 0) for i in range(n)]


class AllocationEngine:
    """Turns candidate strategy metrics into target weights and vets proposals.

    Weighting:
    - score = APY / risk (risk floored at 1 bps)
    - raw weight = share of the summed scores, in bps
    - nonzero weights under ``MIN_ALLOCATION_BPS`` are lifted to it
    - every weight is then renormalized so the set sums to 10000 bps
    """

    def __init__(self, risk_free_rate_bps: int | None = None) -> None:
        self._risk_free_rate_bps = (
            settings.risk_free_rate_bps if risk_free_rate_bps is None else risk_free_rate_bps
        )

    @property
    def risk_free_rate_bps(self) -> int:
        return self._risk_free_rate_bps

    def compute_weights(self, metrics: Sequence[StrategyMetrics]) -> list[int]:
        if not metrics:
            raise InvalidAllocation("At least one candidate strategy is required")

        scores = [
            m.current_apy_bps * PRECISION // max(risk_score(m), 1) for m in metrics
        ]
        total_score = sum(scores)
        if total_score == 0:
            return _equal_weights(len(metrics))

        raw = [s * BPS_DENOMINATOR // total_score for s in scores]
        floored = [max(w, MIN_ALLOCATION_BPS) if w > 0 else 0 for w in raw]
        if not any(floored):
            return _equal_weights(len(metrics))
        return _renormalize(floored)

    def compute_allocation(self, metrics: Sequence[StrategyMetrics]) -> AllocationResult:
        identities = [m.identity for m in metrics]
        if len(set(identities)) != len(identities):
            raise InvalidAllocation(f"Duplicate strategy identities: {identities}")

        weights = self.compute_weights(metrics)
        yields = [m.current_apy_bps for m in metrics]
        risks = [risk_score(m) for m in metrics]
        blended = blended_apy(yields, weights)
        allocation = AllocationResult(
            targets=identities,
            weights_bps=weights,
            expected_yields_bps=yields,
            risk_scores_bps=risks,
            blended_apy_bps=blended,
            risk_adjusted_return=self._risk_adjusted(blended, portfolio_risk(risks, weights)),
        )
        logger.info(
            f"Computed allocation: {dict(zip(identities, weights))} "
            f"(blended={blended} bps, rar={allocation.risk_adjusted_return})"
        )
        return allocation

    def risk_adjusted_return(self, allocation: AllocationResult) -> int:
        risk = portfolio_risk(allocation.risk_scores_bps, allocation.weights_bps)
        return self._risk_adjusted(allocation.blended_apy_bps, risk)

    def _risk_adjusted(self, blended_bps: int, risk_bps: int) -> int:
        excess = max(blended_bps - self._risk_free_rate_bps, 0)
        return excess * PRECISION // max(risk_bps, 1)

    def ensure_valid(
        self,
        allocation: AllocationResult,
        max_slippage_bps: int,
        min_yield_improvement_bps: int,
    ) -> None:
        """Raise the specific allocation-policy violation, if any.

        Derived figures are recomputed from the per-target inputs; an
        allocation whose reported blended APY disagrees with its own yields
        and weights is rejected.
        """
        if not 0 <= max_slippage_bps <= BPS_DENOMINATOR:
            raise InvalidAllocation(f"Slippage bound out of range: {max_slippage_bps} bps")
        if not allocation.targets:
            raise InvalidAllocation("Allocation has no targets")
        if len(set(allocation.targets)) != len(allocation.targets):
            raise InvalidAllocation(f"Duplicate targets in allocation: {allocation.targets}")

        total = sum(allocation.weights_bps)
        if abs(total - BPS_DENOMINATOR) > WEIGHT_TOLERANCE_BPS:
            raise InvalidAllocation(f"Weights sum to {total} bps, expected 10000 +/- 100")
        if any(w < 0 for w in allocation.weights_bps):
            raise InvalidAllocation("Negative weight in allocation")
        if any(y < 0 for y in allocation.expected_yields_bps):
            raise InvalidAllocation("Negative expected yield in allocation")
        if any(not 0 <= r <= MAX_RISK_BPS for r in allocation.risk_scores_bps):
            raise InvalidAllocation("Risk score outside 0..10000 bps")

        blended = blended_apy(allocation.expected_yields_bps, allocation.weights_bps)
        if blended != allocation.blended_apy_bps:
            raise InvalidAllocation(
                f"Reported blended APY {allocation.blended_apy_bps} bps does not match "
                f"its yields and weights ({blended} bps)"
            )
        if blended < min_yield_improvement_bps:
            raise InsufficientImprovement(blended, 0, min_yield_improvement_bps)

        risk = portfolio_risk(allocation.risk_scores_bps, allocation.weights_bps)
        if risk > PORTFOLIO_RISK_CEILING_BPS:
            raise RiskCeilingExceeded(risk, PORTFOLIO_RISK_CEILING_BPS)

    def validate(
        self,
        allocation: AllocationResult,
        max_slippage_bps: int,
        min_yield_improvement_bps: int,
    ) -> bool:
        try:
            self.ensure_valid(allocation, max_slippage_bps, min_yield_improvement_bps)
        except (InvalidAllocation, InsufficientImprovement, RiskCeilingExceeded) as e:
            logger.warning(f"Allocation rejected: {e}")
            return False
        return True

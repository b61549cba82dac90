"""Error taxonomy for ledger and allocation operations.

Every error carries an ``ErrorCategory`` so callers (and the API layer) can
decide whether adjusting inputs, refreshing market data, or manual review is
the right response.  All of them are raised before any state is mutated.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Rejection categories."""

    POLICY = "policy"
    SLIPPAGE = "slippage"
    INTEGRITY = "integrity"
    IDEMPOTENCE = "idempotence"
    ALLOCATION_POLICY = "allocation_policy"
    ADAPTER = "adapter"


class YieldPoolError(Exception):
    """Base class for all domain rejections."""

    category: ErrorCategory = ErrorCategory.POLICY


# ---------------------------------------------------------------------------
# Policy violations - caller can adjust inputs and retry
# ---------------------------------------------------------------------------


class PolicyViolation(YieldPoolError):
    category = ErrorCategory.POLICY


class AssetNotSupported(PolicyViolation):
    def __init__(self, asset: str) -> None:
        super().__init__(f"Asset not supported: {asset}")
        self.asset = asset


class AssetAlreadyExists(PolicyViolation):
    def __init__(self, asset: str) -> None:
        super().__init__(f"Asset already registered: {asset}")
        self.asset = asset


class InvalidAmount(PolicyViolation):
    pass


class AmountBelowMinimum(PolicyViolation):
    def __init__(self, amount: int, minimum: int) -> None:
        super().__init__(f"Amount {amount} below minimum deposit {minimum}")
        self.amount = amount
        self.minimum = minimum


class AmountAboveMaximum(PolicyViolation):
    def __init__(self, amount: int, maximum: int) -> None:
        super().__init__(f"Amount {amount} above maximum deposit {maximum}")
        self.amount = amount
        self.maximum = maximum


class BelowMinimumShares(PolicyViolation):
    """Deposit would mint fewer shares than the dust floor."""

    def __init__(self, shares: int, minimum: int) -> None:
        super().__init__(f"Deposit mints {shares} shares, below floor of {minimum}")
        self.shares = shares
        self.minimum = minimum


class FeeRateTooHigh(PolicyViolation):
    def __init__(self, rate_bps: int, ceiling_bps: int) -> None:
        super().__init__(f"Fee rate {rate_bps} bps exceeds ceiling of {ceiling_bps} bps")
        self.rate_bps = rate_bps
        self.ceiling_bps = ceiling_bps


class UnknownStrategy(PolicyViolation):
    def __init__(self, strategy: str) -> None:
        super().__init__(f"Strategy not registered: {strategy}")
        self.strategy = strategy


class StrategyAlreadyRegistered(PolicyViolation):
    def __init__(self, strategy: str) -> None:
        super().__init__(f"Strategy already registered: {strategy}")
        self.strategy = strategy


class Unauthorized(PolicyViolation):
    pass


class OperationPaused(PolicyViolation):
    pass


class OperationExpired(PolicyViolation):
    def __init__(self, operation_id: str, deadline: float, now: float) -> None:
        super().__init__(f"Operation {operation_id} expired at {deadline} (now {now})")
        self.operation_id = operation_id
        self.deadline = deadline


# ---------------------------------------------------------------------------
# Slippage violations - retry with adjusted bounds or fresh market data
# ---------------------------------------------------------------------------


class SlippageExceeded(YieldPoolError):
    category = ErrorCategory.SLIPPAGE

    def __init__(self, actual: int, minimum: int, what: str = "amount") -> None:
        super().__init__(f"Slippage exceeded: {what} {actual} < minimum {minimum}")
        self.actual = actual
        self.minimum = minimum


# ---------------------------------------------------------------------------
# Integrity violations - not retryable without a different request
# ---------------------------------------------------------------------------


class IntegrityViolation(YieldPoolError):
    category = ErrorCategory.INTEGRITY


class InsufficientShares(IntegrityViolation):
    def __init__(self, requested: int, available: int) -> None:
        super().__init__(f"Insufficient shares: requested {requested}, position holds {available}")
        self.requested = requested
        self.available = available


class ActivePositionsExist(IntegrityViolation):
    def __init__(self, asset: str, total_shares: int) -> None:
        super().__init__(f"Asset {asset} has active positions ({total_shares} shares outstanding)")
        self.asset = asset
        self.total_shares = total_shares


class InsufficientPoolValue(IntegrityViolation):
    pass


# ---------------------------------------------------------------------------
# Idempotence violations - permanent
# ---------------------------------------------------------------------------


class AlreadyExecuted(YieldPoolError):
    category = ErrorCategory.IDEMPOTENCE

    def __init__(self, operation_id: str) -> None:
        super().__init__(f"Operation already executed: {operation_id}")
        self.operation_id = operation_id


# ---------------------------------------------------------------------------
# Allocation-policy violations - surfaced for manual review
# ---------------------------------------------------------------------------


class AllocationPolicyViolation(YieldPoolError):
    category = ErrorCategory.ALLOCATION_POLICY


class InvalidAllocation(AllocationPolicyViolation):
    pass


class RiskCeilingExceeded(AllocationPolicyViolation):
    def __init__(self, portfolio_risk_bps: int, ceiling_bps: int) -> None:
        super().__init__(
            f"Portfolio risk {portfolio_risk_bps} bps exceeds ceiling of {ceiling_bps} bps"
        )
        self.portfolio_risk_bps = portfolio_risk_bps
        self.ceiling_bps = ceiling_bps


class InsufficientImprovement(AllocationPolicyViolation):
    def __init__(self, target_apy_bps: int, reference_apy_bps: int, required_bps: int) -> None:
        super().__init__(
            f"Target APY {target_apy_bps} bps does not beat {reference_apy_bps} bps "
            f"by the required {required_bps} bps"
        )
        self.target_apy_bps = target_apy_bps
        self.reference_apy_bps = reference_apy_bps
        self.required_bps = required_bps


# ---------------------------------------------------------------------------
# Adapter failures
# ---------------------------------------------------------------------------


class AdapterError(YieldPoolError):
    """A strategy adapter call failed; the enclosing operation was aborted."""

    category = ErrorCategory.ADAPTER

    def __init__(self, strategy: str, action: str, cause: Exception) -> None:
        super().__init__(f"Strategy {strategy} failed during {action}: {cause}")
        self.strategy = strategy
        self.action = action
        self.cause = cause

"""Domain types for the share ledger and the allocation engine.

Ledger records are plain mutable dataclasses owned by a single store; inputs
and outputs of the allocation engine are Pydantic models so they can be
validated at the API boundary and serialised without extra glue.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

BPS_DENOMINATOR = 10_000


class FeeKind(str, Enum):
    """Which side of the pool a fee applies to."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


# ---------------------------------------------------------------------------
# Ledger records
# ---------------------------------------------------------------------------


@dataclass
class AssetRecord:
    """Aggregate state for one supported asset."""

    asset: str
    supported: bool = True
    total_shares: int = 0
    total_deposited: int = 0
    total_withdrawn: int = 0
    min_deposit: int = 0
    #: 0 means unbounded
    max_deposit: int = 0
    #: Display metadata only
    symbol: str = ""


@dataclass
class PositionRecord:
    """One depositor's claim on one asset pool."""

    shares: int = 0
    last_deposit_time: datetime | None = None
    # Informational only, never used in share math
    total_deposited: int = 0
    total_withdrawn: int = 0


@dataclass(frozen=True)
class Redemption:
    """Result of burning shares: gross value, fee taken, and what the caller receives."""

    shares: int
    gross_amount: int
    fee_amount: int
    net_amount: int


@dataclass(frozen=True)
class DepositReceipt:
    asset: str
    depositor: str
    gross_amount: int
    fee_amount: int
    net_amount: int
    shares_minted: int
    strategy: str | None = None


@dataclass(frozen=True)
class WithdrawalReceipt:
    asset: str
    depositor: str
    shares_burned: int
    gross_amount: int
    fee_amount: int
    net_amount: int


class PositionView(BaseModel):
    """Read-only projection of a position for callers."""

    asset: str
    shares: int
    value: int
    apy_bps: int


# ---------------------------------------------------------------------------
# Allocation inputs / outputs
# ---------------------------------------------------------------------------


class StrategyMetrics(BaseModel):
    """Normalized live metrics for one candidate strategy."""

    identity: str = Field(min_length=1)
    price_usd: float = Field(default=1.0, ge=0)
    current_apy_bps: int = Field(ge=0)
    volatility_bps: int = Field(default=0, ge=0)
    liquidity_depth_usd: float = Field(default=0.0, ge=0)
    market_cap_usd: float = Field(default=0.0, ge=0)


class AllocationResult(BaseModel):
    """Target weights and the risk/return figures they were derived from."""

    targets: list[str]
    weights_bps: list[int]
    expected_yields_bps: list[int]
    risk_scores_bps: list[int]
    blended_apy_bps: int
    risk_adjusted_return: int

    @model_validator(mode="after")
    def _check_lengths(self) -> "AllocationResult":
        n = len(self.targets)
        if not (len(self.weights_bps) == len(self.expected_yields_bps) == len(self.risk_scores_bps) == n):
            raise ValueError("targets, weights, yields and risk scores must have equal length")
        return self

    def weight_of(self, strategy: str) -> int:
        """Weight (bps) assigned to ``strategy``, 0 when absent."""
        try:
            return self.weights_bps[self.targets.index(strategy)]
        except ValueError:
            return 0


# ---------------------------------------------------------------------------
# Rebalance operations
# ---------------------------------------------------------------------------


class RebalanceStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"


@dataclass
class RebalanceOperation:
    """A proposed reallocation of one asset's pooled capital.

    ``operation_id`` is derived from the other fields by the executor, so two
    proposals with identical parameters collapse onto the same identifier.
    """

    operation_id: str
    asset: str
    allocation: AllocationResult
    deadline: float
    nonce: str
    status: RebalanceStatus = RebalanceStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    executed_at: datetime | None = None


@dataclass
class RebalanceReport:
    """Capital movements performed by one executed rebalance."""

    operation_id: str
    asset: str
    previous_apy_bps: int
    target_apy_bps: int
    withdrawn: dict[str, int] = field(default_factory=dict)
    deposited: dict[str, int] = field(default_factory=dict)
    deposit_target: str | None = None

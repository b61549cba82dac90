"""Pydantic schemas for API requests and responses."""

from pydantic import BaseModel, Field

from yieldpool.core.types import AllocationResult, StrategyMetrics


class DepositRequest(BaseModel):
    """Request model for a deposit."""

    asset: str = Field(..., description="Asset identity")
    amount: int = Field(..., description="Gross amount in the asset's base units")
    min_shares: int = Field(default=0, ge=0, description="Reject if fewer shares would be minted")


class DepositResponse(BaseModel):
    asset: str
    depositor: str
    gross_amount: int
    fee_amount: int
    net_amount: int
    shares_minted: int
    strategy: str | None = None


class WithdrawRequest(BaseModel):
    """Request model for a withdrawal."""

    asset: str = Field(..., description="Asset identity")
    shares: int = Field(..., description="Shares to burn")
    min_amount: int = Field(default=0, ge=0, description="Lower bound on the pre-fee amount")
    min_net_amount: int = Field(default=0, ge=0, description="Lower bound on the amount received")


class WithdrawResponse(BaseModel):
    asset: str
    depositor: str
    shares_burned: int
    gross_amount: int
    fee_amount: int
    net_amount: int


class AddAssetRequest(BaseModel):
    asset: str = Field(..., min_length=1)
    min_deposit: int = Field(default=0, ge=0)
    max_deposit: int = Field(default=0, ge=0, description="0 means unbounded")
    symbol: str = ""


class LimitsRequest(BaseModel):
    min_deposit: int = Field(..., ge=0)
    max_deposit: int = Field(..., ge=0, description="0 means unbounded")


class FeeRateRequest(BaseModel):
    rate_bps: int = Field(..., description="Fee rate in basis points")


class FeeRecipientRequest(BaseModel):
    recipient: str


class AllocationRequest(BaseModel):
    """Candidate strategies to weight."""

    metrics: list[StrategyMetrics] = Field(..., min_length=1)


class AllocationResponse(BaseModel):
    allocation: AllocationResult
    portfolio_risk_bps: int
    valid: bool


class RebalanceRequest(BaseModel):
    """Compute, propose and execute a rebalance of one asset in one call."""

    asset: str
    metrics: list[StrategyMetrics] = Field(..., min_length=1)
    nonce: str | None = Field(default=None, description="Reuse to make the request idempotent")
    deadline: float | None = Field(default=None, description="Unix timestamp; default from config")


class RebalanceResponse(BaseModel):
    operation_id: str
    asset: str
    previous_apy_bps: int
    target_apy_bps: int
    withdrawn: dict[str, int]
    deposited: dict[str, int]
    deposit_target: str | None

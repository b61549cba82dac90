"""Allocation router: weight computation and rebalance execution."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Request

from yieldpool.allocation.engine import portfolio_risk
from yieldpool.api.auth import admin_capabilities
from yieldpool.api.schemas import (
    AllocationRequest,
    AllocationResponse,
    RebalanceRequest,
    RebalanceResponse,
)
from yieldpool.core.capabilities import Capabilities
from yieldpool.logging import get_logger
from yieldpool.vault import YieldVault

logger = get_logger(__name__)

router = APIRouter(prefix="/allocation", tags=["allocation"])


def _get_vault(request: Request) -> YieldVault:
    return request.app.state.vault


@router.post("/compute", response_model=AllocationResponse)
def compute_allocation(payload: AllocationRequest, request: Request) -> AllocationResponse:
    """Weights for the given candidates; read-only."""
    vault = _get_vault(request)
    allocation = vault.allocate(payload.metrics)
    executor = vault.executor
    return AllocationResponse(
        allocation=allocation,
        portfolio_risk_bps=portfolio_risk(allocation.risk_scores_bps, allocation.weights_bps),
        valid=vault.engine.validate(
            allocation, executor.max_slippage_bps, executor.min_yield_improvement_bps
        ),
    )


@router.post("/rebalance", response_model=RebalanceResponse)
def rebalance(
    payload: RebalanceRequest,
    request: Request,
    caps: Capabilities = Depends(admin_capabilities),
) -> RebalanceResponse:
    vault = _get_vault(request)
    allocation = vault.allocate(payload.metrics)
    operation = vault.propose_rebalance(
        caps, payload.asset, allocation, deadline=payload.deadline, nonce=payload.nonce
    )
    report = vault.execute_rebalance(caps, operation)
    return RebalanceResponse(**asdict(report))

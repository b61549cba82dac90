"""Depositor-facing vault router."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Request

from yieldpool.api.auth import depositor_capabilities
from yieldpool.api.schemas import (
    DepositRequest,
    DepositResponse,
    WithdrawRequest,
    WithdrawResponse,
)
from yieldpool.core.capabilities import Capabilities
from yieldpool.core.types import PositionView
from yieldpool.logging import get_logger
from yieldpool.vault import YieldVault

logger = get_logger(__name__)

router = APIRouter(prefix="/vault", tags=["vault"])


def _get_vault(request: Request) -> YieldVault:
    return request.app.state.vault


@router.post("/deposit", response_model=DepositResponse)
def deposit(
    payload: DepositRequest,
    request: Request,
    caps: Capabilities = Depends(depositor_capabilities),
) -> DepositResponse:
    receipt = _get_vault(request).deposit(caps, payload.asset, payload.amount, payload.min_shares)
    return DepositResponse(**asdict(receipt))


@router.post("/withdraw", response_model=WithdrawResponse)
def withdraw(
    payload: WithdrawRequest,
    request: Request,
    caps: Capabilities = Depends(depositor_capabilities),
) -> WithdrawResponse:
    receipt = _get_vault(request).withdraw(
        caps,
        payload.asset,
        payload.shares,
        payload.min_amount,
        min_net_amount=payload.min_net_amount,
    )
    return WithdrawResponse(**asdict(receipt))


@router.get("/preview/deposit")
def preview_deposit(request: Request, asset: str = Query(...), amount: int = Query(...)) -> dict:
    shares = _get_vault(request).preview_deposit(asset, amount)
    return {"asset": asset, "amount": amount, "shares": shares}


@router.get("/preview/withdraw")
def preview_withdraw(request: Request, asset: str = Query(...), shares: int = Query(...)) -> dict:
    amount = _get_vault(request).preview_withdraw(asset, shares)
    return {"asset": asset, "shares": shares, "net_amount": amount}


@router.get("/positions/{depositor}", response_model=list[PositionView])
def get_portfolio(depositor: str, request: Request) -> list[PositionView]:
    return _get_vault(request).get_portfolio(depositor)


@router.get("/positions/{depositor}/{asset}", response_model=PositionView)
def get_position(depositor: str, asset: str, request: Request) -> PositionView:
    return _get_vault(request).get_position(depositor, asset)

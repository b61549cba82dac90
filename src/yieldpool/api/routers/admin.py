"""Administrative router: assets, limits, fees and the pause switch."""

from fastapi import APIRouter, Depends, Request, status

from yieldpool.api.auth import admin_capabilities
from yieldpool.api.schemas import (
    AddAssetRequest,
    FeeRateRequest,
    FeeRecipientRequest,
    LimitsRequest,
)
from yieldpool.core.capabilities import Capabilities
from yieldpool.core.types import FeeKind
from yieldpool.logging import get_logger
from yieldpool.vault import YieldVault

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_vault(request: Request) -> YieldVault:
    return request.app.state.vault


@router.post("/assets", status_code=status.HTTP_201_CREATED)
def add_asset(
    payload: AddAssetRequest,
    request: Request,
    caps: Capabilities = Depends(admin_capabilities),
) -> dict:
    record = _get_vault(request).add_asset(
        caps, payload.asset, payload.min_deposit, payload.max_deposit, payload.symbol
    )
    return {
        "asset": record.asset,
        "symbol": record.symbol,
        "min_deposit": record.min_deposit,
        "max_deposit": record.max_deposit,
    }


@router.delete("/assets/{asset}")
def remove_asset(
    asset: str, request: Request, caps: Capabilities = Depends(admin_capabilities)
) -> dict:
    _get_vault(request).remove_asset(caps, asset)
    return {"asset": asset, "removed": True}


@router.put("/assets/{asset}/limits")
def update_limits(
    asset: str,
    payload: LimitsRequest,
    request: Request,
    caps: Capabilities = Depends(admin_capabilities),
) -> dict:
    _get_vault(request).update_limits(caps, asset, payload.min_deposit, payload.max_deposit)
    return {"asset": asset, "min_deposit": payload.min_deposit, "max_deposit": payload.max_deposit}


@router.put("/fees/{kind}")
def set_fee(
    kind: FeeKind,
    payload: FeeRateRequest,
    request: Request,
    caps: Capabilities = Depends(admin_capabilities),
) -> dict:
    _get_vault(request).set_fee(caps, kind, payload.rate_bps)
    return {"kind": kind.value, "rate_bps": payload.rate_bps}


@router.put("/fee-recipient")
def set_fee_recipient(
    payload: FeeRecipientRequest,
    request: Request,
    caps: Capabilities = Depends(admin_capabilities),
) -> dict:
    _get_vault(request).set_fee_recipient(caps, payload.recipient)
    return {"recipient": payload.recipient}


@router.post("/pause")
def pause(request: Request, caps: Capabilities = Depends(admin_capabilities)) -> dict:
    request.app.state.paused = True
    logger.warning(f"Vault paused by {caps.caller}")
    return {"paused": True}


@router.post("/resume")
def resume(request: Request, caps: Capabilities = Depends(admin_capabilities)) -> dict:
    request.app.state.paused = False
    logger.info(f"Vault resumed by {caps.caller}")
    return {"paused": False}

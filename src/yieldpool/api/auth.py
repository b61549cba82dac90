"""API authentication.

Callers identify themselves with the ``X-Caller`` header. Administrative and
rebalancing endpoints additionally require ``X-API-Key`` to match the
configured admin key. With no admin key configured the administrative surface
is disabled.
"""

import hmac

from fastapi import Depends, Header, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from yieldpool.core.capabilities import Capabilities
from yieldpool.logging import get_logger

logger = get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def validate_api_key(api_key: str, expected: str) -> bool:
    """Constant-time comparison to prevent timing attacks."""
    return hmac.compare_digest(api_key.encode(), expected.encode())


async def get_caller(x_caller: str | None = Header(default=None)) -> str:
    if not x_caller:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Caller header required",
        )
    return x_caller


async def depositor_capabilities(
    request: Request, caller: str = Depends(get_caller)
) -> Capabilities:
    return Capabilities.depositor(caller, paused=request.app.state.paused)


async def admin_capabilities(
    request: Request,
    api_key: str | None = Security(api_key_header),
    x_caller: str | None = Header(default=None),
) -> Capabilities:
    expected = request.app.state.admin_key
    client_ip = request.client.host if request.client else "unknown"
    endpoint = request.url.path

    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrative API disabled: no admin key configured",
        )
    if not api_key:
        logger.warning(f"Auth failed: missing API key from {client_ip} for {endpoint}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    if not validate_api_key(api_key, expected):
        logger.warning(f"Auth failed: invalid API key from {client_ip} for {endpoint}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    logger.debug(f"Auth success: {client_ip} -> {endpoint}")
    return Capabilities.operator(x_caller or "admin")

"""FastAPI application exposing the yieldpool vault."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from yieldpool import __version__
from yieldpool.api.routers import admin, allocation, vault
from yieldpool.config import settings
from yieldpool.core.errors import (
    ErrorCategory,
    OperationPaused,
    Unauthorized,
    YieldPoolError,
)
from yieldpool.logging import (
    generate_request_id,
    get_logger,
    log_exception,
    set_request_id,
    setup_logging,
)
from yieldpool.vault import YieldVault

logger = get_logger(__name__)

CATEGORY_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.POLICY: 400,
    ErrorCategory.SLIPPAGE: 409,
    ErrorCategory.INTEGRITY: 409,
    ErrorCategory.IDEMPOTENCE: 409,
    ErrorCategory.ALLOCATION_POLICY: 422,
    ErrorCategory.ADAPTER: 502,
}


def status_for(exc: YieldPoolError) -> int:
    if isinstance(exc, Unauthorized):
        return 403
    if isinstance(exc, OperationPaused):
        return 423
    return CATEGORY_STATUS.get(exc.category, 400)


def create_app(vault_instance: YieldVault | None = None, *, admin_key: str | None = None) -> FastAPI:
    """Build the API around ``vault_instance`` (a fresh vault from settings by default)."""
    setup_logging()

    app = FastAPI(
        title="yieldpool API",
        description="Pooled multi-asset share vault with risk-adjusted strategy allocation",
        version=__version__,
    )
    app.state.vault = vault_instance if vault_instance is not None else YieldVault()
    app.state.admin_key = admin_key if admin_key is not None else settings.api_admin_key
    app.state.paused = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.request_id = request_id
        set_request_id(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(vault.router)
    app.include_router(admin.router)
    app.include_router(allocation.router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        v: YieldVault = request.app.state.vault
        return {
            "status": "ok",
            "version": __version__,
            "paused": request.app.state.paused,
            "assets": v.registry.assets(),
            "strategies": v.book.strategies(),
            "journal_entries": v.journal.get_stats()["total_entries"],
        }

    @app.exception_handler(YieldPoolError)
    async def domain_exception_handler(request: Request, exc: YieldPoolError):
        request_id = getattr(request.state, "request_id", "unknown")
        status_code = status_for(exc)
        logger.warning(
            f"Request rejected [request_id={request_id}] {type(exc).__name__}: {exc}"
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "error": type(exc).__name__,
                "category": exc.category.value,
                "detail": str(exc),
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        request_id = getattr(request.state, "request_id", "unknown")
        log_exception(logger, exc, {"request_id": request_id, "path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "request_id": request_id,
                "detail": str(exc) if settings.debug_mode else "Internal server error",
            },
        )

    return app


app = create_app()

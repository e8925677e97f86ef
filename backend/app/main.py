"""Roastery storefront backend: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before other app imports: structlog caches the
# processor chain on first use.
from app.core.logging import configure_structlog
from app.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.exceptions import (
    BillingNotConfiguredError,
    BillingProviderError,
    PartialWriteError,
    PermissionDeniedError,
    PlanNotFoundError,
    ResourceNotFoundError,
    RoasteryError,
    ValidationRejection,
)
from app.db import init_db, close_db, init_redis, close_redis
from app.middleware.correlation import (
    setup_correlation_middleware,
    get_correlation_id,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so the load balancer health check returns 503 while draining
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db(create_tables=settings.db_create_tables)
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    if not settings.billing_webhook_secret:
        logger.warning("billing_webhook_secret_missing", effect="webhooks will answer 503")
    if not settings.webhook_queue_secret:
        logger.warning("webhook_queue_secret_missing", effect="retry queue runs will be skipped")

    yield

    logger.info("shutdown_begin")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _status_for(exc: RoasteryError) -> tuple[int, str]:
    if isinstance(exc, ValidationRejection):
        return 400, exc.reason
    if isinstance(exc, PlanNotFoundError):
        return 400, str(exc)
    if isinstance(exc, ResourceNotFoundError):
        return 404, str(exc) or "Not found"
    if isinstance(exc, PermissionDeniedError):
        return 403, str(exc) or "Forbidden"
    if isinstance(exc, BillingNotConfiguredError):
        return 503, str(exc) or "Payment gateway not configured"
    if isinstance(exc, BillingProviderError):
        # Provider 4xx answers are the caller's problem; anything else is ours
        status_code = exc.status_code if 400 <= exc.status_code < 500 else 502
        return status_code, f"Failed to {exc.operation.replace('_', ' ')}: {exc.body}"
    if isinstance(exc, PartialWriteError):
        return 500, str(exc)
    return 500, "Internal server error"


async def roastery_exception_handler(request: Request, exc: RoasteryError) -> JSONResponse:
    """Map domain errors to HTTP responses with debug_id tracking."""
    debug_id = str(uuid.uuid4())
    status_code, detail = _status_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "domain_exception",
        status_code=status_code,
        error_type=type(exc).__name__,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=detail,
    )

    content = {"detail": detail, "debug_id": debug_id}
    if isinstance(exc, ValidationRejection):
        content["code"] = exc.code
    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors. Never leaks internals."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Coffee storefront: subscriptions, checkout and billing reconciliation",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    origins = list(dict.fromkeys([settings.frontend_url, *settings.cors_allowed_origins]))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    app.exception_handler(RoasteryError)(roastery_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

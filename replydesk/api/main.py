"""ReplyDesk API - FastAPI application factory.

This module builds the FastAPI application for ReplyDesk. It includes:
- CORS middleware configuration
- API versioning (/api/v1)
- Cron endpoints for the sync and digest jobs (/api/cron)
- Mapping of domain errors to HTTP status codes
- Optional in-process scheduler started in the lifespan

Usage:
    # Run with uvicorn
    uvicorn main:app --reload
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from replydesk import __version__
from replydesk.api.models import ErrorResponse, ValidationErrorDetail, ValidationErrorResponse
from replydesk.api.routes import (
    businesses_router,
    cron_router,
    health_router,
    responses_router,
    usage_router,
)
from replydesk.api.routes.health import set_server_start_time
from replydesk.config.settings import Settings, get_settings
from replydesk.core.container import DependencyContainer
from replydesk.core.exceptions import (
    ConfigurationError,
    ConflictError,
    GenerationFailedError,
    InitializationError,
    InvalidTransitionError,
    NotConnectedError,
    NotFoundError,
    QuotaExceededError,
    RateLimitedError,
    ReplyDeskError,
    UnauthorizedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from replydesk.monitoring.metrics import get_metrics_app
from replydesk.scheduler.scheduler import JobScheduler

logger = structlog.get_logger(__name__)

# API metadata for OpenAPI documentation
API_TITLE = "ReplyDesk API"
API_DESCRIPTION = """
## Review ingestion and AI reply workflow for Google Business Profile

### Features

- **Review Sync**: Periodic import of Google reviews with new-review alerts
- **AI Replies**: Drafts in the business's brand voice, metered against the plan
- **Approval Workflow**: Generate, edit, approve, then publish to Google
- **Digests**: Daily and weekly activity emails

### Authentication

Tenant endpoints take a Supabase access token as `Authorization: Bearer <token>`.
Cron endpoints take `Authorization: Bearer <CRON_SECRET>`.
"""

# Most specific class first; the first isinstance match wins
ERROR_STATUS: list[tuple[type[ReplyDeskError], int, str]] = [
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED, "unauthorized"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, "invalid_transition"),
    (ConflictError, status.HTTP_409_CONFLICT, "conflict"),
    (NotConnectedError, status.HTTP_409_CONFLICT, "not_connected"),
    (QuotaExceededError, status.HTTP_402_PAYMENT_REQUIRED, "quota_exceeded"),
    (UpstreamRejectedError, status.HTTP_502_BAD_GATEWAY, "upstream_rejected"),
    (GenerationFailedError, status.HTTP_502_BAD_GATEWAY, "generation_failed"),
    (RateLimitedError, status.HTTP_503_SERVICE_UNAVAILABLE, "rate_limited"),
    (UpstreamUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, "upstream_unavailable"),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR, "configuration_error"),
    (InitializationError, status.HTTP_500_INTERNAL_SERVER_ERROR, "initialization_error"),
]


def resolve_error_status(exc: ReplyDeskError) -> tuple[int, str]:
    for error_type, status_code, error_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, error_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_server_error"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Start background workers, optionally start the scheduler
    - Shutdown: Stop the scheduler, drain workers, close clients
    """
    logger.info("application_starting")
    set_server_start_time()

    container: DependencyContainer = app.state.container
    await container.initialize()

    scheduler: Optional[JobScheduler] = None
    settings = container.settings
    if settings.scheduler_enabled:
        scheduler = JobScheduler(
            container.jobs,
            sync_cron=settings.sync_cron,
            digest_cron=settings.digest_cron,
        )
        try:
            await scheduler.start()
        except Exception as e:
            logger.error("scheduler_initialization_failed", error=str(e))
            # Cron endpoints still work without the in-process scheduler
            scheduler = None
    app.state.scheduler = scheduler

    logger.info("application_started", scheduler_enabled=scheduler is not None)

    yield

    logger.info("application_stopping")
    if scheduler is not None:
        try:
            await scheduler.stop()
        except Exception as e:
            logger.error("scheduler_shutdown_error", error=str(e))

    await container.shutdown()
    logger.info("application_stopped")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ReplyDeskError)
    async def replydesk_exception_handler(request: Request, exc: ReplyDeskError) -> JSONResponse:
        """Map domain errors to status codes with a tenant-safe message."""
        status_code, error_code = resolve_error_status(exc)
        log = logger.warning if status_code < 500 else logger.error
        log(
            "request_failed",
            path=request.url.path,
            method=request.method,
            error=error_code,
            error_type=type(exc).__name__,
            cause=str(exc),
        )

        settings: Settings = request.app.state.container.settings
        response = ErrorResponse(
            error=error_code,
            message=exc.user_message,
            detail=str(exc) if settings.debug else None,
            path=request.url.path,
            timestamp=datetime.now(timezone.utc),
        )
        headers = None
        if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
            headers = {"Retry-After": str(int(exc.retry_after))}
        if isinstance(exc, UnauthorizedError):
            headers = {"WWW-Authenticate": "Bearer"}

        return JSONResponse(
            status_code=status_code,
            content=response.model_dump(mode="json"),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with detailed response."""
        errors = [
            ValidationErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                value=error.get("input"),
            )
            for error in exc.errors()
        ]
        response = ValidationErrorResponse(errors=errors, timestamp=datetime.now(timezone.utc))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        settings: Settings = request.app.state.container.settings
        response = ErrorResponse(
            error="internal_server_error",
            message=ReplyDeskError.user_message,
            detail=str(exc) if settings.debug else None,
            path=request.url.path,
            timestamp=datetime.now(timezone.utc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode="json"),
        )


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[DependencyContainer] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings. Defaults to the container's, then get_settings().
        container: Pre-built dependency container (tests inject fakes here).
    """
    if container is None:
        container = DependencyContainer(settings or get_settings())
    settings = container.settings

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_tags=[
            {"name": "Health", "description": "System health and status endpoints"},
            {"name": "Cron", "description": "Scheduled review sync and digest jobs"},
            {"name": "Responses", "description": "AI reply generation and approval workflow"},
            {"name": "Businesses", "description": "Connected locations and on-demand sync"},
            {"name": "Usage", "description": "Plan limits and current usage"},
        ],
    )
    app.state.container = container
    app.state.scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(cron_router)

    api_v1_router = APIRouter(prefix="/api/v1")
    api_v1_router.include_router(responses_router)
    api_v1_router.include_router(businesses_router)
    api_v1_router.include_router(usage_router)
    app.include_router(api_v1_router)

    app.mount("/metrics", get_metrics_app())

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        return {
            "name": API_TITLE,
            "version": __version__,
            "health": "/health",
            "api": "/api/v1",
        }

    return app

"""
FastAPI application entry point.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voicejournal import __version__
from voicejournal.calls.router import router as calls_router
from voicejournal.config import Settings
from voicejournal.journal.router import router as journal_router
from voicejournal.scheduling.config import SchedulerConfig
from voicejournal.scheduling.router import router as internal_router
from voicejournal.scheduling.triggers import EventBridgeTriggerService, TriggerService
from voicejournal.shared.database import DatabaseManager
from voicejournal.shared.exceptions import (
    AppError,
    AuthenticationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from voicejournal.shared.logging import correlation_id_var, get_logger, setup_logging
from voicejournal.telephony.config import TelephonyConfig
from voicejournal.telephony.factory import build_telephony_providers
from voicejournal.telephony.webhooks.router import router as webhooks_router
from voicejournal.users.router import router as preferences_router

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS: dict[type[AppError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
}


def _error_body(code: str, message: str, errors: Any = None) -> dict[str, Any]:
    detail: dict[str, Any] = {"code": code, "message": message}
    if errors is not None:
        detail["errors"] = errors
    return {"detail": detail}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    db: DatabaseManager = app.state.db

    logger.info("Application starting", extra={"app": settings.app_name, "env": settings.app_env})

    if settings.auto_create_tables:
        await db.create_all()
        logger.info("Database tables ensured")

    yield

    logger.info("Shutting down application")
    for provider in app.state.telephony_providers.values():
        provider.close()
    await db.close()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    telephony_config: TelephonyConfig | None = None,
    scheduler_config: SchedulerConfig | None = None,
    db: DatabaseManager | None = None,
    trigger_service: TriggerService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Configuration is loaded once here and kept on ``app.state``; request
    handlers reach it through dependencies.
    """
    settings = settings or Settings()
    telephony_config = telephony_config or TelephonyConfig()
    scheduler_config = scheduler_config or SchedulerConfig()

    setup_logging(settings.log_level)

    app = FastAPI(
        title="Voice Journal API",
        description="Daily journaling phone calls turned into text entries",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.telephony_config = telephony_config
    app.state.db = db or DatabaseManager(settings.database_url, echo=settings.debug)
    app.state.telephony_providers = build_telephony_providers(telephony_config, settings.app_env)
    app.state.trigger_service = trigger_service or EventBridgeTriggerService(scheduler_config)

    # Map domain exceptions to HTTP responses
    @app.exception_handler(AppError)
    async def _app_error(_: Request, exc: AppError) -> JSONResponse:
        status_code = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        if status_code >= 500:
            logger.error("Request failed", extra={"error_code": exc.code, "details": exc.details})
        return JSONResponse(
            status_code=status_code,
            content=_error_body(exc.code, exc.message, exc.details),
        )

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body("VALIDATION_ERROR", "Request validation failed", errors),
        )

    @app.middleware("http")
    async def correlation_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(webhooks_router)
    app.include_router(preferences_router)
    app.include_router(journal_router)
    app.include_router(calls_router)
    app.include_router(internal_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app

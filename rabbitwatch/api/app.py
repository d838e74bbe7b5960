"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rabbitwatch import __version__
from rabbitwatch.alerts.errors import AlertingError, ThresholdValidationError, ValidationError
from rabbitwatch.api.dependencies import cleanup_dependencies, get_alert_monitor
from rabbitwatch.api.routes import alert_settings, alerts, health, thresholds
from rabbitwatch.config.settings import get_settings
from rabbitwatch.observability.logging import log_context, setup_logging

logger = structlog.get_logger(__name__)

_ERROR_STATUS = {
    "validation": 422,
    "permission": 403,
    "not_found": 404,
    "metrics_unavailable": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging()
    logger.info("Alerting API starting up")

    settings = get_settings()
    if settings.monitor_enabled and settings.management_configured:
        monitor = await get_alert_monitor()
        monitor.start_background()
        logger.info("Alert monitor started", server_id=settings.default_server_id)

    yield

    logger.info("Alerting API shutting down")
    await cleanup_dependencies()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "alerts", "description": "Active and resolved alerts, server health"},
        {"name": "thresholds", "description": "Workspace alert thresholds"},
        {"name": "alert-settings", "description": "Workspace notification settings"},
    ]

    app = FastAPI(
        title="RabbitWatch Alerting API",
        description="""
Alert detection, lifecycle and notification engine for RabbitMQ clusters.

## Alerts

Broker metrics are polled periodically and classified against
per-workspace thresholds. Alerts stay active while their condition
holds and are resolved when it clears.

## Authentication

Requires `X-API-KEY` header for all requests except `/health`.
Writes to alert settings also require the `X-User-ID` header.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Add CORS middleware (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )

        with log_context(request_id=request_id):
            start_time = time.perf_counter()
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return response

    @app.exception_handler(AlertingError)
    async def alerting_exception_handler(request: Request, exc: AlertingError):
        status_code = _ERROR_STATUS.get(exc.error_type, 500)
        if status_code == 500:
            logger.error("Alerting error", error_type=exc.error_type, error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "error_type": "internal"},
            )

        content = {"detail": str(exc), "error_type": exc.error_type}
        if isinstance(exc, ValidationError):
            content["fields"] = exc.fields
            content["errors"] = exc.errors
        if isinstance(exc, ThresholdValidationError):
            content["metrics"] = exc.metrics
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(alerts.router, tags=["alerts"])
    app.include_router(thresholds.router, tags=["thresholds"])
    app.include_router(alert_settings.router, tags=["alert-settings"])

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "RabbitWatch Alerting API",
            "version": __version__,
            "docs": "/docs",
        }

    return app

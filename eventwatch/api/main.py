"""FastAPI application exposing the monitoring endpoints."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..constants import CONSTANTS
from ..core.config import MonitoringConfig
from ..monitoring.service import MonitoringService
from .middleware import RequestMetricsMiddleware
from .routers import anomalies, monitoring

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    service: MonitoringService = app.state.monitoring
    await service.start()

    yield

    await service.shutdown()


def create_app(
    monitoring_service: MonitoringService | None = None,
    config: MonitoringConfig | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        monitoring_service: Service to expose (built from ``config`` when omitted)
        config: Configuration used when no service is given

    Returns:
        Configured FastAPI application
    """
    service = monitoring_service or MonitoringService.from_config(config or MonitoringConfig())

    app = FastAPI(
        title="Eventwatch Monitoring API",
        description="Health aggregation, alerting and metrics for the events backend",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.monitoring = service

    allowed_origins = CONSTANTS.ALLOWED_ORIGINS.split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in allowed_origins],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", CONSTANTS.REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestMetricsMiddleware)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled error", path=str(request.url.path), error=str(exc))
        return JSONResponse(
            status_code=CONSTANTS.HTTP_STATUS_SERVER_ERROR,
            content={
                "detail": CONSTANTS.ERROR_INTERNAL_SERVER,
                "type": CONSTANTS.ERROR_TYPE_INTERNAL,
                "path": str(request.url.path),
            },
        )

    app.include_router(monitoring.router)
    app.include_router(anomalies.router)

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "message": f"Eventwatch v{__version__} - Docs: /docs, Health: /monitoring/health"
        }

    return app

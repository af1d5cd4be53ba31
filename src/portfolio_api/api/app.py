"""FastAPI backend exposing health, version and admin metrics endpoints."""

import time
from datetime import datetime, timezone
from typing import Optional

import psutil
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from portfolio_api import __title__, __version__
from portfolio_api.api.deps import get_metrics, require_admin
from portfolio_api.config.settings import Settings
from portfolio_api.config.settings import settings as default_settings
from portfolio_api.core.logging import get_logger, setup_logging
from portfolio_api.core.metrics import MetricsCollector, memory_usage
from portfolio_api.core.middleware import ErrorTrackingMiddleware, ObservabilityMiddleware
from portfolio_api.core.schemas import HealthResponse, MetricsResponse, VersionResponse

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(
    settings: Optional[Settings] = None, metrics: Optional[MetricsCollector] = None
) -> FastAPI:
    """Build the app around one metrics collector owned by ``app.state``."""
    settings = settings or default_settings
    metrics = metrics or MetricsCollector.from_settings(settings)
    setup_logging(settings.log_level)

    app = FastAPI(title="Portfolio API", version=__version__)
    app.state.settings = settings
    app.state.metrics = metrics

    # Last added runs outermost: timing wraps error tracking.
    app.add_middleware(ErrorTrackingMiddleware, metrics=metrics)
    app.add_middleware(
        ObservabilityMiddleware,
        metrics=metrics,
        slow_request_ms=settings.metrics.slow_request_ms,
    )

    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        message = "Internal server error" if settings.is_production else str(exc)
        headers = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            headers["X-Request-ID"] = request_id
        return JSONResponse(
            {"success": False, "message": message}, status_code=500, headers=headers
        )

    app.add_exception_handler(Exception, unhandled_error)

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        uptime = time.time() - psutil.Process().create_time()
        return HealthResponse(
            status="healthy",
            timestamp=_now(),
            uptime=round(uptime, 3),
            memory=memory_usage(),
        )

    @app.get("/api/version", response_model=VersionResponse)
    async def version() -> VersionResponse:
        return VersionResponse(name=__title__, version=__version__, timestamp=_now())

    @app.get(
        "/api/admin/metrics",
        response_model=MetricsResponse,
        dependencies=[Depends(require_admin)],
    )
    async def admin_metrics(
        collector: MetricsCollector = Depends(get_metrics),
    ) -> MetricsResponse:
        """Performance metrics endpoint (admin only)."""
        return MetricsResponse(metrics=collector.snapshot())

    return app


app = create_app()

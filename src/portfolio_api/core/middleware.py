"""
ASGI middleware for observability (request_id + latency + error tracking).
Why: every request lands in the metrics collector without touching handlers.
"""

import time
import uuid
from typing import Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .logging import get_logger
from .metrics import MetricsCollector

_LOG = get_logger(__name__)

SLOW_REQUEST_MS = 1000


def _route_template(scope: Scope) -> Optional[str]:
    route = scope.get("route")
    return getattr(route, "path", None)


class _RequestTimer:
    """Records one request into the collector, at most once."""

    def __init__(
        self, scope: Scope, metrics: MetricsCollector, request_id: str, slow_request_ms: int
    ) -> None:
        self.scope = scope
        self.metrics = metrics
        self.request_id = request_id
        self.slow_request_ms = slow_request_ms
        self.status_code: Optional[int] = None
        self.recorded = False
        self._start = time.perf_counter()

    def finish(self, status_code: int) -> None:
        if self.recorded:
            return
        self.recorded = True
        duration_ms = int((time.perf_counter() - self._start) * 1000)
        method = self.scope["method"]
        path = self.scope["path"]
        try:
            sample = self.metrics.record_request(
                method, path, status_code, duration_ms, _route_template(self.scope)
            )
        except Exception:
            _LOG.exception(f"Failed to record metrics for {method} {path}")
            return
        _LOG.info(
            f"path={path} method={method} status={status_code} "
            f"duration_ms={duration_ms} request_id={self.request_id}"
        )
        if duration_ms > self.slow_request_ms:
            _LOG.warning(
                f"Slow request detected: {sample.endpoint} took {duration_ms}ms",
                extra={"endpoint": sample.endpoint, "duration_ms": duration_ms},
            )


class ObservabilityMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        metrics: MetricsCollector,
        slow_request_ms: int = SLOW_REQUEST_MS,
    ) -> None:
        self.app = app
        self.metrics = metrics
        self.slow_request_ms = slow_request_ms

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get("x-request-id") or str(uuid.uuid4())
        # Error responses are sent by the outer ServerErrorMiddleware, not through send_wrapper.
        scope.setdefault("state", {})["request_id"] = request_id
        timer = _RequestTimer(scope, self.metrics, request_id, self.slow_request_ms)

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                timer.status_code = message["status"]
                MutableHeaders(scope=message)["X-Request-ID"] = request_id
            await send(message)
            if message["type"] == "http.response.body" and not message.get("more_body", False):
                timer.finish(timer.status_code or 200)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            timer.finish(timer.status_code or 500)
            raise


class ErrorTrackingMiddleware:
    """Observes unhandled exceptions and re-raises them unchanged."""

    def __init__(self, app: ASGIApp, metrics: MetricsCollector) -> None:
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            try:
                self.metrics.record_error(exc, f"{scope['method']} {scope['path']}")
            except Exception:
                _LOG.exception("Failed to record error metrics")
            raise

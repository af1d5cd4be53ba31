"""
In-memory performance metrics for the admin /metrics endpoint.
Why: request timings, error rates and slow queries without Prometheus.

Every bounded sequence is a ``deque(maxlen=N)`` so the oldest sample is
evicted first in O(1). Mutations never await, so on the event loop each one
is atomic; the lock covers recorders called from threadpool workers.
"""

import json
import math
import platform
import sys
import threading
import time
import traceback
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

import psutil

from .logging import get_logger

_LOG = get_logger(__name__)

MAX_RESPONSE_TIMES = 1000
MAX_ENDPOINT_TIMES = 100
MAX_RECENT_ERRORS = 50
MAX_SLOW_QUERIES = 100
SLOW_QUERY_MS = 100
VERY_SLOW_QUERY_MS = 500

_TOP_ENDPOINTS = 10
_RECENT_ERRORS_SHOWN = 10
_SLOW_QUERIES_SHOWN = 20
_MB = 1024 * 1024


@dataclass(frozen=True)
class RequestSample:
    endpoint: str
    method: str
    status_code: int
    duration_ms: int
    timestamp: float


@dataclass(frozen=True)
class SlowQuery:
    query: str
    duration_ms: int
    collection: str
    timestamp: float


@dataclass(frozen=True)
class ErrorRecord:
    type: str
    message: str
    endpoint: str
    timestamp: float
    stack: Optional[str] = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _rank_index(length: int, p: float) -> int:
    return max(0, min(length - 1, int(length * p)))


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def percentile(values: List[int], p: float) -> int:
    """Nearest-rank percentile: sorted value at ``floor(len * p)``, clamped."""
    if not values:
        return 0
    return sorted(values)[_rank_index(len(values), p)]


def calculate_stats(values: List[int]) -> Dict[str, int]:
    if not values:
        return {"min": 0, "max": 0, "avg": 0, "median": 0, "p95": 0, "p99": 0}
    ordered = sorted(values)
    n = len(ordered)
    return {
        "min": ordered[0],
        "max": ordered[-1],
        "avg": _round_half_up(sum(ordered) / n),
        "median": ordered[n // 2],
        "p95": ordered[_rank_index(n, 0.95)],
        "p99": ordered[_rank_index(n, 0.99)],
    }


def endpoint_key(method: str, path: str, route_template: Optional[str] = None) -> str:
    return f"{method} {route_template or path}"


def _describe_query(query: Any) -> str:
    if isinstance(query, str):
        return query
    try:
        return json.dumps(query, default=str)
    except (TypeError, ValueError):
        return str(query)


class MetricsCollector:
    """Owns all request, error and slow-query state for one process."""

    def __init__(
        self,
        *,
        max_response_times: int = MAX_RESPONSE_TIMES,
        max_endpoint_times: int = MAX_ENDPOINT_TIMES,
        max_recent_errors: int = MAX_RECENT_ERRORS,
        max_slow_queries: int = MAX_SLOW_QUERIES,
        slow_query_ms: int = SLOW_QUERY_MS,
        very_slow_query_ms: int = VERY_SLOW_QUERY_MS,
        include_stack: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_response_times = max_response_times
        self.max_endpoint_times = max_endpoint_times
        self.max_recent_errors = max_recent_errors
        self.max_slow_queries = max_slow_queries
        self.slow_query_ms = slow_query_ms
        self.very_slow_query_ms = very_slow_query_ms
        self.include_stack = include_stack
        self._clock = clock
        self._lock = threading.Lock()
        self._init_state()

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "MetricsCollector":
        cfg = settings.metrics
        return cls(
            max_response_times=cfg.max_response_times,
            max_endpoint_times=cfg.max_endpoint_times,
            max_recent_errors=cfg.max_recent_errors,
            max_slow_queries=cfg.max_slow_queries,
            slow_query_ms=cfg.slow_query_ms,
            very_slow_query_ms=cfg.very_slow_query_ms,
            include_stack=not settings.is_production,
            **kwargs,
        )

    def _init_state(self) -> None:
        self.total_requests = 0
        self.requests_by_endpoint: Dict[str, int] = {}
        self.requests_by_method: Dict[str, int] = {}
        self.requests_by_status_code: Dict[int, int] = {}
        self.response_times: Deque[int] = deque(maxlen=self.max_response_times)
        self.response_times_by_endpoint: Dict[str, Deque[int]] = {}
        self.total_errors = 0
        self.errors_by_type: Dict[str, int] = {}
        self.recent_errors: Deque[ErrorRecord] = deque(maxlen=self.max_recent_errors)
        self.slow_queries: Deque[SlowQuery] = deque(maxlen=self.max_slow_queries)
        self.started_at = self._clock()

    def reset(self) -> None:
        """Drop every sample and counter and restart the uptime clock."""
        with self._lock:
            self._init_state()

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: int,
        route_template: Optional[str] = None,
    ) -> RequestSample:
        if isinstance(status_code, bool) or not isinstance(status_code, int):
            raise ValueError(f"status_code must be an int, got {status_code!r}")
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)):
            raise ValueError(f"duration_ms must be a number, got {duration_ms!r}")
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be non-negative, got {duration_ms}")
        duration_ms = int(duration_ms)
        endpoint = endpoint_key(method, path, route_template)

        with self._lock:
            self.total_requests += 1
            self.requests_by_endpoint[endpoint] = self.requests_by_endpoint.get(endpoint, 0) + 1
            self.requests_by_method[method] = self.requests_by_method.get(method, 0) + 1
            self.requests_by_status_code[status_code] = (
                self.requests_by_status_code.get(status_code, 0) + 1
            )
            self.response_times.append(duration_ms)
            times = self.response_times_by_endpoint.get(endpoint)
            if times is None:
                times = deque(maxlen=self.max_endpoint_times)
                self.response_times_by_endpoint[endpoint] = times
            times.append(duration_ms)
            return RequestSample(endpoint, method, status_code, duration_ms, self._clock())

    def record_slow_query(
        self, query: Any, duration_ms: int, collection: str
    ) -> Optional[SlowQuery]:
        if duration_ms <= self.slow_query_ms:
            return None
        entry = SlowQuery(_describe_query(query), int(duration_ms), collection, self._clock())
        with self._lock:
            self.slow_queries.append(entry)
        if duration_ms > self.very_slow_query_ms:
            _LOG.warning(
                f"Very slow query detected: {collection} took {duration_ms}ms",
                extra={"collection": collection, "duration_ms": duration_ms},
            )
        return entry

    def record_error(self, error: BaseException, endpoint: Optional[str] = None) -> ErrorRecord:
        kind = type(error).__name__
        stack = None
        if self.include_stack:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        entry = ErrorRecord(kind, str(error), endpoint or "unknown", self._clock(), stack)
        with self._lock:
            self.total_errors += 1
            self.errors_by_type[kind] = self.errors_by_type.get(kind, 0) + 1
            self.recent_errors.append(entry)
        return entry

    def snapshot(self) -> Dict[str, Any]:
        """Materialize derived statistics; the result shares nothing with live state."""
        with self._lock:
            now = self._clock()
            started_at = self.started_at
            total = self.total_requests
            by_endpoint = dict(self.requests_by_endpoint)
            by_method = dict(self.requests_by_method)
            by_status = dict(self.requests_by_status_code)
            all_times = list(self.response_times)
            endpoint_times = {k: list(v) for k, v in self.response_times_by_endpoint.items()}
            total_errors = self.total_errors
            errors_by_type = dict(self.errors_by_type)
            recent_errors = list(self.recent_errors)[-_RECENT_ERRORS_SHOWN:]
            slow_queries = list(self.slow_queries)[-_SLOW_QUERIES_SHOWN:]

        uptime_ms = max(0, int((now - started_at) * 1000))
        hours = uptime_ms // 3_600_000
        minutes = (uptime_ms % 3_600_000) // 60_000

        slowest = []
        for endpoint, times in endpoint_times.items():
            stats = calculate_stats(times)
            slowest.append(
                {
                    "endpoint": endpoint,
                    "count": by_endpoint.get(endpoint, 0),
                    "avg_response_time": stats["avg"],
                    "max_response_time": stats["max"],
                    "p95": stats["p95"],
                }
            )
        slowest.sort(key=lambda item: item["avg_response_time"], reverse=True)

        error_rate = total_errors / total * 100 if total > 0 else 0.0
        per_minute = _round_half_up(total / uptime_ms * 60000) if uptime_ms > 0 else 0

        return {
            "uptime": {"ms": uptime_ms, "formatted": f"{hours}h {minutes}m"},
            "requests": {
                "total": total,
                "per_minute": per_minute,
                "by_method": by_method,
                "by_status_code": {str(code): count for code, count in by_status.items()},
                "by_endpoint": by_endpoint,
            },
            "performance": {
                "response_time": calculate_stats(all_times),
                "slowest_endpoints": slowest[:_TOP_ENDPOINTS],
            },
            "errors": {
                "total": total_errors,
                "rate": f"{error_rate:.2f}%",
                "by_type": errors_by_type,
                "recent": [dict(asdict(e), timestamp=_iso(e.timestamp)) for e in recent_errors],
            },
            "database": {
                "slow_queries": [
                    dict(asdict(q), timestamp=_iso(q.timestamp)) for q in slow_queries
                ],
            },
            "memory": memory_usage(),
            "system": system_info(),
        }


def memory_usage() -> Dict[str, Any]:
    proc = psutil.Process()
    info = proc.memory_info()
    return {
        "rss_mb": _round_half_up(info.rss / _MB),
        "vms_mb": _round_half_up(info.vms / _MB),
        "percent": round(proc.memory_percent(), 2),
    }


def system_info() -> Dict[str, Any]:
    cpu = psutil.Process().cpu_times()
    return {
        "platform": sys.platform,
        "python_version": platform.python_version(),
        "cpu_user_seconds": round(cpu.user, 3),
        "cpu_system_seconds": round(cpu.system, 3),
    }

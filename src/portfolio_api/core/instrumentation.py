"""
Query timing hook for the data-access layer.
Why: repositories opt in per call; only slow ones reach the collector.
"""

import time
from contextlib import contextmanager
from typing import Any, Iterator

from .logging import get_logger
from .metrics import MetricsCollector

_LOG = get_logger(__name__)


@contextmanager
def timed_query(metrics: MetricsCollector, collection: str, query: Any) -> Iterator[None]:
    """Time the wrapped block and report it as a query on ``collection``.

    Errors raised inside the block propagate; the timing is still reported.

    Usage::

        with timed_query(request.app.state.metrics, "media", {"album": album_id}):
            docs = await db.media.find({"album": album_id}).to_list(None)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = int((time.perf_counter() - start) * 1000)
        try:
            metrics.record_slow_query(query, duration_ms, collection)
        except Exception:
            _LOG.exception(f"Failed to record query timing for {collection}")

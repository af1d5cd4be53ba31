"""Tests for the query timing hook."""

from types import SimpleNamespace

import pytest

from portfolio_api.core import instrumentation
from portfolio_api.core.instrumentation import timed_query
from portfolio_api.core.metrics import MetricsCollector


class FakePerfCounter:
    def __init__(self, *readings: float) -> None:
        self._readings = list(readings)

    def __call__(self) -> float:
        return self._readings.pop(0)


def _fake_clock(monkeypatch, *readings: float) -> None:
    monkeypatch.setattr(
        instrumentation, "time", SimpleNamespace(perf_counter=FakePerfCounter(*readings))
    )


def test_timed_query_records_slow_block(monkeypatch):
    """Test a block over the threshold is stored."""
    _fake_clock(monkeypatch, 10.0, 10.25)
    metrics = MetricsCollector()

    with timed_query(metrics, "albums", {"slug": "summer"}):
        pass

    assert len(metrics.slow_queries) == 1
    entry = metrics.slow_queries[0]
    assert entry.collection == "albums"
    assert entry.duration_ms == 250
    assert entry.query == '{"slug": "summer"}'


def test_timed_query_skips_fast_block(monkeypatch):
    """Test a fast block is not stored."""
    _fake_clock(monkeypatch, 10.0, 10.05)
    metrics = MetricsCollector()

    with timed_query(metrics, "albums", "find all"):
        pass

    assert len(metrics.slow_queries) == 0


def test_timed_query_propagates_errors(monkeypatch):
    """Test query errors reach the caller and timing is still reported."""
    _fake_clock(monkeypatch, 0.0, 0.75)
    metrics = MetricsCollector()

    with pytest.raises(LookupError):
        with timed_query(metrics, "media", "find one"):
            raise LookupError("no such media")

    assert metrics.slow_queries[0].duration_ms == 750


def test_timed_query_keeps_unserializable_descriptor(monkeypatch):
    """Test a circular descriptor is still recorded instead of dropped."""
    _fake_clock(monkeypatch, 0.0, 0.25)
    metrics = MetricsCollector()
    query = {"project": "p1"}
    query["parent"] = query

    with timed_query(metrics, "projects", query):
        pass

    assert len(metrics.slow_queries) == 1
    assert metrics.slow_queries[0].query == str(query)

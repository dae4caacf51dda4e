"""Tests ensuring observability wiring is safe by default and correlates requests."""
from __future__ import annotations

import logging
from typing import Any, Dict

import pytest

from challenge_planner.core.context import bound_request_id, get_request_id
from challenge_planner.core.logging import RequestIdFilter
from challenge_planner.observability import metrics, tracing


class _DummyTrace:
    def __init__(self, name: str, metadata: Dict[str, Any]):
        self.name = name
        self.metadata = metadata
        self.ended = False
        self.error_info = None

    def update(self, error_info=None, **kwargs) -> None:
        self.error_info = error_info

    def end(self) -> None:
        self.ended = True


class _DummyClient:
    def __init__(self):
        self.traces: list[_DummyTrace] = []

    def trace(self, name: str, metadata: Dict[str, Any] | None = None):
        trace = _DummyTrace(name, metadata or {})
        self.traces.append(trace)
        return trace


def test_trace_is_noop_when_opik_disabled(monkeypatch) -> None:
    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)

    with tracing.trace("plan.generate") as span:
        assert span is None


def test_trace_attaches_bound_request_and_job_ids(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    with bound_request_id("req-42"):
        with tracing.trace("plan_worker.process", metadata={"model": "gpt-4o"}, job_id="job-7"):
            pass

    recorded = dummy_client.traces[0]
    assert recorded.name == "plan_worker.process"
    assert recorded.metadata == {"model": "gpt-4o", "job_id": "job-7", "request_id": "req-42"}
    assert recorded.ended is True


def test_trace_records_errors_and_reraises(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    with pytest.raises(RuntimeError):
        with tracing.trace("plan.generate"):
            raise RuntimeError("provider down")

    assert dummy_client.traces[0].error_info == {"exception_type": "RuntimeError", "message": "provider down"}
    assert dummy_client.traces[0].ended is True


def test_log_metric_records_value_and_metadata(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(metrics, "get_opik_client", lambda: dummy_client)

    metrics.log_metric("plan_jobs.enqueued", 1, metadata={"agent": "fast"})

    assert dummy_client.traces[0].name == "metric:plan_jobs.enqueued"
    assert dummy_client.traces[0].metadata == {"value": 1, "agent": "fast"}


def test_request_id_context_is_restored() -> None:
    assert get_request_id() is None
    with bound_request_id("job:abc"):
        assert get_request_id() == "job:abc"
    assert get_request_id() is None


def test_request_id_filter_stamps_records() -> None:
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)

    with bound_request_id("req-9"):
        RequestIdFilter().filter(record)
    assert record.request_id == "req-9"

    RequestIdFilter().filter(record)
    assert record.request_id == "-"

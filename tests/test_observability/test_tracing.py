"""
Tests for refresh and summary-job tracing.

A single InMemorySpanExporter is installed for the module: the global
TracerProvider can only be set once per process.
"""

import json
from unittest.mock import AsyncMock

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from src.observability.tracing import (
    TRACE_PARENT_FIELD,
    add_trace_context,
    extract_trace_context,
    get_tracer,
    inject_trace_context,
    is_tracing_enabled,
    setup_tracing,
    traced,
)
from src.summarization.config import SummaryConfig
from src.summarization.queue import SummaryQueue

_exporter = InMemorySpanExporter()
_provider = setup_tracing("content-tracker-test", exporter=_exporter)


@pytest.fixture(autouse=True)
def _clear_spans():
    _exporter.clear()
    yield
    _exporter.clear()


def test_setup_enables_tracing():
    assert is_tracing_enabled()


class TestSummaryJobPropagation:
    def test_traceparent_format(self):
        tracer = get_tracer("test")

        with tracer.start_as_current_span("refresh.run"):
            fields = inject_trace_context()

        version, trace_id, span_id, flags = fields[TRACE_PARENT_FIELD].split("-")
        assert version == "00"
        assert len(trace_id) == 32
        assert len(span_id) == 16
        assert flags == "01"

    @pytest.mark.asyncio
    async def test_worker_span_joins_refresh_trace(self):
        tracer = get_tracer("test")
        queue = SummaryQueue(config=SummaryConfig(), redis_url="redis://localhost:6379/1")
        queue._add = AsyncMock(return_value="1-0")

        with tracer.start_as_current_span("refresh.run") as run_span:
            await queue.publish(["content-1"], "creator-1")
            run_trace_id = run_span.get_span_context().trace_id

        fields = queue._add.await_args.args[0]
        job = queue._parse_job("1-0", fields)
        assert json.loads(fields["content_ids"]) == ["content-1"]

        with traced(tracer, "summary.process", parent_context=extract_trace_context(job.fields)):
            pass

        process_span = next(
            s for s in _exporter.get_finished_spans() if s.name == "summary.process"
        )
        assert process_span.context.trace_id == run_trace_id
        assert process_span.parent.span_id == run_span.get_span_context().span_id

    @pytest.mark.parametrize(
        "fields",
        [
            {"content_ids": '["a"]'},
            {TRACE_PARENT_FIELD: ""},
            {TRACE_PARENT_FIELD: "garbage"},
            {TRACE_PARENT_FIELD: "00-zz-yy-01"},
        ],
    )
    def test_missing_or_malformed_traceparent(self, fields):
        assert extract_trace_context(fields) is None


class TestTraced:
    def test_span_with_attributes(self):
        tracer = get_tracer("test")

        with traced(tracer, "refresh.run", {"refresh.trigger": "cron", "refresh.creators": 3}):
            pass

        (span,) = _exporter.get_finished_spans()
        assert span.name == "refresh.run"
        assert span.attributes["refresh.trigger"] == "cron"
        assert span.attributes["refresh.creators"] == 3

    def test_exception_marks_span_errored(self):
        tracer = get_tracer("test")

        with pytest.raises(RuntimeError, match="listing failed"):
            with traced(tracer, "refresh.run"):
                raise RuntimeError("listing failed")

        (span,) = _exporter.get_finished_spans()
        assert span.status.status_code.name == "ERROR"
        assert any(e.name == "exception" for e in span.events)


class TestLogProcessor:
    def test_adds_ids_inside_span(self):
        tracer = get_tracer("test")

        with tracer.start_as_current_span("refresh.run") as span:
            event = add_trace_context(None, "info", {"event": "Refresh run started", "creators": 2})

            assert event["trace_id"] == f"{span.get_span_context().trace_id:032x}"
            assert event["span_id"] == f"{span.get_span_context().span_id:016x}"
            assert event["creators"] == 2

    def test_untouched_outside_span(self):
        event = add_trace_context(None, "info", {"event": "idle"})

        assert event == {"event": "idle"}

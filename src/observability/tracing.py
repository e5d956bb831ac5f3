"""
OpenTelemetry tracing for refresh runs and summary jobs.

Provides:
- setup_tracing(): TracerProvider with an OTLP exporter
- get_tracer(): named tracer (no-op until setup_tracing runs)
- traced(): span context manager that records exceptions
- inject_trace_context() / extract_trace_context(): W3C traceparent carried
  in Redis Streams message fields
- add_trace_context: structlog processor adding trace_id/span_id to logs

A refresh run publishes summary jobs with its traceparent, so the worker's
span joins the run's trace:

    refresh_run (API/cron/CLI) -> summary.publish -> summary.process (worker)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import SpanContext, StatusCode, TraceFlags, Tracer
from opentelemetry.trace.propagation import get_current_span

logger = logging.getLogger(__name__)

_tracing_enabled = False

TRACE_PARENT_FIELD = "traceparent"


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider.

    Args:
        service_name: Value of the service.name resource attribute.
        otlp_endpoint: OTLP gRPC collector endpoint.
        exporter: Custom exporter, e.g. InMemorySpanExporter in tests.
            Exported synchronously when given.
    """
    global _tracing_enabled

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(
            endpoint=otlp_endpoint or "http://localhost:4317",
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    _tracing_enabled = True
    logger.info(
        "OpenTelemetry tracing initialized: service=%s endpoint=%s",
        service_name,
        otlp_endpoint or "(custom exporter)",
    )
    return provider


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _tracing_enabled


def inject_trace_context() -> dict[str, str]:
    """
    Current span as a ``{"traceparent": ...}`` dict for XADD fields.

    Empty when no span is active.
    """
    ctx = get_current_span().get_span_context()
    if not ctx.is_valid:
        return {}
    return {
        TRACE_PARENT_FIELD: f"00-{ctx.trace_id:032x}-{ctx.span_id:016x}-{ctx.trace_flags:02x}"
    }


def extract_trace_context(fields: dict[str, str]) -> Context | None:
    """
    Rebuild a remote parent Context from message fields.

    Returns None when the field is absent or malformed.
    """
    traceparent = fields.get(TRACE_PARENT_FIELD)
    if not traceparent:
        return None

    parts = traceparent.split("-")
    if len(parts) != 4:
        return None
    try:
        remote = SpanContext(
            trace_id=int(parts[1], 16),
            span_id=int(parts[2], 16),
            is_remote=True,
            trace_flags=TraceFlags(int(parts[3], 16)),
        )
    except ValueError:
        logger.debug("Failed to parse traceparent: %s", traceparent)
        return None
    return trace.set_span_in_context(trace.NonRecordingSpan(remote))


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
    parent_context: Context | None = None,
):
    """
    Span context manager that marks the span as errored on exception.

    Usage:
        with traced(tracer, "refresh_creator", {"creator.id": creator.id}):
            ...
    """
    kwargs: dict[str, Any] = {}
    if parent_context is not None:
        kwargs["context"] = parent_context

    with tracer.start_as_current_span(name, **kwargs) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding the active trace_id and span_id."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = f"{ctx.trace_id:032x}"
        event_dict["span_id"] = f"{ctx.span_id:016x}"
    return event_dict

"""OpenTelemetry spans around index runs and queries.

A CLI invocation is short-lived, so no exporter is attached: spans exist to
give every log line of one command a shared trace id and a span id naming
the step that emitted it.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import SpanKind, Status, StatusCode

from csv_indexer.observability.context import update_span_id


if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Span, Tracer

logger = logging.getLogger(__name__)

SERVICE_NAME = "csv-indexer"

_state: dict[str, Any] = {"provider": None, "tracer": None}


def init_tracing(
    service_name: str = SERVICE_NAME,
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Install an SDK tracer provider for this process and return it."""
    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)
    _state["provider"] = provider
    _state["tracer"] = provider.get_tracer("csv_indexer")
    logger.debug("Tracing initialized for service: %s", service_name)
    return provider


def get_tracer() -> Tracer:
    if _state["tracer"] is None:
        init_tracing()
    return _state["tracer"]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """Run the block inside span ``name``; ``None`` attribute values are skipped.

    A failing block marks the span as errored with the exception class in
    ``error.type`` and re-raises.
    """
    clean = {key: value for key, value in (attributes or {}).items() if value is not None}
    with get_tracer().start_as_current_span(
        name,
        kind=kind,
        attributes=clean,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        span_context = span.get_span_context()
        if span_context.is_valid:
            update_span_id(format(span_context.span_id, "016x"), format(span_context.trace_id, "032x"))
        try:
            yield span
        except Exception as exc:
            span.set_attribute("error.type", type(exc).__name__)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise

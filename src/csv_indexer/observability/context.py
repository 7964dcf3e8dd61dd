"""Trace correlation state shared by logging and tracing."""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Get current trace context, creating one for this command if needed."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def update_span_id(span_id: str, trace_id: str | None = None) -> None:
    """Point log correlation at the active span."""
    ctx = trace_context.get() or {}
    updated = {**ctx, "span_id": span_id}
    if trace_id:
        updated["trace_id"] = trace_id
    trace_context.set(updated)


def bind_command(command: str, index_path: str | None = None) -> None:
    """Attach the running CLI command (and its index) to every log line."""
    ctx = dict(get_trace_context())
    ctx["command"] = command
    if index_path is not None:
        ctx["index"] = index_path
    trace_context.set(ctx)

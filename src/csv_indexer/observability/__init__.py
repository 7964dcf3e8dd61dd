"""Observability: structured logging, tracing spans, and Prometheus metrics."""

from csv_indexer.observability.context import bind_command, get_trace_context, trace_context
from csv_indexer.observability.logging import JsonFormatter, configure_logging
from csv_indexer.observability.metrics import (
    COMMAND_COUNT,
    DOCUMENTS_INDEXED,
    DOCUMENTS_REPLACED,
    INDEX_RUN_LATENCY,
    SEARCH_LATENCY,
    SEARCH_RESULTS,
    track_latency,
    write_metrics_textfile,
)
from csv_indexer.observability.tracing import create_span, get_tracer


__all__ = [
    "COMMAND_COUNT",
    "DOCUMENTS_INDEXED",
    "DOCUMENTS_REPLACED",
    "INDEX_RUN_LATENCY",
    "SEARCH_LATENCY",
    "SEARCH_RESULTS",
    "JsonFormatter",
    "bind_command",
    "configure_logging",
    "create_span",
    "get_trace_context",
    "get_tracer",
    "trace_context",
    "track_latency",
    "write_metrics_textfile",
]

"""Prometheus metrics for indexing runs and queries.

The CLI is short-lived, so metrics are handed to the node exporter textfile
collector (``write_metrics_textfile``) rather than served over HTTP.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import time
from typing import TYPE_CHECKING

from prometheus_client import REGISTRY, Counter, Histogram, write_to_textfile

from csv_indexer.errors import IOFailure


if TYPE_CHECKING:
    from collections.abc import Generator


COMMAND_COUNT = Counter(
    "csv_indexer_commands_total",
    "Commands executed by the CLI",
    ["command", "status"],
)

DOCUMENTS_INDEXED = Counter(
    "csv_indexer_documents_indexed_total",
    "Documents written to an index",
    ["operation"],
)

DOCUMENTS_REPLACED = Counter(
    "csv_indexer_documents_replaced_total",
    "Existing documents superseded by update",
)

INDEX_RUN_LATENCY = Histogram(
    "csv_indexer_index_run_seconds",
    "Duration of create/append/update runs",
    ["operation"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
)

SEARCH_LATENCY = Histogram(
    "csv_indexer_search_latency_seconds",
    "Query latency including field projection",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

SEARCH_RESULTS = Histogram(
    "csv_indexer_search_results",
    "Rows returned per query",
    buckets=(0, 1, 5, 10, 50, 100, 500, 1000, 10000),
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        target = histogram.labels(**labels) if labels else histogram
        target.observe(time.perf_counter() - start)


def write_metrics_textfile(path: str | Path) -> Path:
    """Atomically write all metrics to ``path`` for the textfile collector."""
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(target), REGISTRY)
    except OSError as exc:
        raise IOFailure(f"Cannot write metrics file: {exc}", path=target) from exc
    return target

"""Indexing pipeline: stream CSV rows into an index.

``insert`` adds documents (``append`` never deduplicates by key) while
``update`` replaces every document that shares a key. Each document is
committed before the next row is read, so rows committed before a failing
row stay in the index.
"""

from __future__ import annotations

import logging
from pathlib import Path
import time

from csv_indexer.config import Settings, get_settings
from csv_indexer.documents import document_from_row
from csv_indexer.domain.model import IndexRunResult, OpenMode
from csv_indexer.observability.metrics import (
    DOCUMENTS_INDEXED,
    DOCUMENTS_REPLACED,
    INDEX_RUN_LATENCY,
    track_latency,
)
from csv_indexer.observability.tracing import create_span
from csv_indexer.records import CsvRecordSource
from csv_indexer.search.engine import open_index, remove_index


logger = logging.getLogger(__name__)


class Indexer:
    """Builds, extends, updates and drops indexes."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def insert(
        self,
        input_path: str | Path,
        output_path: str | Path,
        mode: OpenMode | str = OpenMode.CREATE,
    ) -> IndexRunResult:
        """Index every row of ``input_path`` into ``output_path``.

        Args:
            input_path: CSV file with an ``id`` column.
            output_path: Index directory.
            mode: ``CREATE`` (start from empty) or ``APPEND`` (index must exist).

        Raises:
            ValueError: for any other mode.
            NotFoundError, MalformedInputError, IOFailure: see ``csv_indexer.errors``.
        """
        mode = OpenMode(mode)
        if mode not in (OpenMode.CREATE, OpenMode.APPEND):
            raise ValueError(f"insert supports CREATE or APPEND, not {mode.name}")
        operation = "create" if mode is OpenMode.CREATE else "append"
        return self._run(operation, Path(input_path), Path(output_path), mode, replace=False)

    def update(self, input_path: str | Path, output_path: str | Path) -> IndexRunResult:
        """Upsert every row by key, creating the index if it does not exist."""
        return self._run("update", Path(input_path), Path(output_path), OpenMode.CREATE_OR_APPEND, replace=True)

    def drop(self, output_path: str | Path) -> bool:
        """Remove the index directory; returns False when it did not exist."""
        path = Path(output_path)
        with create_span("index.drop", attributes={"index.path": str(path)}) as span:
            removed = remove_index(path)
            span.set_attribute("index.removed", removed)
        if not removed:
            logger.info("Index %s does not exist, nothing to drop", path)
        return removed

    def _run(
        self,
        operation: str,
        input_path: Path,
        output_path: Path,
        mode: OpenMode,
        *,
        replace: bool,
    ) -> IndexRunResult:
        started = time.perf_counter()
        written = 0
        replaced = 0
        unique_field = self.settings.unique_field
        attributes = {
            "index.operation": operation,
            "index.path": str(output_path),
            "index.input": str(input_path),
            "index.mode": mode.value,
        }
        with create_span(f"index.{operation}", attributes=attributes) as span, track_latency(
            INDEX_RUN_LATENCY, operation=operation
        ):
            # Opening the source validates the header before the index is touched.
            with CsvRecordSource.from_settings(input_path, self.settings) as source:
                with open_index(output_path, mode, settings=self.settings) as index:
                    index.ensure_columns(source.header)
                    for row in source:
                        document = document_from_row(row, unique_field, line=source.line_number)
                        if replace:
                            replaced += index.count_documents(document.key)
                            index.upsert(document)
                        else:
                            index.add(document)
                        written += 1
                        DOCUMENTS_INDEXED.labels(operation=operation).inc()
            span.set_attribute("index.documents_written", written)
            span.set_attribute("index.documents_replaced", replaced)

        if replaced:
            DOCUMENTS_REPLACED.inc(replaced)
        duration = time.perf_counter() - started
        logger.info(
            "%s %s from %s: %d written, %d replaced in %.3fs",
            operation.capitalize(),
            output_path,
            input_path,
            written,
            replaced,
            duration,
        )
        return IndexRunResult(
            operation=operation,
            input_path=input_path,
            index_path=output_path,
            mode=mode,
            documents_written=written,
            documents_replaced=replaced,
            duration_s=duration,
        )

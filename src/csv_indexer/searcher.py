"""Query planner and projector behind ``find``."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from pathlib import Path

from csv_indexer.config import Settings, get_settings
from csv_indexer.domain.model import OpenMode
from csv_indexer.domain.search import FindResult, ResultRow
from csv_indexer.observability.metrics import SEARCH_LATENCY, SEARCH_RESULTS, track_latency
from csv_indexer.observability.tracing import create_span
from csv_indexer.search.engine import IndexEngine, open_index
from csv_indexer.search.models import SearchHit
from csv_indexer.search.query_parser import QueryParser


logger = logging.getLogger(__name__)


def parse_field_list(raw: str) -> tuple[str, ...]:
    """Split ``"c, a,b"`` into ``("c", "a", "b")``; blanks are dropped."""
    names = tuple(part.strip() for part in raw.split(","))
    names = tuple(name for name in names if name)
    if not names:
        raise ValueError("At least one field name is required")
    return names


def _validate_fields(fields: str | Sequence[str]) -> tuple[str, ...]:
    if isinstance(fields, str):
        return parse_field_list(fields)
    names = tuple(name.strip() for name in fields)
    if not names or any(not name for name in names):
        raise ValueError("Field names must be non-empty")
    return names


def _validate_limit(limit: int | None) -> int | None:
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValueError(f"Limit must be a positive integer, got {limit!r}")
    return limit


class Searcher:
    """Runs queries against an index and projects the requested fields."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def find(
        self,
        index_path: str | Path,
        fields: str | Sequence[str],
        query_string: str,
        limit: int | None = None,
    ) -> FindResult:
        """Return the requested fields of every matching document, in engine order.

        Raises:
            ValueError: no field names, or a non-positive limit.
            NotFoundError: the index does not exist.
            QuerySyntaxError: the query cannot be parsed.
        """
        names = _validate_fields(fields)
        limit = _validate_limit(limit)
        attributes = {"index.path": str(index_path), "search.fields": ",".join(names), "search.limit": limit}
        with create_span("search.find", attributes=attributes) as span, track_latency(SEARCH_LATENCY):
            with open_index(index_path, OpenMode.READ_ONLY, settings=self.settings) as index:
                parser = QueryParser(index.schema, fuzzy_max_edits=self.settings.fuzzy_max_edits)
                query = parser.parse(query_string)
                logger.debug("Parsed %r into %r", query_string, query)
                hits = index.search(query, limit)
                rows = tuple(self._project(index, hit, names) for hit in hits)
            span.set_attribute("search.results", len(rows))

        SEARCH_RESULTS.observe(len(rows))
        logger.info("Query %r on %s returned %d row(s)", query_string, index_path, len(rows))
        return FindResult(fields=names, query=query_string, rows=rows, limit=limit)

    @staticmethod
    def _project(index: IndexEngine, hit: SearchHit, names: tuple[str, ...]) -> ResultRow:
        stored = index.fetch_fields(hit.doc_id, names)
        return ResultRow(key=hit.key, values=tuple((name, stored.get(name, "")) for name in names))

"""Document mapper: one source row becomes one ``Document``."""

from __future__ import annotations

from collections.abc import Mapping

from csv_indexer.domain.model import Document
from csv_indexer.errors import MalformedInputError


def document_from_row(row: Mapping[str, str], unique_field: str = "id", *, line: int | None = None) -> Document:
    """Map a row to a document keyed by ``row[unique_field]``.

    Values are copied verbatim: no trimming, case folding or type coercion.
    """
    key = row.get(unique_field)
    if key is None:
        raise MalformedInputError(f"Row has no '{unique_field}' column", line=line)
    if key == "":
        where = f" on line {line}" if line is not None else ""
        raise MalformedInputError(f"Empty '{unique_field}' value{where}", line=line)
    return Document(key=key, fields=dict(row))

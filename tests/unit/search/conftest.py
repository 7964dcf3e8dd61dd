"""Fixtures for search-layer tests: a small people index on disk."""

from pathlib import Path

import pytest

from csv_indexer.domain.model import Document, OpenMode
from csv_indexer.search.engine import open_index


@pytest.fixture
def people_documents(people_rows) -> list[Document]:
    header, *rows = people_rows
    return [Document(key=row[0], fields=dict(zip(header, row, strict=True))) for row in rows]


@pytest.fixture
def index_dir(tmp_path: Path) -> Path:
    return tmp_path / "people-index"


@pytest.fixture
def people_index(index_dir, settings, people_rows, people_documents):
    """Build the people index, then yield it reopened read-only."""
    with open_index(index_dir, OpenMode.CREATE, settings=settings) as index:
        index.ensure_columns(people_rows[0])
        for document in people_documents:
            index.add(document)
    with open_index(index_dir, OpenMode.READ_ONLY, settings=settings) as index:
        yield index

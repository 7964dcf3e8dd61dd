"""Shared test fixtures and configuration."""

from collections.abc import Callable
import csv
import io
import os
from pathlib import Path

import pytest

from csv_indexer.config import Settings, get_settings


PEOPLE_ROWS = [
    ["id", "name", "email", "city"],
    ["1", "John Smith", "john@example.com", "Paris"],
    ["2", "Jane Doe", "jane@example.com", "London"],
    ["3", "Johnny Smyth", "johnny@example.org", "Paris"],
    ["4", "Anna Karenina", "", "Moscow"],
]


def _render(rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep CSV_INDEXER_* variables from the host out of every test."""
    for key in list(os.environ):
        if key.upper().startswith("CSV_INDEXER_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write rows (or raw text) to a CSV file under tmp_path."""

    def _write(name: str, rows: list[list[str]] | str, *, encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        content = rows if isinstance(rows, str) else _render(rows)
        path.write_text(content, encoding=encoding)
        return path

    return _write


@pytest.fixture
def people_csv(write_csv) -> Path:
    return write_csv("people.csv", PEOPLE_ROWS)


@pytest.fixture
def people_rows() -> list[list[str]]:
    return [list(row) for row in PEOPLE_ROWS]

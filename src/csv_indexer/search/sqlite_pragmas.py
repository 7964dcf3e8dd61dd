"""PRAGMA sets for index connections.

Writers run in WAL mode so that a ``find`` started during an indexing run
reads the last committed state instead of blocking.
"""

from __future__ import annotations

from collections.abc import Iterable
import sqlite3


def _apply(conn: sqlite3.Connection, pragmas: Iterable[tuple[str, object]]) -> None:
    for name, value in pragmas:
        conn.execute(f"PRAGMA {name} = {value}")


def apply_read_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -65536,
    mmap_size_bytes: int = 134217728,
    temp_store: str = "MEMORY",
    query_only: bool = True,
    busy_timeout_ms: int | None = 30000,
) -> None:
    """Tune a connection for queries; ``query_only`` makes SQLite reject writes."""
    pragmas: list[tuple[str, object]] = []
    if busy_timeout_ms is not None:
        pragmas.append(("busy_timeout", int(busy_timeout_ms)))
    pragmas += [
        ("cache_size", int(cache_size_kb)),
        ("mmap_size", int(mmap_size_bytes)),
        ("temp_store", temp_store),
    ]
    if query_only:
        pragmas.append(("query_only", 1))
    _apply(conn, pragmas)


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -65536,
    temp_store: str = "MEMORY",
    busy_timeout_ms: int | None = 30000,
) -> None:
    """Tune a connection for one-document-per-transaction indexing."""
    pragmas: list[tuple[str, object]] = []
    if busy_timeout_ms is not None:
        pragmas.append(("busy_timeout", int(busy_timeout_ms)))
    pragmas += [
        ("journal_mode", "WAL"),
        ("synchronous", "NORMAL"),
        ("cache_size", int(cache_size_kb)),
        ("temp_store", temp_store),
        ("foreign_keys", "ON"),
    ]
    _apply(conn, pragmas)

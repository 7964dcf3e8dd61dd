"""Engine adapter over a SQLite-backed inverted index.

The indexer and the searcher only see the ``IndexEngine`` protocol plus
``open_index``/``remove_index``; tables, analyzers and scoring stay behind
it. One index is one directory holding ``index.db`` and ``write.lock``.
"""

from __future__ import annotations

from array import array
from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import shutil
import sqlite3
from typing import Protocol

from csv_indexer.config import Settings, get_settings
from csv_indexer.domain.model import Document, OpenMode
from csv_indexer.errors import IOFailure, NotFoundError
from csv_indexer.search.analyzers import Token, get_analyzer
from csv_indexer.search.executor import QueryExecutor
from csv_indexer.search.locking import LOCK_FILENAME, IndexWriteLock, is_locked
from csv_indexer.search.models import SearchHit
from csv_indexer.search.query import Query
from csv_indexer.search.schema import Schema, SchemaField, build_schema
from csv_indexer.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas


logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.db"
FORMAT_VERSION = "1"
_SQLITE_SIDECARS = ("-wal", "-shm", "-journal")
_IN_CHUNK = 500


class IndexEngine(Protocol):
    """What the indexing and query layers require from a search engine."""

    @property
    def schema(self) -> Schema: ...

    def ensure_columns(self, columns: Sequence[str]) -> None:
        """Register source columns so they exist even before any row is added."""
        ...

    def add(self, document: Document) -> int:
        """Insert a document without touching others sharing its key."""
        ...

    def upsert(self, document: Document) -> int:
        """Atomically replace every document sharing the key with this one."""
        ...

    def count_documents(self, key: str) -> int: ...

    def doc_count(self) -> int: ...

    def search(self, query: Query, limit: int | None = None) -> list[SearchHit]:
        """Return matching documents in engine order, at most ``limit`` of them."""
        ...

    def fetch_fields(self, doc_id: int, field_names: Sequence[str]) -> dict[str, str]:
        """Stored values for a hit; absent fields map to ``""``."""
        ...

    def close(self) -> None: ...


_CREATE_TABLES = """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT
    );

    CREATE TABLE IF NOT EXISTS documents (
        doc_id INTEGER PRIMARY KEY AUTOINCREMENT,
        doc_key TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS fields (
        doc_id INTEGER NOT NULL,
        field TEXT NOT NULL,
        value TEXT NOT NULL,
        length INTEGER NOT NULL,
        PRIMARY KEY (doc_id, field)
    ) WITHOUT ROWID;

    CREATE TABLE IF NOT EXISTS postings (
        field TEXT NOT NULL,
        term TEXT NOT NULL,
        doc_id INTEGER NOT NULL,
        tf INTEGER NOT NULL,
        doc_length INTEGER NOT NULL,
        positions_blob BLOB,
        PRIMARY KEY (field, term, doc_id)
    ) WITHOUT ROWID;

    CREATE INDEX IF NOT EXISTS idx_documents_key ON documents(doc_key);
    CREATE INDEX IF NOT EXISTS idx_postings_doc ON postings(doc_id);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _storage_errors(action: str, path: Path) -> Iterator[None]:
    """Report SQLite failures as ``IOFailure`` naming the index."""
    try:
        yield
    except sqlite3.Error as exc:
        raise IOFailure(f"Failed to {action}: {exc}", path=path) from exc


class SqliteIndex:
    """An open index; use as a context manager so the connection and lock are released."""

    def __init__(
        self,
        directory: Path,
        conn: sqlite3.Connection,
        schema: Schema,
        mode: OpenMode,
        lock: IndexWriteLock | None = None,
    ) -> None:
        self.directory = directory
        self.mode = mode
        self._conn: sqlite3.Connection | None = conn
        self._schema = schema
        self._lock = lock

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise IOFailure("Index is closed", path=self.directory)
        return self._conn

    def __enter__(self) -> SqliteIndex:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Writes -------------------------------------------------------------------

    def _require_writable(self) -> None:
        if not self.mode.writable:
            raise IOFailure("Index is open read-only", path=self.directory)

    def ensure_columns(self, columns: Sequence[str]) -> None:
        self._require_writable()
        with _storage_errors("update index schema", self.directory), self.conn:
            self._extend_schema(columns)

    def add(self, document: Document) -> int:
        self._require_writable()
        with _storage_errors("add document", self.directory), self.conn:
            self._extend_schema(document.field_names)
            doc_id = self._insert(document)
            self._touch()
        return doc_id

    def upsert(self, document: Document) -> int:
        self._require_writable()
        with _storage_errors("update document", self.directory), self.conn:
            removed = self._delete_key(document.key)
            self._extend_schema(document.field_names)
            doc_id = self._insert(document)
            self._touch()
        if removed:
            logger.debug("Replaced %d document(s) with key %r", removed, document.key)
        return doc_id

    def _extend_schema(self, columns: Iterable[str]) -> None:
        added = [name for name in columns if self._schema.ensure_field(name)[1]]
        if added:
            logger.info("Index schema extended with columns: %s", ", ".join(added))
            _write_metadata(self.conn, {"schema": json.dumps(self._schema.to_dict())})

    def _analyze(self, schema_field: SchemaField, value: str) -> list[Token]:
        if not schema_field.indexed:
            return []
        return get_analyzer(schema_field.analyzer_name)(value)

    def _insert(self, document: Document) -> int:
        conn = self.conn
        cursor = conn.execute("INSERT INTO documents (doc_key) VALUES (?)", (document.key,))
        doc_id = int(cursor.lastrowid)

        field_rows = []
        posting_rows = []
        for name, value in document.fields.items():
            tokens = self._analyze(self._schema[name], value)
            field_rows.append((doc_id, name, value, len(tokens)))
            positions: dict[str, list[int]] = defaultdict(list)
            for token in tokens:
                positions[token.text].append(token.position)
            for term, term_positions in positions.items():
                positions_array = array("I", term_positions)
                posting_rows.append(
                    (name, term, doc_id, len(positions_array), len(tokens), positions_array.tobytes())
                )

        conn.executemany(
            "INSERT INTO fields (doc_id, field, value, length) VALUES (?, ?, ?, ?)",
            field_rows,
        )
        if posting_rows:
            conn.executemany(
                "INSERT INTO postings (field, term, doc_id, tf, doc_length, positions_blob) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                posting_rows,
            )
        return doc_id

    def _delete_key(self, key: str) -> int:
        conn = self.conn
        doc_ids = [(row[0],) for row in conn.execute("SELECT doc_id FROM documents WHERE doc_key = ?", (key,))]
        if not doc_ids:
            return 0
        conn.executemany("DELETE FROM postings WHERE doc_id = ?", doc_ids)
        conn.executemany("DELETE FROM fields WHERE doc_id = ?", doc_ids)
        conn.executemany("DELETE FROM documents WHERE doc_id = ?", doc_ids)
        return len(doc_ids)

    def _touch(self) -> None:
        _write_metadata(self.conn, {"updated_at": _now()})

    # Reads --------------------------------------------------------------------

    def count_documents(self, key: str) -> int:
        with _storage_errors("read index", self.directory):
            row = self.conn.execute("SELECT COUNT(*) FROM documents WHERE doc_key = ?", (key,)).fetchone()
        return int(row[0])

    def doc_count(self) -> int:
        with _storage_errors("read index", self.directory):
            row = self.conn.execute("SELECT COUNT(*) FROM documents").fetchone()
        return int(row[0])

    def search(self, query: Query, limit: int | None = None) -> list[SearchHit]:
        with _storage_errors("search index", self.directory):
            ranked = QueryExecutor(self.conn, self._schema).execute(query, limit)
            keys = self._keys_for([doc_id for doc_id, _ in ranked])
        return [SearchHit(doc_id=doc_id, key=keys[doc_id], score=score) for doc_id, score in ranked]

    def _keys_for(self, doc_ids: list[int]) -> dict[int, str]:
        keys: dict[int, str] = {}
        for start in range(0, len(doc_ids), _IN_CHUNK):
            chunk = doc_ids[start : start + _IN_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            rows = self.conn.execute(
                f"SELECT doc_id, doc_key FROM documents WHERE doc_id IN ({placeholders})",
                chunk,
            )
            keys.update((int(doc_id), doc_key) for doc_id, doc_key in rows)
        return keys

    def fetch_fields(self, doc_id: int, field_names: Sequence[str]) -> dict[str, str]:
        wanted = list(dict.fromkeys(field_names))
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        with _storage_errors("read stored fields", self.directory):
            rows = self.conn.execute(
                f"SELECT field, value FROM fields WHERE doc_id = ? AND field IN ({placeholders})",
                [doc_id, *wanted],
            )
            found = dict(rows.fetchall())
        return {name: found.get(name, "") for name in wanted}

    def close(self) -> None:
        conn, self._conn = self._conn, None
        try:
            if conn is not None:
                if self.mode.writable:
                    try:
                        conn.execute("PRAGMA optimize")
                        conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                    except sqlite3.Error as exc:
                        logger.warning("Failed to checkpoint index %s: %s", self.directory, exc)
                conn.close()
        finally:
            if self._lock is not None:
                self._lock.release()
                self._lock = None


def _write_metadata(conn: sqlite3.Connection, values: dict[str, str]) -> None:
    conn.executemany(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        list(values.items()),
    )


def _load_metadata(conn: sqlite3.Connection) -> dict[str, str]:
    try:
        return {key: value for key, value in conn.execute("SELECT key, value FROM metadata")}
    except sqlite3.OperationalError:
        return {}


def _delete_index_files(directory: Path) -> None:
    for name in (INDEX_FILENAME, *(INDEX_FILENAME + suffix for suffix in _SQLITE_SIDECARS)):
        target = directory / name
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise IOFailure(f"Cannot reset index: {exc}", path=directory) from exc


def _initialize(conn: sqlite3.Connection, settings: Settings) -> Schema:
    schema = build_schema([settings.unique_field], unique_field=settings.unique_field, analyzer=settings.analyzer)
    created_at = _now()
    conn.executescript(_CREATE_TABLES)
    with conn:
        _write_metadata(
            conn,
            {
                "format_version": FORMAT_VERSION,
                "schema": json.dumps(schema.to_dict()),
                "created_at": created_at,
                "updated_at": created_at,
            },
        )
    return schema


def _load_schema(conn: sqlite3.Connection, directory: Path) -> Schema:
    metadata = _load_metadata(conn)
    raw_schema = metadata.get("schema")
    if raw_schema is None:
        raise IOFailure("Not a csv-indexer index (metadata missing)", path=directory)
    if metadata.get("format_version") != FORMAT_VERSION:
        raise IOFailure(f"Unsupported index format version {metadata.get('format_version')!r}", path=directory)
    try:
        return Schema.from_dict(json.loads(raw_schema))
    except (json.JSONDecodeError, KeyError, ValueError) as exc:
        raise IOFailure(f"Corrupted index schema: {exc}", path=directory) from exc


def _connect(db_path: Path, mode: OpenMode, settings: Settings) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    try:
        if mode.writable:
            apply_write_pragmas(conn, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
        else:
            apply_read_pragmas(conn, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def open_index(path: str | Path, mode: OpenMode | str, *, settings: Settings | None = None) -> SqliteIndex:
    """Open (or create) the index at ``path`` according to ``mode``.

    Raises:
        NotFoundError: ``APPEND``/``READ_ONLY`` on a missing index.
        IOFailure: unusable directory, held write lock, or storage errors.
    """
    settings = settings or get_settings()
    mode = OpenMode(mode)
    directory = Path(path)
    db_path = directory / INDEX_FILENAME

    if mode in (OpenMode.APPEND, OpenMode.READ_ONLY):
        if not db_path.is_file():
            raise NotFoundError(f"Index not found: {directory}", path=directory)
    else:
        if directory.exists() and not directory.is_dir():
            raise IOFailure(f"Index path is not a directory: {directory}", path=directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"Cannot create index directory: {exc}", path=directory) from exc

    lock = IndexWriteLock(directory) if mode.writable else None
    if lock is not None:
        lock.acquire()
    try:
        if mode is OpenMode.CREATE:
            _delete_index_files(directory)
        fresh = not db_path.exists()
        with _storage_errors("open index", directory):
            conn = _connect(db_path, mode, settings)
            try:
                schema = _initialize(conn, settings) if fresh else _load_schema(conn, directory)
            except BaseException:
                conn.close()
                raise
    except BaseException:
        if lock is not None:
            lock.release()
        raise

    logger.debug("Opened index %s (%s, fresh=%s)", directory, mode.value, fresh)
    return SqliteIndex(directory, conn, schema, mode, lock)


def remove_index(path: str | Path) -> bool:
    """Delete an index directory; returns False when there was nothing to delete."""
    directory = Path(path)
    if not directory.exists() and not directory.is_symlink():
        return False
    if not directory.is_dir():
        raise IOFailure(f"Index path is not a directory: {directory}", path=directory)
    try:
        entries = {entry.name for entry in directory.iterdir()}
    except OSError as exc:
        raise IOFailure(f"Cannot read index directory: {exc}", path=directory) from exc
    if entries and INDEX_FILENAME not in entries and LOCK_FILENAME not in entries:
        raise IOFailure(f"Refusing to remove a directory that is not an index: {directory}", path=directory)
    if is_locked(directory):
        raise IOFailure("Index is locked by another writer", path=directory)
    try:
        shutil.rmtree(directory)
    except OSError as exc:
        raise IOFailure(f"Cannot remove index: {exc}", path=directory) from exc
    logger.info("Removed index %s", directory)
    return True

"""Advisory write lock guarding an index directory.

Only one writer may hold an index at a time. The lock is non-blocking: a
second writer fails immediately instead of waiting.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import IO

from csv_indexer.errors import IOFailure


logger = logging.getLogger(__name__)

LOCK_FILENAME = "write.lock"


class IndexWriteLock:
    """Exclusive ``fcntl.flock`` lock on ``<index>/write.lock``."""

    def __init__(self, index_dir: Path) -> None:
        self.path = Path(index_dir) / LOCK_FILENAME
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        if self._handle is not None:
            return
        try:
            handle = self.path.open("a+", encoding="utf-8")
        except OSError as exc:
            raise IOFailure(f"Cannot open lock file: {exc}", path=self.path) from exc
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            handle.close()
            raise IOFailure(
                "Index is locked by another writer",
                path=self.path.parent,
            ) from exc
        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        logger.debug("Acquired index lock %s", self.path)

    def release(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
        logger.debug("Released index lock %s", self.path)

    def __enter__(self) -> IndexWriteLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def is_locked(index_dir: Path) -> bool:
    """Return True when another process currently holds the write lock."""
    lock_path = Path(index_dir) / LOCK_FILENAME
    if not lock_path.exists():
        return False
    try:
        with lock_path.open("a+", encoding="utf-8") as handle:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                return True
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except OSError as exc:
        raise IOFailure(f"Cannot inspect lock file: {exc}", path=lock_path) from exc
    return False

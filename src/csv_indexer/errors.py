"""Failure taxonomy shared by the indexer, the searcher and the CLI.

Core operations raise these errors and never terminate the process; the CLI
maps every ``IndexerError`` to a single diagnostic line and a non-zero exit
status. An empty search result is not an error (see ``FindResult.is_empty``).
"""

from __future__ import annotations

from pathlib import Path


class IndexerError(Exception):
    """Base class for failures reported to the command-line caller."""


class NotFoundError(IndexerError):
    """Input file or index directory missing where one is required."""

    def __init__(self, message: str, *, path: str | Path | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class MalformedInputError(IndexerError):
    """Header or column problems in the source file."""

    def __init__(self, message: str, *, path: str | Path | None = None, line: int | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None
        self.line = line


class IOFailure(IndexerError):
    """Filesystem-level failure distinct from not-found."""

    def __init__(self, message: str, *, path: str | Path | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class QuerySyntaxError(IndexerError):
    """Query string cannot be parsed into the native query form."""

    def __init__(self, message: str, *, query: str = "", position: int | None = None) -> None:
        self.reason = message
        self.query = query
        self.position = position
        super().__init__(self._render())

    def _render(self) -> str:
        if self.position is None:
            return f"Cannot parse '{self.query}': {self.reason}"
        return f"Cannot parse '{self.query}': {self.reason} at position {self.position}"

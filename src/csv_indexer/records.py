"""Record source: lazy, single-pass reading of CSV input.

The header is read and validated when the source is opened, before a single
row is produced, so callers can reject a file without an ``id`` column
before touching an index.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
import csv
import logging
from pathlib import Path
from typing import IO

from csv_indexer.config import Settings
from csv_indexer.errors import IOFailure, MalformedInputError, NotFoundError


logger = logging.getLogger(__name__)

Row = dict[str, str]


class CsvRecordSource:
    """Yield ``{column: value}`` rows of a CSV file in file order.

    Example:
        with CsvRecordSource("people.csv") as source:
            for row in source:
                ...
    """

    def __init__(
        self,
        path: str | Path,
        *,
        delimiter: str = ",",
        encoding: str = "utf-8-sig",
        unique_field: str = "id",
    ) -> None:
        self.path = Path(path)
        self.delimiter = delimiter
        self.encoding = encoding
        self.unique_field = unique_field
        self._handle: IO[str] | None = None
        self._reader: Iterator[list[str]] | None = None
        self._header: tuple[str, ...] | None = None
        self._rows_read = 0

    @classmethod
    def from_settings(cls, path: str | Path, settings: Settings) -> CsvRecordSource:
        return cls(
            path,
            delimiter=settings.csv_delimiter,
            encoding=settings.csv_encoding,
            unique_field=settings.unique_field,
        )

    @property
    def header(self) -> tuple[str, ...]:
        if self._header is None:
            self.open()
        return self._header  # type: ignore[return-value]

    @property
    def line_number(self) -> int:
        """Physical line where the most recently read record ended."""
        reader = self._reader
        return getattr(reader, "line_num", 0) if reader is not None else 0

    @property
    def rows_read(self) -> int:
        return self._rows_read

    def open(self) -> CsvRecordSource:
        if self._handle is not None:
            return self
        self._handle = self._open_file()
        self._reader = csv.reader(self._handle, delimiter=self.delimiter, strict=True)
        try:
            self._header = self._read_header()
        except BaseException:
            self.close()
            raise
        logger.debug("Opened %s with columns %s", self.path, ", ".join(self._header))
        return self

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def __enter__(self) -> CsvRecordSource:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[Row]:
        header = self.header
        while True:
            values = self._next_record()
            if values is None:
                return
            if len(values) != len(header):
                raise MalformedInputError(
                    f"Line {self.line_number}: expected {len(header)} columns, found {len(values)}",
                    path=self.path,
                    line=self.line_number,
                )
            self._rows_read += 1
            yield dict(zip(header, values))

    def _open_file(self) -> IO[str]:
        try:
            return self.path.open("r", encoding=self.encoding, newline="")
        except FileNotFoundError as exc:
            raise NotFoundError(f"Input file not found: {self.path}", path=self.path) from exc
        except IsADirectoryError as exc:
            raise NotFoundError(f"Input path is a directory: {self.path}", path=self.path) from exc
        except PermissionError as exc:
            raise NotFoundError(f"Input file is not readable: {self.path}", path=self.path) from exc
        except LookupError as exc:
            raise MalformedInputError(f"Unknown input encoding '{self.encoding}'", path=self.path) from exc
        except OSError as exc:
            raise IOFailure(f"Cannot open input file: {exc}", path=self.path) from exc

    def _read_header(self) -> tuple[str, ...]:
        header = self._next_record()
        if header is None:
            raise MalformedInputError(f"Input file is empty, a header row is required: {self.path}", path=self.path)
        if self.unique_field not in header:
            raise MalformedInputError(
                f"Input file has no '{self.unique_field}' column: {self.path}",
                path=self.path,
                line=self.line_number,
            )
        if any(name == "" for name in header):
            raise MalformedInputError("Header contains an empty column name", path=self.path, line=self.line_number)
        duplicates = sorted(name for name, count in Counter(header).items() if count > 1)
        if duplicates:
            raise MalformedInputError(
                f"Duplicate column names in header: {', '.join(duplicates)}",
                path=self.path,
                line=self.line_number,
            )
        return tuple(header)

    def _next_record(self) -> list[str] | None:
        """Next non-blank record, or None at end of file."""
        if self._reader is None:
            raise IOFailure("Record source is closed", path=self.path)
        while True:
            try:
                values = next(self._reader)
            except StopIteration:
                return None
            except csv.Error as exc:
                raise MalformedInputError(
                    f"Line {self.line_number}: {exc}", path=self.path, line=self.line_number
                ) from exc
            except UnicodeDecodeError as exc:
                raise MalformedInputError(
                    f"Input is not valid {self.encoding}: {exc.reason}", path=self.path
                ) from exc
            except ValueError as exc:
                # Reading from a closed file
                raise IOFailure(f"Cannot read input file: {exc}", path=self.path) from exc
            except OSError as exc:
                raise IOFailure(f"Cannot read input file: {exc}", path=self.path) from exc
            if values:
                return values

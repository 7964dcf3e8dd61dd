"""Domain model - indexed documents and indexing run outcomes.

Value objects are immutable Pydantic dataclasses so invariants (non-empty
keys, string-only field values) are validated at construction and the
model stays free of storage concerns.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic.dataclasses import dataclass


class OpenMode(str, Enum):
    """How an operation relates to an index that may already exist on disk."""

    CREATE = "create"
    APPEND = "append"
    CREATE_OR_APPEND = "create_or_append"
    READ_ONLY = "read_only"

    @property
    def writable(self) -> bool:
        return self is not OpenMode.READ_ONLY


@dataclass(frozen=True)
class Document:
    """One indexed unit.

    ``fields`` keeps the source column order and includes the unique column
    itself. Empty values are kept as empty fields.
    """

    key: str = Field(min_length=1)
    fields: dict[str, str] = Field(default_factory=dict)

    def get(self, name: str, default: str = "") -> str:
        return self.fields.get(name, default)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self.fields)


@dataclass(frozen=True)
class IndexRunResult:
    """Outcome of a create/append/update run."""

    operation: str
    input_path: Path
    index_path: Path
    mode: OpenMode
    documents_written: int = Field(default=0, ge=0)
    documents_replaced: int = Field(default=0, ge=0)
    duration_s: float = Field(default=0.0, ge=0.0)

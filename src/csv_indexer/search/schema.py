"""
Schema definition for CSV indexes.

Every CSV column becomes one schema field:
- KeywordField: the unique key column, matched exactly (case-sensitive)
- TextField: every other column, analyzed with the index analyzer

The schema is derived from the first header seen and grows when later files
bring new columns. It is persisted with the index so every later append,
update and query analyzes values the same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    stored: bool = True
    indexed: bool = True

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @property
    def analyzer_name(self) -> str | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.field_type.value,
            "stored": self.stored,
            "indexed": self.indexed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaField:
        field_type = FieldType(data["type"])
        common = {
            "name": data["name"],
            "stored": data.get("stored", True),
            "indexed": data.get("indexed", True),
        }
        if field_type == FieldType.TEXT:
            return TextField(**common, analyzer=data.get("analyzer_name") or "standard")
        if field_type == FieldType.KEYWORD:
            return KeywordField(**common)
        msg = f"Unknown field type: {field_type}"
        raise ValueError(msg)


@dataclass(frozen=True)
class TextField(SchemaField):
    """
    Analyzed text column.

    Values are tokenized and lowercased (plus stopwords/stemming for the
    ``english`` analyzers) before indexing; the raw value is stored verbatim.
    """

    analyzer: str = "standard"

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT

    @property
    def analyzer_name(self) -> str | None:
        return self.analyzer

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["analyzer_name"] = self.analyzer
        return data


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """Exact-match column; the whole value is one term."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD

    @property
    def analyzer_name(self) -> str | None:
        return "keyword"


@dataclass
class Schema:
    """
    Field layout of one index.

    Example:
        schema = Schema(
            fields=[KeywordField("id"), TextField("name"), TextField("email")],
            unique_field="id",
        )
    """

    fields: list[SchemaField]
    unique_field: str = "id"
    default_analyzer: str = "standard"
    _field_map: dict[str, SchemaField] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._field_map = {}
        for schema_field in self.fields:
            if schema_field.name in self._field_map:
                msg = f"Duplicate field '{schema_field.name}' in schema"
                raise ValueError(msg)
            self._field_map[schema_field.name] = schema_field
        if self.unique_field not in self._field_map:
            msg = f"Unique field '{self.unique_field}' not found in schema"
            raise ValueError(msg)

    def __getitem__(self, name: str) -> SchemaField:
        return self._field_map[name]

    def __contains__(self, name: object) -> bool:
        return name in self._field_map

    def __iter__(self) -> Iterator[SchemaField]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def get(self, name: str) -> SchemaField | None:
        return self._field_map.get(name)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def indexed_fields(self) -> list[SchemaField]:
        return [f for f in self.fields if f.indexed]

    def ensure_field(self, name: str) -> tuple[SchemaField, bool]:
        """Return the field for ``name``, adding a text field when unseen."""
        existing = self._field_map.get(name)
        if existing is not None:
            return existing, False
        created = _field_for_column(name, unique_field=self.unique_field, analyzer=self.default_analyzer)
        self.fields.append(created)
        self._field_map[name] = created
        return created, True

    def to_dict(self) -> dict[str, Any]:
        return {
            "unique_field": self.unique_field,
            "default_analyzer": self.default_analyzer,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        fields = [SchemaField.from_dict(f) for f in data["fields"]]
        return cls(
            fields=fields,
            unique_field=data.get("unique_field", "id"),
            default_analyzer=data.get("default_analyzer", "standard"),
        )


def _field_for_column(name: str, *, unique_field: str, analyzer: str) -> SchemaField:
    if name == unique_field:
        return KeywordField(name)
    return TextField(name, analyzer=analyzer)


def build_schema(columns: Iterable[str], *, unique_field: str = "id", analyzer: str = "standard") -> Schema:
    """Create a schema from a CSV header, one field per column in header order."""
    fields = [_field_for_column(name, unique_field=unique_field, analyzer=analyzer) for name in columns]
    return Schema(fields=fields, unique_field=unique_field, default_analyzer=analyzer)

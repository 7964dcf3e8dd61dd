"""Domain models for query results.

A ``FindResult`` is what the query planner hands back to callers: the field
names in the order they were requested plus one ``ResultRow`` per match.
"""

from pydantic import BaseModel, ConfigDict, Field


class ResultRow(BaseModel):
    """Requested fields of one matching document, in caller order."""

    model_config = ConfigDict(frozen=True)

    key: str
    values: tuple[tuple[str, str], ...] = Field(default_factory=tuple)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.values)

    def as_list(self) -> list[str]:
        return [value for _, value in self.values]

    def as_dict(self) -> dict[str, str]:
        return dict(self.values)


class FindResult(BaseModel):
    """Ordered rows produced by one ``find`` invocation."""

    model_config = ConfigDict(frozen=True)

    fields: tuple[str, ...]
    query: str
    rows: tuple[ResultRow, ...] = Field(default_factory=tuple)
    limit: int | None = None

    @property
    def is_empty(self) -> bool:
        """True when nothing matched, as opposed to matches with empty fields."""
        return not self.rows

    @property
    def row_count(self) -> int:
        return len(self.rows)

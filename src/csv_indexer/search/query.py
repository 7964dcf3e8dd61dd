"""Native query tree produced by the query parser and run by the executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Occur(str, Enum):
    """How a clause participates in a boolean query."""

    MUST = "must"
    SHOULD = "should"
    MUST_NOT = "must_not"


@dataclass(frozen=True)
class Query:
    boost: float = field(default=1.0, kw_only=True)


@dataclass(frozen=True)
class TermQuery(Query):
    """Exact term in one field (already analyzed)."""

    field: str
    term: str


@dataclass(frozen=True)
class PhraseQuery(Query):
    """Terms in order, at most ``slop`` extra positions apart."""

    field: str
    terms: tuple[str, ...]
    slop: int = 0


@dataclass(frozen=True)
class WildcardQuery(Query):
    """Term pattern in SQLite GLOB syntax (``*``, ``?``, literal chars bracketed)."""

    field: str
    pattern: str


@dataclass(frozen=True)
class FuzzyQuery(Query):
    field: str
    term: str
    max_edits: int = 2


@dataclass(frozen=True)
class RangeQuery(Query):
    """Lexicographic term range; ``None`` bounds are open."""

    field: str
    lower: str | None
    upper: str | None
    include_lower: bool = True
    include_upper: bool = True


@dataclass(frozen=True)
class MatchAllQuery(Query):
    pass


@dataclass(frozen=True)
class MatchNoneQuery(Query):
    """Matches nothing, e.g. a term the analyzer drops entirely."""


@dataclass(frozen=True)
class BooleanClause:
    occur: Occur
    query: Query


@dataclass(frozen=True)
class BooleanQuery(Query):
    clauses: tuple[BooleanClause, ...] = ()

    @property
    def must(self) -> list[Query]:
        return [c.query for c in self.clauses if c.occur is Occur.MUST]

    @property
    def should(self) -> list[Query]:
        return [c.query for c in self.clauses if c.occur is Occur.SHOULD]

    @property
    def must_not(self) -> list[Query]:
        return [c.query for c in self.clauses if c.occur is Occur.MUST_NOT]

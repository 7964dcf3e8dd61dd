"""Evaluate query trees against the SQLite postings tables.

Scoring is plain BM25 per term so the engine has a stable native order:
phrase matches sum their term scores, fuzzy expansions keep the best
variant per document (non-exact variants discounted), wildcards and ranges
score a constant. Ties break on insertion order (ascending ``doc_id``).
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
import sqlite3

from csv_indexer.search.fuzzy import find_fuzzy_matches
from csv_indexer.search.models import Posting
from csv_indexer.search.phrase import phrase_matches
from csv_indexer.search.query import (
    BooleanQuery,
    FuzzyQuery,
    MatchAllQuery,
    MatchNoneQuery,
    PhraseQuery,
    Query,
    RangeQuery,
    TermQuery,
    WildcardQuery,
)
from csv_indexer.search.schema import Schema
from csv_indexer.search.stats import FieldLengthStats, bm25, calculate_idf


logger = logging.getLogger(__name__)

Scores = dict[int, float]


class QueryExecutor:
    """Scores one query tree; caches collection statistics for its lifetime."""

    FUZZY_DISCOUNT = 0.8

    def __init__(self, conn: sqlite3.Connection, schema: Schema) -> None:
        self._conn = conn
        self._schema = schema
        self._doc_total: int | None = None
        self._field_stats: dict[str, FieldLengthStats] = {}

    def execute(self, query: Query, limit: int | None = None) -> list[tuple[int, float]]:
        """Return ``(doc_id, score)`` pairs, best first, at most ``limit`` long."""
        scores = self._score(query)
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        if limit is not None:
            ranked = ranked[:limit]
        logger.debug("Query %r matched %d documents", query, len(scores))
        return ranked

    def _score(self, query: Query) -> Scores:
        if isinstance(query, BooleanQuery):
            return self._score_boolean(query)
        if isinstance(query, TermQuery):
            return self._boosted(self._term_scores(query.field, query.term), query.boost)
        if isinstance(query, PhraseQuery):
            return self._score_phrase(query)
        if isinstance(query, FuzzyQuery):
            return self._score_fuzzy(query)
        if isinstance(query, WildcardQuery):
            rows = self._conn.execute(
                "SELECT DISTINCT doc_id FROM postings WHERE field = ? AND term GLOB ?",
                (query.field, query.pattern),
            )
            return self._constant(rows, query.boost)
        if isinstance(query, RangeQuery):
            return self._score_range(query)
        if isinstance(query, MatchAllQuery):
            return self._constant(self._conn.execute("SELECT doc_id FROM documents"), query.boost)
        if isinstance(query, MatchNoneQuery):
            return {}
        msg = f"Unsupported query node: {type(query).__name__}"
        raise TypeError(msg)

    # Statistics ---------------------------------------------------------------

    def _total_docs(self) -> int:
        if self._doc_total is None:
            self._doc_total = int(self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])
        return self._doc_total

    def _stats(self, field: str) -> FieldLengthStats:
        stats = self._field_stats.get(field)
        if stats is None:
            count, total = self._conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(length), 0) FROM fields WHERE field = ? AND length > 0",
                (field,),
            ).fetchone()
            stats = FieldLengthStats(field=field, total_terms=int(total), document_count=int(count))
            self._field_stats[field] = stats
        return stats

    def _postings(self, field: str, term: str) -> list[Posting]:
        rows = self._conn.execute(
            "SELECT doc_id, tf, doc_length, positions_blob FROM postings WHERE field = ? AND term = ?",
            (field, term),
        )
        return [Posting.from_row(*row) for row in rows]

    def _score_postings(self, field: str, postings: list[Posting]) -> Scores:
        if not postings:
            return {}
        avg_length = self._stats(field).average_length
        idf = calculate_idf(len(postings), self._total_docs())
        return {p.doc_id: idf * bm25(p.frequency, p.doc_length, avg_length) for p in postings}

    def _term_scores(self, field: str, term: str) -> Scores:
        return self._score_postings(field, self._postings(field, term))

    # Leaf queries -------------------------------------------------------------

    @staticmethod
    def _boosted(scores: Scores, boost: float) -> Scores:
        if boost == 1.0:
            return scores
        return {doc_id: score * boost for doc_id, score in scores.items()}

    @staticmethod
    def _constant(rows: Iterable[tuple[int]], boost: float) -> Scores:
        return {int(row[0]): boost for row in rows}

    def _score_phrase(self, query: PhraseQuery) -> Scores:
        per_term: list[dict[int, Posting]] = []
        for term in query.terms:
            postings = {p.doc_id: p for p in self._postings(query.field, term)}
            if not postings:
                return {}
            per_term.append(postings)

        candidates = set(per_term[0]).intersection(*per_term[1:])
        term_scores = [self._score_postings(query.field, list(postings.values())) for postings in per_term]
        result: Scores = {}
        for doc_id in candidates:
            positions = [postings[doc_id].positions for postings in per_term]
            if phrase_matches(positions, query.slop):
                result[doc_id] = sum(scores[doc_id] for scores in term_scores) * query.boost
        return result

    def _score_fuzzy(self, query: FuzzyQuery) -> Scores:
        rows = self._conn.execute(
            "SELECT DISTINCT term FROM postings WHERE field = ? AND length(term) BETWEEN ? AND ?",
            (query.field, len(query.term) - query.max_edits, len(query.term) + query.max_edits),
        )
        vocabulary = [row[0] for row in rows]
        # Query terms arrive normalized for their field, so compare verbatim.
        matches = find_fuzzy_matches(query.term, vocabulary, query.max_edits, case_sensitive=True)
        result: Scores = {}
        for term, distance in matches:
            factor = 1.0 if distance == 0 else self.FUZZY_DISCOUNT
            for doc_id, score in self._term_scores(query.field, term).items():
                weighted = score * factor * query.boost
                if weighted > result.get(doc_id, 0.0):
                    result[doc_id] = weighted
        return result

    def _score_range(self, query: RangeQuery) -> Scores:
        sql = ["SELECT DISTINCT doc_id FROM postings WHERE field = ?"]
        params: list[str] = [query.field]
        if query.lower is not None:
            sql.append("AND term >= ?" if query.include_lower else "AND term > ?")
            params.append(query.lower)
        if query.upper is not None:
            sql.append("AND term <= ?" if query.include_upper else "AND term < ?")
            params.append(query.upper)
        return self._constant(self._conn.execute(" ".join(sql), params), query.boost)

    # Boolean ------------------------------------------------------------------

    def _score_boolean(self, query: BooleanQuery) -> Scores:
        must = [self._score(q) for q in query.must]
        should = [self._score(q) for q in query.should]

        result: Scores
        if must:
            matched = set(must[0]).intersection(*must[1:])
            result = {doc_id: sum(scores[doc_id] for scores in must) for doc_id in matched}
            for scores in should:
                for doc_id, score in scores.items():
                    if doc_id in result:
                        result[doc_id] += score
        elif should:
            result = {}
            for scores in should:
                for doc_id, score in scores.items():
                    result[doc_id] = result.get(doc_id, 0.0) + score
        else:
            # Only negative clauses: nothing to subtract from.
            return {}

        excluded: set[int] = set()
        for negative in query.must_not:
            excluded.update(self._score(negative))
        return {doc_id: score * query.boost for doc_id, score in result.items() if doc_id not in excluded}

"""Statistical helpers for BM25 scoring.

These stay independent of the SQLite tables so they can be unit tested on
plain numbers. Only the engine's native ordering depends on them.
"""

from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class FieldLengthStats:
    """Aggregated term statistics for a field."""

    field: str
    total_terms: int
    document_count: int

    @property
    def average_length(self) -> float:
        if self.document_count == 0:
            return 0.0
        return self.total_terms / self.document_count


def calculate_idf(doc_freq: int, total_docs: int, *, floor: float = 1e-6) -> float:
    """Return a floored inverse document frequency.

    The floor keeps IDF positive for terms present in most documents, which
    happens constantly in small CSV files (e.g. a ``country`` column).
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    ratio = max((total_docs - df + 0.5) / (df + 0.5), floor)
    return max(math.log(ratio + floor) + 1.0, floor)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF."""

    if tf <= 0:
        return 0.0
    normalized_length = doc_length / max(avg_doc_length, 1e-9)
    return (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * normalized_length))

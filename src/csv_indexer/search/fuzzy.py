"""Fuzzy matching for ``term~N`` queries.

Edit distance plus a vocabulary scan. The query language caps the distance
at 2, matching the classic Lucene syntax; ``term~`` without a number uses the
configured default.
"""

from __future__ import annotations

from collections.abc import Iterable

MAX_EDITS = 2


def levenshtein_distance(s1: str, s2: str, max_distance: int | None = None) -> int:
    """Calculate the Levenshtein (edit) distance between two strings.

    Args:
        s1: First string.
        s2: Second string.
        max_distance: If provided, return max_distance+1 early when
            distance is guaranteed to exceed this threshold.

    Examples:
        >>> levenshtein_distance("kitten", "sitting")
        3
        >>> levenshtein_distance("smith", "smyth")
        1
    """
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    if len(s1) > len(s2):
        s1, s2 = s2, s1

    m, n = len(s1), len(s2)
    if max_distance is not None and abs(m - n) > max_distance:
        return max_distance + 1

    prev_row = list(range(m + 1))
    curr_row = [0] * (m + 1)

    for j in range(1, n + 1):
        curr_row[0] = j
        row_min = curr_row[0]
        for i in range(1, m + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            curr_row[i] = min(
                prev_row[i] + 1,
                curr_row[i - 1] + 1,
                prev_row[i - 1] + cost,
            )
            row_min = min(row_min, curr_row[i])

        if max_distance is not None and row_min > max_distance:
            return max_distance + 1

        prev_row, curr_row = curr_row, prev_row

    return prev_row[m]


def find_fuzzy_matches(
    query_term: str,
    vocabulary: Iterable[str],
    max_distance: int,
    *,
    case_sensitive: bool = False,
) -> list[tuple[str, int]]:
    """Return ``(term, distance)`` pairs within ``max_distance`` of ``query_term``.

    Results are sorted closest first, then alphabetically. Keyword fields
    pass ``case_sensitive=True`` so ``id:abc~1`` never folds case.
    """
    if not query_term:
        return []

    needle = query_term if case_sensitive else query_term.lower()
    matches: list[tuple[str, int]] = []
    for term in vocabulary:
        candidate = term if case_sensitive else term.lower()
        if abs(len(needle) - len(candidate)) > max_distance:
            continue
        distance = levenshtein_distance(needle, candidate, max_distance)
        if distance <= max_distance:
            matches.append((term, distance))

    matches.sort(key=lambda x: (x[1], x[0]))
    return matches

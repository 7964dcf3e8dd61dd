"""Phrase matching over token positions.

A phrase is given as one position list per phrase term, in phrase order.
Exact phrases need consecutive positions; sloppy phrases (``"a b"~N``)
accept any window of at most ``len(terms) + slop`` positions that holds one
occurrence of every term.
"""

from __future__ import annotations

from collections.abc import Sequence


def count_exact_matches(position_lists: Sequence[Sequence[int]]) -> int:
    """Number of starting positions where the terms appear consecutively."""
    if not position_lists or any(not positions for positions in position_lists):
        return 0
    following = [set(positions) for positions in position_lists[1:]]
    count = 0
    for start in position_lists[0]:
        if all((start + offset + 1) in positions for offset, positions in enumerate(following)):
            count += 1
    return count


def get_min_span(position_lists: Sequence[Sequence[int]]) -> float:
    """Calculate minimum span containing at least one position of each term.

    The span is the number of positions from first to last term inclusive,
    so adjacent terms have a span equal to the number of terms. Returns
    infinity when any term is missing.
    """
    if not position_lists or any(not positions for positions in position_lists):
        return float("inf")
    if len(position_lists) == 1:
        return 1.0

    # Sliding window over the merged, sorted (position, term index) list
    merged = sorted((pos, idx) for idx, positions in enumerate(position_lists) for pos in positions)
    needed = len(position_lists)
    counts = [0] * needed
    covered = 0
    left = 0
    best = float("inf")
    for right_pos, right_idx in merged:
        if counts[right_idx] == 0:
            covered += 1
        counts[right_idx] += 1
        while covered == needed:
            left_pos, left_idx = merged[left]
            best = min(best, right_pos - left_pos + 1)
            counts[left_idx] -= 1
            if counts[left_idx] == 0:
                covered -= 1
            left += 1
    return best


def phrase_matches(position_lists: Sequence[Sequence[int]], slop: int = 0) -> bool:
    """Return True when the phrase occurs within ``slop`` extra positions."""
    if slop <= 0:
        return count_exact_matches(position_lists) > 0
    return get_min_span(position_lists) <= len(position_lists) + slop

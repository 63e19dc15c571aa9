"""
Optimal pairing of expected and actual sequence elements.

Pairs are chosen by an exact assignment over a score matrix, where the
score of (expected[i], actual[j]) is the number of passing leaf verdicts
for that pair. Ties in total score go to the index-stable pairing: each
expected element in turn takes the lowest-index actual element that still
reaches the best total.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

ScorePair = Callable[[Any, Any], Awaitable[int]]


@dataclass(frozen=True)
class MatchResult:
    """Matched (expected_idx, actual_idx) pairs, sorted by expected index."""

    assignments: list[tuple[int, int]]
    unmatched_expected: list[int] = field(default_factory=list)
    unmatched_actual: list[int] = field(default_factory=list)


def _best_total(weights: np.ndarray, rows: list[int], cols: list[int]) -> int:
    if not rows or not cols:
        return 0
    sub = weights[np.ix_(rows, cols)]
    row_idx, col_idx = linear_sum_assignment(sub, maximize=True)
    return int(sub[row_idx, col_idx].sum())


def solve_assignment(scores: Sequence[Sequence[int]]) -> list[tuple[int, int]]:
    """
    Maximise total score over one-to-one pairings.

    Among optimal pairings, expected rows are fixed in order, each to the
    lowest-index actual column that still allows the optimal total.

    Args:
        scores: n x m matrix of non-negative integer pair scores.

    Returns:
        min(n, m) pairs (i, j), sorted by i.
    """
    matrix = np.asarray(scores, dtype=np.int64)
    if matrix.size == 0:
        return []

    n, m = matrix.shape
    # +1 per pair keeps the pairing full; it never outweighs one passing field
    weights = matrix * (min(n, m) + 1) + 1

    rows = list(range(n))
    cols = list(range(m))
    remaining = _best_total(weights, rows, cols)
    pairs: list[tuple[int, int]] = []
    for i in range(n):
        if not cols:
            break
        rows.remove(i)
        for j in cols:
            rest = [c for c in cols if c != j]
            gain = int(weights[i, j])
            if gain + _best_total(weights, rows, rest) == remaining:
                pairs.append((i, j))
                remaining -= gain
                cols = rest
                break
    return pairs


async def match_sequences(
    expected: Sequence[Any],
    actual: Sequence[Any],
    score_pair: ScorePair,
) -> MatchResult:
    """
    Find the best pairing between expected and actual elements.

    Args:
        expected: Expected elements.
        actual: Actual elements.
        score_pair: Async scorer returning the passing-field count of a pair.
            It must not incur cost; LLM comparators are scored by proxy.

    Returns:
        MatchResult with assignments and the indices left over on each side.
    """
    if not expected or not actual:
        return MatchResult(
            assignments=[],
            unmatched_expected=list(range(len(expected))),
            unmatched_actual=list(range(len(actual))),
        )

    scores = [[await score_pair(exp, act) for act in actual] for exp in expected]
    assignments = solve_assignment(scores)

    matched_exp = {i for i, _ in assignments}
    matched_act = {j for _, j in assignments}
    return MatchResult(
        assignments=assignments,
        unmatched_expected=[i for i in range(len(expected)) if i not in matched_exp],
        unmatched_actual=[j for j in range(len(actual)) if j not in matched_act],
    )

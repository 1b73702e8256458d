"""Optimal one-to-one assignment of candidate pairs (Hungarian algorithm)."""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple

from bookmatch.logger import get_logger, log_timing

logger = get_logger(__name__)

MAX_SCORE = 100
PADDING_COST = MAX_SCORE
DEFAULT_ACCEPTANCE_FLOOR = 30


class Assignment(NamedTuple):
    row: int
    col: int
    score: int


def minimum_cost_assignment(cost: Sequence[Sequence[float]]) -> list[int]:
    """Solve a square assignment problem, returning the column for each row.

    Kuhn-Munkres with row/column potentials, O(n^3). Ties are resolved by
    scan order, so the result is deterministic for a given matrix.
    """
    n = len(cost)
    if n == 0:
        return []

    inf = float("inf")
    u = [0.0] * (n + 1)
    v = [0.0] * (n + 1)
    # p[j]: row assigned to column j (1-based, 0 = free); way[j]: previous column on the path
    p = [0] * (n + 1)
    way = [0] * (n + 1)

    for i in range(1, n + 1):
        p[0] = i
        j0 = 0
        minv = [inf] * (n + 1)
        used = [False] * (n + 1)
        while True:
            used[j0] = True
            i0 = p[j0]
            delta = inf
            j1 = 0
            for j in range(1, n + 1):
                if used[j]:
                    continue
                reduced = cost[i0 - 1][j - 1] - u[i0] - v[j]
                if reduced < minv[j]:
                    minv[j] = reduced
                    way[j] = j0
                if minv[j] < delta:
                    delta = minv[j]
                    j1 = j
            for j in range(n + 1):
                if used[j]:
                    u[p[j]] += delta
                    v[j] -= delta
                else:
                    minv[j] -= delta
            j0 = j1
            if p[j0] == 0:
                break
        while True:
            j1 = way[j0]
            p[j0] = p[j1]
            j0 = j1
            if j0 == 0:
                break

    row_to_col = [-1] * n
    for j in range(1, n + 1):
        if p[j]:
            row_to_col[p[j] - 1] = j - 1
    return row_to_col


def build_cost_matrix(scores: Sequence[Sequence[int]]) -> list[list[int]]:
    """Square the score matrix into costs, padding missing cells at full cost."""
    rows = len(scores)
    cols = len(scores[0]) if rows else 0
    size = max(rows, cols)
    return [
        [
            MAX_SCORE - scores[i][j] if i < rows and j < cols else PADDING_COST
            for j in range(size)
        ]
        for i in range(size)
    ]


def solve_assignment(
    scores: Sequence[Sequence[int]],
    acceptance_floor: int = DEFAULT_ACCEPTANCE_FLOOR,
) -> list[Assignment]:
    """Pair rows with columns so that the total score is maximal.

    Args:
        scores: M x N matrix of integer scores in 0..100
        acceptance_floor: Pairs scoring below this are dropped

    Returns:
        Accepted (row, col, score) triples, ordered by row. Each row and
        each column appears at most once.
    """
    rows = len(scores)
    cols = len(scores[0]) if rows else 0
    if rows == 0 or cols == 0:
        return []

    with log_timing("solve_assignment", logger=logger, level="debug", rows=rows, cols=cols) as timing:
        row_to_col = minimum_cost_assignment(build_cost_matrix(scores))

        accepted: list[Assignment] = []
        for row, col in enumerate(row_to_col):
            if row >= rows or col < 0 or col >= cols:
                continue
            score = scores[row][col]
            if score < acceptance_floor:
                continue
            accepted.append(Assignment(row=row, col=col, score=score))
        timing["accepted"] = len(accepted)

    return accepted

"""Cheapest insertion of a single stop into an existing route."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .models import DistanceMatrix


@dataclass(slots=True)
class InsertionResult:
    position: int
    marginal_cost: float
    order: list[int]


def marginal_cost(order: Sequence[int], new_index: int, position: int, matrix: DistanceMatrix) -> float:
    """Extra distance from placing ``new_index`` before ``order[position]``."""
    d = matrix.distances
    if not order:
        return 0.0
    if position == 0:
        return d[new_index][order[0]]
    if position == len(order):
        return d[order[-1]][new_index]
    prev, nxt = order[position - 1], order[position]
    return d[prev][new_index] + d[new_index][nxt] - d[prev][nxt]


def best_insertion(
    order: Sequence[int],
    new_index: int,
    matrix: DistanceMatrix,
    min_position: int = 0,
) -> InsertionResult:
    """Evaluate every position from ``min_position`` to ``len(order)`` and keep the cheapest.

    The relative order of the existing stops is unchanged. Equal costs keep
    the lowest position.
    """
    best_position = min_position
    best_cost = marginal_cost(order, new_index, min_position, matrix)
    for position in range(min_position + 1, len(order) + 1):
        cost = marginal_cost(order, new_index, position, matrix)
        if cost < best_cost:
            best_position, best_cost = position, cost

    new_order = list(order)
    new_order.insert(best_position, new_index)
    return InsertionResult(position=best_position, marginal_cost=best_cost, order=new_order)

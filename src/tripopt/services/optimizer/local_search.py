"""Local search improvement of open routes: 2-opt and simulated annealing."""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import DistanceMatrix

logger = logging.getLogger(__name__)

IMPROVEMENT_EPSILON = 1e-9
MAX_PRIORITY = 10


@dataclass(slots=True)
class LocalSearchResult:
    order: list[int]
    passes: int = 0
    iterations: int = 0
    terminated_early: bool = False


class RouteObjective:
    """Cost of a route order; lower is better.

    With ``priority_weighting == 0`` the cost is the total path distance in
    meters. Otherwise distance and priority are both normalized to [0, 1] and
    blended, so that visiting high priority places early lowers the cost.
    """

    def __init__(self, matrix: DistanceMatrix, priorities: Sequence[int], priority_weighting: float = 0.0) -> None:
        if len(priorities) != len(matrix):
            raise ValueError("priorities must have one entry per matrix row")
        self.matrix = matrix
        self.priorities = list(priorities)
        self.priority_weighting = priority_weighting
        self.symmetric = matrix.is_symmetric()
        self.max_pair_distance = max((max(row) for row in matrix.distances), default=0.0)

    @property
    def is_distance_only(self) -> bool:
        return self.priority_weighting <= 0

    def distance(self, order: Sequence[int]) -> float:
        return self.matrix.route_distance(list(order))

    def normalized_distance(self, order: Sequence[int]) -> float:
        legs = len(order) - 1
        if legs <= 0 or self.max_pair_distance <= 0:
            return 0.0
        return self.distance(order) / (self.max_pair_distance * legs)

    def normalized_priority(self, order: Sequence[int]) -> float:
        n = len(order)
        weights = sum(n - k for k in range(n))
        if weights == 0:
            return 0.0
        score = sum(self.priorities[node] * (n - k) for k, node in enumerate(order))
        return score / (MAX_PRIORITY * weights)

    def cost(self, order: Sequence[int]) -> float:
        if self.is_distance_only:
            return self.distance(order)
        w = self.priority_weighting
        return (1 - w) * self.normalized_distance(order) - w * self.normalized_priority(order)

    def reversal_delta(self, order: Sequence[int], i: int, j: int) -> float:
        """Cost change from reversing ``order[i..j]`` (inclusive), ``0 < i < j < len(order) - 1``."""
        if not self.is_distance_only:
            candidate = list(order[:i]) + list(reversed(order[i : j + 1])) + list(order[j + 1 :])
            return self.cost(candidate) - self.cost(order)
        return self.distance_delta(order, i, j)

    def distance_delta(self, order: Sequence[int], i: int, j: int) -> float:
        """Change in path meters from reversing ``order[i..j]``."""
        d = self.matrix.distances
        a, b, c, e = order[i - 1], order[i], order[j], order[j + 1]
        delta = d[a][c] + d[b][e] - d[a][b] - d[c][e]
        if not self.symmetric:
            for k in range(i, j):
                delta += d[order[k + 1]][order[k]] - d[order[k]][order[k + 1]]
        return delta


def deadline_passed(deadline: Optional[float]) -> bool:
    return deadline is not None and time.monotonic() >= deadline


def two_opt(
    order: Sequence[int],
    objective: RouteObjective,
    max_passes: int = 1000,
    deadline: Optional[float] = None,
    max_distance: Optional[float] = None,
) -> LocalSearchResult:
    """Improve an open route by segment reversals until no reversal helps.

    The first and last positions stay fixed. ``deadline`` is a
    ``time.monotonic()`` timestamp; hitting it or the pass cap returns the
    best order so far with ``terminated_early`` set. With ``max_distance``
    a reversal is only taken when the path stays within that many meters.
    """
    route = list(order)
    n = len(route)
    result = LocalSearchResult(order=route)
    if n < 4:
        return result

    current_distance = objective.distance(route)
    improved = True
    while improved:
        if result.passes >= max_passes:
            result.terminated_early = True
            break
        improved = False
        result.passes += 1
        for i in range(1, n - 2):
            for j in range(i + 1, n - 1):
                if deadline_passed(deadline):
                    result.terminated_early = True
                    logger.debug(f"2-opt stopped at deadline after {result.passes} passes")
                    return result
                result.iterations += 1
                delta = objective.reversal_delta(route, i, j)
                if delta >= -IMPROVEMENT_EPSILON:
                    continue
                distance_change = delta if objective.is_distance_only else objective.distance_delta(route, i, j)
                if max_distance is not None and current_distance + distance_change > max_distance:
                    continue
                route[i : j + 1] = reversed(route[i : j + 1])
                current_distance += distance_change
                improved = True
    return result


def simulated_annealing(
    order: Sequence[int],
    objective: RouteObjective,
    *,
    initial_temperature: float = 1.0,
    cooling_rate: float = 0.995,
    min_temperature_ratio: float = 1e-4,
    max_iterations: int = 10000,
    deadline: Optional[float] = None,
    seed: Optional[int] = None,
) -> LocalSearchResult:
    """Randomized segment-reversal search with Metropolis acceptance.

    The start stays pinned while the end of the route may change. The
    temperature is scaled by the average leg cost of the input route, so the
    same settings work for meter costs and for normalized blended costs.
    Returns the best order seen, which is never worse than ``order``.
    """
    current = list(order)
    n = len(current)
    result = LocalSearchResult(order=list(current))
    if n < 3:
        return result

    rng = random.Random(seed)
    current_cost = objective.cost(current)
    best, best_cost = list(current), current_cost

    scale = abs(current_cost) / (n - 1) or 1.0
    temperature = initial_temperature * scale
    min_temperature = temperature * min_temperature_ratio

    for iteration in range(max_iterations):
        if temperature < min_temperature:
            break
        if deadline_passed(deadline):
            result.terminated_early = True
            break
        i = rng.randint(1, n - 2)
        j = rng.randint(i + 1, n - 1)
        candidate = current[:i] + current[i : j + 1][::-1] + current[j + 1 :]
        candidate_cost = objective.cost(candidate)
        delta = candidate_cost - current_cost
        if delta < 0 or rng.random() < math.exp(-delta / temperature):
            current, current_cost = candidate, candidate_cost
            if current_cost < best_cost - IMPROVEMENT_EPSILON:
                best, best_cost = list(current), current_cost
        temperature *= cooling_rate
        result.iterations = iteration + 1

    result.order = best
    logger.debug(f"Annealing finished after {result.iterations} iterations, best cost {best_cost:.4f}")
    return result

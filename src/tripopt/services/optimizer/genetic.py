"""Genetic search over open routes with a pinned start."""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

from .local_search import LocalSearchResult, RouteObjective, deadline_passed

logger = logging.getLogger(__name__)

TOURNAMENT_SIZE = 3
ELITE_COUNT = 2


def _order_crossover(first: list[int], second: list[int], rng: random.Random) -> list[int]:
    size = len(first)
    start = rng.randrange(size)
    end = rng.randrange(start, size)
    child: list[Optional[int]] = [None] * size
    child[start : end + 1] = first[start : end + 1]
    taken = set(first[start : end + 1])
    fill = [gene for gene in second if gene not in taken]
    slots = [position for position in range(size) if child[position] is None]
    for position, gene in zip(slots, fill):
        child[position] = gene
    return child


def _swap_mutation(tail: list[int], rng: random.Random) -> None:
    i, j = rng.randrange(len(tail)), rng.randrange(len(tail))
    tail[i], tail[j] = tail[j], tail[i]


def genetic_search(
    order: Sequence[int],
    objective: RouteObjective,
    *,
    population_size: int = 50,
    generations: int = 200,
    mutation_rate: float = 0.2,
    deadline: Optional[float] = None,
    seed: Optional[int] = None,
) -> LocalSearchResult:
    """Evolve permutations of ``order[1:]`` with order crossover and swap mutation.

    The input order is part of the first generation and the best routes are
    carried over unchanged, so the result is never worse than ``order``.
    """
    route = list(order)
    result = LocalSearchResult(order=list(route))
    if len(route) < 4:
        return result

    rng = random.Random(seed)
    start, tail = route[0], route[1:]
    population = [list(tail)]
    while len(population) < population_size:
        shuffled = list(tail)
        rng.shuffle(shuffled)
        population.append(shuffled)

    def cost(candidate: list[int]) -> float:
        return objective.cost([start] + candidate)

    scored = sorted(((cost(candidate), candidate) for candidate in population), key=lambda item: item[0])

    def tournament() -> list[int]:
        contenders = rng.sample(scored, min(TOURNAMENT_SIZE, len(scored)))
        return min(contenders, key=lambda item: item[0])[1]

    for generation in range(generations):
        if deadline_passed(deadline):
            result.terminated_early = True
            break
        offspring = [candidate for _, candidate in scored[:ELITE_COUNT]]
        while len(offspring) < population_size:
            child = _order_crossover(tournament(), tournament(), rng)
            if rng.random() < mutation_rate:
                _swap_mutation(child, rng)
            offspring.append(child)
        scored = sorted(((cost(candidate), candidate) for candidate in offspring), key=lambda item: item[0])
        result.iterations = generation + 1

    best_cost, best_tail = scored[0]
    result.order = [start] + best_tail
    logger.debug(f"Genetic search finished after {result.iterations} generations, best cost {best_cost:.4f}")
    return result

"""Greedy tour construction."""

from __future__ import annotations

from typing import Sequence

from .errors import ValidationError
from .models import DistanceMatrix


def nearest_neighbor(matrix: DistanceMatrix, place_ids: Sequence[str], start_index: int = 0) -> list[int]:
    """Open Hamiltonian path starting at ``start_index``.

    At every step the closest unvisited place is appended. Exact distance
    ties go to the lowest place id so the result is deterministic.
    """
    size = len(matrix)
    if size != len(place_ids):
        raise ValidationError(f"Matrix size {size} does not match {len(place_ids)} place ids.")
    if not 0 <= start_index < size:
        raise ValidationError(f"Start index {start_index} out of range for {size} places.")

    order = [start_index]
    unvisited = set(range(size)) - {start_index}
    current = start_index
    while unvisited:
        current = min(unvisited, key=lambda j: (matrix.distances[current][j], place_ids[j]))
        order.append(current)
        unvisited.remove(current)
    return order


def priority_first(priorities: Sequence[int], place_ids: Sequence[str], start_index: int = 0) -> list[int]:
    """Start place, then the rest by descending priority (ties by place id)."""
    if len(priorities) != len(place_ids):
        raise ValidationError(f"Got {len(priorities)} priorities for {len(place_ids)} place ids.")
    rest = [idx for idx in range(len(place_ids)) if idx != start_index]
    rest.sort(key=lambda idx: (-priorities[idx], place_ids[idx]))
    return [start_index] + rest

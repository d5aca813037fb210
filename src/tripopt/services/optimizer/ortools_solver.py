"""OR-Tools back-end for open-path route ordering."""

from __future__ import annotations

import logging
from typing import Optional

from ortools.constraint_solver import pywrapcp, routing_enums_pb2

from ...config import settings
from .models import DistanceMatrix

logger = logging.getLogger(__name__)


def _integer_matrix(matrix: DistanceMatrix) -> list[list[int]]:
    """Distances rounded to whole meters with a zero-cost dummy end node appended.

    Every node can reach the dummy end for free, which turns the solver's
    closed tour into an open path.
    """
    size = len(matrix)
    rows = [[int(round(value)) for value in row] + [0] for row in matrix.distances]
    rows.append([0] * (size + 1))
    return rows


def solve_open_path(
    matrix: DistanceMatrix,
    start_index: int = 0,
    time_limit_seconds: Optional[int] = None,
) -> Optional[list[int]]:
    """Order all nodes of ``matrix`` as a path from ``start_index``.

    Returns ``None`` when the solver produces no assignment.
    """
    size = len(matrix)
    if size < 3:
        return list(range(size))

    distance_matrix = _integer_matrix(matrix)
    dummy_end = size
    manager = pywrapcp.RoutingIndexManager(size + 1, 1, [start_index], [dummy_end])
    routing = pywrapcp.RoutingModel(manager)

    def distance_callback(from_index: int, to_index: int) -> int:
        from_node = manager.IndexToNode(from_index)
        to_node = manager.IndexToNode(to_index)
        return distance_matrix[from_node][to_node]

    transit_callback_index = routing.RegisterTransitCallback(distance_callback)
    routing.SetArcCostEvaluatorOfAllVehicles(transit_callback_index)

    search_parameters = pywrapcp.DefaultRoutingSearchParameters()
    search_parameters.first_solution_strategy = getattr(
        routing_enums_pb2.FirstSolutionStrategy, settings.solver_first_solution_strategy
    )
    search_parameters.local_search_metaheuristic = getattr(
        routing_enums_pb2.LocalSearchMetaheuristic, settings.solver_local_search_metaheuristic
    )
    search_parameters.time_limit.FromSeconds(int(time_limit_seconds or settings.solver_time_limit_seconds))

    assignment = routing.SolveWithParameters(search_parameters)
    if not assignment:
        logger.warning(f"OR-Tools found no assignment for {size} places")
        return None

    order: list[int] = []
    index = routing.Start(0)
    while not routing.IsEnd(index):
        order.append(manager.IndexToNode(index))
        index = assignment.Value(routing.NextVar(index))
    return order

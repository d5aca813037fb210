import random
import time

import pytest

from src.tripopt.services.optimizer.construction import nearest_neighbor, priority_first
from src.tripopt.services.optimizer.distance import HaversineProvider
from src.tripopt.services.optimizer.errors import ValidationError
from src.tripopt.services.optimizer.genetic import genetic_search
from src.tripopt.services.optimizer.local_search import RouteObjective, simulated_annealing, two_opt
from src.tripopt.services.optimizer.models import DistanceMatrix
from src.tripopt.services.optimizer.ortools_solver import solve_open_path


def _random_matrix(size: int, seed: int) -> DistanceMatrix:
    rng = random.Random(seed)
    coordinates = [(rng.uniform(40.0, 41.0), rng.uniform(-74.5, -73.5)) for _ in range(size)]
    return HaversineProvider().matrix(coordinates, "driving")


def _asymmetric_matrix(size: int, seed: int) -> DistanceMatrix:
    rng = random.Random(seed)
    distances = [[0.0 if i == j else rng.uniform(100.0, 5000.0) for j in range(size)] for i in range(size)]
    return DistanceMatrix(distances=distances, durations=[row[:] for row in distances], profile="driving")


def _objective(matrix: DistanceMatrix, weighting: float = 0.0, priorities=None) -> RouteObjective:
    return RouteObjective(matrix, priorities or [5] * len(matrix), weighting)


def _ids(size: int) -> list[str]:
    return [f"P{index:02d}" for index in range(size)]


def test_colinear_route_is_left_unchanged() -> None:
    matrix = HaversineProvider().matrix([(0.0, 0.0), (0.0, 1.0), (0.0, 2.0)], "driving")

    order = nearest_neighbor(matrix, ["A", "B", "C"], start_index=0)
    result = two_opt(order, _objective(matrix))

    assert order == [0, 1, 2]
    assert result.order == [0, 1, 2]
    assert matrix.route_distance(order) == pytest.approx(2 * 111_195, rel=1e-3)


def test_nearest_neighbor_breaks_ties_by_lowest_place_id() -> None:
    distances = [
        [0, 100, 100],
        [100, 0, 50],
        [100, 50, 0],
    ]
    matrix = DistanceMatrix(distances=distances, durations=distances, profile="driving")

    assert nearest_neighbor(matrix, ["start", "zoo", "art"], start_index=0) == [0, 2, 1]


def test_nearest_neighbor_rejects_mismatched_ids() -> None:
    matrix = _random_matrix(4, seed=1)

    with pytest.raises(ValidationError):
        nearest_neighbor(matrix, ["A", "B"], start_index=0)


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_outputs_are_permutations_of_the_input(seed: int) -> None:
    matrix = _random_matrix(10, seed)
    objective = _objective(matrix)

    constructed = nearest_neighbor(matrix, _ids(10), start_index=0)
    improved = two_opt(constructed, objective).order
    annealed = simulated_annealing(constructed, objective, seed=seed, max_iterations=2000).order

    for order in (constructed, improved, annealed):
        assert sorted(order) == list(range(10))
        assert order[0] == 0


@pytest.mark.parametrize("seed", [11, 12, 13, 14, 15])
def test_two_opt_never_lengthens_the_nearest_neighbor_route(seed: int) -> None:
    matrix = _random_matrix(12, seed)
    constructed = nearest_neighbor(matrix, _ids(12), start_index=0)

    result = two_opt(constructed, _objective(matrix))

    assert matrix.route_distance(result.order) <= matrix.route_distance(constructed) + 1e-6
    assert result.order[0] == constructed[0]
    assert result.order[-1] == constructed[-1]
    assert not result.terminated_early


@pytest.mark.parametrize("seed", [21, 22, 23])
def test_two_opt_reaches_local_optimum_on_asymmetric_matrix(seed: int) -> None:
    matrix = _asymmetric_matrix(8, seed)
    start = list(range(8))

    result = two_opt(start, _objective(matrix))
    best = matrix.route_distance(result.order)

    assert best <= matrix.route_distance(start) + 1e-6
    n = len(result.order)
    for i in range(1, n - 2):
        for j in range(i + 1, n - 1):
            candidate = result.order[:i] + result.order[i : j + 1][::-1] + result.order[j + 1 :]
            assert matrix.route_distance(candidate) >= best - 1e-6


def test_two_opt_stops_at_deadline() -> None:
    matrix = _random_matrix(10, seed=7)
    constructed = nearest_neighbor(matrix, _ids(10), start_index=0)

    result = two_opt(constructed, _objective(matrix), deadline=time.monotonic() - 1)

    assert result.terminated_early
    assert sorted(result.order) == list(range(10))


def test_priority_weighting_pulls_important_places_forward() -> None:
    distances = [[0 if i == j else 1000 for j in range(5)] for i in range(5)]
    matrix = DistanceMatrix(distances=distances, durations=distances, profile="driving")
    objective = _objective(matrix, weighting=1.0, priorities=[10, 1, 1, 9, 1])

    result = two_opt([0, 1, 2, 3, 4], objective)

    assert result.order[1] == 3
    assert objective.cost(result.order) < objective.cost([0, 1, 2, 3, 4])


def test_distance_only_objective_is_total_meters() -> None:
    matrix = _random_matrix(5, seed=3)
    objective = _objective(matrix, weighting=0.0)

    assert objective.cost([0, 1, 2, 3, 4]) == pytest.approx(matrix.route_distance([0, 1, 2, 3, 4]))


@pytest.mark.parametrize("seed", [31, 32, 33])
def test_annealing_is_never_worse_than_its_input(seed: int) -> None:
    matrix = _random_matrix(12, seed)
    objective = _objective(matrix, weighting=0.3, priorities=[random.Random(seed).randint(1, 10) for _ in range(12)])
    start = list(range(12))

    result = simulated_annealing(start, objective, seed=seed)

    assert objective.cost(result.order) <= objective.cost(start) + 1e-12
    assert result.order[0] == 0
    assert result.iterations > 0


def test_annealing_is_reproducible_with_a_seed() -> None:
    matrix = _random_matrix(10, seed=41)
    objective = _objective(matrix)

    first = simulated_annealing(list(range(10)), objective, seed=99, max_iterations=3000)
    second = simulated_annealing(list(range(10)), objective, seed=99, max_iterations=3000)

    assert first.order == second.order


def test_ortools_solves_colinear_path_in_order() -> None:
    matrix = HaversineProvider().matrix([(0.0, 0.0), (0.0, 1.0), (0.0, 2.0), (0.0, 3.0)], "driving")

    order = solve_open_path(matrix, start_index=0, time_limit_seconds=1)

    assert order == [0, 1, 2, 3]


def _line_matrix(positions_km: list[float]) -> DistanceMatrix:
    distances = [[abs(a - b) * 1000.0 for b in positions_km] for a in positions_km]
    return DistanceMatrix(distances=distances, durations=[row[:] for row in distances], profile="driving")


def test_distance_cap_blocks_priority_moves_that_lengthen_the_route() -> None:
    matrix = _line_matrix([0, 1, 2, 3, 4])
    objective = _objective(matrix, weighting=1.0, priorities=[5, 1, 1, 10, 5])

    free = two_opt([0, 1, 2, 3, 4], objective)
    capped = two_opt([0, 1, 2, 3, 4], objective, max_distance=4000.0)

    assert free.order[1] == 3
    assert matrix.route_distance(free.order) > 4000.0
    assert capped.order == [0, 1, 2, 3, 4]


def test_priority_first_orders_by_priority_then_id() -> None:
    order = priority_first([3, 7, 9, 7], ["start", "b", "c", "a"], start_index=0)

    assert order == [0, 2, 3, 1]


@pytest.mark.parametrize("seed", [51, 52, 53])
def test_genetic_search_is_never_worse_than_its_input(seed: int) -> None:
    matrix = _random_matrix(12, seed)
    objective = _objective(matrix)
    start = list(range(12))

    result = genetic_search(start, objective, population_size=20, generations=40, seed=seed)

    assert objective.cost(result.order) <= objective.cost(start) + 1e-9
    assert result.order[0] == 0
    assert sorted(result.order) == list(range(12))
    assert result.iterations == 40


def test_genetic_search_is_reproducible_and_stops_at_deadline() -> None:
    matrix = _random_matrix(10, seed=61)
    objective = _objective(matrix)

    first = genetic_search(list(range(10)), objective, population_size=20, generations=30, seed=5)
    second = genetic_search(list(range(10)), objective, population_size=20, generations=30, seed=5)
    expired = genetic_search(list(range(10)), objective, deadline=time.monotonic() - 1, seed=5)

    assert first.order == second.order
    assert expired.terminated_early
    assert expired.iterations == 0
    assert objective.cost(expired.order) <= objective.cost(list(range(10))) + 1e-9

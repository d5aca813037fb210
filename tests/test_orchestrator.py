import random
from datetime import datetime
from pathlib import Path

import pytest

from src.tripopt.config import settings
from src.tripopt.models.domain import (
    Constraints,
    Coordinates,
    OptimizationRequest,
    OptimizeOptions,
    Place,
    TimeWindow,
)
from src.tripopt.persistence.filesystem import FileStorage
from src.tripopt.persistence.jobs import FileJobStore
from src.tripopt.services.optimizer.distance import DistanceMatrixBuilder, HaversineProvider
from src.tripopt.services.optimizer.errors import ProviderError, ValidationError
from src.tripopt.services.optimizer.models import WarningKind
from src.tripopt.services.optimizer.orchestrator import OptimizationOrchestrator

START = datetime(2024, 5, 1, 9, 0)

PARIS = [
    Place(id="louvre", name="Louvre", latitude=48.8606, longitude=2.3376, visit_duration=30),
    Place(id="eiffel", name="Eiffel Tower", latitude=48.8584, longitude=2.2945, visit_duration=30),
    Place(id="notre-dame", name="Notre-Dame", latitude=48.8530, longitude=2.3499, visit_duration=30),
    Place(id="sacre-coeur", name="Sacre-Coeur", latitude=48.8867, longitude=2.3431, visit_duration=30),
    Place(id="orsay", name="Musee d'Orsay", latitude=48.8600, longitude=2.3266, visit_duration=30),
    Place(id="pantheon", name="Pantheon", latitude=48.8462, longitude=2.3464, visit_duration=30),
]


class FailingProvider:
    def matrix(self, coordinates, profile):
        raise ProviderError("routing service unavailable")


class BrokenStore:
    def save(self, result):
        raise OSError("disk full")


def _request(places=None, travel_types=None, algorithm="advanced", **constraint_overrides) -> OptimizationRequest:
    constraints = Constraints(
        travel_types=travel_types or ["WALKING", "DRIVING"],
        start_time=START,
        **constraint_overrides,
    )
    return OptimizationRequest(
        places=list(places or PARIS),
        constraints=constraints,
        options=OptimizeOptions(algorithm=algorithm, priority_weighting=0.0, seed=7),
        user_id="user-1",
    )


@pytest.fixture
def store(tmp_path: Path) -> FileJobStore:
    return FileJobStore(FileStorage(root=tmp_path))


@pytest.fixture
def orchestrator(store: FileJobStore) -> OptimizationOrchestrator:
    instance = OptimizationOrchestrator(DistanceMatrixBuilder(HaversineProvider()), job_store=store)
    yield instance
    instance.shutdown()


def test_optimize_runs_every_stage_and_persists(orchestrator, store, tmp_path: Path) -> None:
    result = orchestrator.optimize(_request())
    orchestrator.wait_for_pending()

    assert result.states == [
        "Validating",
        "BuildingMatrix",
        "Constructing",
        "LocalSearching",
        "SchedulingWindows",
        "SegmentingDays",
        "SelectingModes",
        "Completed",
    ]
    assert sorted(result.optimized_order) == sorted(place.id for place in PARIS)
    assert len(result.segments) == len(PARIS) - 1
    assert result.total_distance_meters == pytest.approx(
        sum(segment.distance_meters for segment in result.segments), abs=0.1
    )
    assert [pid for day in result.trip_days for pid in day.places] == result.optimized_order
    assert not result.removed
    assert (tmp_path / "jobs" / f"{result.job_id}.json").exists()
    assert store.find_by_id(result.job_id)["user_id"] == "user-1"


def test_estimated_duration_adds_travel_and_visits(orchestrator) -> None:
    result = orchestrator.optimize(_request())

    travel_minutes = sum(segment.travel_time_seconds for segment in result.segments) / 60.0
    assert result.estimated_duration_minutes == pytest.approx(travel_minutes + 30 * len(PARIS), abs=0.1)


def test_start_location_is_first_stop(orchestrator) -> None:
    request = _request(start_location=Coordinates(latitude=48.8738, longitude=2.2950))

    result = orchestrator.optimize(request)

    assert result.optimized_order[0] == "start-location"
    assert len(result.optimized_order) == len(PARIS) + 1


def test_job_ids_are_unique(orchestrator) -> None:
    first = orchestrator.optimize(_request(), persist=False)
    second = orchestrator.optimize(_request(), persist=False)

    assert first.job_id != second.job_id


def test_too_few_places_is_rejected(orchestrator) -> None:
    with pytest.raises(ValidationError) as excinfo:
        orchestrator.optimize(_request(places=PARIS[:1]))

    assert "at least 2 places" in excinfo.value.details[0]


def test_unknown_travel_type_is_rejected(orchestrator) -> None:
    with pytest.raises(ValidationError):
        orchestrator.optimize(_request(travel_types=["HOVERCRAFT"]))


def test_duplicate_ids_are_rejected(orchestrator) -> None:
    with pytest.raises(ValidationError):
        orchestrator.optimize(_request(places=[PARIS[0], PARIS[0], PARIS[1]]))


def test_provider_failure_degrades_to_haversine(store) -> None:
    orchestrator = OptimizationOrchestrator(DistanceMatrixBuilder(FailingProvider()), job_store=store)

    result = orchestrator.optimize(_request(), persist=False)

    assert result.states[-1] == "Completed"
    assert WarningKind.PROVIDER_DEGRADATION in {warning.kind for warning in result.warnings}
    orchestrator.shutdown()


def test_persistence_failure_is_not_surfaced() -> None:
    orchestrator = OptimizationOrchestrator(DistanceMatrixBuilder(HaversineProvider()), job_store=BrokenStore())

    result = orchestrator.optimize(_request())
    orchestrator.wait_for_pending()

    assert result.states[-1] == "Completed"
    orchestrator.shutdown()


def test_deadline_returns_best_route_with_timeout_warning(store) -> None:
    orchestrator = OptimizationOrchestrator(
        DistanceMatrixBuilder(HaversineProvider()), job_store=store, time_limit_seconds=1e-9
    )

    result = orchestrator.optimize(_request(), persist=False)

    assert result.terminated_early
    assert WarningKind.TIMEOUT in {warning.kind for warning in result.warnings}
    assert sorted(result.optimized_order) == sorted(place.id for place in PARIS)
    orchestrator.shutdown()


def test_window_conflicts_are_reported_not_raised(orchestrator) -> None:
    places = list(PARIS[:3]) + [
        Place(
            id="night-club",
            name="Night Club",
            latitude=48.8570,
            longitude=2.3700,
            visit_duration=60,
            time_window=TimeWindow(open="23:00", close="23:30"),
        )
    ]

    result = orchestrator.optimize(_request(places=places), persist=False)

    assert "night-club" not in result.optimized_order
    assert result.removed[0].place_id == "night-club"
    assert result.adjustments


def test_long_trip_gets_feasibility_suggestions(orchestrator) -> None:
    places = [
        Place(id="paris", name="Paris", latitude=48.8566, longitude=2.3522),
        Place(id="madrid", name="Madrid", latitude=40.4168, longitude=-3.7038),
    ]
    request = _request(places=places, travel_types=["DRIVING", "FLIGHT"])
    request.options.multi_modal = True

    result = orchestrator.optimize(request, persist=False)

    assert result.segments[0].mode == "flight"
    assert any("Flight recommendation" in suggestion for suggestion in result.suggestions)


def test_compare_algorithms_returns_one_result_per_algorithm(orchestrator) -> None:
    results = orchestrator.compare_algorithms(_request(), ["nearest_neighbor", "advanced", "simulated_annealing"])

    by_algorithm = {result.algorithm: result for result in results}
    assert set(by_algorithm) == {"nearest_neighbor", "advanced", "simulated_annealing"}
    assert (
        by_algorithm["advanced"].total_distance_meters
        <= by_algorithm["nearest_neighbor"].total_distance_meters + 0.1
    )
    for result in results:
        assert sorted(result.optimized_order) == sorted(place.id for place in PARIS)


def test_compare_algorithms_rejects_unknown_names(orchestrator) -> None:
    with pytest.raises(ValidationError):
        orchestrator.compare_algorithms(_request(), ["christofides"])


def test_guided_local_search_algorithm(orchestrator) -> None:
    result = orchestrator.optimize(_request(algorithm="guided_local_search"), persist=False)

    assert result.algorithm == "guided_local_search"
    assert result.optimized_order[0] == PARIS[0].id
    assert sorted(result.optimized_order) == sorted(place.id for place in PARIS)


def test_insert_place_uses_cheapest_position(orchestrator) -> None:
    route = [
        Place(id="A", name="A", latitude=0.0, longitude=0.0),
        Place(id="B", name="B", latitude=0.0, longitude=0.01),
        Place(id="C", name="C", latitude=0.0, longitude=0.02),
    ]
    new_place = Place(id="D", name="D", latitude=0.0, longitude=0.015)

    outcome = orchestrator.insert_place(route, new_place, ["WALKING"])

    assert outcome.optimized_order == ["A", "B", "D", "C"]
    assert outcome.position == 2
    assert outcome.marginal_cost_meters == pytest.approx(0.0, abs=0.5)


def test_insert_place_rejects_existing_id(orchestrator) -> None:
    route = [PARIS[0], PARIS[1]]

    with pytest.raises(ValidationError):
        orchestrator.insert_place(route, PARIS[0], ["WALKING"])


class NullStore:
    def save(self, result):
        pass


def _random_city(seed: int, size: int = 12) -> list[Place]:
    rng = random.Random(seed)
    return [
        Place(
            id=f"stop-{index:02d}",
            name=f"Stop {index}",
            latitude=rng.uniform(48.80, 48.90),
            longitude=rng.uniform(2.25, 2.40),
            priority=rng.randint(1, 10),
            visit_duration=5,
        )
        for index in range(size)
    ]


def test_finished_saves_are_released() -> None:
    orchestrator = OptimizationOrchestrator(DistanceMatrixBuilder(HaversineProvider()), job_store=NullStore())

    for _ in range(30):
        orchestrator.optimize(_request())
    orchestrator.executor.shutdown(wait=True)

    assert orchestrator.pending_saves == 0


@pytest.mark.parametrize("seed", range(12))
def test_default_options_never_lengthen_the_greedy_route(orchestrator, seed: int) -> None:
    request = OptimizationRequest(
        places=_random_city(seed),
        constraints=Constraints(travel_types=["DRIVING"], start_time=START),
        options=OptimizeOptions(),
    )
    assert request.options.priority_weighting > 0

    results = {
        result.algorithm: result
        for result in orchestrator.compare_algorithms(
            request, ["nearest_neighbor", "advanced", "simulated_annealing", "genetic"]
        )
    }

    greedy = results["nearest_neighbor"]
    assert not greedy.removed
    for name in ("advanced", "simulated_annealing", "genetic"):
        assert not results[name].removed
        assert results[name].total_distance_meters <= greedy.total_distance_meters + 0.1


def test_genetic_algorithm(orchestrator) -> None:
    result = orchestrator.optimize(_request(places=_random_city(5), algorithm="genetic"), persist=False)

    assert result.algorithm_used == "genetic"
    assert result.optimized_order[0] == "stop-00"
    assert sorted(result.optimized_order) == sorted(place.id for place in _random_city(5))


def test_priority_algorithm_keeps_start_and_every_place(orchestrator) -> None:
    places = _random_city(9)

    result = orchestrator.optimize(_request(places=places, algorithm="priority"), persist=False)

    assert result.algorithm_used == "priority"
    assert result.optimized_order[0] == places[0].id
    assert sorted(result.optimized_order) == sorted(place.id for place in places)
    ranked = sorted(places[1:], key=lambda place: (-place.priority, place.id))
    assert result.optimized_order[1:] == [place.id for place in ranked]


@pytest.mark.parametrize(
    "solver_max,annealing_max,expected",
    [
        (10, 20, "guided_local_search"),
        (2, 10, "simulated_annealing"),
        (2, 3, "advanced"),
    ],
)
def test_auto_algorithm_picks_by_trip_size(orchestrator, monkeypatch, solver_max, annealing_max, expected) -> None:
    monkeypatch.setattr(settings, "auto_solver_max_places", solver_max)
    monkeypatch.setattr(settings, "auto_annealing_max_places", annealing_max)

    result = orchestrator.optimize(_request(algorithm="auto"), persist=False)

    assert result.algorithm == "auto"
    assert result.algorithm_used == expected
    assert sorted(result.optimized_order) == sorted(place.id for place in PARIS)


def test_guided_local_search_reports_deadline_overrun(store) -> None:
    orchestrator = OptimizationOrchestrator(
        DistanceMatrixBuilder(HaversineProvider()), job_store=store, time_limit_seconds=1e-9
    )

    result = orchestrator.optimize(_request(algorithm="guided_local_search"), persist=False)

    assert result.terminated_early
    assert WarningKind.TIMEOUT in {warning.kind for warning in result.warnings}
    orchestrator.shutdown()

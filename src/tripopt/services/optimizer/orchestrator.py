"""Optimization pipeline: validation, matrix, ordering, scheduling, modes, persistence."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence
from uuid import uuid4

from ...config import settings
from ...models.domain import (
    MIN_VISIT_DURATION,
    OptimizationRequest,
    Place,
    parse_clock,
    start_place,
)
from ...persistence.jobs import JobStore
from ..geospatial import is_valid_coordinate
from ..outputs.result_formatter import result_to_json
from .construction import nearest_neighbor, priority_first
from .distance import DistanceMatrixBuilder, select_profile
from .errors import ValidationError
from .feasibility import assess_feasibility
from .genetic import genetic_search
from .insertion import best_insertion
from .local_search import RouteObjective, deadline_passed, simulated_annealing, two_opt
from .models import DistanceMatrix, OptimizationResult, OptimizationWarning, WarningKind
from .ortools_solver import solve_open_path
from .scheduling import TimeWindowScheduler
from .segmentation import DaySegmenter
from .transport import TransportModeSelector, resolve_travel_types

logger = logging.getLogger(__name__)

ALGORITHMS: dict[str, str] = {
    "nearest_neighbor": "Greedy nearest-neighbor construction only",
    "advanced": "Nearest-neighbor construction improved with 2-opt",
    "simulated_annealing": "Nearest-neighbor, simulated annealing, then 2-opt polish",
    "genetic": "Genetic search seeded with the nearest-neighbor route, then 2-opt polish",
    "priority": "Places in descending priority behind the start, ties by id",
    "guided_local_search": "OR-Tools routing solver with guided local search, bounded by the solver time limit",
    "auto": "OR-Tools for small trips, simulated annealing for medium trips, 2-opt for large trips",
}
DEFAULT_ALGORITHM = "advanced"


class OptimizationState(str, Enum):
    VALIDATING = "Validating"
    BUILDING_MATRIX = "BuildingMatrix"
    CONSTRUCTING = "Constructing"
    LOCAL_SEARCHING = "LocalSearching"
    SCHEDULING_WINDOWS = "SchedulingWindows"
    SEGMENTING_DAYS = "SegmentingDays"
    SELECTING_MODES = "SelectingModes"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass(slots=True)
class InsertionOutcome:
    optimized_order: list[str]
    position: int
    marginal_cost_meters: float
    total_distance_meters: float
    warnings: list[OptimizationWarning] = field(default_factory=list)


def validate_places(places: Sequence[Place], minimum: int = 2) -> None:
    """Raise ``ValidationError`` listing every problem found in ``places``."""

    details: list[str] = []
    if len(places) < minimum:
        details.append(f"places: at least {minimum} places are required, got {len(places)}")
    seen: set[str] = set()
    for place in places:
        label = place.id or "<missing id>"
        if not place.id:
            details.append("places: every place needs an id")
        elif place.id in seen:
            details.append(f"places[{label}]: duplicate id")
        seen.add(place.id)
        if not is_valid_coordinate(place.latitude, place.longitude):
            details.append(f"places[{label}]: invalid coordinates ({place.latitude}, {place.longitude})")
        if not 1 <= place.priority <= 10:
            details.append(f"places[{label}]: priority must be between 1 and 10")
        if place.visit_duration < MIN_VISIT_DURATION:
            details.append(f"places[{label}]: visitDuration must be at least {MIN_VISIT_DURATION} minutes")
        if place.time_window is not None:
            for value in (place.time_window.open, place.time_window.close):
                if value is None:
                    continue
                try:
                    parse_clock(value)
                except ValueError:
                    details.append(f"places[{label}]: invalid time window value '{value}'")
    if details:
        raise ValidationError("Invalid places", details=details)


class OptimizationOrchestrator:
    """Runs the optimization stages for a request and hands results to the job store.

    Only validation failures raise. Provider problems, constraint conflicts
    and deadline overruns are reported as warnings on the result, and
    persistence happens on a background executor.
    """

    def __init__(
        self,
        matrix_builder: DistanceMatrixBuilder,
        job_store: Optional[JobStore] = None,
        scheduler: Optional[TimeWindowScheduler] = None,
        segmenter: Optional[DaySegmenter] = None,
        mode_selector: Optional[TransportModeSelector] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        time_limit_seconds: Optional[float] = None,
    ) -> None:
        self.matrix_builder = matrix_builder
        self.job_store = job_store
        self.scheduler = scheduler or TimeWindowScheduler(
            default_open=settings.default_open_time,
            default_close=settings.default_close_time,
            allow_next_day=settings.scheduler_allow_next_day,
            multi_day_first_leg_hours=settings.multi_day_first_leg_hours,
        )
        self.segmenter = segmenter or DaySegmenter(
            max_daily_total_hours=settings.max_daily_total_hours,
            max_daily_travel_hours=settings.max_daily_travel_hours,
            day_start=settings.day_start_time,
            day_end=settings.day_end_time,
        )
        self.mode_selector = mode_selector or TransportModeSelector(
            long_leg_threshold_km=settings.long_leg_threshold_km
        )
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.job_store_max_workers, thread_name_prefix="job-store"
        )
        self.time_limit_seconds = time_limit_seconds or settings.optimization_time_limit_seconds
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()

    def optimize(self, request: OptimizationRequest, persist: bool = True) -> OptimizationResult:
        started = time.perf_counter()
        job_id = str(uuid4())
        states = [OptimizationState.VALIDATING]
        options = request.options
        constraints = request.constraints
        try:
            modes = self._validate(request)
        except ValidationError as exc:
            states.append(OptimizationState.FAILED)
            logger.info(f"Job {job_id} rejected: {exc}")
            raise

        deadline = time.monotonic() + self.time_limit_seconds
        places = list(request.places)
        if constraints.start_location is not None:
            places.insert(0, start_place(constraints.start_location))
        warnings: list[OptimizationWarning] = []

        states.append(OptimizationState.BUILDING_MATRIX)
        profile = select_profile(modes)
        matrix, matrix_warnings = self.matrix_builder.build(places, profile)
        warnings.extend(matrix_warnings)
        logger.info(f"Job {job_id}: {len(places)} places, profile={profile}, source={matrix.source}")

        states.append(OptimizationState.CONSTRUCTING)
        order = nearest_neighbor(matrix, [place.id for place in places], start_index=0)

        states.append(OptimizationState.LOCAL_SEARCHING)
        algorithm = self._resolve_algorithm(options.algorithm, len(places))
        order, terminated_early = self._improve(algorithm, order, matrix, places, request, deadline, warnings)
        if terminated_early:
            warnings.append(
                OptimizationWarning(
                    kind=WarningKind.TIMEOUT,
                    message="Optimization stopped at its time limit; returning the best route found",
                )
            )

        states.append(OptimizationState.SCHEDULING_WINDOWS)
        start_time = constraints.start_time or self._default_start_time()
        schedule = self.scheduler.schedule(
            places, order, matrix, start_time, time_budget_minutes=constraints.time_budget_minutes
        )
        warnings.extend(schedule.warnings)

        states.append(OptimizationState.SEGMENTING_DAYS)
        trip_days = self.segmenter.segment(places, schedule.order, matrix, start_time.date())

        states.append(OptimizationState.SELECTING_MODES)
        selection = self.mode_selector.select(places, schedule.order, matrix, modes, multi_modal=options.multi_modal)
        self.mode_selector.enforce_budget(
            selection,
            matrix,
            constraints.budget,
            strict=options.strict_budget or constraints.strict_budget,
        )
        warnings.extend(selection.warnings)

        places_by_id = {place.id: place for place in places}
        feasibility_warnings, suggestions = assess_feasibility(
            places_by_id,
            selection.segments,
            max_daily_travel_hours=settings.max_daily_travel_hours,
            long_leg_threshold_km=settings.long_leg_threshold_km,
        )
        warnings.extend(feasibility_warnings)

        states.append(OptimizationState.COMPLETED)
        visit_minutes = sum(places[idx].visit_duration for idx in schedule.order)
        result = OptimizationResult(
            job_id=job_id,
            user_id=request.user_id,
            optimized_order=[places[idx].id for idx in schedule.order],
            segments=selection.segments,
            total_distance_meters=round(sum(segment.distance_meters for segment in selection.segments), 1),
            estimated_duration_minutes=round(selection.total_travel_seconds / 60.0 + visit_minutes, 1),
            algorithm=options.algorithm,
            algorithm_used=algorithm,
            trip_days=trip_days,
            removed=schedule.removed,
            adjustments=schedule.adjustments,
            timeline=schedule.timeline,
            warnings=warnings,
            suggestions=suggestions,
            total_cost=selection.total_cost,
            terminated_early=terminated_early,
            states=[state.value for state in states],
            created_at=datetime.now(timezone.utc).isoformat(),
            processing_time_ms=round((time.perf_counter() - started) * 1000.0, 2),
        )
        logger.info(
            f"Job {job_id} completed with {algorithm}: {len(result.optimized_order)} stops, "
            f"{result.total_distance_meters / 1000.0:.1f} km, {len(warnings)} warnings"
        )
        if persist:
            self._persist(result)
        return result

    def insert_place(self, route: Sequence[Place], new_place: Place, travel_types: Sequence[str]) -> InsertionOutcome:
        """Add ``new_place`` to an existing route at its cheapest position."""
        modes = resolve_travel_types(travel_types)
        if not route:
            raise ValidationError("Route must contain at least one place.", details=["route: must not be empty"])
        if any(place.id == new_place.id for place in route):
            raise ValidationError(
                f"Place {new_place.id} is already in the route.",
                details=[f"newPlace: id '{new_place.id}' already in route"],
            )
        validate_places([place for place in route if not place.is_start] + [new_place], minimum=1)

        places = list(route) + [new_place]
        matrix, warnings = self.matrix_builder.build(places, select_profile(modes))
        existing = list(range(len(route)))
        min_position = 1 if route[0].is_start else 0
        insertion = best_insertion(existing, len(route), matrix, min_position=min_position)
        logger.info(f"Inserted {new_place.id} at position {insertion.position} (+{insertion.marginal_cost:.0f} m)")
        return InsertionOutcome(
            optimized_order=[places[idx].id for idx in insertion.order],
            position=insertion.position,
            marginal_cost_meters=round(insertion.marginal_cost, 1),
            total_distance_meters=round(matrix.route_distance(insertion.order), 1),
            warnings=warnings,
        )

    def compare_algorithms(
        self, request: OptimizationRequest, algorithms: Optional[Sequence[str]] = None
    ) -> list[OptimizationResult]:
        """Run ``request`` once per algorithm without persisting the results."""
        names = list(algorithms or ALGORITHMS)
        unknown = [name for name in names if name not in ALGORITHMS]
        if unknown:
            raise ValidationError(
                f"Unknown algorithms: {', '.join(unknown)}",
                details=[f"algorithms: unsupported value '{name}'" for name in unknown],
            )
        results = []
        for name in names:
            variant = replace(request, options=replace(request.options, algorithm=name))
            results.append(self.optimize(variant, persist=False))
        return results

    @property
    def pending_saves(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        with self._pending_lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        self.wait_for_pending()
        self.executor.shutdown(wait=True)

    def _validate(self, request: OptimizationRequest) -> list[str]:
        validate_places(request.places)
        details: list[str] = []
        options = request.options
        if options.algorithm not in ALGORITHMS:
            details.append(f"options.algorithm: unsupported value '{options.algorithm}'")
        if not 0.0 <= options.priority_weighting <= 1.0:
            details.append("options.priorityWeighting: must be between 0 and 1")
        constraints = request.constraints
        if constraints.start_location is not None and not is_valid_coordinate(
            constraints.start_location.latitude, constraints.start_location.longitude
        ):
            details.append("constraints.startLocation: invalid coordinates")
        if constraints.time_budget_minutes is not None and constraints.time_budget_minutes <= 0:
            details.append("constraints.timeBudgetMinutes: must be positive")
        if constraints.budget is not None and constraints.budget < 0:
            details.append("constraints.budget: must not be negative")
        if details:
            raise ValidationError("Invalid request", details=details)
        return resolve_travel_types(constraints.travel_types)

    def _resolve_algorithm(self, algorithm: str, size: int) -> str:
        if algorithm != "auto":
            return algorithm
        if size <= settings.auto_solver_max_places:
            return "guided_local_search"
        if size <= settings.auto_annealing_max_places:
            return "simulated_annealing"
        return "advanced"

    def _improve(
        self,
        algorithm: str,
        order: list[int],
        matrix: DistanceMatrix,
        places: Sequence[Place],
        request: OptimizationRequest,
        deadline: float,
        warnings: list[OptimizationWarning],
    ) -> tuple[list[int], bool]:
        """Shorten the nearest-neighbor ``order`` with ``algorithm``, then favor priorities.

        The priority pass only takes reversals that keep the path within the
        longer of the nearest-neighbor route and the shortened route.
        """
        if algorithm == "nearest_neighbor":
            return order, False

        priorities = [place.priority for place in places]
        distance_objective = RouteObjective(matrix, priorities, 0.0)
        baseline_distance = matrix.route_distance(order)
        terminated_early = False

        if algorithm == "guided_local_search":
            remaining = max(1, int(deadline - time.monotonic()))
            solved = solve_open_path(
                matrix, start_index=0, time_limit_seconds=min(settings.solver_time_limit_seconds, remaining)
            )
            if solved is None:
                warnings.append(
                    OptimizationWarning(
                        kind=WarningKind.CONSTRAINT_CONFLICT,
                        message="OR-Tools found no solution; keeping the nearest-neighbor order",
                    )
                )
            else:
                order = solved
            terminated_early = deadline_passed(deadline)
        else:
            if algorithm == "priority":
                order = priority_first(priorities, [place.id for place in places], start_index=0)
            elif algorithm == "simulated_annealing":
                annealed = simulated_annealing(
                    order,
                    distance_objective,
                    initial_temperature=settings.annealing_initial_temperature,
                    cooling_rate=settings.annealing_cooling_rate,
                    min_temperature_ratio=settings.annealing_min_temperature_ratio,
                    max_iterations=settings.annealing_max_iterations,
                    deadline=deadline,
                    seed=request.options.seed,
                )
                order, terminated_early = annealed.order, annealed.terminated_early
            elif algorithm == "genetic":
                evolved = genetic_search(
                    order,
                    distance_objective,
                    population_size=settings.genetic_population_size,
                    generations=settings.genetic_generations,
                    mutation_rate=settings.genetic_mutation_rate,
                    deadline=deadline,
                    seed=request.options.seed,
                )
                order, terminated_early = evolved.order, evolved.terminated_early
            if algorithm != "priority":
                polished = two_opt(order, distance_objective, max_passes=settings.two_opt_max_passes, deadline=deadline)
                logger.debug(f"2-opt finished after {polished.passes} passes")
                order = polished.order
                terminated_early = terminated_early or polished.terminated_early

        weighting = request.options.priority_weighting
        if weighting > 0 and not terminated_early:
            blended = RouteObjective(matrix, priorities, weighting)
            reordered = two_opt(
                order,
                blended,
                max_passes=settings.two_opt_max_passes,
                deadline=deadline,
                max_distance=max(baseline_distance, matrix.route_distance(order)),
            )
            order, terminated_early = reordered.order, reordered.terminated_early
        return order, terminated_early

    def _default_start_time(self) -> datetime:
        start = parse_clock(settings.default_start_time)
        return datetime.now().replace(hour=start.hour, minute=start.minute, second=0, microsecond=0)

    def _persist(self, result: OptimizationResult) -> None:
        if self.job_store is None:
            return
        document = result_to_json(result)
        future = self.executor.submit(self._save, document)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _save(self, document: dict) -> None:
        try:
            self.job_store.save(document)
            logger.debug(f"Job {document['job_id']} persisted")
        except Exception as exc:
            logger.error(f"Failed to persist job {document['job_id']}: {exc}")

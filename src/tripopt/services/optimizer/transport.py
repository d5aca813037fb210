"""Transport mode catalog and per-leg mode selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from ...models.domain import Place
from .errors import ValidationError
from .models import DistanceMatrix, OptimizationWarning, Segment, WarningKind

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TransportMode:
    name: str
    speed_kmh: float
    cost_per_km: float
    base_fare: float = 0.0
    overhead_minutes: float = 0.0
    max_distance_km: Optional[float] = None

    def covers(self, distance_km: float) -> bool:
        return self.max_distance_km is None or distance_km <= self.max_distance_km

    @property
    def range_km(self) -> float:
        return float("inf") if self.max_distance_km is None else self.max_distance_km


MODES: dict[str, TransportMode] = {
    mode.name: mode
    for mode in (
        TransportMode("walking", speed_kmh=5.0, cost_per_km=0.0, max_distance_km=5.0),
        TransportMode("cycling", speed_kmh=15.0, cost_per_km=0.0, max_distance_km=30.0),
        TransportMode("escooter", speed_kmh=15.0, cost_per_km=0.5, base_fare=1.0, max_distance_km=20.0),
        TransportMode("transit", speed_kmh=30.0, cost_per_km=0.3, overhead_minutes=5.0, max_distance_km=50.0),
        TransportMode("bus", speed_kmh=60.0, cost_per_km=0.1, overhead_minutes=10.0),
        TransportMode("train", speed_kmh=90.0, cost_per_km=0.15, overhead_minutes=15.0),
        TransportMode("driving", speed_kmh=60.0, cost_per_km=0.5),
        TransportMode("high_speed_train", speed_kmh=220.0, cost_per_km=0.25, overhead_minutes=20.0),
        TransportMode("flight", speed_kmh=700.0, cost_per_km=0.12, base_fare=50.0, overhead_minutes=90.0),
    )
}

TRAVEL_TYPE_ALIASES: dict[str, tuple[str, ...]] = {
    "WALKING": ("walking",),
    "CYCLING": ("cycling",),
    "BIKE": ("cycling",),
    "E_SCOOTER": ("escooter",),
    "ESCOOTER": ("escooter",),
    "PUBLIC_TRANSPORT": ("transit", "bus", "train", "high_speed_train"),
    "TRANSIT": ("transit", "bus", "train", "high_speed_train"),
    "BUS": ("bus",),
    "TRAIN": ("train",),
    "DRIVING": ("driving",),
    "CAR": ("driving",),
    "HIGH_SPEED_TRAIN": ("high_speed_train",),
    "FLIGHT": ("flight",),
}

LONG_HAUL_MODES = ("flight", "high_speed_train")


def resolve_travel_types(travel_types: Iterable[str]) -> list[str]:
    """Canonical mode names for request travel types, in request order without duplicates."""

    resolved: list[str] = []
    unknown: list[str] = []
    for raw in travel_types:
        modes = TRAVEL_TYPE_ALIASES.get(str(raw).strip().upper())
        if modes is None:
            unknown.append(str(raw))
            continue
        for mode in modes:
            if mode not in resolved:
                resolved.append(mode)
    if unknown:
        raise ValidationError(
            f"Unsupported travel types: {', '.join(unknown)}",
            details=[f"travelTypes: unsupported value '{value}'" for value in unknown],
        )
    if not resolved:
        raise ValidationError("At least one travel type is required.", details=["travelTypes: must not be empty"])
    return resolved


@dataclass(slots=True, frozen=True)
class ModeRecommendation:
    modes: tuple[str, ...]
    reason: str


def recommend_modes(distance_km: float) -> ModeRecommendation:
    if distance_km < 2:
        return ModeRecommendation(("walking",), "Short distance - walking is most efficient")
    if distance_km < 15:
        return ModeRecommendation(
            ("cycling", "escooter", "transit"), "Medium distance - local transport or active mobility"
        )
    if distance_km < 100:
        return ModeRecommendation(("bus", "train", "driving"), "Regional distance - ground transport recommended")
    if distance_km <= 500:
        return ModeRecommendation(("train", "bus", "driving"), "Long distance - train or bus for comfort")
    return ModeRecommendation(LONG_HAUL_MODES, "Very long distance - flight strongly recommended to save time")


def leg_duration_seconds(mode: TransportMode, distance_meters: float, matrix_seconds: float, profile: str) -> float:
    """Matrix duration when the leg uses the matrix profile, otherwise a speed estimate plus overhead."""
    if mode.name == profile:
        return matrix_seconds
    return (distance_meters / 1000.0) / mode.speed_kmh * 3600.0 + mode.overhead_minutes * 60.0


def leg_cost(mode: TransportMode, distance_meters: float) -> float:
    if distance_meters <= 0:
        return 0.0
    return round(distance_meters / 1000.0 * mode.cost_per_km + mode.base_fare, 2)


@dataclass(slots=True)
class ModeSelection:
    segments: list[Segment]
    candidates: list[list[str]]
    matrix_seconds: list[float]
    warnings: list[OptimizationWarning] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return round(sum(segment.cost for segment in self.segments), 2)

    @property
    def total_travel_seconds(self) -> float:
        return sum(segment.travel_time_seconds for segment in self.segments)


class TransportModeSelector:
    def __init__(self, long_leg_threshold_km: float = 500.0) -> None:
        self.long_leg_threshold_km = long_leg_threshold_km

    def select(
        self,
        places: Sequence[Place],
        order: Sequence[int],
        matrix: DistanceMatrix,
        allowed_modes: Sequence[str],
        multi_modal: bool = False,
    ) -> ModeSelection:
        """Pick a mode for every consecutive leg of ``order``."""
        allowed = [MODES[name] for name in allowed_modes]
        legs = list(zip(order, order[1:]))
        selection = ModeSelection(segments=[], candidates=[], matrix_seconds=[])
        if not legs:
            return selection

        uniform: Optional[TransportMode] = None
        if not multi_modal:
            longest_km = max(matrix.distance(a, b) for a, b in legs) / 1000.0
            uniform = self._uniform_mode(allowed, longest_km)
            logger.debug(f"Using {uniform.name} for all legs (longest leg {longest_km:.1f} km)")

        for a, b in legs:
            distance = matrix.distance(a, b)
            distance_km = distance / 1000.0
            if uniform is not None:
                mode = uniform
                candidates = [m for m in allowed if m.covers(distance_km)] or [uniform]
            else:
                candidates = self._leg_candidates(allowed, distance_km)
                if not candidates:
                    candidates = [MODES[name] for name in LONG_HAUL_MODES]
                    selection.warnings.append(
                        OptimizationWarning(
                            kind=WarningKind.CONSTRAINT_CONFLICT,
                            message=(
                                f"Leg {places[a].name} -> {places[b].name} is {distance_km:.0f} km; "
                                "none of the requested travel types is practical, using long-haul transport"
                            ),
                            place_id=places[b].id,
                        )
                    )
                mode = self._fastest(candidates, distance, matrix.duration(a, b), matrix.profile)
            selection.segments.append(
                self._segment(places[a], places[b], mode, distance, matrix.duration(a, b), matrix.profile)
            )
            selection.candidates.append([m.name for m in candidates])
            selection.matrix_seconds.append(matrix.duration(a, b))
        return selection

    def enforce_budget(
        self,
        selection: ModeSelection,
        matrix: DistanceMatrix,
        budget: Optional[float],
        strict: bool,
    ) -> ModeSelection:
        """Switch legs to cheaper modes until ``budget`` is met, when ``strict`` is set."""
        if budget is None or selection.total_cost <= budget:
            return selection

        if not strict:
            selection.warnings.append(
                OptimizationWarning(
                    kind=WarningKind.CONSTRAINT_CONFLICT,
                    message=f"Estimated transport cost {selection.total_cost:.2f} exceeds budget {budget:.2f}",
                )
            )
            return selection

        savings = []
        for position, segment in enumerate(selection.segments):
            cheapest = min(
                (MODES[name] for name in selection.candidates[position]),
                key=lambda m: leg_cost(m, segment.distance_meters),
            )
            saving = segment.cost - leg_cost(cheapest, segment.distance_meters)
            if saving > 0:
                savings.append((saving, position, cheapest))

        for saving, position, cheapest in sorted(savings, key=lambda item: (-item[0], item[1])):
            if selection.total_cost <= budget:
                break
            segment = selection.segments[position]
            logger.debug(f"Switching leg {segment.from_id}->{segment.to_id} to {cheapest.name} to save {saving:.2f}")
            selection.segments[position] = Segment(
                from_id=segment.from_id,
                to_id=segment.to_id,
                distance_meters=segment.distance_meters,
                travel_time_seconds=leg_duration_seconds(
                    cheapest, segment.distance_meters, selection.matrix_seconds[position], matrix.profile
                ),
                mode=cheapest.name,
                cost=leg_cost(cheapest, segment.distance_meters),
            )

        if selection.total_cost > budget:
            selection.warnings.append(
                OptimizationWarning(
                    kind=WarningKind.CONSTRAINT_CONFLICT,
                    message=(
                        f"Cannot meet budget {budget:.2f}; cheapest transport options still cost "
                        f"{selection.total_cost:.2f}"
                    ),
                )
            )
        return selection

    def _uniform_mode(self, allowed: Sequence[TransportMode], longest_km: float) -> TransportMode:
        for mode in allowed:
            if mode.covers(longest_km):
                return mode
        return max(allowed, key=lambda m: m.range_km)

    def _leg_candidates(self, allowed: Sequence[TransportMode], distance_km: float) -> list[TransportMode]:
        recommended = set(recommend_modes(distance_km).modes)
        matching = [mode for mode in allowed if mode.name in recommended]
        if matching:
            return matching
        if distance_km > self.long_leg_threshold_km:
            return []
        return [mode for mode in allowed if mode.covers(distance_km)] or [max(allowed, key=lambda m: m.range_km)]

    @staticmethod
    def _fastest(
        candidates: Sequence[TransportMode], distance: float, matrix_seconds: float, profile: str
    ) -> TransportMode:
        return min(candidates, key=lambda m: leg_duration_seconds(m, distance, matrix_seconds, profile))

    @staticmethod
    def _segment(
        origin: Place, destination: Place, mode: TransportMode, distance: float, matrix_seconds: float, profile: str
    ) -> Segment:
        return Segment(
            from_id=origin.id,
            to_id=destination.id,
            distance_meters=distance,
            travel_time_seconds=leg_duration_seconds(mode, distance, matrix_seconds, profile),
            mode=mode.name,
            cost=leg_cost(mode, distance),
        )

"""Optimization result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class WarningKind(str, Enum):
    PROVIDER_DEGRADATION = "provider_degradation"
    CONSTRAINT_CONFLICT = "constraint_conflict"
    TIMEOUT = "timeout"


@dataclass(slots=True)
class OptimizationWarning:
    kind: WarningKind
    message: str
    place_id: Optional[str] = None


@dataclass(slots=True)
class DistanceMatrix:
    """Pairwise distances (meters) and durations (seconds)."""

    distances: List[List[float]]
    durations: List[List[float]]
    profile: str
    source: str = "haversine"
    degraded_pairs: int = 0

    def __len__(self) -> int:
        return len(self.distances)

    def distance(self, i: int, j: int) -> float:
        return self.distances[i][j]

    def duration(self, i: int, j: int) -> float:
        return self.durations[i][j]

    def is_symmetric(self, tolerance: float = 1e-6) -> bool:
        size = len(self.distances)
        return all(
            abs(self.distances[i][j] - self.distances[j][i]) <= tolerance
            for i in range(size)
            for j in range(i + 1, size)
        )

    def route_distance(self, order: List[int]) -> float:
        return sum(self.distances[a][b] for a, b in zip(order, order[1:]))


@dataclass(slots=True)
class Segment:
    from_id: str
    to_id: str
    distance_meters: float
    travel_time_seconds: float
    mode: str
    cost: float


@dataclass(slots=True)
class TripDay:
    day: int
    date: str
    places: List[str]
    travel_time_minutes: float
    visit_time_minutes: float
    requires_accommodation: bool

    @property
    def total_time_minutes(self) -> float:
        return self.travel_time_minutes + self.visit_time_minutes


@dataclass(slots=True)
class TimelineEntry:
    place_id: str
    seq: int
    arrival_time: str
    departure_time: str
    visit_duration_minutes: float


@dataclass(slots=True)
class RemovedPlace:
    place_id: str
    name: str
    reason: str


@dataclass(slots=True)
class OptimizationResult:
    job_id: str
    optimized_order: List[str]
    segments: List[Segment]
    total_distance_meters: float
    estimated_duration_minutes: float
    algorithm: str
    user_id: Optional[str] = None
    trip_days: List[TripDay] = field(default_factory=list)
    removed: List[RemovedPlace] = field(default_factory=list)
    adjustments: List[str] = field(default_factory=list)
    timeline: List[TimelineEntry] = field(default_factory=list)
    warnings: List[OptimizationWarning] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    total_cost: float = 0.0
    terminated_early: bool = False
    algorithm_used: str = ""
    states: List[str] = field(default_factory=list)
    created_at: str = ""
    processing_time_ms: float = 0.0

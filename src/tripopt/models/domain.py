"""Domain models for places and optimization requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Optional

START_LOCATION_ID = "start-location"
DEFAULT_PRIORITY = 5
DEFAULT_VISIT_DURATION = 60
MIN_VISIT_DURATION = 5


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` string into a :class:`datetime.time`."""

    hours, sep, minutes = value.strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Invalid time '{value}', expected HH:MM.")
    hour, minute = int(hours), int(minutes)
    if hour == 24 and minute == 0:
        return time(23, 59)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time '{value}', expected HH:MM.")
    return time(hour, minute)


@dataclass(slots=True, frozen=True)
class TimeWindow:
    """Opening hours of a place as ``HH:MM`` strings."""

    open: Optional[str] = None
    close: Optional[str] = None


@dataclass(slots=True, frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(slots=True, frozen=True)
class Place:
    """A geocoded point of interest submitted for optimization."""

    id: str
    name: str
    latitude: float
    longitude: float
    priority: int = DEFAULT_PRIORITY
    visit_duration: int = DEFAULT_VISIT_DURATION
    time_window: Optional[TimeWindow] = None

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)

    @property
    def is_start(self) -> bool:
        return self.visit_duration == 0


def start_place(location: Coordinates) -> Place:
    """Synthetic starting node prepended to the route."""

    return Place(
        id=START_LOCATION_ID,
        name="Starting Point",
        latitude=location.latitude,
        longitude=location.longitude,
        priority=10,
        visit_duration=0,
    )


@dataclass(slots=True)
class Constraints:
    travel_types: list[str]
    start_location: Optional[Coordinates] = None
    start_time: Optional[datetime] = None
    time_budget_minutes: Optional[float] = None
    budget: Optional[float] = None
    strict_budget: bool = False


@dataclass(slots=True)
class OptimizeOptions:
    algorithm: str = "advanced"
    priority_weighting: float = 0.3
    include_realtime_transit: bool = False
    multi_modal: bool = False
    strict_budget: bool = False
    seed: Optional[int] = None


@dataclass(slots=True)
class OptimizationRequest:
    """Validated request handed to the orchestrator."""

    places: list[Place]
    constraints: Constraints
    options: OptimizeOptions = field(default_factory=OptimizeOptions)
    user_id: Optional[str] = None

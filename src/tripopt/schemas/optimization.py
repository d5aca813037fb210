"""Optimization request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..config import settings
from ..models.domain import (
    Constraints,
    Coordinates,
    OptimizationRequest,
    OptimizeOptions,
    Place,
    TimeWindow,
    parse_clock,
)

AlgorithmName = Literal[
    "nearest_neighbor",
    "advanced",
    "simulated_annealing",
    "genetic",
    "priority",
    "guided_local_search",
    "auto",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeWindowIn(CamelModel):
    open: Optional[str] = Field(default=None, description="Opening time, HH:MM.")
    close: Optional[str] = Field(default=None, description="Closing time, HH:MM.")

    @field_validator("open", "close")
    @classmethod
    def _validate_clock(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_clock(value)
        return value


class PlaceIn(CamelModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    priority: int = Field(default=5, ge=1, le=10)
    visit_duration: int = Field(default=60, ge=0, description="Minutes spent at the place.")
    time_window: Optional[TimeWindowIn] = None

    def to_domain(self) -> Place:
        window = None
        if self.time_window is not None:
            window = TimeWindow(open=self.time_window.open, close=self.time_window.close)
        return Place(
            id=self.id,
            name=self.name or self.id,
            latitude=self.lat,
            longitude=self.lng,
            priority=self.priority,
            visit_duration=self.visit_duration,
            time_window=window,
        )


class LocationIn(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ConstraintsIn(CamelModel):
    start_location: Optional[LocationIn] = None
    start_time: Optional[datetime] = None
    time_budget_minutes: Optional[float] = Field(default=None, gt=0)
    travel_types: List[str] = Field(..., min_length=1)
    budget: Optional[float] = Field(default=None, ge=0)
    strict_budget: bool = False


class OptionsIn(CamelModel):
    include_realtime_transit: bool = Field(
        default=False,
        description=(
            "Reserved. No live transit feed is queried; transit legs always use "
            "catalog speeds and boarding overheads."
        ),
    )
    algorithm: AlgorithmName = "advanced"
    priority_weighting: float = Field(default_factory=lambda: settings.default_priority_weighting, ge=0, le=1)
    strict_budget: bool = False
    multi_modal: bool = False
    seed: Optional[int] = None


class OptimizeRouteRequest(CamelModel):
    user_id: Optional[str] = None
    places: List[PlaceIn] = Field(..., min_length=2)
    constraints: ConstraintsIn
    options: OptionsIn = Field(default_factory=OptionsIn)

    @model_validator(mode="after")
    def _unique_place_ids(self) -> "OptimizeRouteRequest":
        ids = [place.id for place in self.places]
        duplicates = sorted({place_id for place_id in ids if ids.count(place_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate place ids: {', '.join(duplicates)}")
        return self

    def to_domain(self) -> OptimizationRequest:
        start = self.constraints.start_location
        return OptimizationRequest(
            places=[place.to_domain() for place in self.places],
            constraints=Constraints(
                travel_types=list(self.constraints.travel_types),
                start_location=Coordinates(latitude=start.lat, longitude=start.lng) if start else None,
                start_time=self.constraints.start_time,
                time_budget_minutes=self.constraints.time_budget_minutes,
                budget=self.constraints.budget,
                strict_budget=self.constraints.strict_budget,
            ),
            options=OptimizeOptions(
                algorithm=self.options.algorithm,
                priority_weighting=self.options.priority_weighting,
                include_realtime_transit=self.options.include_realtime_transit,
                multi_modal=self.options.multi_modal,
                strict_budget=self.options.strict_budget,
                seed=self.options.seed,
            ),
            user_id=self.user_id,
        )


class InsertAttractionRequest(CamelModel):
    route: List[PlaceIn] = Field(..., min_length=1, description="Current optimized route, in order.")
    new_place: PlaceIn
    travel_types: List[str] = Field(default_factory=lambda: ["DRIVING"], min_length=1)


class CompareAlgorithmsRequest(OptimizeRouteRequest):
    algorithms: Optional[List[AlgorithmName]] = None


class SegmentModel(CamelModel):
    from_id: str
    to_id: str
    distance_meters: float
    travel_time_seconds: float
    mode: str
    cost: float


class TripDayModel(CamelModel):
    day: int
    date: str
    places: List[str]
    travel_time_minutes: float
    visit_time_minutes: float
    total_time_minutes: float
    requires_accommodation: bool


class TimelineEntryModel(CamelModel):
    place_id: str
    seq: int
    arrival_time: str
    departure_time: str
    visit_duration_minutes: float


class RemovedPlaceModel(CamelModel):
    place_id: str
    name: str
    reason: str


class WarningModel(CamelModel):
    kind: str
    message: str
    place_id: Optional[str] = None


class OptimizationResultModel(CamelModel):
    job_id: str
    user_id: Optional[str] = None
    algorithm: str
    algorithm_used: str = ""
    optimized_order: List[str]
    segments: List[SegmentModel]
    total_distance_meters: float
    estimated_duration_minutes: float
    total_cost: float = 0.0
    terminated_early: bool = False
    trip_days: List[TripDayModel] = Field(default_factory=list)
    timeline: List[TimelineEntryModel] = Field(default_factory=list)
    removed: List[RemovedPlaceModel] = Field(default_factory=list)
    adjustments: List[str] = Field(default_factory=list)
    warnings: List[WarningModel] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    created_at: str = ""
    processing_time_ms: float = 0.0


class InsertionResultModel(CamelModel):
    optimized_order: List[str]
    position: int
    marginal_cost_meters: float
    total_distance_meters: float
    warnings: List[WarningModel] = Field(default_factory=list)


class AlgorithmComparisonModel(CamelModel):
    algorithm: str
    algorithm_used: str = ""
    total_distance_meters: float
    estimated_duration_minutes: float
    total_cost: float
    processing_time_ms: float
    terminated_early: bool
    optimized_order: List[str]

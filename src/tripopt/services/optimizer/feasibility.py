"""Trip-level feasibility hints attached to optimization results."""

from __future__ import annotations

import math
from typing import Sequence

from ...models.domain import Place
from .models import OptimizationWarning, Segment, WarningKind

DEMANDING_TRAVEL_HOURS = 8.0


def assess_feasibility(
    places_by_id: dict[str, Place],
    segments: Sequence[Segment],
    max_daily_travel_hours: float = 10.0,
    long_leg_threshold_km: float = 500.0,
) -> tuple[list[OptimizationWarning], list[str]]:
    """Warnings and suggestions about overall trip length.

    Covers trips that need several days of travel, very long single legs and
    heavy single-day travel.
    """
    warnings: list[OptimizationWarning] = []
    suggestions: list[str] = []
    if not segments:
        return warnings, suggestions

    travel_hours = sum(segment.travel_time_seconds for segment in segments) / 3600.0
    multi_day = travel_hours > max_daily_travel_hours
    if multi_day:
        days = math.ceil(travel_hours / max_daily_travel_hours)
        suggestions.append(f"This trip requires {days} days. Overnight accommodation will be needed.")

    longest = max(segments, key=lambda segment: segment.distance_meters)
    longest_km = longest.distance_meters / 1000.0
    if longest_km > long_leg_threshold_km:
        origin = places_by_id[longest.from_id].name
        destination = places_by_id[longest.to_id].name
        warnings.append(
            OptimizationWarning(
                kind=WarningKind.CONSTRAINT_CONFLICT,
                message=(
                    f"Very long distance between {origin} and {destination} ({longest_km:.0f} km). "
                    "Consider taking a flight instead of bus/train."
                ),
                place_id=longest.to_id,
            )
        )
        suggestions.append(
            f"Flight recommendation: {origin} -> {destination} would take ~2 hours instead of "
            f"{longest_km / 60:.1f} hours by road."
        )

    if not multi_day and travel_hours > DEMANDING_TRAVEL_HOURS:
        warnings.append(
            OptimizationWarning(
                kind=WarningKind.CONSTRAINT_CONFLICT,
                message=(
                    f"Total travel time of {travel_hours:.1f} hours in one day is very demanding. "
                    "Consider spreading across multiple days."
                ),
            )
        )
    return warnings, suggestions

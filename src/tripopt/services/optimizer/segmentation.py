"""Split an itinerary into calendar days."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Sequence

from ...models.domain import Place, parse_clock
from .models import DistanceMatrix, TripDay

logger = logging.getLogger(__name__)


def _minutes_of_day(value: str) -> int:
    parsed = parse_clock(value)
    return parsed.hour * 60 + parsed.minute


class DaySegmenter:
    def __init__(
        self,
        max_daily_total_hours: float = 14.0,
        max_daily_travel_hours: float = 10.0,
        day_start: str = "09:00",
        day_end: str = "20:00",
    ) -> None:
        self.max_total_minutes = max_daily_total_hours * 60.0
        self.max_travel_minutes = max_daily_travel_hours * 60.0
        self.day_start_minutes = _minutes_of_day(day_start)
        self.day_end_minutes = _minutes_of_day(day_end)

    def segment(
        self,
        places: Sequence[Place],
        order: Sequence[int],
        matrix: DistanceMatrix,
        start_date: date,
    ) -> list[TripDay]:
        """Group ``order`` into consecutive days.

        Every stop lands in exactly one day, in route order. The travel leg
        into a stop is counted on the day the stop is visited. A day that
        begins with a single stop longer than the daily ceiling is allowed to
        exceed it.
        """
        days: list[TripDay] = []
        current = self._open_day(1, start_date)
        clock = float(self.day_start_minutes)
        previous = None

        for idx in order:
            place = places[idx]
            travel = matrix.duration(previous, idx) / 60.0 if previous is not None else 0.0
            visit = float(place.visit_duration)

            if current.places and self._overflows(current, clock, travel, visit):
                days.append(current)
                current = self._open_day(len(days) + 1, start_date)
                clock = float(self.day_start_minutes)

            current.places.append(place.id)
            current.travel_time_minutes += travel
            current.visit_time_minutes += visit
            clock += travel + visit
            previous = idx

        if current.places:
            days.append(current)
        for day in days[:-1]:
            day.requires_accommodation = True

        if len(days) > 1:
            logger.info(f"Itinerary split into {len(days)} days")
        return days

    def _overflows(self, day: TripDay, clock: float, travel: float, visit: float) -> bool:
        if day.total_time_minutes + travel + visit > self.max_total_minutes:
            return True
        if day.travel_time_minutes + travel > self.max_travel_minutes:
            return True
        return clock + travel + visit > self.day_end_minutes

    @staticmethod
    def _open_day(number: int, start_date: date) -> TripDay:
        return TripDay(
            day=number,
            date=(start_date + timedelta(days=number - 1)).isoformat(),
            places=[],
            travel_time_minutes=0.0,
            visit_time_minutes=0.0,
            requires_accommodation=False,
        )

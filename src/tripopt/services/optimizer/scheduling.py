"""Opening-hours simulation over an ordered route."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ...models.domain import Place, parse_clock
from .models import DistanceMatrix, OptimizationWarning, RemovedPlace, TimelineEntry, WarningKind

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScheduleResult:
    order: list[int]
    removed: list[RemovedPlace] = field(default_factory=list)
    adjustments: list[str] = field(default_factory=list)
    timeline: list[TimelineEntry] = field(default_factory=list)
    warnings: list[OptimizationWarning] = field(default_factory=list)


def _format_clock(moment: datetime) -> str:
    return moment.strftime("%H:%M")


class TimeWindowScheduler:
    """Walks a route with a clock and drops stops that cannot be visited in their window.

    Arriving before opening time waits for the opening when the visit still
    fits; any other conflict removes the place with a reason. The starting
    point is always kept.
    """

    def __init__(
        self,
        default_open: str = "09:00",
        default_close: str = "18:00",
        allow_next_day: bool = False,
        multi_day_first_leg_hours: float = 12.0,
    ) -> None:
        self.default_open = default_open
        self.default_close = default_close
        self.allow_next_day = allow_next_day
        self.multi_day_first_leg_hours = multi_day_first_leg_hours

    def _window(self, place: Place, arrival: datetime) -> tuple[datetime, datetime]:
        """Opening window that applies to ``arrival``.

        An overnight window that opened the previous evening and is still
        open at ``arrival`` takes precedence over the one opening later today.
        """
        window = place.time_window
        open_text = window.open if window and window.open else self.default_open
        close_text = window.close if window and window.close else self.default_close
        midnight = arrival.replace(hour=0, minute=0, second=0, microsecond=0)
        open_time, close_time = parse_clock(open_text), parse_clock(close_text)
        opens = midnight + timedelta(hours=open_time.hour, minutes=open_time.minute)
        closes = midnight + timedelta(hours=close_time.hour, minutes=close_time.minute)
        if closes <= opens:
            closes += timedelta(days=1)
            earlier_opens, earlier_closes = opens - timedelta(days=1), closes - timedelta(days=1)
            if earlier_opens <= arrival < earlier_closes:
                return earlier_opens, earlier_closes
        return opens, closes

    def _budget_applies(self, order: Sequence[int], matrix: DistanceMatrix) -> bool:
        if len(order) < 2:
            return True
        first_leg_hours = matrix.duration(order[0], order[1]) / 3600.0
        if first_leg_hours > self.multi_day_first_leg_hours:
            logger.info(
                f"First leg takes {first_leg_hours:.1f}h; treating trip as multi-day and skipping time budget"
            )
            return False
        return True

    def schedule(
        self,
        places: Sequence[Place],
        order: Sequence[int],
        matrix: DistanceMatrix,
        start_time: datetime,
        time_budget_minutes: Optional[float] = None,
    ) -> ScheduleResult:
        result = ScheduleResult(order=[])
        budget_applies = time_budget_minutes is not None and self._budget_applies(order, matrix)

        clock = start_time
        previous: Optional[int] = None
        for idx in order:
            place = places[idx]
            departed_at = clock
            if previous is not None:
                clock = clock + timedelta(seconds=matrix.duration(previous, idx))

            if place.is_start:
                self._keep(result, place, idx, clock, clock)
                previous = idx
                continue

            visit = timedelta(minutes=place.visit_duration)
            opens, closes = self._window(place, clock)
            reason: Optional[str] = None

            if clock < opens:
                if opens + visit <= closes:
                    result.adjustments.append(
                        f"Waiting until {_format_clock(opens)} for {place.name} "
                        f"(arrival {_format_clock(clock)})"
                    )
                    clock = opens
                else:
                    reason = f"not yet open; opens at {_format_clock(opens)}"
            elif clock + visit > closes:
                next_opens, next_closes = opens + timedelta(days=1), closes + timedelta(days=1)
                if self.allow_next_day and next_opens + visit <= next_closes:
                    result.adjustments.append(
                        f"Moved {place.name} to the next day at {_format_clock(next_opens)}"
                    )
                    clock = next_opens
                else:
                    reason = f"not enough time to visit; closes at {_format_clock(closes)}"

            if reason is None and budget_applies:
                elapsed_minutes = (clock + visit - start_time).total_seconds() / 60.0
                if elapsed_minutes > time_budget_minutes:
                    reason = f"exceeds time budget of {time_budget_minutes:g} minutes"

            if reason is not None:
                self._remove(result, place, reason)
                clock = departed_at
                continue

            self._keep(result, place, idx, clock, clock + visit)
            clock = clock + visit
            previous = idx

        return result

    def _keep(self, result: ScheduleResult, place: Place, idx: int, arrival: datetime, departure: datetime) -> None:
        result.order.append(idx)
        result.timeline.append(
            TimelineEntry(
                place_id=place.id,
                seq=len(result.order),
                arrival_time=arrival.isoformat(timespec="minutes"),
                departure_time=departure.isoformat(timespec="minutes"),
                visit_duration_minutes=float(place.visit_duration),
            )
        )

    def _remove(self, result: ScheduleResult, place: Place, reason: str) -> None:
        logger.info(f"Removing {place.id} from itinerary: {reason}")
        result.removed.append(RemovedPlace(place_id=place.id, name=place.name, reason=reason))
        result.adjustments.append(f"Removed {place.name}: {reason}")
        result.warnings.append(
            OptimizationWarning(kind=WarningKind.CONSTRAINT_CONFLICT, message=reason, place_id=place.id)
        )

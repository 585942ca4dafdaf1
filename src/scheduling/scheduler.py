"""Time-slot scheduler: conflict-aware placement of an accepted recommendation.

Flow for one venue:
  1. Visit duration from the category table (or the caller's override)
  2. Venue open intervals over the horizon (estimated hours if none)
  3. User free intervals = complement of calendar events
  4. Open ∩ free, dropping intervals shorter than the duration
  5. Slot anchors: each interval's start plus every daypart / rush boundary
     inside it; each slot is scored on daypart fit, closeness to an existing
     event and rush-window overlap
  6. Best slot with a travel buffer on both sides, else best slot without
     buffer flagged ``tight_schedule``
  7. No interval at all -> ``conflict=True``

Mixing timezone-aware and naive datetimes is rejected with InputError.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, time, timedelta

from src.core.config import SchedulerConfig
from src.core.errors import InputError
from src.core.schemas import (
    PREFERRED_DAYPARTS,
    CalendarEvent,
    ScheduleProposal,
    TimeValidation,
    Venue,
    daypart_for,
)
from src.scheduling.hours import hours_or_estimate, open_intervals
from src.scheduling.intervals import Interval, at_least, complement, intersect, merge, overlaps

logger = logging.getLogger(__name__)

# Hours at which the daypart changes (see daypart_for).
_DAYPART_BOUNDARIES = (time(5, 0), time(12, 0), time(17, 0), time(21, 0))


class _Slot:
    """A candidate placement inside one free-and-open interval."""

    def __init__(self, start: datetime, end: datetime, score: float, buffered: bool) -> None:
        self.start = start
        self.end = end
        self.score = score
        self.buffered = buffered


class TimeSlotScheduler:
    """Proposes non-conflicting visit windows and validates manual choices."""

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        self._config = config or SchedulerConfig()

    @property
    def travel_buffer(self) -> timedelta:
        return timedelta(minutes=self._config.travel_buffer_minutes)

    def visit_duration(self, venue: Venue) -> timedelta:
        return timedelta(minutes=self._config.visit_minutes[venue.category])

    def schedule(
        self,
        venue: Venue,
        calendar: list[CalendarEvent],
        now: datetime,
        preferred_window: timedelta | None = None,
    ) -> ScheduleProposal:
        """Propose a visit window for ``venue`` within the scheduling horizon.

        Args:
            venue: The accepted venue.
            calendar: The user's existing events (read only).
            now: Start of the horizon.
            preferred_window: Visit length chosen by the user; overrides the
                category duration but not the opening hours.

        Returns:
            ScheduleProposal; ``conflict=True`` with no times when nothing fits.
        """
        if preferred_window is not None and preferred_window <= timedelta(0):
            msg = "preferred_window must be a positive duration"
            raise InputError(msg)
        require_consistent_timezones([now, *_event_bounds(calendar)])
        duration = preferred_window or self.visit_duration(venue)
        horizon_end = now + timedelta(days=self._config.horizon_days)

        hours, estimated = hours_or_estimate(venue.opening_hours, venue.category)
        open_windows = open_intervals(hours, now, horizon_end)
        busy = merge((e.start, e.end) for e in calendar)
        free = complement(busy, now, horizon_end)
        viable = at_least(intersect(open_windows, free), duration)

        best = (
            self._best_slot(venue, viable, busy, duration, buffered=True)
            or self._best_slot(venue, viable, busy, duration, buffered=False)
        )
        if best is None:
            logger.info(
                "No viable slot for '%s' (%s) in the next %d days",
                venue.venue_id, duration, self._config.horizon_days,
            )
            return ScheduleProposal(
                venue_id=venue.venue_id,
                conflict=True,
                duration=duration,
                estimated_hours=estimated,
            )

        logger.debug(
            "Scheduled '%s' at %s-%s (score %.1f, buffered=%s)",
            venue.venue_id, best.start.isoformat(), best.end.isoformat(),
            best.score, best.buffered,
        )
        return ScheduleProposal(
            venue_id=venue.venue_id,
            start=best.start,
            end=best.end,
            tight_schedule=not best.buffered,
            travel_buffer=self.travel_buffer if best.buffered else timedelta(0),
            duration=duration,
            estimated_hours=estimated,
        )

    def validate(
        self,
        proposed_start: datetime,
        proposed_end: datetime,
        calendar: list[CalendarEvent],
    ) -> TimeValidation:
        """Check a manually chosen time against existing events."""
        require_consistent_timezones([proposed_start, proposed_end, *_event_bounds(calendar)])
        if proposed_end <= proposed_start:
            msg = "proposed end must be after proposed start"
            raise InputError(msg)
        clashes = [
            e.event_id for e in calendar
            if overlaps((proposed_start, proposed_end), (e.start, e.end))
        ]
        return TimeValidation(conflict=bool(clashes), conflicting_event_ids=sorted(clashes))

    # ------------------------------------------------------------------
    # Slot search
    # ------------------------------------------------------------------

    def _best_slot(
        self,
        venue: Venue,
        viable: list[Interval],
        busy: list[Interval],
        duration: timedelta,
        buffered: bool,
    ) -> _Slot | None:
        buffer = self.travel_buffer if buffered else timedelta(0)
        best: _Slot | None = None
        for interval_start, interval_end in viable:
            for anchor in self._anchors(interval_start, interval_end):
                start = max(anchor, interval_start + buffer)
                end = start + duration
                if end + buffer > interval_end:
                    continue
                score = self._score_slot(venue, start, end, busy)
                # strict comparison keeps the earliest start on ties
                if best is None or score > best.score:
                    best = _Slot(start, end, score, buffered)
        return best

    def _anchors(self, start: datetime, end: datetime) -> list[datetime]:
        """Interval start plus every daypart / rush boundary strictly inside it."""
        marks = set(_DAYPART_BOUNDARIES)
        for window in self._config.rush_windows:
            marks.update((window.start, window.end))

        anchors = {start}
        day = start.date()
        while day <= end.date():
            for mark in marks:
                moment = datetime.combine(day, mark, tzinfo=start.tzinfo)
                if start < moment < end:
                    anchors.add(moment)
            day += timedelta(days=1)
        return sorted(anchors)

    def _score_slot(
        self,
        venue: Venue,
        start: datetime,
        end: datetime,
        busy: list[Interval],
    ) -> float:
        cfg = self._config
        score = 0.0
        if daypart_for(start) in PREFERRED_DAYPARTS[venue.category]:
            score += cfg.daypart_bonus

        gap = _gap_to_nearest_event(start, end, busy)
        if gap is not None:
            horizon = timedelta(minutes=cfg.adjacency_horizon_minutes)
            score += cfg.adjacency_bonus * max(0.0, 1.0 - gap / horizon)

        if self._in_rush(start, end):
            score -= cfg.rush_penalty
        return score

    def _in_rush(self, start: datetime, end: datetime) -> bool:
        day = start.date()
        while day <= end.date():
            for window in self._config.rush_windows:
                rush = (
                    datetime.combine(day, window.start, tzinfo=start.tzinfo),
                    datetime.combine(day, window.end, tzinfo=start.tzinfo),
                )
                if overlaps((start, end), rush):
                    return True
            day += timedelta(days=1)
        return False


def require_consistent_timezones(moments: Iterable[datetime]) -> None:
    """Raise InputError unless the datetimes are all timezone-aware or all naive."""
    aware = {m.utcoffset() is not None for m in moments}
    if len(aware) > 1:
        msg = "cannot mix timezone-aware and naive datetimes"
        raise InputError(msg)


def _event_bounds(calendar: list[CalendarEvent]) -> list[datetime]:
    return [moment for e in calendar for moment in (e.start, e.end)]


def _gap_to_nearest_event(
    start: datetime,
    end: datetime,
    busy: list[Interval],
) -> timedelta | None:
    """Time between the slot and the closest event before or after it."""
    gaps = [start - e for _, e in busy if e <= start]
    gaps += [s - end for s, _ in busy if s >= end]
    return min(gaps) if gaps else None

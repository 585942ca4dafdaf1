"""Opening-hours expansion and estimated hours per category.

An opening-hours table maps weekday (0 = Monday) to opening periods. A period
whose closing time is not after its opening time runs past midnight into the
next day, so Friday 16:00-02:00 yields an interval ending Saturday 02:00.
"""

from datetime import datetime, time, timedelta

from src.core.schemas import Category, OpenInterval
from src.scheduling.intervals import Interval, clip

OpeningHours = dict[int, list[OpenInterval]]


def _period(opens: str, closes: str) -> list[OpenInterval]:
    return [OpenInterval(opens=time.fromisoformat(opens), closes=time.fromisoformat(closes))]


def _week(
    weekdays: list[OpenInterval],
    friday: list[OpenInterval] | None = None,
    saturday: list[OpenInterval] | None = None,
    sunday: list[OpenInterval] | None = None,
    closed: tuple[int, ...] = (),
) -> OpeningHours:
    table: OpeningHours = {day: weekdays for day in range(5)}
    table[4] = friday if friday is not None else weekdays
    table[5] = saturday if saturday is not None else weekdays
    table[6] = sunday if sunday is not None else weekdays
    for day in closed:
        table[day] = []
    return table


# Typical operating hours, used when a venue ships no hours of its own.
ESTIMATED_HOURS: dict[Category, OpeningHours] = {
    Category.COFFEE: _week(
        _period("07:00", "18:00"),
        saturday=_period("08:00", "17:00"),
        sunday=_period("08:00", "17:00"),
    ),
    Category.DINING: _week(
        _period("11:00", "22:00"),
        friday=_period("11:00", "23:00"),
        saturday=_period("11:00", "23:00"),
        sunday=_period("11:00", "21:00"),
    ),
    Category.BARS: _week(
        _period("16:00", "02:00"),
        friday=_period("16:00", "03:00"),
        saturday=_period("14:00", "03:00"),
        sunday=_period("14:00", "00:00"),
    ),
    Category.NIGHTLIFE: _week(
        _period("20:00", "02:00"),
        friday=_period("20:00", "04:00"),
        saturday=_period("20:00", "04:00"),
    ),
    Category.FITNESS: _week(
        _period("05:00", "23:00"),
        friday=_period("05:00", "22:00"),
        saturday=_period("07:00", "20:00"),
        sunday=_period("07:00", "20:00"),
    ),
    Category.OUTDOOR: _week(_period("06:00", "22:00")),
    Category.MUSEUM: _week(
        _period("10:00", "17:00"),
        saturday=_period("10:00", "18:00"),
        sunday=_period("10:00", "18:00"),
        closed=(0,),
    ),
    Category.ARTS: _week(
        _period("10:00", "18:00"),
        sunday=_period("12:00", "17:00"),
        closed=(0,),
    ),
    Category.SHOPPING: _week(
        _period("09:00", "20:00"),
        friday=_period("09:00", "21:00"),
        saturday=_period("09:00", "21:00"),
        sunday=_period("10:00", "19:00"),
    ),
    Category.ENTERTAINMENT: _week(
        _period("10:00", "23:00"),
        friday=_period("10:00", "01:00"),
        saturday=_period("10:00", "01:00"),
    ),
    Category.LIVE_MUSIC: _week(
        _period("18:00", "01:00"),
        friday=_period("18:00", "02:00"),
        saturday=_period("18:00", "02:00"),
    ),
    Category.OTHER: _week(
        _period("09:00", "18:00"),
        saturday=_period("10:00", "17:00"),
        closed=(6,),
    ),
}


def hours_or_estimate(hours: OpeningHours, category: Category) -> tuple[OpeningHours, bool]:
    """Return ``(hours, estimated)``, falling back to the category estimate when empty."""
    if hours:
        return hours, False
    return ESTIMATED_HOURS[category], True


def open_intervals(hours: OpeningHours, start: datetime, end: datetime) -> list[Interval]:
    """Expand a weekly table into concrete open intervals within ``[start, end)``.

    The day before ``start`` is included so periods running past midnight
    into the window are kept.
    """
    intervals: list[Interval] = []
    day = datetime.combine(start.date() - timedelta(days=1), time(0), tzinfo=start.tzinfo)
    while day < end:
        for period in hours.get(day.weekday(), []):
            opens = day.replace(hour=period.opens.hour, minute=period.opens.minute)
            closes = day.replace(hour=period.closes.hour, minute=period.closes.minute)
            if period.crosses_midnight:
                closes += timedelta(days=1)
            intervals.append((opens, closes))
        day += timedelta(days=1)
    return clip(intervals, start, end)


def is_open_at(hours: OpeningHours, moment: datetime) -> bool:
    """True if ``moment`` falls inside an opening period."""
    window = open_intervals(hours, moment, moment + timedelta(minutes=1))
    return any(s <= moment < e for s, e in window)


def next_opening(hours: OpeningHours, moment: datetime, days: int = 7) -> datetime | None:
    """Return when the venue next opens after ``moment``; None if it is open now
    or stays closed for ``days`` days."""
    if is_open_at(hours, moment):
        return None
    window = open_intervals(hours, moment, moment + timedelta(days=days))
    return window[0][0] if window else None

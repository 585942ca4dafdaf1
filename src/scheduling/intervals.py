"""Half-open ``[start, end)`` datetime interval arithmetic."""

from collections.abc import Iterable
from datetime import datetime, timedelta

Interval = tuple[datetime, datetime]


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort intervals and coalesce overlapping or touching ones. Empty ones are dropped."""
    ordered = sorted((s, e) for s, e in intervals if e > s)
    merged: list[Interval] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1]:
            prev_start, prev_end = merged[-1]
            merged[-1] = (prev_start, max(prev_end, end))
        else:
            merged.append((start, end))
    return merged


def clip(intervals: Iterable[Interval], start: datetime, end: datetime) -> list[Interval]:
    """Restrict intervals to ``[start, end)``."""
    return merge((max(s, start), min(e, end)) for s, e in intervals)


def complement(busy: Iterable[Interval], start: datetime, end: datetime) -> list[Interval]:
    """Return the gaps in ``[start, end)`` not covered by ``busy``."""
    free: list[Interval] = []
    cursor = start
    for busy_start, busy_end in clip(busy, start, end):
        if busy_start > cursor:
            free.append((cursor, busy_start))
        cursor = max(cursor, busy_end)
    if cursor < end:
        free.append((cursor, end))
    return free


def intersect(a: Iterable[Interval], b: Iterable[Interval]) -> list[Interval]:
    """Return the overlap of two interval sets."""
    left = merge(a)
    right = merge(b)
    result: list[Interval] = []
    i = j = 0
    while i < len(left) and j < len(right):
        start = max(left[i][0], right[j][0])
        end = min(left[i][1], right[j][1])
        if start < end:
            result.append((start, end))
        if left[i][1] < right[j][1]:
            i += 1
        else:
            j += 1
    return result


def overlaps(a: Interval, b: Interval) -> bool:
    """True when two half-open intervals share any instant."""
    return a[0] < b[1] and b[0] < a[1]


def at_least(intervals: Iterable[Interval], length: timedelta) -> list[Interval]:
    """Keep intervals lasting ``length`` or longer."""
    return [(s, e) for s, e in intervals if e - s >= length]

"""
Availability rule resolution and interval arithmetic.

Pure functions over availability rules and time ranges; the database-bound
resolver and the booking engine both build on these so that slot listing and
booking validation can never disagree about what is open.
"""
from datetime import date, datetime, tzinfo
from typing import Iterable, List, Sequence

from barbershop.lib.timeutils import (
    TimeRange,
    add_minutes,
    combine,
    day_of_week,
    round_up_to_interval,
)
from barbershop.models.availability import Availability, AvailabilityKind


def applicable_rules(rules: Iterable[Availability], day: date) -> List[Availability]:
    """
    Rules governing ``day``.

    Exceptions dated ``day`` replace all recurring rules for its weekday.
    The two kinds are never merged.
    """
    rules = list(rules)
    exceptions = [
        r for r in rules
        if r.kind == AvailabilityKind.EXCEPTION and r.date == day
    ]
    if exceptions:
        return exceptions

    weekday = day_of_week(day)
    return [
        r for r in rules
        if r.kind == AvailabilityKind.RECURRING and r.day_of_week == weekday
    ]


def merge_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """Union of ranges, sorted, with touching ranges joined."""
    merged: List[TimeRange] = []
    for current in sorted(ranges):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = TimeRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def open_windows(rules: Iterable[Availability], day: date, tz: tzinfo) -> List[TimeRange]:
    """
    Open windows for one day before any appointment is taken into account.
    Day-off exceptions contribute nothing.
    """
    windows = []
    for rule in applicable_rules(rules, day):
        if rule.is_day_off:
            continue
        start = combine(day, rule.start_time, tz)
        end = combine(day, rule.end_time, tz)
        if end > start:
            windows.append(TimeRange(start, end))
    return merge_ranges(windows)


def clip_to(windows: Iterable[TimeRange], not_before: datetime) -> List[TimeRange]:
    """Drop the part of each window that lies before ``not_before``."""
    clipped = []
    for window in windows:
        if window.end <= not_before:
            continue
        clipped.append(TimeRange(max(window.start, not_before), window.end))
    return clipped


def subtract_blocked(window: TimeRange, blocked: Sequence[TimeRange]) -> List[TimeRange]:
    """
    Parts of ``window`` not covered by any blocked range.
    ``blocked`` must be sorted by start.
    """
    free = []
    cursor = window.start
    for block in blocked:
        if block.end <= cursor or block.start >= window.end:
            continue
        if block.start > cursor:
            free.append(TimeRange(cursor, min(block.start, window.end)))
        cursor = max(cursor, block.end)
        if cursor >= window.end:
            break
    if cursor < window.end:
        free.append(TimeRange(cursor, window.end))
    return free


def free_windows(
    windows: Iterable[TimeRange],
    appointments: Iterable[TimeRange],
    buffer_minutes: int,
) -> List[TimeRange]:
    """Open windows minus every appointment widened by the buffer on both ends."""
    blocked = sorted(appt.expand(buffer_minutes) for appt in appointments)
    free = []
    for window in windows:
        free.extend(subtract_blocked(window, blocked))
    return free


def long_enough(windows: Iterable[TimeRange], duration_minutes: int) -> List[TimeRange]:
    return [w for w in windows if w.minutes >= duration_minutes]


def quantize(
    window: TimeRange,
    duration_minutes: int,
    interval_minutes: int,
    tz: tzinfo,
) -> List[TimeRange]:
    """
    Candidate slots inside ``window``: starts on the local interval grid at or
    after the window start, each ending no later than the window end.
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")
    slots = []
    start = round_up_to_interval(window.start, interval_minutes, tz)
    while True:
        end = add_minutes(start, duration_minutes)
        if end > window.end:
            break
        slots.append(TimeRange(start, end))
        start = add_minutes(start, interval_minutes)
    return slots


def fits_within(windows: Iterable[TimeRange], candidate: TimeRange) -> bool:
    """True when ``candidate`` lies entirely inside one window."""
    return any(window.contains(candidate) for window in windows)


def conflicts_with(
    candidate: TimeRange,
    appointments: Iterable[TimeRange],
    buffer_minutes: int,
) -> bool:
    """True when ``candidate`` intersects an appointment widened by the buffer."""
    return any(appt.expand(buffer_minutes).overlaps(candidate) for appt in appointments)

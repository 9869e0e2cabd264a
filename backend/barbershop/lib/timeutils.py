"""
Date and time helpers for availability and booking rules.

All instants are timezone-aware UTC datetimes. Wall-clock values from
availability rules (a date plus a time of day) are interpreted in the shop
timezone and converted to UTC by ``combine``.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open interval [start, end)."""
    start: datetime
    end: datetime

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlaps(self, other: "TimeRange") -> bool:
        return ranges_overlap(self.start, self.end, other.start, other.end)

    def expand(self, minutes: int) -> "TimeRange":
        return TimeRange(add_minutes(self.start, -minutes), add_minutes(self.end, minutes))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache(maxsize=None)
def get_shop_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def combine(day: date, at: time, tz: tzinfo) -> datetime:
    """Instant at which the wall clock in ``tz`` reads ``at`` on ``day``."""
    return datetime.combine(day, at).replace(tzinfo=tz).astimezone(timezone.utc)


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def local_date(instant: datetime, tz: tzinfo) -> date:
    return instant.astimezone(tz).date()


def start_of_day(day: date, tz: tzinfo) -> datetime:
    return combine(day, time.min, tz)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    """Exclusive end: midnight of the following day."""
    return combine(day + timedelta(days=1), time.min, tz)


def add_minutes(instant: datetime, minutes: float) -> datetime:
    return instant + timedelta(minutes=minutes)


def ranges_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open ranges overlap when each starts before the other ends."""
    return a_start < b_end and b_start < a_end


def difference_in_hours(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def round_up_to_interval(instant: datetime, interval_minutes: int, tz: tzinfo) -> datetime:
    """
    Next instant at or after ``instant`` whose local wall clock is a multiple
    of ``interval_minutes`` past midnight.
    """
    local = instant.astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = local - midnight
    step = timedelta(minutes=interval_minutes)
    remainder = elapsed % step
    if not remainder:
        return instant
    return instant + (step - remainder)


def iter_days(start: date, end: date):
    """Dates from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)

"""Clock-time, weekday and timestamp arithmetic shared by every scheduling component.

Weekly slots are stored as wall-clock ``HH:MM`` strings in the school's time
zone; concrete lessons are stored as absolute UTC timestamps. All conversions
between the two go through this module.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
TWELVE_HOUR_PATTERN = re.compile(r"^\s*\d{1,2}:\d{2}\s*[AaPp][Mm]\s*$")
MINUTES_PER_DAY = 24 * 60

DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_OFFSETS = {day: index for index, day in enumerate(DAY_ORDER)}


def time_to_minutes(value: str) -> int:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValueError(f"Time must be in HH:MM 24-hour format, got {value!r}")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    wrapped = minutes % MINUTES_PER_DAY
    return f"{wrapped // 60:02d}:{wrapped % 60:02d}"


def add_duration(start_time: str, duration_minutes: int) -> str:
    return minutes_to_time(time_to_minutes(start_time) + duration_minutes)


def crosses_midnight(start_time: str, duration_minutes: int) -> bool:
    return time_to_minutes(start_time) + duration_minutes > MINUTES_PER_DAY


def overlaps(start_a, end_a, start_b, end_b) -> bool:
    """Half-open interval overlap; touching endpoints do not count."""
    return start_a < end_b and start_b < end_a


def format_for_display(value: str | None) -> str:
    if not value:
        return "Not set"
    if TWELVE_HOUR_PATTERN.match(value):
        return value.strip()
    minutes = time_to_minutes(value)
    hour, minute = divmod(minutes, 60)
    suffix = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {suffix}"


def weekday_offset(day: str) -> int:
    try:
        return DAY_OFFSETS[day]
    except KeyError:
        raise ValueError(f"Unknown weekday {day!r}") from None


def day_name(value: date) -> str:
    return DAY_ORDER[value.weekday()]


def week_start(value: date) -> date:
    return value - timedelta(days=value.weekday())


def iter_week_starts(start_date: date, end_date: date):
    current = week_start(start_date)
    while current <= end_date:
        yield current
        current += timedelta(days=7)


@lru_cache
def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone {name!r}") from exc


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything persisted is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime, tz: ZoneInfo) -> datetime:
    return as_utc(value).astimezone(tz)


def local_datetime(day: date, time_of_day: str, tz: ZoneInfo) -> datetime:
    """Combine a calendar date and an ``HH:MM`` slot into an absolute UTC timestamp."""
    hours, minutes = divmod(time_to_minutes(time_of_day), 60)
    local = datetime.combine(day, time(hours, minutes), tzinfo=tz)
    return local.astimezone(timezone.utc)


def local_date_and_time(value: datetime, tz: ZoneInfo) -> tuple[date, str]:
    local = to_local(value, tz)
    return local.date(), f"{local.hour:02d}:{local.minute:02d}"


def occurrence_end(scheduled_time: datetime, duration_minutes: int) -> datetime:
    return as_utc(scheduled_time) + timedelta(minutes=duration_minutes)


def local_day_bounds(start_date: date, end_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds covering every local instant of ``[start_date, end_date]``; upper bound exclusive."""
    lower = datetime.combine(start_date, time.min, tzinfo=tz).astimezone(timezone.utc)
    upper = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return lower, upper


def format_short_date(value: date) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"

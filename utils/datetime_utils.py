"""
Datetime utilities for consistent timezone handling across the application.
All datetime operations should use timezone-aware datetimes.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterator, Optional
from zoneinfo import ZoneInfo

# Injectable "now" provider; must return a timezone-aware datetime
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def fixed_clock(moment: datetime) -> Clock:
    """Return a clock that always answers ``moment``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return lambda: moment


def parse_iso_datetime(iso_string: str) -> datetime:
    """
    Parse ISO format datetime string to timezone-aware datetime.
    Handles both 'Z' suffix and '+00:00' timezone formats.

    Args:
        iso_string: ISO format datetime string

    Returns:
        Timezone-aware datetime object

    Raises:
        ValueError: If datetime string cannot be parsed
    """
    # Normalize 'Z' suffix to '+00:00'
    normalized = iso_string.replace("Z", "+00:00")

    # Parse with timezone info
    try:
        dt = datetime.fromisoformat(normalized)
        # Ensure timezone-aware
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError as e:
        raise ValueError(f"Invalid datetime string: {iso_string}") from e


def to_iso_string(dt: datetime) -> str:
    """
    Convert datetime to ISO format string.
    Ensures timezone-aware datetimes are properly formatted.

    Args:
        dt: Datetime object (timezone-aware or naive)

    Returns:
        ISO format string
    """
    # Ensure timezone-aware
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.isoformat()


def local_datetime(day: date, at: time, tz_name: Optional[str] = None) -> datetime:
    """Combine a calendar date and wall-clock time in the given timezone."""
    tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    return datetime.combine(day, at, tzinfo=tz)


def minutes_of(at: time) -> int:
    """Minutes since midnight."""
    return at.hour * 60 + at.minute


def time_from_minutes(minutes: int) -> time:
    """Inverse of :func:`minutes_of` for values inside one day."""
    return time(hour=minutes // 60, minute=minutes % 60)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield each calendar date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)

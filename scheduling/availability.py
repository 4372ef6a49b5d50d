"""
Conversions between canonical weekly availability and the legacy shape.

Profiles written by older clients store ``available_days`` plus a single
``available_hours`` pair; newer ones store a per-day ``availability`` object.
These functions are the only place either shape is translated. All of them
are pure.

Canonical -> legacy takes the global hours from the first enabled day in
Monday..Sunday order. When enabled days have different hours, a reader that
only understands the global pair will see every day with those hours.
"""

import json
import logging
import re
from datetime import time
from typing import Any, Dict, List, Optional

from models.availability import (
    DEFAULT_END,
    DEFAULT_START,
    DayOfWeek,
    DayWindow,
    HoursPair,
    LegacyAvailability,
    LegacyHours,
    WeeklyAvailability,
)
from utils.exceptions import InvalidTimeFormatError, InvalidWindowError

logger = logging.getLogger(__name__)

_TWENTY_FOUR_HOUR = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_TWELVE_HOUR = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$")
_RANGE = re.compile(
    r"(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)\s*(?:-|–|to)\s*(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)",
    re.IGNORECASE,
)


# ========== Scalars ==========


def parse_time(raw: Any) -> time:
    """
    Parse a wall-clock time.

    Accepts ``HH:MM``, ``H:MM``, ``HH:MM:00`` and 12-hour forms such as
    ``9am`` or ``9:30 pm``. ``time`` instances pass through. Schedules are
    kept to the minute, so a value with non-zero seconds is rejected rather
    than truncated.

    Raises:
        InvalidTimeFormatError: If the value is not a recognisable time
    """
    if isinstance(raw, time):
        if raw.second or raw.microsecond:
            raise InvalidTimeFormatError(f"Time {raw.isoformat()} is not on a whole minute")
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidTimeFormatError(f"Invalid time: {raw!r}")

    value = raw.strip().lower()

    match = _TWELVE_HOUR.match(value)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            raise InvalidTimeFormatError(f"Invalid time: {raw!r}")
        if match.group(3) == "pm":
            hour = 12 if hour == 12 else hour + 12
        elif hour == 12:
            hour = 0
        return time(hour, minute)

    match = _TWENTY_FOUR_HOUR.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            raise InvalidTimeFormatError(f"Invalid time: {raw!r}")
        if second:
            raise InvalidTimeFormatError(f"Time {raw!r} is not on a whole minute")
        return time(hour, minute)

    raise InvalidTimeFormatError(f"Invalid time: {raw!r}")


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def normalize_day(raw: Any) -> Optional[DayOfWeek]:
    """Map ``mon``, ``Monday``, ``MONDAY`` ... to a day; ``None`` if unknown."""
    value = str(raw or "").strip().strip('"').lower()
    if len(value) < 3:
        return None
    for day in DayOfWeek:
        if value.startswith(day.value[:3]):
            return day
    return None


def _check_window(day: DayOfWeek, window: DayWindow) -> None:
    if not window.is_valid:
        raise InvalidWindowError(
            f"{day.value}: start {format_time(window.start_time)} "
            f"must be before end {format_time(window.end_time)}"
        )


def validate_weekly(weekly: WeeklyAvailability) -> WeeklyAvailability:
    """
    Check that every enabled day starts before it ends.

    Raises:
        InvalidWindowError: On the first offending day
    """
    for day, window in weekly.items():
        _check_window(day, window)
    return weekly


# ========== Canonical <-> legacy ==========


def to_legacy(weekly: WeeklyAvailability) -> LegacyAvailability:
    """
    Convert canonical availability to the legacy shape.

    ``available_days`` holds every enabled day. The global hours come from
    the first enabled day in Monday..Sunday order (09:00-17:00 when no day is
    enabled); each enabled day also gets its own per-day entry.
    """
    validate_weekly(weekly)

    enabled = [(day, window) for day, window in weekly.items() if window.enabled]

    if enabled:
        first = enabled[0][1]
        start, end = first.start_time, first.end_time
    else:
        start, end = DEFAULT_START, DEFAULT_END

    per_day = {
        day: HoursPair(start=window.start_time, end=window.end_time)
        for day, window in enabled
    }

    return LegacyAvailability(
        available_days={day for day, _ in enabled},
        available_hours=LegacyHours(start=start, end=end, per_day=per_day),
    )


def from_legacy(legacy: LegacyAvailability) -> WeeklyAvailability:
    """
    Convert the legacy shape to canonical availability.

    Per-day hours win over the global pair, which wins over 09:00-17:00.
    """
    hours = legacy.available_hours
    fallback = hours.global_hours

    windows: Dict[DayOfWeek, DayWindow] = {}
    for day in DayOfWeek:
        pair = hours.per_day.get(day) or fallback
        windows[day] = DayWindow(
            enabled=day in legacy.available_days,
            start_time=pair.start if pair else DEFAULT_START,
            end_time=pair.end if pair else DEFAULT_END,
        )

    return validate_weekly(WeeklyAvailability.from_days(windows))


# ========== Loose record parsing ==========


def _parse_days(value: Any) -> List[DayOfWeek]:
    """
    Read ``available_days`` in any shape older writers produced: a list,
    a Postgres array literal ``{mon,tue}``, a JSON array string or CSV.
    """
    if not value:
        return []

    if isinstance(value, str):
        text = value.strip()
        if text.startswith("[") and text.endswith("]"):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                logger.warning(f"Unreadable available_days JSON: {text!r}")
                return []
        elif text.startswith("{") and text.endswith("}"):
            value = text[1:-1].split(",")
        else:
            value = text.split(",")

    if not isinstance(value, (list, tuple, set)):
        logger.warning(f"Ignoring available_days of type {type(value).__name__}")
        return []

    days = []
    for item in value:
        day = normalize_day(item)
        if day is None:
            logger.warning(f"Skipping unknown day name {item!r}")
            continue
        if day not in days:
            days.append(day)
    return days


def _pair_from(obj: Any) -> Optional[HoursPair]:
    if not isinstance(obj, dict):
        return None
    start = obj.get("start", obj.get("startTime", obj.get("start_time")))
    end = obj.get("end", obj.get("endTime", obj.get("end_time")))
    if start is None or end is None:
        return None
    return HoursPair(start=parse_time(start), end=parse_time(end))


def _parse_hours(value: Any) -> LegacyHours:
    """
    Read ``available_hours``: ``{start, end}``, ``{monday: {...}}``, both
    merged in one object, a JSON string of either, or ``"9:00am - 5:00pm"``.
    """
    if not value:
        return LegacyHours()

    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{"):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise InvalidTimeFormatError(f"Unreadable available_hours: {text!r}") from e
        else:
            match = _RANGE.search(text)
            if not match:
                raise InvalidTimeFormatError(f"Unreadable available_hours: {text!r}")
            return LegacyHours(start=parse_time(match.group(1)), end=parse_time(match.group(2)))

    if not isinstance(value, dict):
        raise InvalidTimeFormatError(f"Unreadable available_hours: {value!r}")

    global_pair = _pair_from(value)
    per_day = {}
    for key, entry in value.items():
        day = normalize_day(key) if isinstance(entry, dict) else None
        if day is None:
            continue
        pair = _pair_from(entry)
        if pair is not None:
            per_day[day] = pair

    return LegacyHours(
        start=global_pair.start if global_pair else None,
        end=global_pair.end if global_pair else None,
        per_day=per_day,
    )


def parse_legacy_record(record: Dict[str, Any]) -> LegacyAvailability:
    """
    Build a :class:`LegacyAvailability` from a raw profile row.

    When no days are listed but per-day hours exist, the days are inferred
    from the per-day keys.

    Raises:
        InvalidTimeFormatError: If any stored time is malformed
    """
    hours = _parse_hours(record.get("available_hours"))
    days = _parse_days(record.get("available_days"))

    if not days and hours.per_day and hours.global_hours is None:
        days = [day for day in DayOfWeek if day in hours.per_day]

    return LegacyAvailability(available_days=set(days), available_hours=hours)


def legacy_to_record(legacy: LegacyAvailability) -> Dict[str, Any]:
    """Serialise to the ``available_days`` / ``available_hours`` columns."""
    hours: Dict[str, Any] = {}
    global_pair = legacy.available_hours.global_hours
    if global_pair is not None:
        hours["start"] = format_time(global_pair.start)
        hours["end"] = format_time(global_pair.end)
    for day in DayOfWeek:
        pair = legacy.available_hours.per_day.get(day)
        if pair is not None:
            hours[day.value] = {
                "startTime": format_time(pair.start),
                "endTime": format_time(pair.end),
            }

    return {
        "available_days": [day.value for day in legacy.ordered_days()],
        "available_hours": hours,
    }


def weekly_to_record(weekly: WeeklyAvailability) -> Dict[str, Dict[str, Any]]:
    """Serialise canonical availability to the ``availability`` JSON column."""
    validate_weekly(weekly)
    return {
        day.value: {
            "enabled": window.enabled,
            "startTime": format_time(window.start_time),
            "endTime": format_time(window.end_time),
        }
        for day, window in weekly.items()
    }


def weekly_from_record(record: Dict[str, Any]) -> WeeklyAvailability:
    """
    Parse the canonical ``availability`` JSON column.

    Raises:
        InvalidTimeFormatError: If a stored time is malformed
        InvalidWindowError: If an enabled day does not start before it ends
    """
    windows: Dict[DayOfWeek, DayWindow] = {}
    for key, entry in record.items():
        day = normalize_day(key)
        if day is None or not isinstance(entry, dict):
            logger.warning(f"Skipping unknown availability key {key!r}")
            continue
        start = entry.get("startTime", entry.get("start_time", entry.get("start")))
        end = entry.get("endTime", entry.get("end_time", entry.get("end")))
        windows[day] = DayWindow(
            enabled=bool(entry.get("enabled", False)),
            start_time=parse_time(start) if start is not None else DEFAULT_START,
            end_time=parse_time(end) if end is not None else DEFAULT_END,
        )
    return validate_weekly(WeeklyAvailability.from_days(windows))


def availability_from_profile(profile: Dict[str, Any]) -> WeeklyAvailability:
    """
    Read a profile row in either shape: the canonical ``availability``
    column when present, else the legacy columns.
    """
    canonical = profile.get("availability")
    if isinstance(canonical, str) and canonical.strip():
        try:
            canonical = json.loads(canonical)
        except json.JSONDecodeError as e:
            raise InvalidTimeFormatError(f"Unreadable availability: {canonical!r}") from e
    if isinstance(canonical, dict) and canonical:
        return weekly_from_record(canonical)
    return from_legacy(parse_legacy_record(profile))

"""Availability models: weekly template, legacy persisted shape and date overrides."""

from datetime import date, time
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_START = time(9, 0)
DEFAULT_END = time(17, 0)


class DayOfWeek(str, Enum):
    """Days of the week, weekdays first."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def for_date(cls, value: date) -> "DayOfWeek":
        # date.weekday(): Monday == 0, matching declaration order
        return list(cls)[value.weekday()]


class DayWindow(BaseModel):
    """Opening window for one day of the weekly template."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    start_time: time = DEFAULT_START
    end_time: time = DEFAULT_END

    @property
    def is_valid(self) -> bool:
        return not self.enabled or self.start_time < self.end_time


class WeeklyAvailability(BaseModel):
    """
    Canonical weekly availability of a practitioner.

    One field per day so a missing or unknown day is a construction error.
    Every day defaults to disabled, 09:00-17:00.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    monday: DayWindow = Field(default_factory=DayWindow)
    tuesday: DayWindow = Field(default_factory=DayWindow)
    wednesday: DayWindow = Field(default_factory=DayWindow)
    thursday: DayWindow = Field(default_factory=DayWindow)
    friday: DayWindow = Field(default_factory=DayWindow)
    saturday: DayWindow = Field(default_factory=DayWindow)
    sunday: DayWindow = Field(default_factory=DayWindow)

    @classmethod
    def from_days(cls, windows: Dict[DayOfWeek, DayWindow]) -> "WeeklyAvailability":
        """Build from a mapping; days not present stay disabled."""
        return cls(**{day.value: window for day, window in windows.items()})

    def window_for(self, day: DayOfWeek) -> DayWindow:
        return getattr(self, day.value)

    def window_for_date(self, value: date) -> DayWindow:
        return self.window_for(DayOfWeek.for_date(value))

    def items(self) -> Iterator[Tuple[DayOfWeek, DayWindow]]:
        """Iterate (day, window) pairs Monday through Sunday."""
        for day in DayOfWeek:
            yield day, self.window_for(day)

    def enabled_days(self) -> List[DayOfWeek]:
        return [day for day, window in self.items() if window.enabled]

    def with_day(self, day: DayOfWeek, window: DayWindow) -> "WeeklyAvailability":
        """Return a copy with one day replaced."""
        return self.model_copy(update={day.value: window})


class HoursPair(BaseModel):
    """A start/end pair as stored in the legacy ``available_hours`` column."""

    model_config = ConfigDict(frozen=True)

    start: time
    end: time


class LegacyHours(BaseModel):
    """
    Legacy ``available_hours``: a global pair, a per-day map, or both.

    Older profiles carry only the global pair; newer writers add the
    per-day entries alongside it.
    """

    model_config = ConfigDict(frozen=True)

    start: Optional[time] = None
    end: Optional[time] = None
    per_day: Dict[DayOfWeek, HoursPair] = Field(default_factory=dict)

    @property
    def global_hours(self) -> Optional[HoursPair]:
        if self.start is None or self.end is None:
            return None
        return HoursPair(start=self.start, end=self.end)


class LegacyAvailability(BaseModel):
    """Lossy legacy shape: ``available_days`` plus ``available_hours``."""

    model_config = ConfigDict(frozen=True)

    available_days: Set[DayOfWeek] = Field(default_factory=set)
    available_hours: LegacyHours = Field(default_factory=LegacyHours)

    def ordered_days(self) -> List[DayOfWeek]:
        return [day for day in DayOfWeek if day in self.available_days]


class AvailabilityOverride(BaseModel):
    """
    Date-specific exception to the weekly template.

    When any override exists for a date, the weekly template is ignored for
    that date. ``is_available=False`` without times closes the whole date.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    practitioner_id: Optional[str] = None
    override_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_available: bool = False
    reason: Optional[str] = None

    @property
    def is_whole_day(self) -> bool:
        return self.start_time is None or self.end_time is None

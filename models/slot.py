"""Slot model: a generated, bookable time interval."""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.datetime_utils import local_datetime, minutes_of


class Slot(BaseModel):
    """Candidate appointment interval; never persisted until booked."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "practitioner_id": "uuid-here",
                "appointment_date": "2024-01-15",
                "start_time": "09:00",
                "end_time": "09:30",
            }
        },
    )

    practitioner_id: str = Field(..., min_length=1)
    appointment_date: date
    start_time: time
    end_time: time

    @property
    def duration_minutes(self) -> int:
        return minutes_of(self.end_time) - minutes_of(self.start_time)

    def starts_at(self, tz_name: Optional[str] = None) -> datetime:
        """Aware start datetime in the practitioner's timezone."""
        return local_datetime(self.appointment_date, self.start_time, tz_name)

    def overlaps(self, appointment_date: date, start_time: time, end_time: time) -> bool:
        """Half-open interval overlap on the same date."""
        return (
            self.appointment_date == appointment_date
            and self.start_time < end_time
            and start_time < self.end_time
        )

    def label(self) -> str:
        return (
            f"{self.appointment_date.isoformat()} "
            f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"
        )

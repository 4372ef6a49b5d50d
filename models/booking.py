"""Booking models for appointments."""

from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .slot import Slot


class BookingStatus(str, Enum):
    """Booking status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
)

# Allowed lifecycle moves: pending -> confirmed -> completed,
# pending|confirmed -> cancelled, confirmed -> no_show
TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


class BookingAction(str, Enum):
    """What a history entry records."""

    CREATED = "created"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class BookingHistoryEntry(BaseModel):
    """One append-only audit record."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    actor: str
    action: BookingAction
    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    reason: Optional[str] = None


class Booking(BaseModel):
    """Booking model."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "practitioner_id": "uuid-here",
                "client_id": "uuid-here",
                "appointment_date": "2024-01-15",
                "start_time": "09:00",
                "end_time": "09:30",
                "status": "pending",
                "service_type": "general_consultation",
            }
        }
    )

    id: str
    practitioner_id: str
    client_id: str = Field(..., description="Client ID from the identity provider")
    appointment_date: date
    start_time: time
    end_time: time
    status: BookingStatus = BookingStatus.PENDING
    service_type: Optional[str] = None
    location_type: Optional[str] = None
    notes: Optional[str] = None
    reminder_sent: bool = Field(default=False)
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    history: List[BookingHistoryEntry] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def holds_interval(self) -> bool:
        """Every status except cancelled keeps the interval occupied."""
        return self.status != BookingStatus.CANCELLED

    def can_transition_to(self, status: BookingStatus) -> bool:
        return status in TRANSITIONS[self.status]

    def overlaps(self, appointment_date: date, start_time: time, end_time: time) -> bool:
        return (
            self.appointment_date == appointment_date
            and self.start_time < end_time
            and start_time < self.end_time
        )

    def as_slot(self) -> Slot:
        return Slot(
            practitioner_id=self.practitioner_id,
            appointment_date=self.appointment_date,
            start_time=self.start_time,
            end_time=self.end_time,
        )

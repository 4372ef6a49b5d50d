"""
In-memory booking and practitioner profile stores.

Used for single-process deployments and tests. Records are copied on the way
in and out so callers never share mutable state with the store.
"""

from datetime import date, datetime, time
from typing import Dict, List, Optional
from uuid import uuid4

from models.availability import AvailabilityOverride, WeeklyAvailability
from models.booking import Booking, BookingStatus
from scheduling.availability import validate_weekly
from utils.datetime_utils import utc_now
from utils.exceptions import BookingNotFoundError, SlotConflictError


class InMemoryBookingStore:
    """Dictionary-backed :class:`db.base.BookingStore`."""

    def __init__(self):
        self._bookings: Dict[str, Booking] = {}

    def _find_conflict(self, booking: Booking) -> Optional[Booking]:
        if not booking.holds_interval:
            return None
        for other in self._bookings.values():
            if (
                other.id != booking.id
                and other.practitioner_id == booking.practitioner_id
                and other.holds_interval
                and other.overlaps(booking.appointment_date, booking.start_time, booking.end_time)
            ):
                return other
        return None

    async def insert_booking(self, booking: Booking) -> Booking:
        if booking.id in self._bookings:
            raise ValueError(f"Booking {booking.id} already exists")
        conflict = self._find_conflict(booking)
        if conflict:
            raise SlotConflictError(
                "Interval already held", conflicting_booking_id=conflict.id
            )
        self._bookings[booking.id] = booking.model_copy(deep=True)
        return booking.model_copy(deep=True)

    async def update_booking(self, booking: Booking) -> Booking:
        if booking.id not in self._bookings:
            raise BookingNotFoundError(f"Booking {booking.id} not found")
        conflict = self._find_conflict(booking)
        if conflict:
            raise SlotConflictError(
                "Interval already held", conflicting_booking_id=conflict.id
            )
        self._bookings[booking.id] = booking.model_copy(deep=True)
        return booking.model_copy(deep=True)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def list_bookings(
        self, practitioner_id: str, from_date: date, to_date: date
    ) -> List[Booking]:
        bookings = [
            b.model_copy(deep=True)
            for b in self._bookings.values()
            if b.practitioner_id == practitioner_id
            and from_date <= b.appointment_date <= to_date
        ]
        bookings.sort(key=lambda b: (b.appointment_date, b.start_time))
        return bookings

    async def get_bookings_for_reminder(
        self, window_start: datetime, window_end: datetime, tz_name: str
    ) -> List[Booking]:
        due = []
        for booking in self._bookings.values():
            if booking.status != BookingStatus.CONFIRMED or booking.reminder_sent:
                continue
            starts_at = booking.as_slot().starts_at(tz_name)
            if window_start <= starts_at <= window_end:
                due.append(booking.model_copy(deep=True))
        due.sort(key=lambda b: (b.appointment_date, b.start_time))
        return due

    async def mark_reminder_sent(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        if booking is None:
            return None
        now = utc_now()
        updated = booking.model_copy(
            update={"reminder_sent": True, "reminder_sent_at": now, "updated_at": now}
        )
        self._bookings[booking_id] = updated
        return updated.model_copy(deep=True)


class InMemoryProfileStore:
    """Dictionary-backed practitioner availability, mirroring ``SupabaseClient``."""

    def __init__(self):
        self._weekly: Dict[str, WeeklyAvailability] = {}
        self._overrides: Dict[str, AvailabilityOverride] = {}

    async def get_weekly_availability(self, practitioner_id: str) -> Optional[WeeklyAvailability]:
        return self._weekly.get(practitioner_id)

    async def save_weekly_availability(
        self, practitioner_id: str, weekly: WeeklyAvailability
    ) -> WeeklyAvailability:
        self._weekly[practitioner_id] = validate_weekly(weekly)
        return weekly

    async def get_overrides(
        self, practitioner_id: str, from_date: date, to_date: date
    ) -> List[AvailabilityOverride]:
        overrides = [
            o
            for o in self._overrides.values()
            if o.practitioner_id == practitioner_id
            and from_date <= o.override_date <= to_date
        ]
        overrides.sort(key=lambda o: (o.override_date, o.start_time or time.min))
        return overrides

    async def create_override(self, override: AvailabilityOverride) -> AvailabilityOverride:
        if not override.practitioner_id:
            raise ValueError("Override needs a practitioner_id")
        stored = override.model_copy(update={"id": override.id or str(uuid4())})
        self._overrides[stored.id] = stored
        return stored

    async def delete_override(self, override_id: str) -> bool:
        return self._overrides.pop(override_id, None) is not None

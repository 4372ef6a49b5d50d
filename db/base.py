"""Storage contracts for bookings and practitioner availability."""

from datetime import date, datetime
from typing import List, Optional, Protocol

from models.availability import AvailabilityOverride, WeeklyAvailability
from models.booking import Booking


class BookingStore(Protocol):
    """
    Durable booking storage.

    Implementations persist whole ``Booking`` records (history included) and
    must reject writes that would overlap a held interval of the same
    practitioner with ``SlotConflictError`` when they can detect it.
    """

    async def insert_booking(self, booking: Booking) -> Booking: ...

    async def update_booking(self, booking: Booking) -> Booking: ...

    async def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    async def list_bookings(
        self, practitioner_id: str, from_date: date, to_date: date
    ) -> List[Booking]: ...

    async def get_bookings_for_reminder(
        self, window_start: datetime, window_end: datetime, tz_name: str
    ) -> List[Booking]: ...

    async def mark_reminder_sent(self, booking_id: str) -> Optional[Booking]: ...


class ProfileStore(Protocol):
    """Practitioner weekly availability and date overrides."""

    async def get_weekly_availability(
        self, practitioner_id: str
    ) -> Optional[WeeklyAvailability]: ...

    async def save_weekly_availability(
        self, practitioner_id: str, weekly: WeeklyAvailability
    ) -> WeeklyAvailability: ...

    async def get_overrides(
        self, practitioner_id: str, from_date: date, to_date: date
    ) -> List[AvailabilityOverride]: ...

    async def create_override(self, override: AvailabilityOverride) -> AvailabilityOverride: ...

    async def delete_override(self, override_id: str) -> bool: ...

"""
Supabase database client.
Backs the booking ledger (``bookings``) and the practitioner profile store
(``doctor_profiles``, ``availability_overrides``).

Double-booking protection:
==========================
The ledger serialises writes per practitioner and date inside one process.
Across processes the ``bookings`` table must reject overlapping held
intervals itself; the client maps the resulting exclusion violation
(SQLSTATE 23P01) to ``SlotConflictError``.

Example constraint (SQL):
-------------------------
CREATE EXTENSION IF NOT EXISTS btree_gist;

ALTER TABLE bookings ADD CONSTRAINT bookings_no_overlap
EXCLUDE USING gist (
    practitioner_id WITH =,
    tsrange(appointment_date + start_time, appointment_date + end_time) WITH &&
)
WHERE (status <> 'cancelled');

This client uses the service key which bypasses RLS. Practitioners should
only be able to update their own ``doctor_profiles`` row and overrides;
configure those policies in the Supabase dashboard.
"""

import asyncio
import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from models.availability import AvailabilityOverride, WeeklyAvailability
from models.booking import Booking, BookingStatus
from scheduling.availability import (
    availability_from_profile,
    format_time,
    legacy_to_record,
    to_legacy,
    weekly_to_record,
)
from utils.datetime_utils import parse_iso_datetime, to_iso_string, utc_now
from utils.exceptions import BookingNotFoundError, DatabaseError, SlotConflictError

logger = logging.getLogger(__name__)

BOOKINGS_TABLE = "bookings"
PROFILES_TABLE = "doctor_profiles"
OVERRIDES_TABLE = "availability_overrides"

EXCLUSION_VIOLATION = "23P01"


def _is_overlap_violation(error: Exception) -> bool:
    code = getattr(error, "code", None)
    return code == EXCLUSION_VIOLATION or EXCLUSION_VIOLATION in str(error)


class SupabaseClient:
    """
    Supabase database client wrapper.

    Implements :class:`db.base.BookingStore` plus the practitioner profile
    operations. The supabase client is synchronous, so each query runs in a
    worker thread; the event loop stays free and the ledger's timeouts apply.
    """

    def __init__(self):
        """
        Initialize Supabase client.

        Note: Uses service_role key which bypasses RLS.
        """
        self.client: SupabaseClientType = create_client(
            settings.supabase_url, settings.supabase_key
        )

    async def _execute(self, query: Any) -> Any:
        """Run a built query off the event loop."""
        return await asyncio.to_thread(query.execute)

    # ========== Booking Operations ==========

    async def insert_booking(self, booking: Booking) -> Booking:
        """Insert a new booking row."""
        try:
            response = await self._execute(
                self.client.table(BOOKINGS_TABLE)
                .insert(self._serialize_booking(booking))
            )

            if not response.data:
                raise ValueError("Failed to create booking: no data returned")

            return self._parse_booking(response.data[0])
        except Exception as e:
            if _is_overlap_violation(e):
                raise SlotConflictError(
                    f"Interval already held for practitioner {booking.practitioner_id}"
                ) from e
            raise DatabaseError(f"Failed to create booking: {e}") from e

    async def update_booking(self, booking: Booking) -> Booking:
        """Rewrite a booking row (status, interval and history together)."""
        try:
            data = self._serialize_booking(booking)
            data.pop("id")
            response = await self._execute(
                self.client.table(BOOKINGS_TABLE)
                .update(data)
                .eq("id", booking.id)
            )
        except Exception as e:
            if _is_overlap_violation(e):
                raise SlotConflictError(
                    f"Interval already held for practitioner {booking.practitioner_id}"
                ) from e
            raise DatabaseError(f"Failed to update booking: {e}") from e

        if not response.data:
            raise BookingNotFoundError(f"Booking {booking.id} not found")
        return self._parse_booking(response.data[0])

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID."""
        try:
            response = await self._execute(
                self.client.table(BOOKINGS_TABLE).select("*").eq("id", booking_id)
            )

            if response.data:
                return self._parse_booking(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get booking: {e}") from e

    async def list_bookings(
        self, practitioner_id: str, from_date: date, to_date: date
    ) -> List[Booking]:
        """All bookings of a practitioner between two dates (inclusive)."""
        try:
            response = await self._execute(
                self.client.table(BOOKINGS_TABLE)
                .select("*")
                .eq("practitioner_id", practitioner_id)
                .gte("appointment_date", from_date.isoformat())
                .lte("appointment_date", to_date.isoformat())
                .order("appointment_date", desc=False)
                .order("start_time", desc=False)
            )

            return [self._parse_booking(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to list bookings: {e}") from e

    async def get_bookings_for_reminder(
        self, window_start: datetime, window_end: datetime, tz_name: str
    ) -> List[Booking]:
        """
        Confirmed bookings without a reminder that start inside the window.

        Narrowed by date in the query, by exact start time in Python.
        """
        try:
            response = await self._execute(
                self.client.table(BOOKINGS_TABLE)
                .select("*")
                .eq("status", BookingStatus.CONFIRMED.value)
                .eq("reminder_sent", False)
                .gte("appointment_date", (window_start.date() - timedelta(days=1)).isoformat())
                .lte("appointment_date", (window_end.date() + timedelta(days=1)).isoformat())
            )

            bookings = []
            for item in response.data:
                booking = self._parse_booking(item)
                if window_start <= booking.as_slot().starts_at(tz_name) <= window_end:
                    bookings.append(booking)

            bookings.sort(key=lambda b: (b.appointment_date, b.start_time))
            return bookings
        except Exception as e:
            raise DatabaseError(f"Failed to get bookings for reminder: {e}") from e

    async def mark_reminder_sent(self, booking_id: str) -> Optional[Booking]:
        """Mark reminder as sent for a booking."""
        try:
            now = utc_now()
            update_data = {
                "reminder_sent": True,
                "reminder_sent_at": to_iso_string(now),
                "updated_at": to_iso_string(now),
            }

            response = await self._execute(
                self.client.table(BOOKINGS_TABLE)
                .update(update_data)
                .eq("id", booking_id)
            )

            if not response.data:
                return None

            return self._parse_booking(response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to mark reminder sent: {e}") from e

    # ========== Practitioner Availability ==========

    async def get_profile(self, practitioner_id: str) -> Optional[Dict[str, Any]]:
        """Raw ``doctor_profiles`` row, or None."""
        try:
            response = await self._execute(
                self.client.table(PROFILES_TABLE)
                .select("*")
                .eq("id", practitioner_id)
            )
        except Exception as e:
            raise DatabaseError(f"Failed to get practitioner profile: {e}") from e

        return response.data[0] if response.data else None

    async def get_weekly_availability(self, practitioner_id: str) -> Optional[WeeklyAvailability]:
        """
        Weekly availability from the canonical column, falling back to the
        legacy ``available_days`` / ``available_hours`` pair.

        Returns:
            None when the practitioner does not exist
        """
        profile = await self.get_profile(practitioner_id)
        if profile is None:
            return None
        return availability_from_profile(profile)

    async def save_weekly_availability(
        self, practitioner_id: str, weekly: WeeklyAvailability
    ) -> WeeklyAvailability:
        """
        Persist canonical availability.

        With ``availability_legacy_mirror`` on, the legacy columns are written
        in the same update.
        """
        data: Dict[str, Any] = {
            "availability": weekly_to_record(weekly),
            "updated_at": to_iso_string(utc_now()),
        }
        if settings.availability_legacy_mirror:
            data.update(legacy_to_record(to_legacy(weekly)))

        try:
            response = await self._execute(
                self.client.table(PROFILES_TABLE)
                .update(data)
                .eq("id", practitioner_id)
            )
        except Exception as e:
            raise DatabaseError(f"Failed to save availability: {e}") from e

        if not response.data:
            raise DatabaseError(f"Practitioner {practitioner_id} not found")

        logger.info(f"Saved weekly availability for practitioner {practitioner_id}")
        return availability_from_profile(response.data[0])

    async def get_overrides(
        self, practitioner_id: str, from_date: date, to_date: date
    ) -> List[AvailabilityOverride]:
        """Date overrides between two dates (inclusive)."""
        try:
            response = await self._execute(
                self.client.table(OVERRIDES_TABLE)
                .select("*")
                .eq("practitioner_id", practitioner_id)
                .gte("override_date", from_date.isoformat())
                .lte("override_date", to_date.isoformat())
                .order("override_date", desc=False)
            )

            return [AvailabilityOverride(**item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to get availability overrides: {e}") from e

    async def create_override(self, override: AvailabilityOverride) -> AvailabilityOverride:
        """Create a date override."""
        if not override.practitioner_id:
            raise ValueError("Override needs a practitioner_id")

        data: Dict[str, Any] = {
            "practitioner_id": override.practitioner_id,
            "override_date": override.override_date.isoformat(),
            "is_available": override.is_available,
            "reason": override.reason,
        }
        if override.start_time is not None:
            data["start_time"] = format_time(override.start_time)
        if override.end_time is not None:
            data["end_time"] = format_time(override.end_time)

        try:
            response = await self._execute(self.client.table(OVERRIDES_TABLE).insert(data))

            if not response.data:
                raise ValueError("Failed to create override: no data returned")

            return AvailabilityOverride(**response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to create availability override: {e}") from e

    async def delete_override(self, override_id: str) -> bool:
        """
        Delete a date override.

        Returns:
            True if a row was deleted
        """
        try:
            response = await self._execute(
                self.client.table(OVERRIDES_TABLE)
                .delete()
                .eq("id", override_id)
            )
            return len(response.data) > 0
        except Exception as e:
            raise DatabaseError(f"Failed to delete availability override: {e}") from e

    # ========== Helper Methods ==========

    def _serialize_booking(self, booking: Booking) -> Dict[str, Any]:
        data = booking.model_dump(mode="json", exclude={"history"})
        data["history"] = [entry.model_dump(mode="json") for entry in booking.history]
        return data

    def _parse_booking(self, item: dict) -> Booking:
        """
        Parse booking data from database response.

        Args:
            item: Raw booking data from database

        Returns:
            Parsed Booking object
        """
        item = item.copy()
        for field in ["reminder_sent_at", "created_at", "updated_at"]:
            if item.get(field):
                item[field] = parse_iso_datetime(item[field])
        history = item.get("history")
        if isinstance(history, str):
            item["history"] = json.loads(history)
        elif history is None:
            item["history"] = []
        return Booking(**item)


# Global database client instance
_db_client: Optional[SupabaseClient] = None


def get_db_client() -> SupabaseClient:
    """Get or create database client instance."""
    global _db_client
    if _db_client is None:
        _db_client = SupabaseClient()
    return _db_client

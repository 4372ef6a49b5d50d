"""
Booking ledger: the single source of truth for committed appointments.

Mutations touching a practitioner's calendar run under an ``asyncio.Lock``
keyed by ``(practitioner_id, date)``; the check for overlapping bookings and
the write happen while that lock is held. Across processes the Supabase store
backs this with a Postgres exclusion constraint (see
``db.supabase_client``), whose violation also surfaces as
``SlotConflictError``.

Every store call is bounded by a timeout and surfaces as
``BookingTimeoutError``. Nothing here retries; ``SlotConflictError`` and
``BookingTimeoutError`` are for the caller to act on.
"""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from typing import AsyncIterator, Awaitable, Dict, List, Optional, Set, Tuple, TypeVar
from uuid import uuid4

from config import settings
from db.base import BookingStore
from models.booking import (
    Booking,
    BookingAction,
    BookingHistoryEntry,
    BookingStatus,
)
from models.slot import Slot
from scheduling.notifications import (
    BookingEvent,
    BookingEventType,
    LoggingDispatcher,
    NotificationDispatcher,
)
from utils.datetime_utils import Clock, utc_now
from utils.exceptions import (
    AlreadyTerminalError,
    BookingNotFoundError,
    BookingTimeoutError,
    InvalidRangeError,
    InvalidTransitionError,
    InvalidWindowError,
    SlotConflictError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CalendarKey = Tuple[str, date]


class BookingLedger:
    """
    Reserve, confirm, cancel and reschedule bookings without double-booking.

    Args:
        store: Booking persistence backend
        notifier: Receives confirm/cancel/reschedule events, fire-and-forget
        clock: Zero-argument callable returning an aware datetime
        timeout_seconds: Default bound for each store call
    """

    def __init__(
        self,
        store: BookingStore,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._store = store
        self._notifier = notifier or LoggingDispatcher()
        self._clock = clock or utc_now
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.store_timeout_seconds
        )
        self._locks: Dict[CalendarKey, asyncio.Lock] = {}
        self._lock_users: Dict[CalendarKey, int] = {}
        self._pending_notifications: Set[asyncio.Task] = set()

    # ========== Helpers ==========

    @asynccontextmanager
    async def _locked(self, key: CalendarKey) -> AsyncIterator[None]:
        """Hold the calendar lock for ``key``; it is dropped once no task holds or awaits it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _call(self, awaitable: Awaitable[T], timeout: Optional[float]) -> T:
        limit = timeout if timeout is not None else self._timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except asyncio.TimeoutError as e:
            raise BookingTimeoutError(
                f"Booking store did not respond within {limit} seconds"
            ) from e

    async def _require(self, booking_id: str, timeout: Optional[float]) -> Booking:
        booking = await self._call(self._store.get_booking(booking_id), timeout)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    async def _find_conflict(
        self,
        slot: Slot,
        timeout: Optional[float],
        ignore_booking_id: Optional[str] = None,
    ) -> Optional[Booking]:
        same_day = await self._call(
            self._store.list_bookings(
                slot.practitioner_id, slot.appointment_date, slot.appointment_date
            ),
            timeout,
        )
        for booking in same_day:
            if booking.id == ignore_booking_id or not booking.holds_interval:
                continue
            if booking.overlaps(slot.appointment_date, slot.start_time, slot.end_time):
                return booking
        return None

    @asynccontextmanager
    async def _holding(
        self, booking_id: str, timeout: Optional[float]
    ) -> AsyncIterator[Booking]:
        """Lock the booking's calendar day and yield a fresh copy read under the lock."""
        while True:
            booking = await self._require(booking_id, timeout)
            key = (booking.practitioner_id, booking.appointment_date)
            async with self._locked(key):
                current = await self._require(booking_id, timeout)
                # Moved by a concurrent reschedule: lock the new day instead
                if (current.practitioner_id, current.appointment_date) != key:
                    continue
                yield current
                return

    def _history_entry(
        self,
        action: BookingAction,
        actor: str,
        from_status: Optional[BookingStatus],
        to_status: BookingStatus,
        reason: Optional[str] = None,
    ) -> BookingHistoryEntry:
        return BookingHistoryEntry(
            timestamp=self._clock(),
            actor=actor,
            action=action,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
        )

    def _notify(self, event: BookingEvent) -> None:
        task = asyncio.create_task(self._deliver(event))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _deliver(self, event: BookingEvent) -> None:
        try:
            await self._notifier.dispatch(event)
        except Exception as e:
            logger.error(
                f"Failed to dispatch {event.type.value} event for booking "
                f"{event.booking.id}: {e}",
                exc_info=True,
            )

    async def drain_notifications(self) -> None:
        """Wait for in-flight notification deliveries (shutdown and tests)."""
        if self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)

    # ========== Reads ==========

    async def get(self, booking_id: str, timeout: Optional[float] = None) -> Booking:
        """Get a booking or raise :class:`BookingNotFoundError`."""
        return await self._require(booking_id, timeout)

    async def list_for_practitioner(
        self,
        practitioner_id: str,
        from_date: date,
        to_date: date,
        timeout: Optional[float] = None,
    ) -> List[Booking]:
        """All bookings of a practitioner between two dates, ordered by date and start time."""
        if from_date > to_date:
            raise InvalidRangeError(
                f"Range start {from_date.isoformat()} is after end {to_date.isoformat()}"
            )
        bookings = await self._call(
            self._store.list_bookings(practitioner_id, from_date, to_date), timeout
        )
        return sorted(bookings, key=lambda b: (b.appointment_date, b.start_time))

    # ========== Mutations ==========

    async def reserve(
        self,
        slot: Slot,
        client_id: str,
        service_type: Optional[str] = None,
        location_type: Optional[str] = None,
        notes: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Booking:
        """
        Hold ``slot`` for ``client_id`` as a pending booking.

        Raises:
            SlotConflictError: If the interval overlaps a held booking
            BookingTimeoutError: If the store does not answer in time
        """
        if not client_id:
            raise ValueError("client_id is required")
        if slot.start_time >= slot.end_time:
            raise InvalidWindowError(f"Slot {slot.label()} does not start before it ends")

        key = (slot.practitioner_id, slot.appointment_date)
        async with self._locked(key):
            conflict = await self._find_conflict(slot, timeout)
            if conflict is not None:
                logger.info(
                    f"Reserve rejected for {slot.label()} "
                    f"(practitioner {slot.practitioner_id}): overlaps {conflict.id}"
                )
                raise SlotConflictError(
                    f"Slot {slot.label()} is no longer available",
                    conflicting_booking_id=conflict.id,
                )

            now = self._clock()
            booking = Booking(
                id=str(uuid4()),
                practitioner_id=slot.practitioner_id,
                client_id=client_id,
                appointment_date=slot.appointment_date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                status=BookingStatus.PENDING,
                service_type=service_type,
                location_type=location_type,
                notes=notes,
                created_at=now,
                updated_at=now,
                history=[
                    self._history_entry(
                        BookingAction.CREATED, client_id, None, BookingStatus.PENDING
                    )
                ],
            )
            booking = await self._call(self._store.insert_booking(booking), timeout)

        logger.info(
            f"Reserved booking {booking.id} for {slot.label()} "
            f"(practitioner {slot.practitioner_id}, client {client_id})"
        )
        return booking

    async def _transition(
        self,
        booking_id: str,
        target: BookingStatus,
        action: BookingAction,
        actor: str,
        reason: Optional[str],
        timeout: Optional[float],
    ) -> Booking:
        async with self._holding(booking_id, timeout) as booking:
            if not booking.can_transition_to(target):
                raise InvalidTransitionError(
                    f"Booking {booking_id} cannot move from {booking.status.value} "
                    f"to {target.value}"
                )
            return await self._write_status(booking, target, action, actor, reason, timeout)

    async def _write_status(
        self,
        booking: Booking,
        target: BookingStatus,
        action: BookingAction,
        actor: str,
        reason: Optional[str],
        timeout: Optional[float],
    ) -> Booking:
        # Caller holds the booking's calendar lock
        entry = self._history_entry(action, actor, booking.status, target, reason)
        updated = booking.model_copy(
            update={
                "status": target,
                "updated_at": entry.timestamp,
                "history": [*booking.history, entry],
            }
        )
        updated = await self._call(self._store.update_booking(updated), timeout)
        logger.info(f"Booking {booking.id} {booking.status.value} -> {target.value} by {actor}")
        return updated

    async def confirm(
        self, booking_id: str, actor: str = "practitioner", timeout: Optional[float] = None
    ) -> Booking:
        """
        Confirm a pending booking.

        Raises:
            BookingNotFoundError, InvalidTransitionError
        """
        booking = await self._transition(
            booking_id,
            BookingStatus.CONFIRMED,
            BookingAction.CONFIRMED,
            actor,
            None,
            timeout,
        )
        self._notify(
            BookingEvent(
                type=BookingEventType.CONFIRMED,
                booking=booking,
                occurred_at=self._clock(),
                actor=actor,
            )
        )
        return booking

    async def cancel(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        actor: str = "client",
        timeout: Optional[float] = None,
    ) -> Booking:
        """
        Cancel a pending or confirmed booking and free its interval.

        Cancelling an already cancelled booking returns it unchanged.

        Raises:
            BookingNotFoundError: If the booking does not exist
            AlreadyTerminalError: If the booking was completed or a no-show
        """
        async with self._holding(booking_id, timeout) as booking:
            if booking.status == BookingStatus.CANCELLED:
                logger.info(f"Booking {booking_id} already cancelled; nothing to do")
                return booking
            if booking.is_terminal:
                raise AlreadyTerminalError(
                    f"Booking {booking_id} is {booking.status.value} and cannot be cancelled"
                )
            cancelled = await self._write_status(
                booking,
                BookingStatus.CANCELLED,
                BookingAction.CANCELLED,
                actor,
                reason,
                timeout,
            )

        self._notify(
            BookingEvent(
                type=BookingEventType.CANCELLED,
                booking=cancelled,
                occurred_at=self._clock(),
                actor=actor,
                reason=reason,
            )
        )
        return cancelled

    async def complete(
        self, booking_id: str, actor: str = "practitioner", timeout: Optional[float] = None
    ) -> Booking:
        """Mark a confirmed booking as attended."""
        return await self._transition(
            booking_id,
            BookingStatus.COMPLETED,
            BookingAction.COMPLETED,
            actor,
            None,
            timeout,
        )

    async def mark_no_show(
        self,
        booking_id: str,
        actor: str = "practitioner",
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Booking:
        """Mark a confirmed booking as missed by the client."""
        return await self._transition(
            booking_id,
            BookingStatus.NO_SHOW,
            BookingAction.NO_SHOW,
            actor,
            reason,
            timeout,
        )

    async def reschedule(
        self,
        booking_id: str,
        new_slot: Slot,
        actor: str = "practitioner",
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Booking:
        """
        Move a booking to ``new_slot`` in a single write.

        Both calendar days are locked (in a fixed order) while the new
        interval is checked and the record is rewritten, so the booking holds
        either its old interval or its new one, never both or neither.

        Raises:
            BookingNotFoundError: If the booking does not exist
            AlreadyTerminalError: If the booking is cancelled, completed or a no-show
            SlotConflictError: If the new interval overlaps another booking;
                the original interval stays held
        """
        if new_slot.start_time >= new_slot.end_time:
            raise InvalidWindowError(f"Slot {new_slot.label()} does not start before it ends")

        while True:
            booking = await self._require(booking_id, timeout)
            if new_slot.practitioner_id != booking.practitioner_id:
                raise InvalidTransitionError(
                    f"Booking {booking_id} cannot move to another practitioner"
                )
            old_key = (booking.practitioner_id, booking.appointment_date)
            new_key = (new_slot.practitioner_id, new_slot.appointment_date)

            async with AsyncExitStack() as stack:
                for key in sorted({old_key, new_key}):
                    await stack.enter_async_context(self._locked(key))

                current = await self._require(booking_id, timeout)
                if (current.practitioner_id, current.appointment_date) != old_key:
                    continue

                if current.is_terminal:
                    raise AlreadyTerminalError(
                        f"Booking {booking_id} is {current.status.value} and cannot be rescheduled"
                    )

                conflict = await self._find_conflict(
                    new_slot, timeout, ignore_booking_id=booking_id
                )
                if conflict is not None:
                    raise SlotConflictError(
                        f"Slot {new_slot.label()} is no longer available",
                        conflicting_booking_id=conflict.id,
                    )

                previous = current.as_slot()
                entry = self._history_entry(
                    BookingAction.RESCHEDULED,
                    actor,
                    current.status,
                    current.status,
                    reason or f"Moved from {previous.label()} to {new_slot.label()}",
                )
                moved = current.model_copy(
                    update={
                        "appointment_date": new_slot.appointment_date,
                        "start_time": new_slot.start_time,
                        "end_time": new_slot.end_time,
                        "reminder_sent": False,
                        "reminder_sent_at": None,
                        "updated_at": entry.timestamp,
                        "history": [*current.history, entry],
                    }
                )
                moved = await self._call(self._store.update_booking(moved), timeout)
                break

        logger.info(
            f"Rescheduled booking {booking_id} from {previous.label()} to {new_slot.label()}"
        )
        self._notify(
            BookingEvent(
                type=BookingEventType.RESCHEDULED,
                booking=moved,
                occurred_at=self._clock(),
                actor=actor,
                reason=reason,
                previous_slot=previous,
            )
        )
        return moved

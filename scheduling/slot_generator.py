"""
Slot generation from weekly availability and date overrides.

For each date in the horizon the effective opening windows are computed
(overrides replace the weekly template for their date), split into
consecutive slots of a fixed duration, and filtered against held bookings
and the lead-time cutoff. Output is sorted by (date, start time) and depends
only on the inputs and the injected clock.
"""

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from config import settings
from models.availability import AvailabilityOverride, WeeklyAvailability
from models.booking import Booking
from models.slot import Slot
from utils.datetime_utils import (
    Clock,
    iter_dates,
    minutes_of,
    time_from_minutes,
    utc_now,
)
from utils.exceptions import (
    HorizonTooLargeError,
    InvalidRangeError,
    InvalidWindowError,
)

if TYPE_CHECKING:
    from scheduling.ledger import BookingLedger

logger = logging.getLogger(__name__)

# (start, end) in minutes since midnight, half-open
Interval = Tuple[int, int]


def _merge(intervals: Iterable[Interval]) -> List[Interval]:
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _subtract(windows: List[Interval], blocked: List[Interval]) -> List[Interval]:
    result = []
    for start, end in windows:
        pieces = [(start, end)]
        for b_start, b_end in blocked:
            next_pieces = []
            for p_start, p_end in pieces:
                if b_end <= p_start or b_start >= p_end:
                    next_pieces.append((p_start, p_end))
                    continue
                if p_start < b_start:
                    next_pieces.append((p_start, b_start))
                if b_end < p_end:
                    next_pieces.append((b_end, p_end))
            pieces = next_pieces
        result.extend(pieces)
    return result


def effective_windows(
    day: date,
    weekly: WeeklyAvailability,
    overrides: Sequence[AvailabilityOverride],
) -> List[Interval]:
    """
    Opening windows for one date.

    Without overrides this is the weekly window for the weekday, if enabled.
    With overrides the weekly template is ignored: available overrides open
    their interval (or the weekday's template hours when they carry no
    times), unavailable overrides close their interval or the whole date.

    Raises:
        InvalidWindowError: If a window does not start before it ends
    """
    template = weekly.window_for_date(day)

    if not overrides:
        if not template.enabled:
            return []
        if template.start_time >= template.end_time:
            raise InvalidWindowError(f"{day.isoformat()}: weekly window is empty")
        return [(minutes_of(template.start_time), minutes_of(template.end_time))]

    opened: List[Interval] = []
    blocked: List[Interval] = []
    for override in overrides:
        if override.is_whole_day:
            if not override.is_available:
                return []
            interval = (minutes_of(template.start_time), minutes_of(template.end_time))
        else:
            interval = (minutes_of(override.start_time), minutes_of(override.end_time))

        if interval[0] >= interval[1]:
            raise InvalidWindowError(
                f"{day.isoformat()}: override window must start before it ends"
            )
        (opened if override.is_available else blocked).append(interval)

    return _subtract(_merge(opened), _merge(blocked))


class SlotGenerator:
    """
    Expands availability into bookable slots.

    Args:
        max_horizon_days: Largest inclusive date span accepted
        min_lead_time: Minimum notice between "now" and a slot start
        clock: Zero-argument callable returning an aware datetime
        timezone: IANA zone the practitioner's wall-clock times are in
    """

    def __init__(
        self,
        max_horizon_days: Optional[int] = None,
        min_lead_time: Optional[timedelta] = None,
        clock: Optional[Clock] = None,
        timezone: Optional[str] = None,
    ):
        self.max_horizon_days = (
            max_horizon_days if max_horizon_days is not None else settings.max_horizon_days
        )
        self.min_lead_time = (
            min_lead_time
            if min_lead_time is not None
            else timedelta(minutes=settings.min_lead_time_minutes)
        )
        self.clock = clock or utc_now
        self.timezone = timezone or settings.timezone

    def check_horizon(self, from_date: date, to_date: date) -> None:
        """
        Raises:
            InvalidRangeError: If ``from_date`` is after ``to_date``
            HorizonTooLargeError: If the span exceeds ``max_horizon_days``
        """
        if from_date > to_date:
            raise InvalidRangeError(
                f"Range start {from_date.isoformat()} is after end {to_date.isoformat()}"
            )
        span = (to_date - from_date).days + 1
        if span > self.max_horizon_days:
            raise HorizonTooLargeError(
                f"Requested {span} days; the maximum horizon is {self.max_horizon_days} days"
            )

    def generate(
        self,
        practitioner_id: str,
        weekly: WeeklyAvailability,
        overrides: Sequence[AvailabilityOverride],
        duration_minutes: int,
        from_date: date,
        to_date: date,
        existing_bookings: Iterable[Booking] = (),
    ) -> List[Slot]:
        """
        Produce every bookable slot between two dates, inclusive.

        Args:
            practitioner_id: Practitioner the slots belong to
            weekly: Recurring weekly template
            overrides: Date-specific exceptions (other dates are ignored)
            duration_minutes: Length of each slot; a shorter tail is dropped
            from_date: First date of the horizon
            to_date: Last date of the horizon
            existing_bookings: Bookings whose held intervals are excluded

        Returns:
            Slots sorted by date then start time

        Raises:
            InvalidRangeError, HorizonTooLargeError, InvalidWindowError
        """
        self.check_horizon(from_date, to_date)
        if duration_minutes <= 0:
            raise InvalidWindowError(f"Slot duration must be positive, got {duration_minutes}")

        overrides_by_date: Dict[date, List[AvailabilityOverride]] = {}
        for override in overrides:
            if from_date <= override.override_date <= to_date:
                overrides_by_date.setdefault(override.override_date, []).append(override)

        held: Dict[date, List[Interval]] = {}
        for booking in existing_bookings:
            if booking.practitioner_id != practitioner_id or not booking.holds_interval:
                continue
            held.setdefault(booking.appointment_date, []).append(
                (minutes_of(booking.start_time), minutes_of(booking.end_time))
            )

        earliest_start = self.clock() + self.min_lead_time

        slots: List[Slot] = []
        for day in iter_dates(from_date, to_date):
            windows = effective_windows(day, weekly, overrides_by_date.get(day, ()))
            busy = held.get(day, [])

            for window_start, window_end in windows:
                start = window_start
                while start + duration_minutes <= window_end:
                    end = start + duration_minutes
                    if not any(b_start < end and start < b_end for b_start, b_end in busy):
                        slot = Slot(
                            practitioner_id=practitioner_id,
                            appointment_date=day,
                            start_time=time_from_minutes(start),
                            end_time=time_from_minutes(end),
                        )
                        if slot.starts_at(self.timezone) >= earliest_start:
                            slots.append(slot)
                    start = end

        slots.sort(key=lambda s: (s.appointment_date, s.start_time))
        logger.debug(
            f"Generated {len(slots)} slots for practitioner {practitioner_id} "
            f"from {from_date.isoformat()} to {to_date.isoformat()}"
        )
        return slots

    async def find_available_slots(
        self,
        ledger: "BookingLedger",
        practitioner_id: str,
        weekly: WeeklyAvailability,
        overrides: Sequence[AvailabilityOverride],
        duration_minutes: int,
        from_date: date,
        to_date: date,
        timeout: Optional[float] = None,
        ignore_booking_id: Optional[str] = None,
    ) -> List[Slot]:
        """
        Generate slots, excluding intervals held in the ledger.

        ``ignore_booking_id`` leaves that booking's own interval bookable, for
        offering it a new time.
        """
        self.check_horizon(from_date, to_date)
        bookings = await ledger.list_for_practitioner(
            practitioner_id, from_date, to_date, timeout=timeout
        )
        if ignore_booking_id is not None:
            bookings = [b for b in bookings if b.id != ignore_booking_id]
        return self.generate(
            practitioner_id,
            weekly,
            overrides,
            duration_minutes,
            from_date,
            to_date,
            existing_bookings=bookings,
        )

    async def find_next_available(
        self,
        ledger: "BookingLedger",
        practitioner_id: str,
        weekly: WeeklyAvailability,
        overrides: Sequence[AvailabilityOverride],
        duration_minutes: int,
        from_date: date,
        search_days: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Slot]:
        """First bookable slot within ``search_days`` of ``from_date``, if any."""
        days = search_days or settings.next_available_search_days
        days = min(days, self.max_horizon_days)
        slots = await self.find_available_slots(
            ledger,
            practitioner_id,
            weekly,
            overrides,
            duration_minutes,
            from_date,
            from_date + timedelta(days=days - 1),
            timeout=timeout,
        )
        return slots[0] if slots else None

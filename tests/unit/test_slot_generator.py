"""
Unit tests for slot generation.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from models.availability import AvailabilityOverride, DayOfWeek, DayWindow, WeeklyAvailability
from models.booking import Booking, BookingStatus
from models.slot import Slot
from scheduling.slot_generator import SlotGenerator, effective_windows
from utils.datetime_utils import fixed_clock
from utils.exceptions import HorizonTooLargeError, InvalidRangeError, InvalidWindowError

MONDAY = date(2024, 1, 1)
PRACTITIONER = "doc-1"


def _starts(slots):
    return [slot.start_time for slot in slots]


def _booking(start, end, status=BookingStatus.PENDING, day=MONDAY, booking_id="b-1"):
    return Booking(
        id=booking_id,
        practitioner_id=PRACTITIONER,
        client_id="client-1",
        appointment_date=day,
        start_time=start,
        end_time=end,
        status=status,
    )


class TestGenerate:
    def test_monday_morning_half_hour_slots(self, generator, monday_morning):
        slots = generator.generate(PRACTITIONER, monday_morning, [], 30, MONDAY, MONDAY)

        assert _starts(slots) == [
            time(9, 0), time(9, 30), time(10, 0), time(10, 30), time(11, 0), time(11, 30)
        ]
        assert all(slot.duration_minutes == 30 for slot in slots)
        assert all(slot.practitioner_id == PRACTITIONER for slot in slots)

    def test_short_tail_dropped(self, generator, monday_morning):
        slots = generator.generate(PRACTITIONER, monday_morning, [], 50, MONDAY, MONDAY)

        assert _starts(slots) == [time(9, 0), time(9, 50), time(10, 40)]
        assert slots[-1].end_time == time(11, 30)

    def test_disabled_days_produce_nothing(self, generator, monday_morning):
        tuesday = MONDAY + timedelta(days=1)
        assert generator.generate(PRACTITIONER, monday_morning, [], 30, tuesday, tuesday) == []

    def test_whole_day_unavailable_override(self, generator, monday_morning):
        override = AvailabilityOverride(override_date=MONDAY, is_available=False)

        slots = generator.generate(PRACTITIONER, monday_morning, [override], 30, MONDAY, MONDAY)

        assert slots == []

    def test_override_on_other_date_ignored(self, generator, monday_morning):
        override = AvailabilityOverride(override_date=date(2024, 2, 5), is_available=False)

        slots = generator.generate(PRACTITIONER, monday_morning, [override], 30, MONDAY, MONDAY)

        assert len(slots) == 6

    def test_partial_unavailable_override_alone_closes_date(self, generator, monday_morning):
        override = AvailabilityOverride(
            override_date=MONDAY,
            start_time=time(10),
            end_time=time(11),
            is_available=False,
        )

        slots = generator.generate(PRACTITIONER, monday_morning, [override], 30, MONDAY, MONDAY)

        assert slots == []

    def test_available_override_with_break(self, generator, monday_morning):
        sunday = date(2024, 1, 7)
        overrides = [
            AvailabilityOverride(
                override_date=sunday, start_time=time(13), end_time=time(17), is_available=True
            ),
            AvailabilityOverride(
                override_date=sunday, start_time=time(14), end_time=time(15), is_available=False
            ),
        ]

        slots = generator.generate(PRACTITIONER, monday_morning, overrides, 30, sunday, sunday)

        assert _starts(slots) == [
            time(13, 0), time(13, 30), time(15, 0), time(15, 30), time(16, 0), time(16, 30)
        ]

    def test_whole_day_available_override_opens_template_hours(self, generator, monday_morning):
        tuesday = MONDAY + timedelta(days=1)
        override = AvailabilityOverride(override_date=tuesday, is_available=True)

        slots = generator.generate(PRACTITIONER, monday_morning, [override], 60, tuesday, tuesday)

        # Tuesday is disabled but keeps the default 09:00-17:00 hours
        assert _starts(slots)[0] == time(9)
        assert slots[-1].end_time == time(17)
        assert len(slots) == 8

    def test_held_bookings_excluded(self, generator, monday_morning):
        bookings = [
            _booking(time(10), time(10, 30)),
            _booking(time(11), time(11, 30), status=BookingStatus.CANCELLED, booking_id="b-2"),
        ]

        slots = generator.generate(
            PRACTITIONER, monday_morning, [], 30, MONDAY, MONDAY, existing_bookings=bookings
        )

        assert time(10) not in _starts(slots)
        assert time(11) in _starts(slots)
        assert len(slots) == 5

    def test_partial_overlap_excludes_slot(self, generator, monday_morning):
        bookings = [_booking(time(9, 15), time(9, 45))]

        slots = generator.generate(
            PRACTITIONER, monday_morning, [], 30, MONDAY, MONDAY, existing_bookings=bookings
        )

        assert time(9) not in _starts(slots)
        assert time(9, 30) not in _starts(slots)

    def test_other_practitioners_bookings_ignored(self, generator, monday_morning):
        other = _booking(time(9), time(9, 30)).model_copy(update={"practitioner_id": "doc-2"})

        slots = generator.generate(
            PRACTITIONER, monday_morning, [], 30, MONDAY, MONDAY, existing_bookings=[other]
        )

        assert len(slots) == 6

    def test_lead_time_cutoff_is_inclusive(self, monday_morning):
        generator = SlotGenerator(
            max_horizon_days=90,
            min_lead_time=timedelta(minutes=60),
            clock=fixed_clock(datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)),
            timezone="Europe/London",
        )

        slots = generator.generate(PRACTITIONER, monday_morning, [], 30, MONDAY, MONDAY)

        assert _starts(slots)[0] == time(9, 30)
        assert len(slots) == 5

    def test_lead_time_respects_summer_time(self, monday_morning):
        # 07:30 UTC is 08:30 in London during BST
        generator = SlotGenerator(
            max_horizon_days=90,
            min_lead_time=timedelta(minutes=60),
            clock=fixed_clock(datetime(2024, 7, 1, 7, 30, tzinfo=timezone.utc)),
            timezone="Europe/London",
        )
        day = date(2024, 7, 1)

        slots = generator.generate(PRACTITIONER, monday_morning, [], 30, day, day)

        assert _starts(slots)[0] == time(9, 30)

    def test_multiple_days_sorted(self, generator, weekdays):
        slots = generator.generate(PRACTITIONER, weekdays, [], 30, MONDAY, date(2024, 1, 7))

        assert len(slots) == 5 * 16
        keys = [(s.appointment_date, s.start_time) for s in slots]
        assert keys == sorted(keys)

    def test_deterministic(self, generator, weekdays):
        first = generator.generate(PRACTITIONER, weekdays, [], 45, MONDAY, date(2024, 1, 14))
        second = generator.generate(PRACTITIONER, weekdays, [], 45, MONDAY, date(2024, 1, 14))

        assert first == second


class TestRanges:
    def test_reversed_range(self, generator, weekdays):
        with pytest.raises(InvalidRangeError):
            generator.generate(PRACTITIONER, weekdays, [], 30, date(2024, 1, 10), date(2024, 1, 1))

    def test_horizon_limit(self, generator, weekdays):
        # 2024-01-01 .. 2024-03-30 is exactly 90 days
        generator.check_horizon(MONDAY, date(2024, 3, 30))
        with pytest.raises(HorizonTooLargeError):
            generator.generate(PRACTITIONER, weekdays, [], 30, MONDAY, date(2024, 3, 31))

    @pytest.mark.parametrize("duration", [0, -30])
    def test_non_positive_duration(self, generator, weekdays, duration):
        with pytest.raises(InvalidWindowError):
            generator.generate(PRACTITIONER, weekdays, [], duration, MONDAY, MONDAY)


class TestEffectiveWindows:
    def test_inverted_override(self, monday_morning):
        override = AvailabilityOverride(
            override_date=MONDAY, start_time=time(12), end_time=time(10), is_available=True
        )
        with pytest.raises(InvalidWindowError):
            effective_windows(MONDAY, monday_morning, [override])

    def test_overlapping_available_overrides_merge(self):
        weekly = WeeklyAvailability.from_days(
            {DayOfWeek.MONDAY: DayWindow(enabled=True, start_time=time(9), end_time=time(17))}
        )
        overrides = [
            AvailabilityOverride(
                override_date=MONDAY, start_time=time(9), end_time=time(11), is_available=True
            ),
            AvailabilityOverride(
                override_date=MONDAY, start_time=time(10), end_time=time(12), is_available=True
            ),
        ]

        assert effective_windows(MONDAY, weekly, overrides) == [(9 * 60, 12 * 60)]


class TestLedgerBackedSearch:
    @pytest.mark.asyncio
    async def test_find_available_slots_skips_reserved(self, generator, ledger, monday_morning):
        slot = Slot(
            practitioner_id=PRACTITIONER,
            appointment_date=MONDAY,
            start_time=time(9),
            end_time=time(9, 30),
        )
        await ledger.reserve(slot, "client-1")

        slots = await generator.find_available_slots(
            ledger, PRACTITIONER, monday_morning, [], 30, MONDAY, MONDAY
        )

        assert slot not in slots
        assert len(slots) == 5

    @pytest.mark.asyncio
    async def test_ignored_booking_frees_its_interval(self, generator, ledger, monday_morning):
        slot = Slot(
            practitioner_id=PRACTITIONER,
            appointment_date=MONDAY,
            start_time=time(9),
            end_time=time(9, 30),
        )
        booking = await ledger.reserve(slot, "client-1")

        slots = await generator.find_available_slots(
            ledger, PRACTITIONER, monday_morning, [], 60, MONDAY, MONDAY,
            ignore_booking_id=booking.id,
        )

        assert [s.start_time for s in slots] == [time(9), time(10), time(11)]

    @pytest.mark.asyncio
    async def test_find_next_available(self, generator, ledger, monday_morning):
        slot = await generator.find_next_available(
            ledger, PRACTITIONER, monday_morning, [], 30, date(2024, 1, 2)
        )

        assert slot is not None
        assert slot.appointment_date == date(2024, 1, 8)
        assert slot.start_time == time(9)

    @pytest.mark.asyncio
    async def test_find_next_available_none_in_window(self, generator, ledger, monday_morning):
        slot = await generator.find_next_available(
            ledger, PRACTITIONER, monday_morning, [], 30, date(2024, 1, 2), search_days=3
        )

        assert slot is None

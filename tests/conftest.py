"""
Pytest configuration and shared fixtures.
"""

import os

# Settings are read at import time; pin the ones tests depend on
os.environ.setdefault("BOOKING_BACKEND", "memory")
os.environ.setdefault("TIMEZONE", "Europe/London")
os.environ.setdefault("AVAILABILITY_LEGACY_MIRROR", "true")

from datetime import datetime, time, timedelta, timezone  # noqa: E402
from typing import List  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from db.memory_store import InMemoryBookingStore, InMemoryProfileStore  # noqa: E402
from models.availability import DayOfWeek, DayWindow, WeeklyAvailability  # noqa: E402
from scheduling.ledger import BookingLedger  # noqa: E402
from scheduling.notifications import BookingEvent  # noqa: E402
from scheduling.slot_generator import SlotGenerator  # noqa: E402
from utils.datetime_utils import fixed_clock  # noqa: E402

# 2024-01-01 is a Monday; Europe/London is on UTC in January
NOW = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


class RecordingDispatcher:
    """Collects dispatched events for assertions."""

    def __init__(self):
        self.events: List[BookingEvent] = []

    async def dispatch(self, event: BookingEvent) -> None:
        self.events.append(event)


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def monday_morning():
    """Monday 09:00-12:00, every other day closed."""
    return WeeklyAvailability.from_days(
        {DayOfWeek.MONDAY: DayWindow(enabled=True, start_time=time(9), end_time=time(12))}
    )


@pytest.fixture
def weekdays():
    """Monday to Friday 09:00-17:00."""
    window = DayWindow(enabled=True, start_time=time(9), end_time=time(17))
    return WeeklyAvailability.from_days(
        {
            day: window
            for day in (
                DayOfWeek.MONDAY,
                DayOfWeek.TUESDAY,
                DayOfWeek.WEDNESDAY,
                DayOfWeek.THURSDAY,
                DayOfWeek.FRIDAY,
            )
        }
    )


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def profile_store():
    return InMemoryProfileStore()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def ledger(store, dispatcher, clock):
    return BookingLedger(store, notifier=dispatcher, clock=clock, timeout_seconds=1.0)


@pytest.fixture
def generator(clock):
    return SlotGenerator(
        max_horizon_days=90,
        min_lead_time=timedelta(minutes=60),
        clock=clock,
        timezone="Europe/London",
    )


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    mock_client.table.return_value = mock_table
    return mock_client, mock_table

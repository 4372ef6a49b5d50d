"""Availability, slot generation, booking ledger and booking workflow."""

from .availability import availability_from_profile, from_legacy, parse_time, to_legacy
from .notifications import BookingEvent, BookingEventType, LoggingDispatcher
from .slot_generator import SlotGenerator
from .ledger import BookingLedger
from .states import WorkflowStep
from .workflow import BookingDraft, BookingWorkflow, CommitResult

__all__ = [
    "availability_from_profile",
    "from_legacy",
    "parse_time",
    "to_legacy",
    "BookingEvent",
    "BookingEventType",
    "LoggingDispatcher",
    "SlotGenerator",
    "BookingLedger",
    "WorkflowStep",
    "BookingDraft",
    "BookingWorkflow",
    "CommitResult",
]

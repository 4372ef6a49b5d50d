"""
Custom exception classes for better error handling.
Provides specific error types instead of generic exceptions.
"""

from typing import Dict, List, Optional


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class SchedulingError(Exception):
    """Base exception for input-driven availability and slot errors.

    These are deterministic: retrying with the same input fails the same way.
    """

    pass


class InvalidTimeFormatError(SchedulingError):
    """Raised when a time string cannot be parsed."""

    pass


class InvalidWindowError(SchedulingError):
    """Raised when an enabled window does not start before it ends."""

    pass


class InvalidRangeError(SchedulingError):
    """Raised when a date range starts after it ends."""

    pass


class HorizonTooLargeError(SchedulingError):
    """Raised when a slot horizon exceeds the configured maximum."""

    pass


class BookingError(Exception):
    """Base exception for booking ledger operations."""

    pass


class SlotConflictError(BookingError):
    """Raised when a requested interval overlaps a held booking."""

    def __init__(self, message: str, conflicting_booking_id: Optional[str] = None):
        super().__init__(message)
        self.conflicting_booking_id = conflicting_booking_id


class BookingNotFoundError(BookingError):
    """Raised when a booking is not found."""

    pass


class InvalidTransitionError(BookingError):
    """Raised when a status change is not allowed from the current status."""

    pass


class AlreadyTerminalError(BookingError):
    """Raised when mutating a cancelled, completed or no-show booking."""

    pass


class BookingTimeoutError(BookingError):
    """Raised when the booking store does not answer within the timeout."""

    pass


class ValidationFailedError(Exception):
    """Raised when a booking workflow step gate rejects the draft.

    Attributes:
        step: Step whose gate failed
        errors: Field name -> list of human readable messages
    """

    def __init__(self, step: str, errors: Dict[str, List[str]]):
        self.step = step
        self.errors = errors
        summary = "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in errors.items()
        )
        super().__init__(f"Step '{step}' is incomplete: {summary}")

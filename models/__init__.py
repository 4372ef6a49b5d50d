"""Pydantic models for data validation and serialization."""

from .availability import (
    AvailabilityOverride,
    DayOfWeek,
    DayWindow,
    HoursPair,
    LegacyAvailability,
    LegacyHours,
    WeeklyAvailability,
)
from .booking import (
    Booking,
    BookingAction,
    BookingHistoryEntry,
    BookingStatus,
    TERMINAL_STATUSES,
)
from .client import Address, ClientDetails, EmergencyContact, SexAtBirth
from .service import LocationType, Service, ServiceType
from .slot import Slot

__all__ = [
    "Address",
    "AvailabilityOverride",
    "Booking",
    "BookingAction",
    "BookingHistoryEntry",
    "BookingStatus",
    "ClientDetails",
    "DayOfWeek",
    "DayWindow",
    "EmergencyContact",
    "HoursPair",
    "LegacyAvailability",
    "LegacyHours",
    "LocationType",
    "Service",
    "ServiceType",
    "SexAtBirth",
    "Slot",
    "TERMINAL_STATUSES",
    "WeeklyAvailability",
]

"""Booking events handed to the notification dispatcher."""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict

from models.booking import Booking
from models.slot import Slot

logger = logging.getLogger(__name__)


class BookingEventType(str, Enum):
    """Lifecycle moments the outside world is told about."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    REMINDER = "reminder"


class BookingEvent(BaseModel):
    """A notification about one booking."""

    model_config = ConfigDict(frozen=True)

    type: BookingEventType
    booking: Booking
    occurred_at: datetime
    actor: Optional[str] = None
    reason: Optional[str] = None
    previous_slot: Optional[Slot] = None


class NotificationDispatcher(Protocol):
    """Delivers booking events (email, SMS, push). Delivery is not awaited by the ledger."""

    async def dispatch(self, event: BookingEvent) -> None: ...


class LoggingDispatcher:
    """Dispatcher that only logs; used when no delivery channel is wired."""

    async def dispatch(self, event: BookingEvent) -> None:
        logger.info(
            f"Booking {event.booking.id} {event.type.value}: "
            f"{event.booking.as_slot().label()} (client {event.booking.client_id})"
        )

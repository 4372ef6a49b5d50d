"""
Scheduler for appointment reminders using APScheduler.
Sends reminder events for confirmed bookings starting within
``reminder_hours_before`` hours.
"""

import logging
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import settings
from db.base import BookingStore
from scheduling.notifications import (
    BookingEvent,
    BookingEventType,
    LoggingDispatcher,
    NotificationDispatcher,
)
from utils.datetime_utils import Clock, utc_now
from utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone=settings.timezone)


async def send_reminder(
    store: BookingStore,
    dispatcher: NotificationDispatcher,
    event: BookingEvent,
) -> bool:
    """
    Dispatch one reminder event and mark the booking as reminded.

    Returns:
        True if sent and marked, False otherwise
    """
    booking = event.booking
    try:
        await dispatcher.dispatch(event)

        updated_booking = await store.mark_reminder_sent(booking.id)
        if not updated_booking:
            logger.warning(f"Failed to mark reminder as sent for booking {booking.id}")
            return False

        logger.info(
            f"Reminder sent for booking {booking.id} ({booking.as_slot().label()})"
        )
        return True

    except Exception as e:
        logger.error(f"Failed to send reminder for booking {booking.id}: {e}", exc_info=True)
        return False


async def check_and_send_reminders(
    store: BookingStore,
    dispatcher: Optional[NotificationDispatcher] = None,
    clock: Optional[Clock] = None,
    hours_before: Optional[int] = None,
) -> int:
    """
    Check for bookings that need reminders and send them.

    Returns:
        Number of reminders sent
    """
    dispatcher = dispatcher or LoggingDispatcher()
    now = (clock or utc_now)()
    hours = hours_before if hours_before is not None else settings.reminder_hours_before

    try:
        bookings = await store.get_bookings_for_reminder(
            now, now + timedelta(hours=hours), settings.timezone
        )
    except DatabaseError as e:
        logger.error(f"Database error checking reminders: {e}", exc_info=True)
        return 0
    except Exception as e:
        logger.error(f"Unexpected error checking reminders: {e}", exc_info=True)
        return 0

    if not bookings:
        logger.debug("No bookings require reminders at this time")
        return 0

    logger.info(f"Processing {len(bookings)} bookings for reminders")

    sent_count = 0
    for booking in bookings:
        event = BookingEvent(
            type=BookingEventType.REMINDER,
            booking=booking,
            occurred_at=now,
            actor="scheduler",
        )
        if await send_reminder(store, dispatcher, event):
            sent_count += 1

    logger.info(
        f"Reminder processing complete: {sent_count} sent, "
        f"{len(bookings) - sent_count} failed"
    )
    return sent_count


def setup_scheduler(
    store: BookingStore, dispatcher: Optional[NotificationDispatcher] = None
) -> AsyncIOScheduler:
    """Register the hourly reminder job and start the scheduler."""
    scheduler.add_job(
        check_and_send_reminders,
        trigger=CronTrigger(minute=0),  # Every hour at minute 0
        kwargs={"store": store, "dispatcher": dispatcher},
        id="check_reminders",
        name="Check and send appointment reminders",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started")
    return scheduler


def shutdown_scheduler():
    """Shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")

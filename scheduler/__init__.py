"""Task scheduler for appointment reminders."""

from .reminders import (
    check_and_send_reminders,
    send_reminder,
    setup_scheduler,
    shutdown_scheduler,
)

__all__ = [
    "check_and_send_reminders",
    "setup_scheduler",
    "send_reminder",
    "shutdown_scheduler",
]

"""
HTTP API for practitioner availability and bookings.

Routes:
- GET  /health
- GET  /practitioners/{practitioner_id}/slots
- GET  /practitioners/{practitioner_id}/next-available
- POST /bookings
- GET  /bookings/{booking_id}
- POST /bookings/{booking_id}/{action}   (confirm, cancel, complete, no-show, reschedule)

Scheduling and booking errors are mapped to JSON error responses by
``error_middleware``.
"""

import json
import logging
import time
from datetime import date, timedelta
from datetime import time as dt_time
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from aiohttp import web
from aiohttp.web import Request, Response
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from config import settings
from db import ProfileStore, get_booking_store, get_profile_store
from models.service import SERVICES, LocationType, ServiceType
from models.slot import Slot
from scheduler import setup_scheduler, shutdown_scheduler
from scheduling.ledger import BookingLedger
from scheduling.slot_generator import SlotGenerator
from utils.datetime_utils import minutes_of, time_from_minutes
from utils.exceptions import (
    AlreadyTerminalError,
    BookingNotFoundError,
    BookingTimeoutError,
    DatabaseError,
    InvalidTransitionError,
    SchedulingError,
    SlotConflictError,
    ValidationFailedError,
)
from utils.logging_config import configure_package_logging
from utils.validation import sanitize_text

# Fixed name: run as a script, __name__ is "__main__"
logger = logging.getLogger("api")

MAX_REQUEST_SIZE = 1024 * 1024  # 1MB max request body size
MAX_NOTES_LENGTH = 1000

LEDGER = web.AppKey("ledger", BookingLedger)
GENERATOR = web.AppKey("generator", SlotGenerator)
PROFILES = web.AppKey("profiles", ProfileStore)
STARTED_AT = web.AppKey("started_at", float)

# Most specific first
ERROR_RESPONSES = [
    (SlotConflictError, 409, "slot_conflict"),
    (AlreadyTerminalError, 409, "already_terminal"),
    (InvalidTransitionError, 409, "invalid_transition"),
    (BookingNotFoundError, 404, "not_found"),
    (ValidationFailedError, 422, "validation_failed"),
    (SchedulingError, 422, "invalid_request"),
    (BookingTimeoutError, 504, "timeout"),
    (DatabaseError, 503, "unavailable"),
]


class BookingRequest(BaseModel):
    """Body of ``POST /bookings``."""

    practitioner_id: str = Field(..., min_length=1)
    client_id: str = Field(..., min_length=1)
    appointment_date: date
    start_time: dt_time
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    service_type: Optional[ServiceType] = None
    location_type: Optional[LocationType] = None
    notes: Optional[str] = None


class BookingActionRequest(BaseModel):
    """Body of ``POST /bookings/{booking_id}/{action}``; every field optional."""

    actor: Optional[str] = None
    reason: Optional[str] = None
    appointment_date: Optional[date] = None
    start_time: Optional[dt_time] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)


def _error_response(status: int, error: str, message: str, **extra: Any) -> Response:
    return web.json_response(
        {"status": "error", "error": error, "message": message, **extra},
        status=status,
    )


@web.middleware
async def security_headers_middleware(request: Request, handler):
    """Add security headers to all responses."""
    response = await handler(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = (
        "max-age=31536000; includeSubDomains"
    )
    response.headers["Cache-Control"] = "no-store"

    return response


@web.middleware
async def error_middleware(request: Request, handler):
    """Translate scheduling and booking errors into JSON responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except PydanticValidationError as e:
        return _error_response(
            422,
            "validation_failed",
            "Request body is invalid",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        )
    except json.JSONDecodeError:
        return _error_response(400, "invalid_json", "Request body is not valid JSON")
    except tuple(cls for cls, _, _ in ERROR_RESPONSES) as e:
        for cls, status, error in ERROR_RESPONSES:
            if isinstance(e, cls):
                break
        if status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e}", exc_info=True)
            message = "Service temporarily unavailable, please retry or contact support"
        else:
            logger.info(f"{request.method} {request.path} rejected: {e}")
            message = str(e)

        extra: Dict[str, Any] = {}
        if isinstance(e, ValidationFailedError):
            extra = {"step": e.step, "errors": e.errors}
        elif isinstance(e, SlotConflictError) and e.conflicting_booking_id:
            extra = {"conflicting_booking_id": e.conflicting_booking_id}
        return _error_response(status, error, message, **extra)


# ========== Request helpers ==========


def _query_date(request: Request, name: str, default: date) -> date:
    raw = request.query.get(name)
    if not raw:
        return default
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationFailedError(
            "request", {name: [f"'{raw}' is not a YYYY-MM-DD date"]}
        ) from e


def _duration(explicit: Optional[int], service: Optional[ServiceType]) -> int:
    if explicit:
        return explicit
    if service is not None:
        return SERVICES[service].duration_minutes
    return settings.default_slot_duration_minutes


def _query_duration(request: Request) -> int:
    raw_duration = request.query.get("duration")
    raw_service = request.query.get("service")
    errors = {}
    explicit = None
    service = None
    if raw_duration:
        try:
            explicit = int(raw_duration)
        except ValueError:
            errors["duration"] = [f"'{raw_duration}' is not a whole number of minutes"]
    if raw_service:
        try:
            service = ServiceType(raw_service)
        except ValueError:
            errors["service"] = [f"Unknown service '{raw_service}'"]
    if errors:
        raise ValidationFailedError("request", errors)
    return _duration(explicit, service)


def _today(generator: SlotGenerator) -> date:
    return generator.clock().astimezone(ZoneInfo(generator.timezone)).date()


async def _read_json(request: Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    payload = await request.json()
    if not isinstance(payload, dict):
        raise ValidationFailedError("request", {"body": ["Expected a JSON object"]})
    return payload


def _slot(practitioner_id: str, day: date, start: dt_time, duration_minutes: int) -> Slot:
    if start.second or start.microsecond:
        raise ValidationFailedError(
            "request", {"start_time": ["Start time must be on a whole minute"]}
        )
    end_minutes = minutes_of(start) + duration_minutes
    if end_minutes >= 24 * 60:
        raise ValidationFailedError(
            "request", {"duration_minutes": ["Appointment must end on the same day"]}
        )
    return Slot(
        practitioner_id=practitioner_id,
        appointment_date=day,
        start_time=start,
        end_time=time_from_minutes(end_minutes),
    )


async def _availability(
    app: web.Application, practitioner_id: str, from_date: date, to_date: date
):
    """Weekly template and overrides, or None for an unknown practitioner."""
    profiles: ProfileStore = app[PROFILES]
    weekly = await profiles.get_weekly_availability(practitioner_id)
    if weekly is None:
        return None
    overrides = await profiles.get_overrides(practitioner_id, from_date, to_date)
    return weekly, overrides


# ========== Handlers ==========


async def health_check(request: Request) -> Response:
    """Health check endpoint."""
    uptime_seconds = time.time() - request.app[STARTED_AT]
    return web.json_response(
        {
            "status": "ok",
            "service": "practitioner-booking-scheduler",
            "timestamp": time.time(),
            "uptime_hours": round(uptime_seconds / 3600, 2),
            "configuration": {
                "booking_backend": settings.booking_backend,
                "timezone": settings.timezone,
                "max_horizon_days": settings.max_horizon_days,
                "min_lead_time_minutes": settings.min_lead_time_minutes,
            },
        }
    )


async def list_slots(request: Request) -> Response:
    """Bookable slots of a practitioner between ``from`` and ``to`` (inclusive)."""
    practitioner_id = request.match_info["practitioner_id"]
    generator = request.app[GENERATOR]
    from_date = _query_date(request, "from", _today(generator))
    to_date = _query_date(request, "to", from_date + timedelta(days=6))
    duration = _query_duration(request)

    availability = await _availability(request.app, practitioner_id, from_date, to_date)
    if availability is None:
        return _error_response(404, "not_found", f"Practitioner {practitioner_id} not found")
    weekly, overrides = availability

    slots = await generator.find_available_slots(
        request.app[LEDGER],
        practitioner_id,
        weekly,
        overrides,
        duration,
        from_date,
        to_date,
    )
    return web.json_response(
        {
            "practitioner_id": practitioner_id,
            "from": from_date.isoformat(),
            "to": to_date.isoformat(),
            "duration_minutes": duration,
            "slots": [slot.model_dump(mode="json") for slot in slots],
        }
    )


async def next_available(request: Request) -> Response:
    """First bookable slot within the search window, or null."""
    practitioner_id = request.match_info["practitioner_id"]
    generator = request.app[GENERATOR]
    from_date = _query_date(request, "from", _today(generator))
    duration = _query_duration(request)
    raw_days = request.query.get("days")
    try:
        search_days = int(raw_days) if raw_days else settings.next_available_search_days
    except ValueError as e:
        raise ValidationFailedError(
            "request", {"days": [f"'{raw_days}' is not a whole number"]}
        ) from e
    if search_days < 1:
        raise ValidationFailedError("request", {"days": ["Must be at least 1"]})

    to_date = from_date + timedelta(days=min(search_days, generator.max_horizon_days) - 1)
    availability = await _availability(request.app, practitioner_id, from_date, to_date)
    if availability is None:
        return _error_response(404, "not_found", f"Practitioner {practitioner_id} not found")
    weekly, overrides = availability

    slot = await generator.find_next_available(
        request.app[LEDGER],
        practitioner_id,
        weekly,
        overrides,
        duration,
        from_date,
        search_days=search_days,
    )
    return web.json_response(
        {
            "practitioner_id": practitioner_id,
            "slot": slot.model_dump(mode="json") if slot else None,
        }
    )


async def _require_offered(
    request: Request, slot: Slot, ignore_booking_id: Optional[str] = None
) -> None:
    availability = await _availability(
        request.app, slot.practitioner_id, slot.appointment_date, slot.appointment_date
    )
    if availability is None:
        raise ValidationFailedError(
            "request", {"practitioner_id": [f"Practitioner {slot.practitioner_id} not found"]}
        )
    weekly, overrides = availability
    offered = await request.app[GENERATOR].find_available_slots(
        request.app[LEDGER],
        slot.practitioner_id,
        weekly,
        overrides,
        slot.duration_minutes,
        slot.appointment_date,
        slot.appointment_date,
        ignore_booking_id=ignore_booking_id,
    )
    if slot not in offered:
        raise SlotConflictError(f"Slot {slot.label()} is not available")


async def create_booking(request: Request) -> Response:
    """Reserve a slot as a pending booking."""
    body = BookingRequest.model_validate(await _read_json(request))
    slot = _slot(
        body.practitioner_id,
        body.appointment_date,
        body.start_time,
        _duration(body.duration_minutes, body.service_type),
    )
    await _require_offered(request, slot)

    booking = await request.app[LEDGER].reserve(
        slot,
        body.client_id,
        service_type=body.service_type.value if body.service_type else None,
        location_type=body.location_type.value if body.location_type else None,
        notes=sanitize_text(body.notes or "", MAX_NOTES_LENGTH) or None,
    )
    return web.json_response(booking.model_dump(mode="json"), status=201)


async def get_booking(request: Request) -> Response:
    booking = await request.app[LEDGER].get(request.match_info["booking_id"])
    return web.json_response(booking.model_dump(mode="json"))


async def booking_action(request: Request) -> Response:
    """Apply a lifecycle action to a booking."""
    booking_id = request.match_info["booking_id"]
    action = request.match_info["action"]
    ledger: BookingLedger = request.app[LEDGER]
    body = BookingActionRequest.model_validate(await _read_json(request))

    if action == "confirm":
        booking = await ledger.confirm(booking_id, actor=body.actor or "practitioner")
    elif action == "cancel":
        booking = await ledger.cancel(
            booking_id, reason=body.reason, actor=body.actor or "client"
        )
    elif action == "complete":
        booking = await ledger.complete(booking_id, actor=body.actor or "practitioner")
    elif action == "no-show":
        booking = await ledger.mark_no_show(
            booking_id, actor=body.actor or "practitioner", reason=body.reason
        )
    elif action == "reschedule":
        if body.appointment_date is None or body.start_time is None:
            raise ValidationFailedError(
                "request",
                {
                    "appointment_date": ["Required to reschedule"],
                    "start_time": ["Required to reschedule"],
                },
            )
        current = await ledger.get(booking_id)
        duration = body.duration_minutes or current.as_slot().duration_minutes
        new_slot = _slot(current.practitioner_id, body.appointment_date, body.start_time, duration)
        await _require_offered(request, new_slot, ignore_booking_id=booking_id)
        booking = await ledger.reschedule(
            booking_id, new_slot, actor=body.actor or "practitioner", reason=body.reason
        )
    else:
        return _error_response(404, "unknown_action", f"Unknown booking action '{action}'")

    return web.json_response(booking.model_dump(mode="json"))


def create_app(
    ledger: Optional[BookingLedger] = None,
    generator: Optional[SlotGenerator] = None,
    profiles: Optional[ProfileStore] = None,
) -> web.Application:
    """
    Create aiohttp application with middleware and routes.

    Components default to the configured backend.
    """
    app = web.Application(
        middlewares=[security_headers_middleware, error_middleware],
        client_max_size=MAX_REQUEST_SIZE,
    )
    app[LEDGER] = ledger or BookingLedger(get_booking_store())
    app[GENERATOR] = generator or SlotGenerator()
    app[PROFILES] = profiles or get_profile_store()
    app[STARTED_AT] = time.time()

    # Routes
    app.router.add_get("/health", health_check)
    app.router.add_get("/practitioners/{practitioner_id}/slots", list_slots)
    app.router.add_get("/practitioners/{practitioner_id}/next-available", next_available)
    app.router.add_post("/bookings", create_booking)
    app.router.add_get("/bookings/{booking_id}", get_booking)
    app.router.add_post("/bookings/{booking_id}/{action}", booking_action)

    return app


async def _start_background(app: web.Application) -> None:
    setup_scheduler(get_booking_store())


async def _stop_background(app: web.Application) -> None:
    shutdown_scheduler()
    await app[LEDGER].drain_notifications()


if __name__ == "__main__":
    configure_package_logging(settings.log_level, log_file="api.log")
    settings.validate_all_required()

    logger.info(f"Starting booking API on {settings.host}:{settings.port}")
    app = create_app()
    app.on_startup.append(_start_background)
    app.on_cleanup.append(_stop_background)
    web.run_app(app, host=settings.host, port=settings.port)

"""
Client booking workflow.

A linear wizard: choose a slot, enter personal details, enter an address,
commit. All entered data lives in one immutable ``BookingDraft``; each call
returns a new draft. Only ``commit`` touches the ledger, so a draft that is
abandoned leaves nothing behind.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import settings
from models.booking import Booking
from models.client import Address, ClientDetails, EmergencyContact
from models.service import LocationType, ServiceType
from models.slot import Slot
from scheduling.ledger import BookingLedger
from scheduling.states import GATED_STEPS, WorkflowStep
from utils.datetime_utils import Clock, utc_now
from utils.exceptions import (
    BookingError,
    BookingTimeoutError,
    DatabaseError,
    InvalidTransitionError,
    SchedulingError,
    SlotConflictError,
    ValidationFailedError,
)
from utils.validation import (
    sanitize_text,
    validate_date_of_birth,
    validate_email,
    validate_name,
    validate_phone,
    validate_postcode,
)

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000

SLOT_TAKEN_MESSAGE = (
    "Sorry, that time has just been booked by someone else. "
    "Please choose another time from the updated list."
)
GENERIC_FAILURE_MESSAGE = (
    "We couldn't complete your booking right now. "
    "Please try again in a moment or contact support."
)

# Given the slot that was lost, return the slots currently bookable
SlotSource = Callable[[Slot], Awaitable[List[Slot]]]


class BookingDraft(BaseModel):
    """Everything entered so far, plus the current step."""

    model_config = ConfigDict(frozen=True)

    step: WorkflowStep = WorkflowStep.SELECTING_SLOT
    slot: Optional[Slot] = None
    service_type: Optional[ServiceType] = None
    location_type: Optional[LocationType] = None
    client: ClientDetails = Field(default_factory=ClientDetails)
    address: Address = Field(default_factory=Address)
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)
    notes: Optional[str] = None
    booking_id: Optional[str] = None
    message: Optional[str] = None


class CommitResult(BaseModel):
    """Outcome of the final step."""

    model_config = ConfigDict(frozen=True)

    draft: BookingDraft
    booking: Optional[Booking] = None
    error: Optional[str] = None
    alternative_slots: List[Slot] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.booking is not None

    @property
    def message(self) -> Optional[str]:
        return self.draft.message


class BookingWorkflow:
    """
    Drives a :class:`BookingDraft` through the wizard.

    Args:
        ledger: Where the final reservation is made
        slot_source: Refreshes available slots after a lost race
        postcode_locale: Country whose postcode format the address gate uses
        clock: Zero-argument callable returning an aware datetime
    """

    def __init__(
        self,
        ledger: BookingLedger,
        slot_source: Optional[SlotSource] = None,
        postcode_locale: Optional[str] = None,
        clock: Optional[Clock] = None,
    ):
        self.ledger = ledger
        self.slot_source = slot_source
        self.postcode_locale = postcode_locale or settings.postcode_locale
        self.clock = clock or utc_now

    # ========== Editing ==========

    def start(self) -> BookingDraft:
        return BookingDraft()

    def _edit(self, draft: BookingDraft, **changes) -> BookingDraft:
        if draft.step is WorkflowStep.CONFIRMED:
            raise InvalidTransitionError("Booking already committed; start a new draft")
        return draft.model_copy(update={**changes, "message": None})

    def select_slot(
        self,
        draft: BookingDraft,
        slot: Optional[Slot] = None,
        service_type: Optional[ServiceType] = None,
        location_type: Optional[LocationType] = None,
    ) -> BookingDraft:
        """Record slot, service and location choices; omitted values are kept."""
        return self._edit(
            draft,
            slot=slot or draft.slot,
            service_type=service_type or draft.service_type,
            location_type=location_type or draft.location_type,
        )

    def enter_client_details(self, draft: BookingDraft, details: ClientDetails) -> BookingDraft:
        return self._edit(draft, client=details)

    def enter_address(
        self,
        draft: BookingDraft,
        address: Address,
        emergency_contact: Optional[EmergencyContact] = None,
    ) -> BookingDraft:
        return self._edit(
            draft,
            address=address,
            emergency_contact=emergency_contact or draft.emergency_contact,
        )

    def add_notes(self, draft: BookingDraft, notes: str) -> BookingDraft:
        return self._edit(draft, notes=sanitize_text(notes, MAX_NOTES_LENGTH) or None)

    # ========== Gates ==========

    def _check_slot(self, draft: BookingDraft) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        if draft.slot is None:
            errors["slot"] = ["Please choose an appointment time"]
        if draft.service_type is None:
            errors["service_type"] = ["Please choose a service"]
        if draft.location_type is None:
            errors["location_type"] = ["Please choose a location"]
        return errors

    def _check_client(self, draft: BookingDraft) -> Dict[str, List[str]]:
        client = draft.client
        errors: Dict[str, List[str]] = {}
        if not (client.full_name or "").strip():
            errors["full_name"] = ["Full name is required"]
        elif not validate_name(client.full_name):
            errors["full_name"] = [
                "Full name may only contain letters, spaces, hyphens and apostrophes"
            ]
        if client.date_of_birth is None:
            errors["date_of_birth"] = ["Date of birth is required"]
        elif not validate_date_of_birth(client.date_of_birth, self.clock().date()):
            errors["date_of_birth"] = ["Date of birth must be a real date in the past"]
        if client.sex_at_birth is None:
            errors["sex_at_birth"] = ["Sex at birth is required"]
        if not client.email:
            errors["email"] = ["Email address is required"]
        elif not validate_email(client.email):
            errors["email"] = ["Email address is not valid"]
        if not validate_phone(client.phone or ""):
            errors["phone"] = ["Phone number is required"]
        return errors

    def _check_address(self, draft: BookingDraft) -> Dict[str, List[str]]:
        address = draft.address
        errors: Dict[str, List[str]] = {}
        if not (address.street or "").strip():
            errors["street"] = ["Street is required"]
        if not (address.city or "").strip():
            errors["city"] = ["City is required"]
        if not (address.postcode or "").strip():
            errors["postcode"] = ["Postcode is required"]
        elif not validate_postcode(address.postcode, self.postcode_locale):
            errors["postcode"] = [f"Postcode is not a valid {self.postcode_locale} postcode"]

        contact = draft.emergency_contact
        if not contact.is_empty:
            if not (contact.name or "").strip():
                errors["emergency_contact.name"] = ["Emergency contact needs a name"]
            if not validate_phone(contact.phone or ""):
                errors["emergency_contact.phone"] = ["Emergency contact needs a phone number"]
        return errors

    def validate(
        self, draft: BookingDraft, step: Optional[WorkflowStep] = None
    ) -> Dict[str, List[str]]:
        """Field errors for ``step`` (default: the draft's current step)."""
        step = step or draft.step
        if step is WorkflowStep.SELECTING_SLOT:
            return self._check_slot(draft)
        if step is WorkflowStep.ENTERING_CLIENT_DETAILS:
            return self._check_client(draft)
        if step is WorkflowStep.ENTERING_ADDRESS:
            return self._check_address(draft)
        return {}

    # ========== Navigation ==========

    def advance(self, draft: BookingDraft) -> BookingDraft:
        """
        Move to the next step if the current one is complete.

        Committing is done by :meth:`commit`, not here.

        Raises:
            ValidationFailedError: With the current step's field errors
            InvalidTransitionError: From the address step or a confirmed draft
        """
        if draft.step in (WorkflowStep.ENTERING_ADDRESS, WorkflowStep.CONFIRMED):
            raise InvalidTransitionError(
                f"Cannot advance from {draft.step.value}; use commit to finish"
            )
        errors = self.validate(draft)
        if errors:
            raise ValidationFailedError(draft.step.value, errors)
        return draft.model_copy(update={"step": draft.step.next(), "message": None})

    def back(self, draft: BookingDraft, step: WorkflowStep) -> BookingDraft:
        """
        Return to any earlier step, keeping all entered data.

        Raises:
            InvalidTransitionError: If ``step`` is not before the current step,
                or the draft is already confirmed
        """
        if draft.step is WorkflowStep.CONFIRMED:
            raise InvalidTransitionError("Booking already committed; start a new draft")
        if step.index >= draft.step.index:
            raise InvalidTransitionError(
                f"Cannot go back from {draft.step.value} to {step.value}"
            )
        return draft.model_copy(update={"step": step, "message": None})

    # ========== Commit ==========

    async def _refreshed_slots(self, lost: Slot) -> List[Slot]:
        if self.slot_source is None:
            return []
        try:
            return await self.slot_source(lost)
        except (BookingError, SchedulingError, DatabaseError) as e:
            logger.warning(f"Could not refresh slots after conflict on {lost.label()}: {e}")
            return []

    async def commit(
        self, draft: BookingDraft, client_id: str, timeout: Optional[float] = None
    ) -> CommitResult:
        """
        Reserve the chosen slot.

        On a lost race the draft goes back to slot selection with the slot
        cleared and a refreshed slot list; another slot is never picked
        silently. Store outages produce a generic retry message.

        Raises:
            InvalidTransitionError: If the draft is not on the address step
            ValidationFailedError: If any step's gate fails
        """
        if draft.step is not WorkflowStep.ENTERING_ADDRESS:
            raise InvalidTransitionError(
                f"Cannot commit from {draft.step.value}; complete the earlier steps first"
            )
        for step in GATED_STEPS:
            errors = self.validate(draft, step)
            if errors:
                raise ValidationFailedError(step.value, errors)

        try:
            booking = await self.ledger.reserve(
                draft.slot,
                client_id,
                service_type=draft.service_type.value,
                location_type=draft.location_type.value,
                notes=draft.notes,
                timeout=timeout,
            )
        except SlotConflictError:
            lost = draft.slot
            logger.info(f"Commit lost the race for {lost.label()}; returning to slot selection")
            return CommitResult(
                draft=draft.model_copy(
                    update={
                        "step": WorkflowStep.SELECTING_SLOT,
                        "slot": None,
                        "message": SLOT_TAKEN_MESSAGE,
                    }
                ),
                error="slot_conflict",
                alternative_slots=await self._refreshed_slots(lost),
            )
        except (BookingTimeoutError, DatabaseError) as e:
            logger.error(f"Commit failed for {draft.slot.label()}: {e}", exc_info=True)
            return CommitResult(
                draft=draft.model_copy(update={"message": GENERIC_FAILURE_MESSAGE}),
                error="unavailable",
            )

        return CommitResult(
            draft=draft.model_copy(
                update={
                    "step": WorkflowStep.CONFIRMED,
                    "booking_id": booking.id,
                    "message": None,
                }
            ),
            booking=booking,
        )

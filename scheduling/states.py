"""
Steps of the client booking workflow.
"""

from enum import Enum


class WorkflowStep(str, Enum):
    """Booking wizard steps, in order."""

    SELECTING_SLOT = "selecting_slot"
    ENTERING_CLIENT_DETAILS = "entering_client_details"
    ENTERING_ADDRESS = "entering_address"
    CONFIRMED = "confirmed"

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)

    def next(self) -> "WorkflowStep":
        if self is WorkflowStep.CONFIRMED:
            raise ValueError("Confirmed is the final step")
        return STEP_ORDER[self.index + 1]


STEP_ORDER = list(WorkflowStep)

# Steps with a validation gate (everything before the commit)
GATED_STEPS = STEP_ORDER[:-1]

"""Client detail models captured by the booking workflow."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SexAtBirth(str, Enum):
    """Sex recorded at birth."""

    MALE = "male"
    FEMALE = "female"
    INTERSEX = "intersex"


class ClientDetails(BaseModel):
    """
    Personal details step.

    Fields are optional so a partially filled step can be held in the draft;
    the workflow gate decides completeness.
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "full_name": "Jane Doe",
                "date_of_birth": "1988-04-12",
                "sex_at_birth": "female",
                "email": "jane@example.com",
                "phone": "+44 7700 900123",
            }
        },
    )

    full_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    sex_at_birth: Optional[SexAtBirth] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class Address(BaseModel):
    """Postal address step."""

    model_config = ConfigDict(frozen=True)

    street: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None


class EmergencyContact(BaseModel):
    """Optional emergency contact collected with the address."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.phone)

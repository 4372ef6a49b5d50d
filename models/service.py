"""Service models for consultations and treatments offered by practitioners."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ServiceType(str, Enum):
    """Bookable consultation and treatment types."""

    GENERAL_CONSULTATION = "general_consultation"
    MENTAL_HEALTH = "mental_health"
    NUTRITION = "nutrition"
    SECOND_OPINION = "second_opinion"
    SEXUAL_HEALTH = "sexual_health"
    BLOOD_TEST = "blood_test"


class LocationType(str, Enum):
    """Where the appointment takes place."""

    CLINIC = "clinic"
    VIDEO = "video"
    HOME = "home"


class Service(BaseModel):
    """Service model."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "type": "general_consultation",
                "name": "General Consultation",
                "description": "Private GP appointment",
                "fee_gbp": 79,
                "duration_minutes": 30,
            }
        },
    )

    type: ServiceType
    name: str
    description: str
    fee_gbp: int = Field(..., ge=0, description="Fee in GBP")
    duration_minutes: int = Field(..., ge=10, le=240, description="Duration in minutes")


# Predefined services
SERVICES = {
    ServiceType.GENERAL_CONSULTATION: Service(
        type=ServiceType.GENERAL_CONSULTATION,
        name="General Consultation",
        description="Private GP appointment for new or ongoing concerns",
        fee_gbp=79,
        duration_minutes=30,
    ),
    ServiceType.MENTAL_HEALTH: Service(
        type=ServiceType.MENTAL_HEALTH,
        name="Mental Health Consultation",
        description="Assessment and support with a mental health specialist",
        fee_gbp=120,
        duration_minutes=60,
    ),
    ServiceType.NUTRITION: Service(
        type=ServiceType.NUTRITION,
        name="Nutrition Consultation",
        description="Diet review and personalised nutrition plan",
        fee_gbp=90,
        duration_minutes=45,
    ),
    ServiceType.SECOND_OPINION: Service(
        type=ServiceType.SECOND_OPINION,
        name="Second Opinion Consultation",
        description="Independent review of an existing diagnosis or treatment plan",
        fee_gbp=150,
        duration_minutes=60,
    ),
    ServiceType.SEXUAL_HEALTH: Service(
        type=ServiceType.SEXUAL_HEALTH,
        name="Sexual Health Consultation",
        description="Confidential sexual health advice and screening",
        fee_gbp=95,
        duration_minutes=30,
    ),
    ServiceType.BLOOD_TEST: Service(
        type=ServiceType.BLOOD_TEST,
        name="Blood Test Appointment",
        description="Sample collection for a blood test panel",
        fee_gbp=49,
        duration_minutes=15,
    ),
}


def get_service(service_type: ServiceType) -> Service:
    """Get service by type."""
    return SERVICES[service_type]


def get_all_services() -> list[Service]:
    """Get all available services."""
    return list(SERVICES.values())

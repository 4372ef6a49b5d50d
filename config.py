"""
Configuration module for the practitioner booking scheduler.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase (hosted Postgres backend)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Booking store: "memory" (single process) or "supabase"
    booking_backend: str = "memory"

    # Scheduling
    timezone: str = "Europe/London"
    max_horizon_days: int = 90
    min_lead_time_minutes: int = 60
    default_slot_duration_minutes: int = 30
    next_available_search_days: int = 14

    # Persistence calls are bounded; surfaced as BookingTimeoutError
    store_timeout_seconds: float = 10.0

    # Workflow
    postcode_locale: str = "GB"

    # Mirror canonical availability into available_days/available_hours
    # for readers that still expect the legacy columns
    availability_legacy_mirror: bool = True

    # Reminders
    reminder_hours_before: int = 24

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def uses_supabase(self) -> bool:
        """True when bookings and profiles are persisted in Supabase."""
        return self.booking_backend.lower() == "supabase"

    def validate_all_required(self) -> None:
        """
        Validate that all required settings are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        if self.booking_backend.lower() not in ("memory", "supabase"):
            raise ValueError(
                f"Unknown booking backend '{self.booking_backend}'. "
                f"Use 'memory' or 'supabase'."
            )

        if self.max_horizon_days < 1:
            raise ValueError("MAX_HORIZON_DAYS must be at least 1")

        if self.default_slot_duration_minutes < 1:
            raise ValueError("DEFAULT_SLOT_DURATION_MINUTES must be at least 1")

        if not self.uses_supabase:
            return

        missing = []
        for field in ("supabase_url", "supabase_key"):
            value = getattr(self, field, None)

            # Check if value is missing or placeholder
            if not value or str(value).lower().startswith("your_"):
                missing.append(field)

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()

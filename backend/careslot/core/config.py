# backend/careslot/core/config.py
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_BACKEND_ROOT = Path(__file__).resolve().parents[2]


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = _BACKEND_ROOT / ".env"
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the booking engine."""

    environment: str = Field(default="development", description="Deployment environment name")
    is_testing: bool = Field(default=False, description="Set by the test suite")

    database_url: str = Field(
        default=f"sqlite:///{_BACKEND_ROOT / 'careslot.db'}",
        description="SQLAlchemy URL for the transactional store",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Celery broker and result backend",
    )

    # Expiry sweep
    booking_confirmation_window_minutes: int = Field(
        default=15,
        description="Minutes a provider has to confirm a pending booking before auto-rejection",
        ge=1,
    )
    expiry_sweep_batch_size: int = Field(
        default=50,
        description="Maximum number of expired bookings handled per sweep run",
        ge=1,
    )
    expiry_sweep_interval_seconds: int = Field(
        default=60,
        description="Interval between expiry sweep runs",
        ge=1,
    )
    expiry_sweep_notifications_enabled: bool = Field(
        default=True,
        description="Notify both parties after an auto-rejection",
    )
    scheduler_enabled: bool = Field(
        default=True,
        description="Enable periodic tasks (disabled automatically during tests)",
    )

    # Slot generation / retention
    slot_generation_days: int = Field(
        default=30,
        description="How many days ahead the daily job materializes slots",
        ge=1,
    )
    slot_generation_batch_size: int = Field(
        default=10,
        description="Event configurations processed per page by the daily job",
        ge=1,
    )
    available_slot_retention_days: int = Field(
        default=7,
        description="Days to keep past, never-booked slots before deleting them",
        ge=1,
    )
    default_slot_duration_minutes: int = Field(
        default=30,
        description="Slot length used when a time block does not set one",
        ge=1,
    )

    # Booking policy
    client_no_show_wait_minutes: int = Field(
        default=5,
        description="Minutes past start before a client may report the provider absent",
        ge=0,
    )
    provider_no_show_wait_minutes: int = Field(
        default=10,
        description="Minutes past start before a provider may report the client absent",
        ge=0,
    )
    cancellation_reason_max_length: int = Field(default=500, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_environment(cls, value: Any) -> str:
        return str(value or "development").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
if is_running_tests():
    settings.is_testing = True
    settings.scheduler_enabled = False

# backend/careslot/schemas/booking_event.py
"""
Booking event configuration schemas.

The weekly template is persisted as JSON; every consumer goes through
:func:`parse_daily_configs` so the rest of the engine only ever sees
validated ``DailyConfig`` / ``TimeBlock`` objects. The request and response
DTOs for event and schedule-exception management live here too.
"""

from datetime import datetime, time
from decimal import Decimal
import re
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..core.enums import DayOfWeek
from ..core.exceptions import ValidationException
from ..core.timezone_utils import as_utc
from ._strict_base import StrictModel, StrictRequestModel

if TYPE_CHECKING:
    from ..models.booking_event import BookingEventConfiguration, ScheduleException

HHMM_REGEX = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _parse_hhmm(value: object, field_name: str) -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not HHMM_REGEX.fullmatch(value.strip()):
        raise ValueError(f"{field_name} must be an HH:MM string")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


class TimeBlock(BaseModel):
    """A contiguous working window inside one day, cut into equal slots."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start: time = Field(..., validation_alias="start", description="Local start (HH:MM)")
    end: time = Field(..., description="Local end (HH:MM)")
    slot_duration: int = Field(30, alias="slotDuration", ge=5, le=720)
    buffer_time: int = Field(0, alias="bufferTime", ge=0, le=240)

    @field_validator("start", mode="before")
    @classmethod
    def _validate_start(cls, value: object) -> time:
        return _parse_hhmm(value, "start")

    @field_validator("end", mode="before")
    @classmethod
    def _validate_end(cls, value: object) -> time:
        return _parse_hhmm(value, "end")

    @model_validator(mode="after")
    def _check_order(self) -> "TimeBlock":
        if self.end <= self.start:
            raise ValueError("time block end must be after start")
        return self


class DailyConfig(BaseModel):
    """Availability for one weekday."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False
    time_blocks: List[TimeBlock] = Field(default_factory=list, alias="timeBlocks")

    @property
    def is_bookable(self) -> bool:
        return self.enabled and bool(self.time_blocks)


def parse_daily_configs(raw: Mapping[str, Any]) -> Dict[DayOfWeek, DailyConfig]:
    """
    Validate a stored weekly template.

    Unknown day keys are rejected; missing days are simply disabled.

    Raises:
        ValidationException: If the template is malformed
    """
    parsed: Dict[DayOfWeek, DailyConfig] = {}
    for key, value in (raw or {}).items():
        try:
            day = DayOfWeek(str(key).lower())
        except ValueError:
            raise ValidationException(
                f"Unknown day key in daily configuration: {key}",
                code="INVALID_DAILY_CONFIG",
                details={"day": key},
            ) from None
        try:
            parsed[day] = DailyConfig.model_validate(value or {})
        except ValidationError as exc:
            raise ValidationException(
                f"Invalid daily configuration for {day.value}",
                code="INVALID_DAILY_CONFIG",
                details={
                    "day": day.value,
                    "errors": exc.errors(include_url=False, include_context=False),
                },
            ) from exc
    return parsed


class BookingEventCreate(StrictRequestModel):
    """New weekly availability template for the calling provider."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    timezone: str = Field("UTC", min_length=1, max_length=64, description="IANA timezone name")
    location_types: List[str] = Field(..., min_length=1)
    daily_configs: Dict[str, Any] = Field(..., description="Weekly template keyed mon..sun")
    max_booking_days: int = Field(30, ge=1, le=365)
    min_booking_minutes: int = Field(0, ge=0, le=4320)
    cancellation_threshold_minutes: int = Field(0, ge=0)
    price: Decimal = Field(Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    provider_id: Optional[str] = Field(None, description="Admin only: create on behalf of a provider")


class BookingEventUpdate(StrictRequestModel):
    """Partial update; only fields sent are changed."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)
    location_types: Optional[List[str]] = Field(None, min_length=1)
    daily_configs: Optional[Dict[str, Any]] = None
    max_booking_days: Optional[int] = Field(None, ge=1, le=365)
    min_booking_minutes: Optional[int] = Field(None, ge=0, le=4320)
    cancellation_threshold_minutes: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    is_active: Optional[bool] = None


class BookingEventResponse(StrictModel):
    id: str
    provider_id: str
    title: str
    description: Optional[str] = None
    timezone: str
    location_types: List[str]
    daily_configs: Dict[str, Any]
    max_booking_days: int
    min_booking_minutes: int
    cancellation_threshold_minutes: int
    price: Decimal
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    is_active: bool

    @classmethod
    def from_event(cls, event: "BookingEventConfiguration") -> "BookingEventResponse":
        return cls.model_validate(event.to_dict())


class BookingEventUpdateResponse(StrictModel):
    event: BookingEventResponse
    changes: List[str]
    slots_regenerated: bool


class BookingEventListResponse(StrictModel):
    events: List[BookingEventResponse]
    limit: int
    offset: int


class ScheduleExceptionCreate(StrictRequestModel):
    start_datetime: datetime
    end_datetime: datetime
    reason: str = Field(..., min_length=1, max_length=500)

    @model_validator(mode="after")
    def _check_order(self) -> "ScheduleExceptionCreate":
        if as_utc(self.end_datetime) <= as_utc(self.start_datetime):
            raise ValueError("end_datetime must be after start_datetime")
        return self


class ScheduleExceptionResponse(StrictModel):
    id: str
    event_id: str
    provider_id: str
    start_datetime: datetime
    end_datetime: datetime
    reason: str

    @classmethod
    def from_exception(cls, exception: "ScheduleException") -> "ScheduleExceptionResponse":
        return cls.model_validate(exception.to_dict())


class ScheduleExceptionListResponse(StrictModel):
    exceptions: List[ScheduleExceptionResponse]
    limit: int
    offset: int

# backend/careslot/schemas/booking.py
"""
Booking and time-slot schemas.

Requests forbid unknown fields. Free-text rules that the engine itself
enforces (cancellation reason, location type) are left to the service so
direct callers and HTTP callers get the same ValidationException.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from ..models.booking import Booking, BookingStatus
from ..models.time_slot import SlotStatus, TimeSlot
from ._strict_base import StrictModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    """Reserve one slot for the calling client."""

    slot_id: str = Field(..., min_length=1, description="Time slot to reserve")
    location_type: Optional[str] = Field(
        None, description="One of the slot's consultation modes; defaults to the first"
    )
    reason: Optional[str] = Field(None, max_length=500, description="Reason for the visit")


class BookingReject(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, description="Cancellation reason (required)")


class BookingNoShow(StrictRequestModel):
    """Report which party failed to attend."""

    no_show_type: BookingStatus = Field(
        ..., description="no_show_client or no_show_provider"
    )

    @model_validator(mode="after")
    def _check_type(self) -> "BookingNoShow":
        if self.no_show_type not in (BookingStatus.NO_SHOW_CLIENT, BookingStatus.NO_SHOW_PROVIDER):
            raise ValueError("no_show_type must be no_show_client or no_show_provider")
        return self


class BookingListFilters(StrictRequestModel):
    status: Optional[BookingStatus] = None
    upcoming: bool = False
    past: bool = False
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    client_id: Optional[str] = Field(None, description="Admin/support only")
    provider_id: Optional[str] = Field(None, description="Admin/support only")
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "BookingListFilters":
        if self.upcoming and self.past:
            raise ValueError("upcoming and past cannot both be set")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be on or before date_to")
        return self


class BookingResponse(StrictModel):
    id: str
    client_id: str
    provider_id: str
    slot_id: str
    status: BookingStatus
    payment_status: str
    scheduled_at: datetime
    duration_minutes: int
    location_type: Optional[str] = None
    reason: Optional[str] = None
    booked_at: datetime
    confirmation_timestamp: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    cancelled_by_role: Optional[str] = None
    cancellation_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    no_show_marked_by: Optional[str] = None
    no_show_marked_at: Optional[datetime] = None
    invoice_id: Optional[str] = None
    seconds_until_expiry: Optional[int] = Field(
        None, description="Countdown for pending bookings awaiting confirmation"
    )

    @classmethod
    def from_booking(
        cls, booking: Booking, seconds_until_expiry: Optional[int] = None
    ) -> "BookingResponse":
        return cls.model_validate(
            {**booking.to_dict(), "seconds_until_expiry": seconds_until_expiry}
        )


class BookingListResponse(StrictModel):
    bookings: List[BookingResponse]
    limit: int
    offset: int


class CancellationResponse(StrictModel):
    booking: BookingResponse
    threshold_exceeded: bool = Field(
        ..., description="True when cancelled inside the provider's cancellation threshold"
    )


class TimeSlotResponse(StrictModel):
    id: str
    provider_event_id: str
    provider_id: str
    date: date
    start_time: datetime
    end_time: datetime
    status: SlotStatus
    booking_id: Optional[str] = None
    consultation_modes: List[str] = Field(default_factory=list)
    price: Decimal

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> "TimeSlotResponse":
        return cls.model_validate(slot.to_dict())


class TimeSlotListResponse(StrictModel):
    slots: List[TimeSlotResponse]

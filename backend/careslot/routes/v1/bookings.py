# backend/careslot/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    GET / - List bookings visible to the caller
    POST / - Reserve a slot (creates a pending booking)
    GET /{booking_id} - Booking details
    POST /{booking_id}/confirm - Provider confirms a pending booking
    POST /{booking_id}/reject - Provider rejects a pending booking
    POST /{booking_id}/cancel - Cancel a pending or confirmed booking
    POST /{booking_id}/no-show - Report a no-show on a confirmed booking
    POST /{booking_id}/complete - Mark a confirmed booking as completed
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import ValidationError

from ...api.dependencies import get_booking_service, get_current_actor
from ...core.config import settings
from ...core.exceptions import DomainException, ValidationException
from ...core.timezone_utils import utc_now
from ...models.booking import Booking, BookingStatus
from ...principal import Actor
from ...schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingListFilters,
    BookingListResponse,
    BookingNoShow,
    BookingReject,
    BookingResponse,
    CancellationResponse,
)
from ...services.booking_service import BookingService
from ...services.expiry_sweep import time_until_expiry

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _to_response(booking: Booking) -> BookingResponse:
    return BookingResponse.from_booking(
        booking,
        seconds_until_expiry=time_until_expiry(
            booking, settings.booking_confirmation_window_minutes, utc_now()
        ),
    )


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    upcoming: bool = Query(False),
    past: bool = Query(False),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    client_id: Optional[str] = Query(None),
    provider_id: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """List bookings the caller may see, ordered by scheduled start."""
    try:
        filters = BookingListFilters(
            status=status_filter,
            upcoming=upcoming,
            past=past,
            date_from=date_from,
            date_to=date_to,
            client_id=client_id,
            provider_id=provider_id,
            limit=limit,
            offset=offset,
        )
    except ValidationError as exc:
        handle_domain_exception(
            ValidationException(
                "Invalid booking filters",
                code="INVALID_FILTERS",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            )
        )

    try:
        bookings = await asyncio.to_thread(booking_service.list_bookings, actor, filters)
    except DomainException as e:
        handle_domain_exception(e)

    return BookingListResponse(
        bookings=[_to_response(booking) for booking in bookings],
        limit=filters.limit,
        offset=filters.offset,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Reserve a slot. 409 means the slot was taken; pick another one."""
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking,
            actor,
            payload.slot_id,
            location_type=payload.location_type,
            reason=payload.reason,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.confirm_booking, booking_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    payload: Optional[BookingReject] = None,
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    reason = payload.reason if payload else None
    try:
        booking = await asyncio.to_thread(
            booking_service.reject_booking, booking_id, actor, reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    payload: BookingCancel,
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    """Cancel a booking; ``threshold_exceeded`` tells the caller a late-cancellation rule applies."""
    try:
        result = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, actor, payload.reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CancellationResponse(
        booking=_to_response(result.booking),
        threshold_exceeded=result.threshold_exceeded,
    )


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(
    payload: BookingNoShow,
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.mark_no_show, booking_id, actor, payload.no_show_type.value
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.complete_booking, booking_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return _to_response(booking)

# backend/careslot/routes/v1/booking_events.py
"""
Booking event routes - API v1

Providers manage their weekly availability templates and schedule
exceptions. All business logic delegated to BookingEventService.

Endpoints:
    GET / - List the caller's events (admin/support: any provider)
    POST / - Create an event and generate its first slots
    GET /{event_id} - Event details
    PATCH /{event_id} - Partial update; open slots are rebuilt when needed
    DELETE /{event_id} - Archive the event and withdraw its open slots
    GET /{event_id}/exceptions - List schedule exceptions
    POST /{event_id}/exceptions - Add a schedule exception
    GET /{event_id}/exceptions/{exception_id} - Exception details
    DELETE /{event_id}/exceptions/{exception_id} - Remove a schedule exception
"""

import asyncio
from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from ...api.dependencies import get_booking_event_service, get_current_actor
from ...core.exceptions import DomainException
from ...principal import Actor
from ...schemas.booking_event import (
    BookingEventCreate,
    BookingEventListResponse,
    BookingEventResponse,
    BookingEventUpdate,
    BookingEventUpdateResponse,
    ScheduleExceptionCreate,
    ScheduleExceptionListResponse,
    ScheduleExceptionResponse,
)
from ...services.booking_event_service import BookingEventService
from .bookings import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["booking-events-v1"])


@router.get("", response_model=BookingEventListResponse)
async def list_booking_events(
    provider_id: Optional[str] = Query(None, description="Admin/support only"),
    include_inactive: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> BookingEventListResponse:
    try:
        events = await asyncio.to_thread(
            event_service.list_events,
            actor,
            provider_id=provider_id,
            include_inactive=include_inactive,
            limit=limit,
            offset=offset,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return BookingEventListResponse(
        events=[BookingEventResponse.from_event(event) for event in events],
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=BookingEventResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_event(
    payload: BookingEventCreate,
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> BookingEventResponse:
    try:
        event = await asyncio.to_thread(event_service.create_event, actor, payload)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingEventResponse.from_event(event)


@router.get("/{event_id}", response_model=BookingEventResponse)
async def get_booking_event(
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> BookingEventResponse:
    try:
        event = await asyncio.to_thread(event_service.get_event, event_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingEventResponse.from_event(event)


@router.patch("/{event_id}", response_model=BookingEventUpdateResponse)
async def update_booking_event(
    payload: BookingEventUpdate,
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> BookingEventUpdateResponse:
    """``slots_regenerated`` is False when nothing slot-relevant changed or the rebuild failed."""
    try:
        result = await asyncio.to_thread(event_service.update_event, event_id, actor, payload)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingEventUpdateResponse(
        event=BookingEventResponse.from_event(result.event),
        changes=result.changes,
        slots_regenerated=result.slots_regenerated,
    )


@router.delete(
    "/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_booking_event(
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> Response:
    try:
        await asyncio.to_thread(event_service.archive_event, event_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{event_id}/exceptions", response_model=ScheduleExceptionListResponse)
async def list_schedule_exceptions(
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(25, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> ScheduleExceptionListResponse:
    try:
        exceptions = await asyncio.to_thread(
            event_service.list_exceptions,
            event_id,
            actor,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return ScheduleExceptionListResponse(
        exceptions=[ScheduleExceptionResponse.from_exception(exc) for exc in exceptions],
        limit=limit,
        offset=offset,
    )


@router.post(
    "/{event_id}/exceptions",
    response_model=ScheduleExceptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_schedule_exception(
    payload: ScheduleExceptionCreate,
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> ScheduleExceptionResponse:
    try:
        exception = await asyncio.to_thread(event_service.create_exception, event_id, actor, payload)
    except DomainException as e:
        handle_domain_exception(e)
    return ScheduleExceptionResponse.from_exception(exception)


@router.get("/{event_id}/exceptions/{exception_id}", response_model=ScheduleExceptionResponse)
async def get_schedule_exception(
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    exception_id: str = Path(..., description="Schedule exception ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> ScheduleExceptionResponse:
    try:
        exception = await asyncio.to_thread(event_service.get_exception, event_id, exception_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return ScheduleExceptionResponse.from_exception(exception)


@router.delete(
    "/{event_id}/exceptions/{exception_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_schedule_exception(
    event_id: str = Path(..., description="Booking event ULID", pattern=ULID_PATH_PATTERN),
    exception_id: str = Path(..., description="Schedule exception ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    event_service: BookingEventService = Depends(get_booking_event_service),
) -> Response:
    try:
        await asyncio.to_thread(event_service.delete_exception, event_id, exception_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

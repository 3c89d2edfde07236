# backend/careslot/routes/v1/time_slots.py
"""
Time slot routes - API v1

Endpoints:
    GET / - Available slots for a provider event (public)
    GET /{slot_id} - Slot details (public)
    POST /{slot_id}/block - Provider takes an available slot off sale
    POST /{slot_id}/unblock - Provider reopens a blocked slot
"""

import asyncio
from datetime import date
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from ...api.dependencies import get_current_actor, get_slot_service
from ...core.exceptions import DomainException
from ...principal import Actor
from ...schemas.booking import TimeSlotListResponse, TimeSlotResponse
from ...services.slot_service import SlotService
from .bookings import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["time-slots-v1"])


@router.get("", response_model=TimeSlotListResponse)
async def list_available_slots(
    provider_event_id: str = Query(..., min_length=1),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    slot_service: SlotService = Depends(get_slot_service),
) -> TimeSlotListResponse:
    try:
        slots = await asyncio.to_thread(
            slot_service.list_available_slots,
            provider_event_id,
            date_from,
            date_to,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return TimeSlotListResponse(slots=[TimeSlotResponse.from_slot(slot) for slot in slots])


@router.get("/{slot_id}", response_model=TimeSlotResponse)
async def get_time_slot(
    slot_id: str = Path(..., description="Time slot ULID", pattern=ULID_PATH_PATTERN),
    slot_service: SlotService = Depends(get_slot_service),
) -> TimeSlotResponse:
    """Public lookup; no authentication required."""
    try:
        slot = await asyncio.to_thread(slot_service.get_time_slot, slot_id)
    except DomainException as e:
        handle_domain_exception(e)
    return TimeSlotResponse.from_slot(slot)


@router.post("/{slot_id}/block", response_model=TimeSlotResponse)
async def block_slot(
    slot_id: str = Path(..., description="Time slot ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    slot_service: SlotService = Depends(get_slot_service),
) -> TimeSlotResponse:
    try:
        slot = await asyncio.to_thread(slot_service.block_slot, slot_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return TimeSlotResponse.from_slot(slot)


@router.post("/{slot_id}/unblock", response_model=TimeSlotResponse)
async def unblock_slot(
    slot_id: str = Path(..., description="Time slot ULID", pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    slot_service: SlotService = Depends(get_slot_service),
) -> TimeSlotResponse:
    try:
        slot = await asyncio.to_thread(slot_service.unblock_slot, slot_id, actor)
    except DomainException as e:
        handle_domain_exception(e)
    return TimeSlotResponse.from_slot(slot)

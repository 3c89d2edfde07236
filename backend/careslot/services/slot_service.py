# backend/careslot/services/slot_service.py
"""
Slot store service.

Materializes slots from booking event configurations, lets providers block
and unblock open slots, and prunes stale never-booked slots. Booking-driven
status changes (reserve/release) live in the reservation engine.
"""

from datetime import date, datetime, time, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ForbiddenException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import as_utc, utc_now
from ..models.booking_event import BookingEventConfiguration
from ..models.time_slot import SlotStatus, TimeSlot
from ..principal import Actor
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .slot_generation import generate_slots

logger = logging.getLogger(__name__)


class SlotService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.slot_repository = RepositoryFactory.create_time_slot_repository(db)
        self.event_repository = RepositoryFactory.create_booking_event_repository(db)

    @BaseService.measure_operation("materialize_slots")
    def materialize_slots(
        self,
        config_id: str,
        range_start: datetime,
        range_end: datetime,
        now: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        Persist generated slots for one configuration.

        Start times already present for the event are skipped, so existing
        available, blocked or booked slots are never duplicated or overwritten.

        Returns:
            Counts ``{"generated", "created", "duplicates"}``
        """
        now = as_utc(now) if now is not None else utc_now()
        range_start = as_utc(range_start)
        range_end = as_utc(range_end)
        if range_end <= range_start:
            raise ValidationException(
                "range_end must be after range_start", code="INVALID_RANGE"
            )

        config = self._get_config_or_404(config_id)
        with self.transaction():
            counts = self._write_generated_slots(config, range_start, range_end, now)

        self.log_operation("slots_materialized", provider_event_id=config.id, **counts)
        return counts

    @BaseService.measure_operation("regenerate_event_slots")
    def regenerate_event_slots(self, config_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Rebuild an event's open slots after its template or exceptions changed.

        In one transaction, future ``available`` slots nobody ever booked are
        deleted and, for an active configuration, ``slot_generation_days`` are
        generated again from ``now``. Booked and blocked slots are untouched.

        Returns:
            Counts ``{"removed", "generated", "created", "duplicates"}``
        """
        now = as_utc(now) if now is not None else utc_now()
        config = self._get_config_or_404(config_id)
        range_end = now + timedelta(days=settings.slot_generation_days)

        with self.transaction():
            removed = self.slot_repository.delete_open_slots_from(config.id, now)
            counts = {"generated": 0, "created": 0, "duplicates": 0}
            if config.is_active:
                counts = self._write_generated_slots(config, now, range_end, now)

        result = {"removed": removed, **counts}
        self.log_operation("slots_regenerated", provider_event_id=config.id, **result)
        return result

    @BaseService.measure_operation("generate_for_active_events")
    def generate_for_active_events(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Materialize ``slot_generation_days`` ahead for every active configuration.

        A failing configuration is logged and reported; the others still run.
        """
        now = as_utc(now) if now is not None else utc_now()
        range_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
        range_end = range_start + timedelta(days=settings.slot_generation_days)

        summary: Dict[str, Any] = {
            "events": 0,
            "generated": 0,
            "created": 0,
            "duplicates": 0,
            "failed_events": [],
        }
        offset = 0
        batch_size = settings.slot_generation_batch_size
        while True:
            configs = self.event_repository.list_active(offset=offset, limit=batch_size)
            # End the read so each configuration gets its own write transaction
            self.db.commit()
            if not configs:
                break
            for config in configs:
                summary["events"] += 1
                try:
                    counts = self.materialize_slots(config.id, range_start, range_end, now)
                except Exception as exc:
                    summary["failed_events"].append({"provider_event_id": config.id, "error": str(exc)})
                    self.logger.error(
                        "Slot generation failed for event %s: %s",
                        config.id,
                        exc,
                        extra={"provider_event_id": config.id},
                    )
                    continue
                for key in ("generated", "created", "duplicates"):
                    summary[key] += counts[key]
            if len(configs) < batch_size:
                break
            offset += batch_size

        self.logger.info(
            "Slot generation finished: %d events, %d created, %d duplicates, %d failed",
            summary["events"],
            summary["created"],
            summary["duplicates"],
            len(summary["failed_events"]),
        )
        return summary

    @BaseService.measure_operation("block_slot")
    def block_slot(self, slot_id: str, actor: Actor) -> TimeSlot:
        """Provider owner or admin takes an ``available`` slot off sale."""
        slot = self._get_owned_slot(slot_id, actor, "block")
        with self.transaction():
            if not self.slot_repository.block_slot(slot.id):
                raise SlotUnavailableException(
                    slot.id,
                    "Only available slots can be blocked",
                    details={"current_status": self.slot_repository.get_fresh(slot.id).status},
                )
        self.log_operation("slot_blocked", slot_id=slot.id, actor_id=actor.id)
        return slot

    @BaseService.measure_operation("unblock_slot")
    def unblock_slot(self, slot_id: str, actor: Actor) -> TimeSlot:
        slot = self._get_owned_slot(slot_id, actor, "unblock")
        with self.transaction():
            if not self.slot_repository.unblock_slot(slot.id):
                raise SlotUnavailableException(
                    slot.id,
                    "Only blocked slots can be unblocked",
                    details={"current_status": self.slot_repository.get_fresh(slot.id).status},
                )
        self.log_operation("slot_unblocked", slot_id=slot.id, actor_id=actor.id)
        return slot

    @BaseService.measure_operation("cleanup_old_slots")
    def cleanup_old_available_slots(
        self, retention_days: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """Delete never-booked slots that ended more than ``retention_days`` ago."""
        now = as_utc(now) if now is not None else utc_now()
        days = retention_days if retention_days is not None else settings.available_slot_retention_days
        cutoff = now - timedelta(days=days)
        with self.transaction():
            deleted = self.slot_repository.delete_old_available(cutoff)
        self.log_operation("old_slots_deleted", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    @BaseService.measure_operation("get_time_slot")
    def get_time_slot(self, slot_id: str) -> TimeSlot:
        """Public slot lookup."""
        slot = self.slot_repository.get_fresh(slot_id)
        if slot is None:
            raise NotFoundException(
                "Time slot not found", code="SLOT_NOT_FOUND", details={"slot_id": slot_id}
            )
        return slot

    @BaseService.measure_operation("list_available_slots")
    def list_available_slots(
        self,
        provider_event_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> List[TimeSlot]:
        """Bookable slots for an event; slots that already started are left out."""
        if date_from and date_to and date_from > date_to:
            raise ValidationException("date_from must be on or before date_to", code="INVALID_RANGE")
        now = as_utc(now) if now is not None else utc_now()
        return self.slot_repository.list_available(
            provider_event_id, date_from=date_from, date_to=date_to, starting_after=now
        )

    def _get_owned_slot(self, slot_id: str, actor: Actor, action: str) -> TimeSlot:
        slot = self.get_time_slot(slot_id)
        if slot.provider_id != actor.id and not actor.is_admin:
            raise ForbiddenException(
                f"Only the provider or an admin can {action} this slot",
                code="NOT_SLOT_PROVIDER",
                details={"slot_id": slot_id},
            )
        if action == "block" and slot.status == SlotStatus.BOOKED.value:
            raise SlotUnavailableException(slot_id, "Booked slots cannot be blocked")
        return slot

    def _get_config_or_404(self, config_id: str) -> BookingEventConfiguration:
        config = self.event_repository.get_fresh(config_id)
        if config is None:
            raise NotFoundException(
                "Booking event configuration not found",
                code="EVENT_NOT_FOUND",
                details={"provider_event_id": config_id},
            )
        return config

    def _write_generated_slots(
        self,
        config: BookingEventConfiguration,
        range_start: datetime,
        range_end: datetime,
        now: datetime,
    ) -> Dict[str, int]:
        """Insert generated slots whose start time is not taken yet; caller owns the transaction."""
        exceptions = self.event_repository.exceptions_in_range(config.id, range_start, range_end)
        specs = generate_slots(config, range_start, range_end, now, exceptions)
        existing = self.slot_repository.existing_start_times(config.id, range_start, range_end)
        rows = [spec.to_row() for spec in specs if spec.start_time not in existing]
        self.slot_repository.bulk_create(rows)
        return {
            "generated": len(specs),
            "created": len(rows),
            "duplicates": len(specs) - len(rows),
        }

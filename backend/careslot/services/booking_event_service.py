# backend/careslot/services/booking_event_service.py
"""
Booking event configuration management.

Providers maintain their weekly availability templates and one-off schedule
exceptions here. A change that affects which slots should exist rebuilds the
event's open slots after commit. A failed rebuild is logged and left to the
nightly generation task; the configuration change itself stands.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..core.exceptions import (
    DomainException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..core.timezone_utils import as_utc, get_timezone, utc_now
from ..core.ulid_helper import generate_ulid
from ..models.booking_event import BookingEventConfiguration, ScheduleException
from ..principal import Actor
from ..repositories.factory import RepositoryFactory
from ..schemas.booking_event import (
    BookingEventCreate,
    BookingEventUpdate,
    ScheduleExceptionCreate,
    parse_daily_configs,
)
from .base import BaseService
from .booking_authorization import require_can_view_event, require_event_owner_or_admin
from .slot_service import SlotService

logger = logging.getLogger(__name__)

# Fields that change which slots the generator emits
REGENERATION_FIELDS = frozenset(
    {
        "timezone",
        "location_types",
        "daily_configs",
        "effective_from",
        "effective_to",
        "is_active",
        "max_booking_days",
        "min_booking_minutes",
        "price",
    }
)
NULLABLE_FIELDS = frozenset({"description", "effective_to"})


@dataclass
class EventUpdateResult:
    event: BookingEventConfiguration
    changes: List[str]
    slots_regenerated: bool


class BookingEventService(BaseService):
    """Create, update and archive booking events and manage their schedule exceptions."""

    def __init__(self, db: Session, slot_service: Optional[SlotService] = None):
        super().__init__(db)
        self.event_repository = RepositoryFactory.create_booking_event_repository(db)
        self.slot_service = slot_service or SlotService(db)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking_event")
    def create_event(
        self, actor: Actor, data: BookingEventCreate, now: Optional[datetime] = None
    ) -> BookingEventConfiguration:
        """
        Create an active configuration and generate its first slots.

        Providers create events for themselves; admins may name the provider.

        Raises:
            ForbiddenException: Caller is neither a provider nor an admin
            ValidationException: Unknown timezone, malformed template or effective range
        """
        now = self._now(now)
        provider_id = self._resolve_provider(actor, data.provider_id)
        values = data.model_dump(exclude={"provider_id"})
        if values["effective_from"] is None:
            values["effective_from"] = now
        self._validate_template(
            values["timezone"], values["daily_configs"], values["effective_from"], values["effective_to"]
        )

        with self.transaction():
            event = self.event_repository.create(
                id=generate_ulid(), provider_id=provider_id, is_active=True, **values
            )

        self.log_operation(
            "booking_event_created",
            provider_event_id=event.id,
            provider_id=provider_id,
            actor_id=actor.id,
        )
        self._regenerate_slots(event.id, now)
        return event

    @BaseService.measure_operation("get_booking_event")
    def get_event(self, event_id: str, actor: Actor) -> BookingEventConfiguration:
        event = self._get_event_or_404(event_id)
        require_can_view_event(actor, event)
        return event

    @BaseService.measure_operation("list_booking_events")
    def list_events(
        self,
        actor: Actor,
        provider_id: Optional[str] = None,
        include_inactive: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[BookingEventConfiguration]:
        """Providers see their own events; admin and support may list any provider's."""
        if not actor.can_read_all:
            if provider_id is not None and provider_id != actor.id:
                raise ForbiddenException(
                    "You can only list your own booking events",
                    code="NOT_EVENT_PROVIDER",
                    details={"provider_id": provider_id},
                )
            provider_id = actor.id
        return self.event_repository.list_for_provider(
            provider_id, include_inactive=include_inactive, offset=offset, limit=limit
        )

    @BaseService.measure_operation("update_booking_event")
    def update_event(
        self,
        event_id: str,
        actor: Actor,
        data: BookingEventUpdate,
        now: Optional[datetime] = None,
    ) -> EventUpdateResult:
        """
        Apply a partial update and report which fields actually changed.

        Open slots are rebuilt only when a field in ``REGENERATION_FIELDS``
        changed. Booked and blocked slots are never touched.
        """
        now = self._now(now)
        event = self._get_event_or_404(event_id)
        require_event_owner_or_admin(actor, event, "update")

        updates = data.model_dump(exclude_unset=True)
        for key, value in updates.items():
            if value is None and key not in NULLABLE_FIELDS:
                raise ValidationException(
                    f"{key} cannot be null", code="INVALID_EVENT_UPDATE", details={"field": key}
                )
        self._validate_template(
            updates.get("timezone", event.timezone),
            updates.get("daily_configs", event.daily_configs),
            updates.get("effective_from", event.effective_from),
            updates.get("effective_to", event.effective_to),
        )

        changes = sorted(key for key, value in updates.items() if _differs(getattr(event, key), value))
        if not changes:
            return EventUpdateResult(event=event, changes=[], slots_regenerated=False)

        with self.transaction():
            self.event_repository.update(event.id, **{key: updates[key] for key in changes})

        needs_regeneration = bool(REGENERATION_FIELDS.intersection(changes))
        self.log_operation(
            "booking_event_updated",
            provider_event_id=event.id,
            actor_id=actor.id,
            changes=changes,
            requires_slot_regeneration=needs_regeneration,
        )
        regenerated = self._regenerate_slots(event.id, now) if needs_regeneration else False
        return EventUpdateResult(event=event, changes=changes, slots_regenerated=regenerated)

    @BaseService.measure_operation("archive_booking_event")
    def archive_event(
        self, event_id: str, actor: Actor, now: Optional[datetime] = None
    ) -> BookingEventConfiguration:
        """
        Deactivate an event and withdraw its open future slots.

        The row is kept because slots and bookings reference it. Existing
        bookings are not affected.
        """
        now = self._now(now)
        event = self._get_event_or_404(event_id)
        require_event_owner_or_admin(actor, event, "delete")

        if event.is_active:
            with self.transaction():
                self.event_repository.update(event.id, is_active=False)
            self.log_operation("booking_event_archived", provider_event_id=event.id, actor_id=actor.id)
        self._regenerate_slots(event.id, now)
        return event

    # ------------------------------------------------------------------
    # Schedule exceptions
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_schedule_exception")
    def create_exception(
        self,
        event_id: str,
        actor: Actor,
        data: ScheduleExceptionCreate,
        now: Optional[datetime] = None,
    ) -> ScheduleException:
        """Declare a one-off unavailable interval; open slots inside it are withdrawn."""
        now = self._now(now)
        event = self._get_event_or_404(event_id)
        require_event_owner_or_admin(actor, event, "add exceptions to")

        with self.transaction():
            exception = self.event_repository.create_exception(
                id=generate_ulid(),
                event_id=event.id,
                provider_id=event.provider_id,
                start_datetime=as_utc(data.start_datetime),
                end_datetime=as_utc(data.end_datetime),
                reason=data.reason,
            )

        self.log_operation(
            "schedule_exception_created",
            exception_id=exception.id,
            provider_event_id=event.id,
            actor_id=actor.id,
        )
        self._regenerate_slots(event.id, now)
        return exception

    @BaseService.measure_operation("list_schedule_exceptions")
    def list_exceptions(
        self,
        event_id: str,
        actor: Actor,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 25,
        offset: int = 0,
    ) -> List[ScheduleException]:
        """Exceptions overlapping the UTC date range, ordered by start."""
        if date_from and date_to and date_from > date_to:
            raise ValidationException("date_from must be on or before date_to", code="INVALID_RANGE")
        event = self._get_event_or_404(event_id)
        require_can_view_event(actor, event)

        range_start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
        range_end = (
            datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
            if date_to
            else None
        )
        return self.event_repository.list_exceptions(
            event.id, range_start=range_start, range_end=range_end, offset=offset, limit=limit
        )

    @BaseService.measure_operation("get_schedule_exception")
    def get_exception(self, event_id: str, exception_id: str, actor: Actor) -> ScheduleException:
        event = self._get_event_or_404(event_id)
        require_can_view_event(actor, event)
        return self._get_exception_or_404(event.id, exception_id)

    @BaseService.measure_operation("delete_schedule_exception")
    def delete_exception(
        self, event_id: str, exception_id: str, actor: Actor, now: Optional[datetime] = None
    ) -> None:
        """Remove an exception; the interval becomes bookable again on regeneration."""
        now = self._now(now)
        event = self._get_event_or_404(event_id)
        require_event_owner_or_admin(actor, event, "remove exceptions from")
        exception = self._get_exception_or_404(event.id, exception_id)

        with self.transaction():
            self.event_repository.delete_exception(exception)

        self.log_operation(
            "schedule_exception_deleted",
            exception_id=exception_id,
            provider_event_id=event.id,
            actor_id=actor.id,
        )
        self._regenerate_slots(event.id, now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return as_utc(now) if now is not None else utc_now()

    @staticmethod
    def _resolve_provider(actor: Actor, requested: Optional[str]) -> str:
        if actor.is_admin:
            return requested or actor.id
        if not actor.has_role(RoleName.PROVIDER):
            raise ForbiddenException(
                "Only providers can create booking events", code="NOT_A_PROVIDER"
            )
        if requested is not None and requested != actor.id:
            raise ForbiddenException(
                "Providers can only create their own booking events",
                code="NOT_EVENT_PROVIDER",
                details={"provider_id": requested},
            )
        return actor.id

    @staticmethod
    def _validate_template(
        timezone_name: str,
        daily_configs: Dict[str, Any],
        effective_from: Optional[datetime],
        effective_to: Optional[datetime],
    ) -> None:
        try:
            get_timezone(timezone_name)
        except ValueError:
            raise ValidationException(
                f"Unknown timezone: {timezone_name}",
                code="INVALID_TIMEZONE",
                details={"timezone": timezone_name},
            ) from None
        parse_daily_configs(daily_configs or {})
        if effective_from is not None and effective_to is not None:
            if as_utc(effective_to) <= as_utc(effective_from):
                raise ValidationException(
                    "effective_to must be after effective_from", code="INVALID_EFFECTIVE_RANGE"
                )

    def _get_event_or_404(self, event_id: str) -> BookingEventConfiguration:
        event = self.event_repository.get_fresh(event_id)
        if event is None:
            raise NotFoundException(
                "Booking event configuration not found",
                code="EVENT_NOT_FOUND",
                details={"provider_event_id": event_id},
            )
        return event

    def _get_exception_or_404(self, event_id: str, exception_id: str) -> ScheduleException:
        exception = self.event_repository.get_exception(exception_id)
        if exception is None or exception.event_id != event_id:
            raise NotFoundException(
                "Schedule exception not found",
                code="EXCEPTION_NOT_FOUND",
                details={"provider_event_id": event_id, "exception_id": exception_id},
            )
        return exception

    def _regenerate_slots(self, event_id: str, now: datetime) -> bool:
        try:
            self.slot_service.regenerate_event_slots(event_id, now)
        except (DomainException, RepositoryException) as exc:
            self.logger.error(
                "Slot regeneration failed for event %s: %s",
                event_id,
                exc,
                extra={"provider_event_id": event_id},
            )
            return False
        return True


def _differs(current: Any, new: Any) -> bool:
    if isinstance(current, datetime) and isinstance(new, datetime):
        return as_utc(current) != as_utc(new)
    if isinstance(current, list) and isinstance(new, list):
        return sorted(current) != sorted(new)
    return current != new

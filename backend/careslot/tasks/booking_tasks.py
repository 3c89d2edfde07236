"""
Celery tasks for the booking lifecycle.

Each task opens its own short-lived session; the services inside commit per
row or per configuration, so an interrupted run leaves nothing half-applied.
"""

import logging
from typing import Any, Callable, Dict, ParamSpec, Protocol, TypeVar, cast

from celery.result import AsyncResult
from sqlalchemy.orm import Session

from careslot.core.config import settings
from careslot.database import SessionLocal
from careslot.services.expiry_sweep import ExpirySweepService
from careslot.services.slot_service import SlotService
from careslot.tasks.beat_schedule import (
    CLEANUP_SLOTS_TASK,
    EXPIRE_PENDING_TASK,
    GENERATE_SLOTS_TASK,
)
from careslot.tasks.celery_app import celery_app

P = ParamSpec("P")
R = TypeVar("R", covariant=True)

logger = logging.getLogger(__name__)


class TaskWrapper(Protocol[P, R]):
    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> R:
        ...

    delay: Callable[..., AsyncResult]
    apply_async: Callable[..., AsyncResult]


def typed_task(
    *task_args: Any, **task_kwargs: Any
) -> Callable[[Callable[P, R]], TaskWrapper[P, R]]:
    """Return a typed Celery task decorator for mypy."""

    return cast(
        Callable[[Callable[P, R]], TaskWrapper[P, R]],
        celery_app.task(*task_args, **task_kwargs),
    )


@typed_task(name=EXPIRE_PENDING_TASK)
def expire_pending_bookings() -> Dict[str, Any]:
    """
    Auto-reject pending bookings past the confirmation window.

    Returns:
        Sweep statistics (examined/rejected/skipped/failed and failures)
    """
    db: Session = SessionLocal()
    try:
        results = ExpirySweepService(db).run()
    finally:
        db.close()

    if results.failed:
        logger.warning(
            "Expiry sweep had %d failures",
            results.failed,
            extra={"failures": results.failures},
        )
    return results.to_dict()


@typed_task(name=GENERATE_SLOTS_TASK)
def generate_upcoming_slots() -> Dict[str, Any]:
    """Materialize the next ``slot_generation_days`` of slots for active configurations."""
    db: Session = SessionLocal()
    try:
        return SlotService(db).generate_for_active_events()
    finally:
        db.close()


@typed_task(name=CLEANUP_SLOTS_TASK)
def cleanup_old_slots() -> Dict[str, Any]:
    """Delete never-booked slots older than the retention window."""
    db: Session = SessionLocal()
    try:
        deleted = SlotService(db).cleanup_old_available_slots(
            settings.available_slot_retention_days
        )
    finally:
        db.close()
    return {"deleted": deleted, "retention_days": settings.available_slot_retention_days}

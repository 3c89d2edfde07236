# backend/careslot/tasks/beat_schedule.py
"""
Celery Beat schedule for the booking engine.

- expiry sweep: fixed interval (default every 60 seconds)
- slot generation: daily at 02:00 UTC
- stale slot cleanup: daily at 03:00 UTC
"""

from datetime import timedelta
from typing import Any

from celery.schedules import crontab

EXPIRE_PENDING_TASK = "careslot.tasks.booking_tasks.expire_pending_bookings"
GENERATE_SLOTS_TASK = "careslot.tasks.booking_tasks.generate_upcoming_slots"
CLEANUP_SLOTS_TASK = "careslot.tasks.booking_tasks.cleanup_old_slots"


def get_beat_schedule(sweep_interval_seconds: int = 60) -> dict[str, dict[str, Any]]:
    """
    Build the periodic task schedule.

    Args:
        sweep_interval_seconds: Interval between expiry sweep runs

    Returns:
        Mapping of schedule entry name to Celery beat configuration dict
    """
    return {
        "expire-pending-bookings": {
            "task": EXPIRE_PENDING_TASK,
            "schedule": timedelta(seconds=sweep_interval_seconds),
            "options": {
                "queue": "bookings",
                # A tick that waits longer than its interval is superseded by the next one
                "expires": max(sweep_interval_seconds - 1, 1),
            },
        },
        "generate-booking-slots": {
            "task": GENERATE_SLOTS_TASK,
            "schedule": crontab(hour=2, minute=0),
            "options": {"queue": "bookings"},
        },
        "cleanup-old-slots": {
            "task": CLEANUP_SLOTS_TASK,
            "schedule": crontab(hour=3, minute=0),
            "options": {"queue": "bookings"},
        },
    }

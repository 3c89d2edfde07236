"""Background tasks (Celery)."""

from careslot.tasks.celery_app import celery_app

__all__ = ["celery_app"]

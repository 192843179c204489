"""
Celery tasks package for the clinic booking core.

Importing the package registers the notification and maintenance tasks with the app.
"""

from .celery_app import BaseTask, celery_app
from .enqueue import enqueue_task
from .maintenance import purge_rate_limit_counters
from .notification_tasks import booking_cancellation, booking_confirmation, booking_update

__all__ = [
    "BaseTask",
    "booking_cancellation",
    "booking_confirmation",
    "booking_update",
    "celery_app",
    "enqueue_task",
    "purge_rate_limit_counters",
]

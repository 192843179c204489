# backend/clinic_booking/tasks/celery_app.py
"""
Celery application configuration for the clinic booking core.

The core produces notification hand-offs and a periodic purge of expired
rate-limit counters. Delivery (message composition and channel
selection) runs in workers outside this package.
"""

import logging
from typing import Any

from celery import Celery, Task
from celery.signals import setup_logging

from ..core.config import settings
from .beat_schedule import get_beat_schedule

NOTIFICATION_TASK_MODULE = "clinic_booking.tasks.notification_tasks"
MAINTENANCE_TASK_MODULE = "clinic_booking.tasks.maintenance"


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = settings.broker_url
    celery_app = Celery("clinic_booking", broker=broker_url, backend=broker_url)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": settings.default_timezone,
            "enable_utc": True,
            "task_ignore_result": True,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_default_retry_delay": 60,
            "worker_hijack_root_logger": False,
            "broker_connection_retry_on_startup": True,
        }
    )
    celery_app.conf.imports = (NOTIFICATION_TASK_MODULE, MAINTENANCE_TASK_MODULE)
    celery_app.conf.task_routes = {
        "notifications.*": {"queue": settings.notification_queue},
        "delivery.*": {"queue": settings.delivery_queue},
        "maintenance.*": {"queue": "maintenance"},
    }
    celery_app.conf.beat_schedule = get_beat_schedule()
    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task with automatic retries and failure logging."""

    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 3, "countdown": 60}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

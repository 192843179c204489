# backend/clinic_booking/tasks/notification_tasks.py
"""
Celery tasks receiving booking notification hand-offs.

The core's contract ends once a payload is enqueued. These tasks record the
hand-off and forward it to the delivery subsystem's queue; composing and
sending the actual message happens there.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from celery.utils.log import get_task_logger

from ..core.config import settings
from .celery_app import BaseTask, celery_app

logger = get_task_logger(__name__)

DELIVERY_TASK = "delivery.booking_event"


def _forward(event_type: str, payload: Dict[str, Any], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    message = {"event_type": event_type, "booking": payload, **(extra or {})}
    celery_app.send_task(
        DELIVERY_TASK, kwargs={"message": message}, queue=settings.delivery_queue
    )
    logger.info(
        "Forwarded %s for booking %s (language=%s)",
        event_type,
        payload.get("id"),
        payload.get("preferred_language") or "default",
    )
    return message


@celery_app.task(name="notifications.booking_confirmation", base=BaseTask, queue="notifications")
def booking_confirmation(booking: Dict[str, Any]) -> Dict[str, Any]:
    return _forward("booking_confirmation", booking)


@celery_app.task(name="notifications.booking_update", base=BaseTask, queue="notifications")
def booking_update(booking: Dict[str, Any], update_type: str) -> Dict[str, Any]:
    return _forward("booking_update", booking, {"update_type": update_type})


@celery_app.task(name="notifications.booking_cancellation", base=BaseTask, queue="notifications")
def booking_cancellation(booking: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
    return _forward("booking_cancellation", booking, {"reason": reason})

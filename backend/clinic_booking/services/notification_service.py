# backend/clinic_booking/services/notification_service.py
"""
Notification Service for the clinic booking core.

Hands booking events to the task queue. The contract ends at "enqueued for
delivery": an enqueue failure is logged and counted, never raised, so a
notification problem cannot fail the booking operation it follows.
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.booking import BookingResponse
from ..tasks.enqueue import enqueue_task

logger = logging.getLogger(__name__)

CONFIRMATION_TASK = "notifications.booking_confirmation"
UPDATE_TASK = "notifications.booking_update"
CANCELLATION_TASK = "notifications.booking_cancellation"


class NotificationService:
    """
    Fire-and-forget dispatcher for booking notifications.

    ``enqueue`` defaults to the Celery helper; tests inject a fake.
    """

    def __init__(
        self,
        enqueue: Callable[..., Any] = enqueue_task,
        queue: Optional[str] = None,
    ):
        self._enqueue = enqueue
        self.queue = queue or settings.notification_queue
        self.logger = logging.getLogger(self.__class__.__name__)

    def send_booking_confirmation(self, booking: BookingResponse) -> bool:
        return self._dispatch(CONFIRMATION_TASK, booking, {})

    def send_booking_update(self, booking: BookingResponse, update_type: str) -> bool:
        return self._dispatch(UPDATE_TASK, booking, {"update_type": update_type})

    def send_booking_cancellation(self, booking: BookingResponse, reason: Optional[str] = None) -> bool:
        return self._dispatch(CANCELLATION_TASK, booking, {"reason": reason})

    @staticmethod
    def build_payload(booking: BookingResponse) -> Dict[str, Any]:
        """JSON-safe booking snapshot for the delivery subsystem."""
        payload = booking.model_dump(
            mode="json",
            include={
                "id",
                "patient_id",
                "provider_id",
                "service_type_id",
                "scheduled_at",
                "duration_minutes",
                "status",
                "preferred_language",
                "patient",
                "provider",
                "service_type",
                "clinic",
                "check_in_code",
                "patient_payment_amount",
            },
        )
        return payload

    def _dispatch(self, task_name: str, booking: BookingResponse, extra: Dict[str, Any]) -> bool:
        event_type = task_name.rsplit(".", 1)[-1]
        try:
            self._enqueue(
                task_name,
                kwargs={"booking": self.build_payload(booking), **extra},
                queue=self.queue,
            )
        except Exception as e:
            self.logger.error(
                f"Failed to enqueue {event_type} for booking {booking.id}: {e}",
                extra={"booking_id": booking.id, "event_type": event_type},
            )
            prometheus_metrics.record_notification(event_type, "failed")
            return False

        prometheus_metrics.record_notification(event_type, "enqueued")
        self.logger.debug(f"Enqueued {event_type} for booking {booking.id}")
        return True

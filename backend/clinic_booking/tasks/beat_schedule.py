# backend/clinic_booking/tasks/beat_schedule.py
"""
Celery Beat schedule for the clinic booking core.
"""

from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Longest rate-limit window is five minutes; a quarter hour keeps the table small
    "purge-rate-limit-counters": {
        "task": "maintenance.purge_rate_limit_counters",
        "schedule": crontab(minute="*/15"),
        "options": {"queue": "maintenance", "priority": 2},
    },
}


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return dict(CELERYBEAT_SCHEDULE)

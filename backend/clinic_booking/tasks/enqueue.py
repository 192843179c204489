"""
Centralized task enqueue helper.

Always use enqueue_task() instead of task.delay() so the producer side never
needs the task modules imported and every hand-off goes through one seam.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from .celery_app import celery_app

logger = logging.getLogger(__name__)


def enqueue_task(
    task_name: str,
    args: Optional[Tuple[Any, ...]] = None,
    kwargs: Optional[Dict[str, Any]] = None,
    **options: Any,
) -> Any:
    """
    Enqueue a Celery task by name.

    Args:
        task_name: Registered task name (e.g., "notifications.booking_confirmation")
        args: Positional arguments for the task
        kwargs: Keyword arguments for the task
        **options: Additional apply_async options (queue, countdown, headers, etc.)

    Returns:
        AsyncResult from Celery
    """
    headers = options.pop("headers", None) or {}
    return celery_app.send_task(
        task_name, args=args or (), kwargs=kwargs or {}, headers=headers, **options
    )

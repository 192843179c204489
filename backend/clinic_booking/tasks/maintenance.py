# backend/clinic_booking/tasks/maintenance.py
"""
Periodic database maintenance.

Durable rate-limit counters are only read during their own window, so rows
for past windows are dead weight and get purged on a schedule.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from ..database import init_session_factory
from ..repositories.factory import RepositoryFactory
from .celery_app import BaseTask, celery_app

logger = get_task_logger(__name__)


def purge_expired_rate_limit_counters(
    session_factory: Callable[[], Session], now: Optional[datetime] = None
) -> int:
    """Delete counters whose window ended before ``now``. Returns the row count."""
    now = now or datetime.now(timezone.utc)
    session = session_factory()
    try:
        removed = RepositoryFactory.create_rate_limit_repository(session).purge_expired(now)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if removed:
        logger.info("[DB-MAINT] Purged %d expired rate limit counters", removed)
    return removed


@celery_app.task(name="maintenance.purge_rate_limit_counters", base=BaseTask)
def purge_rate_limit_counters() -> int:
    return purge_expired_rate_limit_counters(init_session_factory())

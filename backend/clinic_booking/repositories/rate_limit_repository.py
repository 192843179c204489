# backend/clinic_booking/repositories/rate_limit_repository.py
"""
Durable counter store for the rate limiter.

``increment_and_get`` is a single atomic upsert on PostgreSQL and SQLite so
two requests racing on a fresh window cannot both observe count 1.
"""

from datetime import datetime
import logging
from typing import cast

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ..models.rate_limit import RateLimitCounter
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RateLimitRepository(BaseRepository[RateLimitCounter]):
    def __init__(self, db: Session):
        super().__init__(db, RateLimitCounter)

    def increment_and_get(self, key: str, window_start: int, expires_at: datetime) -> int:
        """Add one to the (key, window_start) counter and return the new count."""
        dialect = self.dialect_name
        if dialect in ("postgresql", "sqlite"):
            insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert_fn(RateLimitCounter).values(
                key=key, window_start=window_start, count=1, expires_at=expires_at
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[RateLimitCounter.key, RateLimitCounter.window_start],
                set_={"count": RateLimitCounter.count + 1},
            ).returning(RateLimitCounter.count)
            return int(self.db.execute(stmt).scalar_one())

        counter = cast(
            RateLimitCounter,
            self.db.query(RateLimitCounter)
            .filter(RateLimitCounter.key == key, RateLimitCounter.window_start == window_start)
            .with_for_update()
            .first(),
        )
        if counter is None:
            counter = RateLimitCounter(
                key=key, window_start=window_start, count=1, expires_at=expires_at
            )
            self.db.add(counter)
        else:
            counter.count += 1
        self.db.flush()
        return int(counter.count)

    def purge_expired(self, now: datetime) -> int:
        """Remove counters whose window has passed. Safe to run at any time."""
        result = self.db.execute(delete(RateLimitCounter).where(RateLimitCounter.expires_at < now))
        return int(result.rowcount or 0)

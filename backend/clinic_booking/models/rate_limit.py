# backend/clinic_booking/models/rate_limit.py
"""
Durable fixed-window counter used when the rate-limit cache is unreachable.
"""

from sqlalchemy import BigInteger, Column, Integer, String, UniqueConstraint
import ulid

from ..database import Base
from .types import UTCDateTime


class RateLimitCounter(Base):
    __tablename__ = "rate_limit_counters"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    key = Column(String(255), nullable=False)
    window_start = Column(BigInteger, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    expires_at = Column(UTCDateTime, nullable=False, index=True)

    __table_args__ = (UniqueConstraint("key", "window_start", name="uq_rate_limit_counters_window"),)

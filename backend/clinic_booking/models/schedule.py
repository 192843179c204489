# backend/clinic_booking/models/schedule.py
"""
Recurring provider schedules and blocked slots.

Classes:
    ProviderSchedule: Weekly availability window, optionally scoped to a service type
    BlockedSlot: Single instant removed from a provider's availability
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class ProviderSchedule(Base):
    """
    Weekly schedule window in the clinic's local time.

    ``day_of_week`` uses 0 for Sunday through 6 for Saturday. Several active
    windows may exist for one provider and day; each yields slots on its own.
    """

    __tablename__ = "provider_schedules"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    clinic_id = Column(String(26), ForeignKey("clinics.id"), nullable=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False, default=30)
    service_type_id = Column(String(26), ForeignKey("service_types.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    provider = relationship("Provider", back_populates="schedules")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_provider_schedules_day_of_week"),
        CheckConstraint("slot_duration_minutes > 0", name="ck_provider_schedules_slot_duration"),
        CheckConstraint("start_time < end_time", name="ck_provider_schedules_window"),
        Index("idx_provider_schedules_lookup", "provider_id", "day_of_week", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProviderSchedule {self.provider_id} dow={self.day_of_week} "
            f"{self.start_time}-{self.end_time}>"
        )


class BlockedSlot(Base):
    __tablename__ = "blocked_slots"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    provider_id = Column(String(26), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)
    blocked_at = Column(UTCDateTime, nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("provider_id", "blocked_at", name="uq_blocked_slots_provider_time"),
    )

    def __repr__(self) -> str:
        return f"<BlockedSlot {self.provider_id} {self.blocked_at} - {self.reason or 'No reason'}>"

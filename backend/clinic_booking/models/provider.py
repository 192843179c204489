# backend/clinic_booking/models/provider.py
"""
Provider model.

Providers are clinicians who see patients. Deactivated providers keep their
booking history but are excluded from availability and new bookings.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class Provider(Base):
    __tablename__ = "providers"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    clinic_id = Column(String(26), ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    specialization = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    average_rating = Column(Numeric(3, 2), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    clinic = relationship("Clinic", back_populates="providers")
    schedules = relationship("ProviderSchedule", back_populates="provider")

    def __repr__(self) -> str:
        status = " (inactive)" if not self.is_active else ""
        return f"<Provider {self.name}{status}>"

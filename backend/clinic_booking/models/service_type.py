# backend/clinic_booking/models/service_type.py
"""
Service type model.

Service types are the appointment kinds a clinic offers. ``base_price`` and
``insurance_covered`` drive booking pricing at creation time.
"""

import logging

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class ServiceType(Base):
    __tablename__ = "service_types"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    clinic_id = Column(String(26), ForeignKey("clinics.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    insurance_covered = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    clinic = relationship("Clinic", back_populates="service_types")

    def __repr__(self) -> str:
        status = " (inactive)" if not self.is_active else ""
        return f"<ServiceType {self.name} {self.base_price}{status}>"

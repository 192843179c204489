# backend/clinic_booking/models/clinic.py
"""
Clinic and cancellation policy models.

A clinic owns its providers and service types, and defines the notice
period a patient must give before cancelling without penalty.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship
import ulid

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="Asia/Tokyo")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    providers = relationship("Provider", back_populates="clinic")
    service_types = relationship("ServiceType", back_populates="clinic")
    cancellation_policies = relationship(
        "CancellationPolicy", back_populates="clinic", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Clinic {self.name}>"


class CancellationPolicy(Base):
    """
    Late-cancellation rule for a clinic.

    A policy scoped to a service type takes precedence over the clinic-wide
    policy (``service_type_id`` NULL) for bookings of that type.
    """

    __tablename__ = "cancellation_policies"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    clinic_id = Column(String(26), ForeignKey("clinics.id", ondelete="CASCADE"), nullable=False)
    service_type_id = Column(String(26), ForeignKey("service_types.id"), nullable=True)
    minimum_hours_notice = Column(Integer, nullable=False, default=24)
    penalty_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    clinic = relationship("Clinic", back_populates="cancellation_policies")

    __table_args__ = (Index("idx_cancellation_policies_clinic", "clinic_id", "is_active"),)

    def __repr__(self) -> str:
        return (
            f"<CancellationPolicy clinic={self.clinic_id} "
            f"{self.minimum_hours_notice}h/{self.penalty_percentage}%>"
        )

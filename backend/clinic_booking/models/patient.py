# backend/clinic_booking/models/patient.py
"""
Patient, payment method, and insurance models.

Payment methods and insurance records belong to exactly one patient; a
booking may only reference records owned by the booking patient.
"""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import PreferredLanguage
from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(32), nullable=True)
    preferred_language = Column(String(8), nullable=False, default=PreferredLanguage.JA.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    payment_methods = relationship("PaymentMethod", back_populates="patient")
    insurances = relationship("PatientInsurance", back_populates="patient")

    def __repr__(self) -> str:
        return f"<Patient {self.id}>"


class PaymentMethod(Base):
    """Stored reference to a payment-provider method. Charging happens elsewhere."""

    __tablename__ = "payment_methods"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    patient_id = Column(String(26), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    provider_reference = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    patient = relationship("Patient", back_populates="payment_methods")


class PatientInsurance(Base):
    __tablename__ = "patient_insurances"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    patient_id = Column(String(26), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    insurer_name = Column(String(255), nullable=True)
    coverage_percentage = Column(Integer, nullable=True)
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    patient = relationship("Patient", back_populates="insurances")

    def __repr__(self) -> str:
        return f"<PatientInsurance {self.id} {self.coverage_percentage}%>"

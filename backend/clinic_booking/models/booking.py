# backend/clinic_booking/models/booking.py
"""
Booking model for the clinic booking core.

Bookings are never deleted; cancellation is a status change so the row is
kept for audit. Amounts are fixed at creation and do not follow later
insurance changes.

At most one pending/confirmed booking may hold a (provider, scheduled_at)
pair. The partial unique index below enforces that in storage so a losing
concurrent insert is rejected even when both requests passed validation.
"""

from decimal import Decimal
import logging
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import BookingStatus, NON_TERMINAL_STATUSES
from ..core.timezone_utils import utc_now
from ..database import Base
from .types import StringListType, UTCDateTime

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_SQL = "status IN ('pending', 'confirmed')"


class Booking(Base):
    """
    Appointment between a patient and a provider for one service type.

    Status flow: pending -> confirmed -> completed | no_show, and cancelled
    from either non-terminal state. Terminal rows are immutable.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Core relationships
    patient_id = Column(String(26), ForeignKey("patients.id"), nullable=False, index=True)
    provider_id = Column(String(26), ForeignKey("providers.id"), nullable=False, index=True)
    service_type_id = Column(String(26), ForeignKey("service_types.id"), nullable=False)

    scheduled_at = Column(UTCDateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)

    # Pricing snapshot
    total_amount = Column(Numeric(10, 2), nullable=False)
    insurance_covered_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    patient_payment_amount = Column(Numeric(10, 2), nullable=False)

    payment_method_id = Column(String(26), ForeignKey("payment_methods.id"), nullable=True)
    insurance_id = Column(String(26), ForeignKey("patient_insurances.id"), nullable=True)

    # Intake details
    notes = Column(Text, nullable=True)
    medical_record_number = Column(String(50), nullable=True)
    is_first_visit = Column(Boolean, nullable=False, default=True)
    symptoms = Column(StringListType, nullable=True)
    preferred_language = Column(String(8), nullable=True)

    # Cancellation tracking
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(26), nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    # Audit
    created_by = Column(String(26), nullable=True)
    updated_by = Column(String(26), nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)
    confirmed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)

    patient = relationship("Patient", foreign_keys=[patient_id])
    provider = relationship("Provider", foreign_keys=[provider_id])
    service_type = relationship("ServiceType", foreign_keys=[service_type_id])
    references = relationship(
        "BookingReference", back_populates="booking", cascade="all, delete-orphan"
    )
    cancellation_fee = relationship(
        "CancellationFee", back_populates="booking", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
        Index(
            "uq_bookings_provider_slot_active",
            "provider_id",
            "scheduled_at",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("idx_bookings_patient_scheduled", "patient_id", "scheduled_at"),
        Index("idx_bookings_provider_scheduled", "provider_id", "scheduled_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING.value
        logger.debug(f"Creating booking for patient {self.patient_id} with provider {self.provider_id}")

    def __repr__(self) -> str:
        return f"<Booking {self.id} {self.scheduled_at} status={self.status}>"

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)

    def is_active(self) -> bool:
        """True while the booking still holds its slot."""
        return self.status_enum in NON_TERMINAL_STATUSES

    def cancel(self, cancelled_by: str, reason: str, at: Any = None) -> None:
        self.status = BookingStatus.CANCELLED.value
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason
        self.cancelled_at = at or utc_now()

    def confirm(self, at: Any = None) -> None:
        self.status = BookingStatus.CONFIRMED.value
        self.confirmed_at = at or utc_now()

    def complete(self, at: Any = None) -> None:
        self.status = BookingStatus.COMPLETED.value
        self.completed_at = at or utc_now()

    def mark_no_show(self) -> None:
        self.status = BookingStatus.NO_SHOW.value


class BookingReference(Base):
    """Check-in token created together with a booking."""

    __tablename__ = "booking_references"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    reference_type = Column(String(20), nullable=False, default="booking")
    code = Column(String(64), nullable=False, unique=True)
    expires_at = Column(UTCDateTime, nullable=False)
    used_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    booking = relationship("Booking", back_populates="references")


class CancellationFee(Base):
    """
    Late-cancellation fee owed by the patient.

    Rows are written as ``pending``; collection is a separate billing step.
    """

    __tablename__ = "cancellation_fees"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    amount = Column(Numeric(10, 2), nullable=False)
    penalty_percentage = Column(Numeric(5, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    booking = relationship("Booking", back_populates="cancellation_fee")

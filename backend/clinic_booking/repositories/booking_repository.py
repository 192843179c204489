# backend/clinic_booking/repositories/booking_repository.py
"""
Booking Repository for the clinic booking core.

This repository handles:
- Booking creation with integrity errors exposed for conflict handling
- Exact-instant conflict checks against non-terminal bookings
- Day-window queries used by the availability calculator
- Role-scoped, filtered, paginated listings
- Check-in references and cancellation fees
"""

from datetime import datetime
import logging
from typing import Any, List, Optional, Tuple, cast

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.enums import BookingStatus, NON_TERMINAL_STATUSES
from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingReference, CancellationFee
from ..models.provider import Provider
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_VALUES = [status.value for status in NON_TERMINAL_STATUSES]


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def create(self, **kwargs: Any) -> Booking:
        """Create a booking, exposing integrity errors for conflict handling."""
        try:
            return super().create(**kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise exc.__cause__
            raise

    def update(self, entity: Booking, **kwargs: Any) -> Booking:
        """Update a booking; a reschedule onto a held slot surfaces as IntegrityError."""
        try:
            return super().update(entity, **kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise exc.__cause__
            raise

    # Conflict and availability queries

    def find_active_conflict(
        self,
        provider_id: str,
        scheduled_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[Booking]:
        """
        Return the pending/confirmed booking holding this exact provider instant.

        Args:
            provider_id: The provider ID
            scheduled_at: Exact UTC start instant
            exclude_booking_id: Booking to ignore (the one being rescheduled)
        """
        try:
            query = self.db.query(Booking).filter(
                Booking.provider_id == provider_id,
                Booking.scheduled_at == scheduled_at,
                Booking.status.in_(_ACTIVE_STATUS_VALUES),
            )
            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)
            return cast(Optional[Booking], query.first())
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking booking conflict: {str(e)}")
            raise RepositoryException(f"Failed to check booking conflict: {str(e)}") from e

    def get_active_bookings_between(
        self, provider_id: str, start_utc: datetime, end_utc: datetime
    ) -> List[Booking]:
        """Non-terminal bookings for a provider within [start_utc, end_utc)."""
        try:
            return cast(
                List[Booking],
                self.db.query(Booking)
                .filter(
                    Booking.provider_id == provider_id,
                    Booking.scheduled_at >= start_utc,
                    Booking.scheduled_at < end_utc,
                    Booking.status.in_(_ACTIVE_STATUS_VALUES),
                )
                .order_by(Booking.scheduled_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting provider bookings: {str(e)}")
            raise RepositoryException(f"Failed to get provider bookings: {str(e)}") from e

    # Detail and listing

    def get_booking_with_details(self, booking_id: str) -> Optional[Booking]:
        """Booking joined with patient, provider (and clinic) and service type."""
        try:
            query = self.db.query(Booking).filter(Booking.id == booking_id)
            return cast(Optional[Booking], self._apply_eager_loading(query).first())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking details: {str(e)}")
            raise RepositoryException(f"Failed to get booking details: {str(e)}") from e

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """Load a booking with a row lock where the dialect supports one."""
        try:
            query = self.db.query(Booking).filter(Booking.id == booking_id)
            if self.dialect_name == "postgresql":
                query = query.with_for_update()
            return cast(Optional[Booking], query.first())
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to load booking: {str(e)}") from e

    def list_bookings(
        self,
        *,
        patient_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        start_utc: Optional[datetime] = None,
        end_utc: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Booking], int]:
        """
        Filtered page of bookings plus the total matching count.

        Ordering is by appointment time (newest first) then id, so pages are
        stable for a fixed data set.
        """
        try:
            query = self.db.query(Booking)
            if patient_id:
                query = query.filter(Booking.patient_id == patient_id)
            if provider_id:
                query = query.filter(Booking.provider_id == provider_id)
            if status:
                query = query.filter(Booking.status == BookingStatus(status).value)
            if start_utc:
                query = query.filter(Booking.scheduled_at >= start_utc)
            if end_utc:
                query = query.filter(Booking.scheduled_at < end_utc)

            total = query.count()
            rows = (
                self._apply_eager_loading(query)
                .order_by(Booking.scheduled_at.desc(), Booking.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
            return cast(List[Booking], rows), total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}") from e

    # Auxiliary rows

    def create_reference(self, booking_id: str, code: str, expires_at: datetime) -> BookingReference:
        try:
            reference = BookingReference(
                booking_id=booking_id,
                reference_type="booking",
                code=code,
                expires_at=expires_at,
            )
            self.db.add(reference)
            self.db.flush()
            return reference
        except SQLAlchemyError as e:
            self.logger.warning(f"Error creating booking reference: {str(e)}")
            raise RepositoryException(f"Failed to create booking reference: {str(e)}") from e

    def get_check_in_code(self, booking_id: str) -> Optional[str]:
        try:
            reference = (
                self.db.query(BookingReference)
                .filter(
                    BookingReference.booking_id == booking_id,
                    BookingReference.reference_type == "booking",
                )
                .order_by(BookingReference.created_at.desc())
                .first()
            )
            return reference.code if reference else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting check-in reference: {str(e)}")
            raise RepositoryException(f"Failed to get check-in reference: {str(e)}") from e

    def update_reference_expiry(self, booking_id: str, expires_at: datetime) -> int:
        """Move the expiry of unused check-in references after a reschedule."""
        count = (
            self.db.query(BookingReference)
            .filter(
                BookingReference.booking_id == booking_id,
                BookingReference.used_at.is_(None),
            )
            .update({BookingReference.expires_at: expires_at}, synchronize_session="fetch")
        )
        return int(count or 0)

    def create_cancellation_fee(
        self, booking_id: str, amount: Any, penalty_percentage: Any
    ) -> CancellationFee:
        try:
            fee = CancellationFee(
                booking_id=booking_id,
                amount=amount,
                penalty_percentage=penalty_percentage,
                status="pending",
            )
            self.db.add(fee)
            self.db.flush()
            return fee
        except SQLAlchemyError as e:
            self.logger.warning(f"Error creating cancellation fee: {str(e)}")
            raise RepositoryException(f"Failed to create cancellation fee: {str(e)}") from e

    def get_cancellation_fee(self, booking_id: str) -> Optional[CancellationFee]:
        return cast(
            Optional[CancellationFee],
            self.db.query(CancellationFee).filter(CancellationFee.booking_id == booking_id).first(),
        )

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Booking.patient),
            joinedload(Booking.provider).joinedload(Provider.clinic),
            joinedload(Booking.service_type),
        )

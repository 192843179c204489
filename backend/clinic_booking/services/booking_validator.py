# backend/clinic_booking/services/booking_validator.py
"""
Booking Validator for the clinic booking core.

Enforces schema and business rules for create, update and cancel requests.
Checks run in a fixed order so callers always see the first violated rule:

1. Request schema
2. Bookable window (minimum notice and maximum advance)
3. Provider, patient and service type (exists, active, offered)
4. Slot (inside an active schedule window, not blocked, not taken)
5. Payment method and insurance ownership

The slot check is an early, friendlier error path. Two concurrent creates
can both pass it; the partial unique index on bookings rejects the loser.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from pytz.tzinfo import BaseTzInfo
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    AuthorizationException,
    BookingConflictException,
    ConflictException,
    InvalidStateException,
    NotActiveException,
    NotFoundException,
    OutOfWindowException,
    ValidationException,
)
from ..core.timezone_utils import add_months, ensure_utc, get_timezone, to_local
from ..models.booking import Booking
from ..models.patient import Patient, PatientInsurance, PaymentMethod
from ..models.provider import Provider
from ..models.schedule import ProviderSchedule
from ..models.service_type import ServiceType
from ..principal import Actor
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate, BookingUpdate
from .availability_service import AvailabilityService
from .base import BaseService

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class ValidatedBooking:
    """Everything the lifecycle manager needs to insert a new booking."""

    data: BookingCreate
    provider: Provider
    patient: Patient
    service_type: ServiceType
    schedule: ProviderSchedule
    timezone: BaseTzInfo
    payment_method: Optional[PaymentMethod] = None
    insurance: Optional[PatientInsurance] = None


@dataclass
class ValidatedUpdate:
    booking: Booking
    changes: Dict[str, Any]
    service_type: Optional[ServiceType] = None
    rescheduled: bool = False
    previous_scheduled_at: Optional[datetime] = None


@dataclass(frozen=True)
class CancellationDecision:
    """
    Outcome of the cancellation policy check.

    ``requires_penalty`` is set when the notice given is shorter than the
    clinic policy; the caller charges ``penalty_percentage`` of the
    patient's share.
    """

    booking: Booking
    requires_penalty: bool
    penalty_percentage: Decimal
    hours_until_appointment: float
    message: Optional[str] = field(default=None)


class BookingValidator(BaseService):
    def __init__(
        self,
        db: Session,
        availability_service: Optional[AvailabilityService] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(db)
        self.availability_service = availability_service or AvailabilityService(db)
        self.now_provider = now_provider or self.availability_service.now_provider
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_repository(db)
        self.patient_repository = RepositoryFactory.create_patient_repository(db)
        self.clinic_repository = RepositoryFactory.create_clinic_repository(db)
        self.schedule_repository = RepositoryFactory.create_schedule_repository(db)
        self.service_type_repository = RepositoryFactory.create_base_repository(db, ServiceType)

    # Create

    @BaseService.measure_operation("validate_create")
    def validate_create(self, payload: Union[BookingCreate, Dict[str, Any]]) -> ValidatedBooking:
        """
        Validate a new booking request.

        Raises:
            ValidationException: Malformed input, outside schedule, expired reference
            OutOfWindowException: Less than the minimum notice or beyond the maximum advance
            NotFoundException / NotActiveException: Missing or deactivated references
            ConflictException: Slot blocked or already held by a pending/confirmed booking
        """
        data = self._parse(BookingCreate, payload)
        self._check_window(data.scheduled_at)

        provider = self._get_active_provider(data.provider_id)
        patient = self._get_active_patient(data.patient_id)
        service_type = self._get_offered_service_type(data.service_type_id, provider)

        tz = self.clinic_timezone(provider)
        schedule = self._check_slot(provider.id, data.scheduled_at, service_type.id, tz)

        payment_method = None
        if data.payment_method_id:
            payment_method = self._get_payment_method(data.payment_method_id, patient.id)
        insurance = None
        if data.insurance_id:
            insurance = self._get_insurance(data.insurance_id, patient.id, tz)

        return ValidatedBooking(
            data=data,
            provider=provider,
            patient=patient,
            service_type=service_type,
            schedule=schedule,
            timezone=tz,
            payment_method=payment_method,
            insurance=insurance,
        )

    # Update

    @BaseService.measure_operation("validate_update")
    def validate_update(
        self,
        booking_id: str,
        payload: Union[BookingUpdate, Dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> ValidatedUpdate:
        """
        Validate a partial update.

        A changed ``scheduled_at`` re-runs the window and slot checks while
        ignoring the booking's own row. A changed service type must be
        offered by the booking's provider and covered by the booked window.
        """
        data = self._parse(BookingUpdate, payload)
        booking = self.booking_repository.get_for_update(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)
        if actor is not None and not actor.can_access(booking.patient_id, booking.provider_id):
            raise AuthorizationException(
                "Not authorized to update this booking",
                code="FORBIDDEN",
                details={"entity_id": booking_id},
            )
        if not booking.is_active():
            raise InvalidStateException(
                f"Cannot update booking with status: {booking.status}",
                entity_id=booking.id,
                current_status=booking.status,
            )

        changes = data.changes()
        provider = self._get_active_provider(booking.provider_id)

        service_type = None
        new_service_type_id = changes.get("service_type_id")
        if new_service_type_id and new_service_type_id != booking.service_type_id:
            service_type = self._get_offered_service_type(new_service_type_id, provider)
            changes.setdefault("duration_minutes", service_type.duration_minutes)

        rescheduled = False
        previous = ensure_utc(booking.scheduled_at)
        new_time = changes.get("scheduled_at")
        if new_time is not None and ensure_utc(new_time) != previous:
            self._check_window(new_time)
            tz = self.clinic_timezone(provider)
            self._check_slot(
                provider.id,
                new_time,
                new_service_type_id or booking.service_type_id,
                tz,
                exclude_booking_id=booking.id,
            )
            rescheduled = True
        else:
            changes.pop("scheduled_at", None)
            if service_type is not None:
                # Same instant, but the current window must cover the new type
                self._check_schedule(
                    provider.id, previous, service_type.id, self.clinic_timezone(provider)
                )

        return ValidatedUpdate(
            booking=booking,
            changes=changes,
            service_type=service_type,
            rescheduled=rescheduled,
            previous_scheduled_at=previous,
        )

    # Cancel

    @BaseService.measure_operation("validate_cancellation")
    def validate_cancellation(self, booking_id: str, actor: Actor) -> CancellationDecision:
        """
        Check that ``actor`` may cancel the booking and apply the clinic policy.

        Raises:
            NotFoundException: Booking does not exist
            AuthorizationException: Actor is neither a party to the booking nor staff
            InvalidStateException: Booking is already cancelled, completed or a no-show
        """
        booking = self.booking_repository.get_for_update(booking_id)
        if booking is None:
            raise NotFoundException("Booking", booking_id)

        if not actor.can_access(booking.patient_id, booking.provider_id):
            raise AuthorizationException(
                "Unauthorized to cancel this booking",
                code="FORBIDDEN",
                details={"entity_id": booking_id},
            )

        if not booking.is_active():
            raise InvalidStateException(
                f"Cannot cancel booking with status: {booking.status}",
                entity_id=booking.id,
                current_status=booking.status,
            )

        now = ensure_utc(self.now_provider())
        hours_until = (ensure_utc(booking.scheduled_at) - now).total_seconds() / 3600

        provider = self.provider_repository.get_by_id(booking.provider_id)
        policy = None
        if provider is not None:
            policy = self.clinic_repository.get_cancellation_policy(
                provider.clinic_id, booking.service_type_id
            )

        if policy is not None and hours_until < policy.minimum_hours_notice:
            penalty = Decimal(str(policy.penalty_percentage or 0))
            return CancellationDecision(
                booking=booking,
                requires_penalty=True,
                penalty_percentage=penalty,
                hours_until_appointment=hours_until,
                message=(
                    f"Cancellation within {policy.minimum_hours_notice} hours "
                    f"incurs a {penalty}% penalty"
                ),
            )

        return CancellationDecision(
            booking=booking,
            requires_penalty=False,
            penalty_percentage=Decimal("0"),
            hours_until_appointment=hours_until,
        )

    # Helpers

    @staticmethod
    def clinic_timezone(provider: Provider) -> BaseTzInfo:
        clinic = provider.clinic
        return get_timezone(clinic.timezone if clinic is not None else None)

    @staticmethod
    def _parse(model: Type[M], payload: Union[M, Dict[str, Any]]) -> M:
        if isinstance(payload, model):
            return payload
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            first = errors[0] if errors else {}
            location = ".".join(str(part) for part in first.get("loc", ()))
            message = first.get("msg", "Invalid input")
            raise ValidationException(
                f"Validation error: {location + ': ' if location else ''}{message}",
                code="INVALID_INPUT",
                details={"errors": errors},
            ) from e

    def _check_window(self, scheduled_at: datetime) -> None:
        scheduled_at = ensure_utc(scheduled_at)
        now = ensure_utc(self.now_provider())
        earliest = now + timedelta(hours=settings.min_booking_notice_hours)
        latest = add_months(now, settings.max_booking_advance_months)
        details = {
            "scheduled_at": scheduled_at.isoformat(),
            "earliest": earliest.isoformat(),
            "latest": latest.isoformat(),
        }
        if scheduled_at < earliest:
            raise OutOfWindowException(
                f"Appointments must be booked at least {settings.min_booking_notice_hours} hour(s) in advance",
                details=details,
            )
        if scheduled_at > latest:
            raise OutOfWindowException(
                f"Cannot book appointments more than {settings.max_booking_advance_months} months in advance",
                details=details,
            )

    def _get_active_provider(self, provider_id: str) -> Provider:
        provider = self.provider_repository.get_by_id(provider_id, load_relationships=True)
        if provider is None:
            raise NotFoundException("Provider", provider_id)
        if not provider.is_active:
            raise NotActiveException("Provider", provider_id)
        return provider

    def _get_active_patient(self, patient_id: str) -> Patient:
        patient = self.patient_repository.get_by_id(patient_id)
        if patient is None:
            raise NotFoundException("Patient", patient_id)
        if not patient.is_active:
            raise NotActiveException("Patient", patient_id, "Patient account is not active")
        return patient

    def _get_offered_service_type(self, service_type_id: str, provider: Provider) -> ServiceType:
        service_type = self.service_type_repository.get_by_id(service_type_id)
        if service_type is None:
            raise NotFoundException("ServiceType", service_type_id)
        if not service_type.is_active:
            raise NotActiveException("ServiceType", service_type_id)

        offered = self.schedule_repository.provider_offers_service(provider.id, service_type.id)
        if not offered and service_type.clinic_id == provider.clinic_id:
            offered = self.schedule_repository.has_unscoped_schedule(provider.id)
        if not offered:
            raise ValidationException(
                "Provider does not offer this service type",
                code="SERVICE_NOT_OFFERED",
                details={"provider_id": provider.id, "service_type_id": service_type_id},
            )
        return service_type

    def _check_schedule(
        self,
        provider_id: str,
        scheduled_at: datetime,
        service_type_id: Optional[str],
        tz: BaseTzInfo,
    ) -> ProviderSchedule:
        schedule = self.availability_service.resolve_schedule_for(
            provider_id, scheduled_at, service_type_id, tz
        )
        if schedule is None:
            local = to_local(scheduled_at, tz)
            raise ValidationException(
                "Provider is not available at this time",
                code="OUTSIDE_SCHEDULE",
                details={
                    "provider_id": provider_id,
                    "scheduled_at": scheduled_at.isoformat(),
                    "local_time": local.strftime("%Y-%m-%d %H:%M"),
                },
            )
        return schedule

    def _check_slot(
        self,
        provider_id: str,
        scheduled_at: datetime,
        service_type_id: Optional[str],
        tz: BaseTzInfo,
        exclude_booking_id: Optional[str] = None,
    ) -> ProviderSchedule:
        scheduled_at = ensure_utc(scheduled_at)
        details = {"provider_id": provider_id, "scheduled_at": scheduled_at.isoformat()}
        schedule = self._check_schedule(provider_id, scheduled_at, service_type_id, tz)

        if self.schedule_repository.is_blocked(provider_id, scheduled_at):
            raise ConflictException(
                "This time slot is blocked", code="SLOT_BLOCKED", details=details
            )

        if self.booking_repository.find_active_conflict(
            provider_id, scheduled_at, exclude_booking_id=exclude_booking_id
        ):
            raise BookingConflictException(details=details)

        return schedule

    def _get_payment_method(self, payment_method_id: str, patient_id: str) -> PaymentMethod:
        method = self.patient_repository.get_payment_method(payment_method_id)
        if method is None or method.patient_id != patient_id:
            raise NotFoundException("PaymentMethod", payment_method_id)
        if not method.is_active:
            raise NotActiveException("PaymentMethod", payment_method_id)
        return method

    def _get_insurance(self, insurance_id: str, patient_id: str, tz: BaseTzInfo) -> PatientInsurance:
        insurance = self.patient_repository.get_insurance(insurance_id)
        if insurance is None or insurance.patient_id != patient_id:
            raise NotFoundException("Insurance", insurance_id)
        if not insurance.is_active:
            raise NotActiveException("Insurance", insurance_id)
        today = to_local(ensure_utc(self.now_provider()), tz).date()
        if insurance.expiry_date is not None and insurance.expiry_date < today:
            raise NotActiveException("Insurance", insurance_id, "Insurance has expired")
        return insurance

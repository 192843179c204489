# backend/clinic_booking/services/booking_service.py
"""
Booking Service for the clinic booking core.

Handles the booking lifecycle:
- Creating bookings (validation, pricing, check-in reference)
- Role-scoped reads and listings with caching
- Updates and reschedules
- Cancellation with the clinic's penalty policy
- Confirm, complete and no-show transitions

Every write runs in a single transaction. Cache invalidation and
notifications happen after commit and are best-effort: their failures are
logged and never change the outcome of the write.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple, Union

from pytz.tzinfo import BaseTzInfo
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingStatus, NON_TERMINAL_STATUSES, RoleName
from ..core.exceptions import (
    AuthorizationException,
    BookingConflictException,
    InvalidStateException,
    NotFoundException,
)
from ..core.timezone_utils import day_bounds_utc, ensure_utc, get_timezone, to_local, utc_now
from ..core.ulid_helper import generate_check_in_code
from ..models.booking import Booking
from ..principal import Actor
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingListFilters,
    BookingPage,
    BookingResponse,
    BookingUpdate,
)
from .availability_service import AvailabilityService
from .base import BaseService
from .booking_validator import BookingValidator
from .cache_service import CacheKeyBuilder, CacheService
from .notification_service import NotificationService
from .pricing_service import PricingService

logger = logging.getLogger(__name__)

GENERIC_CONFLICT_MESSAGE = "This time slot is already booked"


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Collaborators are injectable so tests can swap the clock, the cache and
    the notification dispatcher.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        notification_service: Optional[NotificationService] = None,
        availability_service: Optional[AvailabilityService] = None,
        validator: Optional[BookingValidator] = None,
        now_provider: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db, cache)
        self.now_provider = now_provider
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.availability_service = availability_service or AvailabilityService(
            db, cache, now_provider=now_provider
        )
        self.validator = validator or BookingValidator(
            db, self.availability_service, now_provider=now_provider
        )
        self.notification_service = notification_service or NotificationService()

    # Create

    @BaseService.measure_operation("create_booking")
    def create(self, payload: Union[BookingCreate, Dict[str, Any]], actor: Actor) -> BookingResponse:
        """
        Create a pending booking.

        Patients may only book for themselves and providers only onto their
        own calendar; staff and admins may book for anyone.

        Raises:
            ValidationException / OutOfWindowException: Invalid request
            NotFoundException / NotActiveException: Missing or deactivated references
            AuthorizationException: Actor may not book for this patient or provider
            BookingConflictException: Slot already held, including a lost race
            TransientInfraException: Storage unavailable
        """
        data = BookingValidator._parse(BookingCreate, payload)
        self._authorize_create(data, actor)

        self.log_operation(
            "create_booking",
            patient_id=data.patient_id,
            provider_id=data.provider_id,
            scheduled_at=data.scheduled_at.isoformat(),
        )

        with self.transaction():
            validated = self.validator.validate_create(data)
            pricing = PricingService.compute_booking_pricing(
                validated.service_type, validated.insurance
            )
            scheduled_at = ensure_utc(data.scheduled_at)

            try:
                booking = self.repository.create(
                    patient_id=data.patient_id,
                    provider_id=data.provider_id,
                    service_type_id=data.service_type_id,
                    scheduled_at=scheduled_at,
                    duration_minutes=data.duration_minutes or validated.service_type.duration_minutes,
                    status=BookingStatus.PENDING.value,
                    total_amount=pricing.total_amount,
                    insurance_covered_amount=pricing.insurance_covered_amount,
                    patient_payment_amount=pricing.patient_payment_amount,
                    payment_method_id=data.payment_method_id,
                    insurance_id=data.insurance_id,
                    notes=data.notes,
                    medical_record_number=data.medical_record_number,
                    is_first_visit=data.is_first_visit,
                    symptoms=data.symptoms,
                    preferred_language=(
                        data.preferred_language.value if data.preferred_language else None
                    ),
                    created_by=actor.id,
                )
            except IntegrityError as exc:
                raise self._conflict(data.provider_id, scheduled_at) from exc

            check_in_code = generate_check_in_code()
            self.repository.create_reference(
                booking.id,
                check_in_code,
                scheduled_at + timedelta(days=settings.check_in_token_ttl_days),
            )
            response = BookingResponse.from_booking(booking, check_in_code=check_in_code)
            tz = validated.timezone

        self._invalidate_booking_caches(response, self._touched_dates([scheduled_at], tz))
        self.notification_service.send_booking_confirmation(response)
        logger.info(f"Booking {response.id} created for provider {response.provider_id}")
        return response

    # Read

    @BaseService.measure_operation("get_booking")
    def get(self, booking_id: str, actor: Actor) -> Optional[BookingResponse]:
        """
        Get a booking if ``actor`` may see it.

        Cached payloads are re-checked against the actor before being
        returned, so a cache hit never widens access.

        Returns:
            BookingResponse, or None when missing or not visible to the actor
        """
        cache_key = CacheKeyBuilder.booking(booking_id)
        if self.cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                try:
                    response = BookingResponse.model_validate(cached)
                except ValueError as e:
                    self.logger.warning(f"Discarding malformed booking cache entry {cache_key}: {e}")
                else:
                    if actor.can_access(response.patient_id, response.provider_id):
                        return response
                    return None

        with self.storage_guard():
            booking = self.repository.get_booking_with_details(booking_id)
            if booking is None:
                return None
            if not actor.can_access(booking.patient_id, booking.provider_id):
                return None
            response = BookingResponse.from_booking(
                booking,
                check_in_code=self.repository.get_check_in_code(booking.id),
            )
            fee = self.repository.get_cancellation_fee(booking.id)
            if fee is not None:
                response.cancellation_fee = fee.amount

        if self.cache:
            self.cache.set(
                cache_key, response.model_dump(mode="json"), ttl=settings.booking_cache_ttl_seconds
            )
        return response

    @BaseService.measure_operation("list_bookings")
    def list(
        self,
        actor: Actor,
        filters: Union[BookingListFilters, Dict[str, Any], None] = None,
    ) -> BookingPage:
        """
        One page of the bookings visible to ``actor``.

        Patients see their own bookings, providers their own calendar, staff
        and admins everything. Date filters are calendar days in the
        configured clinic timezone and are inclusive.
        """
        parsed = BookingValidator._parse(BookingListFilters, filters or {})
        scope, subject_id = self._list_scope(actor)

        cache_key = CacheKeyBuilder.booking_list(
            scope,
            subject_id,
            CacheKeyBuilder.hash_complex_key(parsed.model_dump(mode="json")),
        )
        if self.cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                try:
                    return BookingPage.model_validate(cached)
                except ValueError as e:
                    self.logger.warning(f"Discarding malformed list cache entry {cache_key}: {e}")

        tz = get_timezone(None)
        start_utc = day_bounds_utc(parsed.date_from, tz)[0] if parsed.date_from else None
        end_utc = day_bounds_utc(parsed.date_to, tz)[1] if parsed.date_to else None

        with self.storage_guard():
            rows, total = self.repository.list_bookings(
                patient_id=subject_id if scope == "patient" else None,
                provider_id=subject_id if scope == "provider" else None,
                status=parsed.status,
                start_utc=start_utc,
                end_utc=end_utc,
                limit=parsed.limit,
                offset=parsed.offset,
            )
            bookings = [BookingResponse.from_booking(row) for row in rows]

        page = BookingPage(
            bookings=bookings,
            total=total,
            limit=parsed.limit,
            offset=parsed.offset,
            has_more=parsed.offset + len(bookings) < total,
        )
        if self.cache:
            self.cache.set(cache_key, page.model_dump(mode="json"), ttl=settings.booking_cache_ttl_seconds)
        return page

    # Update

    @BaseService.measure_operation("update_booking")
    def update(
        self,
        booking_id: str,
        payload: Union[BookingUpdate, Dict[str, Any]],
        actor: Actor,
    ) -> BookingResponse:
        """
        Apply a partial update; a changed ``scheduled_at`` is a reschedule.

        Raises:
            NotFoundException: Booking does not exist
            AuthorizationException: Actor is not a party to the booking
            InvalidStateException: Booking is cancelled, completed or a no-show
            BookingConflictException: New slot already held
        """
        with self.transaction():
            validated = self.validator.validate_update(booking_id, payload, actor)
            booking = validated.booking
            changes = dict(validated.changes)
            if "scheduled_at" in changes:
                changes["scheduled_at"] = ensure_utc(changes["scheduled_at"])

            # A failed flush expires the instance, so capture the slot first
            provider_id = booking.provider_id
            target_time = changes.get("scheduled_at", booking.scheduled_at)
            try:
                booking = self.repository.update(booking, updated_by=actor.id, **changes)
            except IntegrityError as exc:
                raise self._conflict(provider_id, target_time) from exc

            new_time = ensure_utc(booking.scheduled_at)
            if validated.rescheduled:
                self.repository.update_reference_expiry(
                    booking.id, new_time + timedelta(days=settings.check_in_token_ttl_days)
                )

            self.db.refresh(booking)
            response = BookingResponse.from_booking(
                booking, check_in_code=self.repository.get_check_in_code(booking.id)
            )
            tz = self._booking_timezone(booking)

        instants = [new_time]
        if validated.rescheduled and validated.previous_scheduled_at is not None:
            instants.append(validated.previous_scheduled_at)
        self._invalidate_booking_caches(response, self._touched_dates(instants, tz))

        if validated.rescheduled:
            self.notification_service.send_booking_update(response, "rescheduled")
        self.log_operation("update_booking", booking_id=booking_id, fields=sorted(changes))
        return response

    # Cancel

    @BaseService.measure_operation("cancel_booking")
    def cancel(self, booking_id: str, reason: str, actor: Actor) -> BookingResponse:
        """
        Cancel a booking, charging the clinic's penalty when notice is short.

        A fee row is written only when the policy percentage is above zero.

        Raises:
            ValidationException: Empty or oversized reason
            NotFoundException: Booking does not exist
            AuthorizationException: Actor is not a party to the booking
            InvalidStateException: Booking already terminal
        """
        cancel_data = BookingValidator._parse(BookingCancel, {"reason": reason})

        with self.transaction():
            decision = self.validator.validate_cancellation(booking_id, actor)
            booking = decision.booking
            booking.cancel(actor.id, cancel_data.reason, ensure_utc(self.now_provider()))
            booking.updated_by = actor.id
            self.repository.flush()

            fee_amount = None
            if decision.requires_penalty and decision.penalty_percentage > 0:
                fee_amount = PricingService.compute_cancellation_fee(
                    booking.patient_payment_amount, decision.penalty_percentage
                )
                self.repository.create_cancellation_fee(
                    booking.id, fee_amount, decision.penalty_percentage
                )

            response = BookingResponse.from_booking(booking)
            response.cancellation_fee = fee_amount
            tz = self._booking_timezone(booking)

        self._invalidate_booking_caches(
            response, self._touched_dates([ensure_utc(response.scheduled_at)], tz)
        )
        self.notification_service.send_booking_cancellation(response, cancel_data.reason)
        self.log_operation(
            "cancel_booking",
            booking_id=booking_id,
            cancelled_by=actor.id,
            penalty=str(fee_amount) if fee_amount is not None else None,
        )
        return response

    # Status transitions

    @BaseService.measure_operation("confirm_booking")
    def confirm(self, booking_id: str, actor: Actor) -> BookingResponse:
        """Pending -> confirmed (provider, staff or admin)."""
        return self._transition(
            booking_id,
            actor,
            action="confirm",
            allowed_from=(BookingStatus.PENDING,),
            apply=lambda booking, now: booking.confirm(now),
        )

    @BaseService.measure_operation("complete_booking")
    def complete(self, booking_id: str, actor: Actor) -> BookingResponse:
        return self._transition(
            booking_id,
            actor,
            action="complete",
            allowed_from=NON_TERMINAL_STATUSES,
            apply=lambda booking, now: booking.complete(now),
        )

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, booking_id: str, actor: Actor) -> BookingResponse:
        return self._transition(
            booking_id,
            actor,
            action="mark as no-show",
            allowed_from=NON_TERMINAL_STATUSES,
            apply=lambda booking, now: booking.mark_no_show(),
        )

    def _transition(
        self,
        booking_id: str,
        actor: Actor,
        *,
        action: str,
        allowed_from: Iterable[BookingStatus],
        apply: Callable[[Booking, datetime], None],
    ) -> BookingResponse:
        if actor.role == RoleName.PATIENT:
            raise AuthorizationException(
                f"Patients cannot {action} bookings",
                code="FORBIDDEN",
                details={"entity_id": booking_id},
            )

        with self.transaction():
            booking = self.repository.get_for_update(booking_id)
            if booking is None:
                raise NotFoundException("Booking", booking_id)
            if not actor.can_access(booking.patient_id, booking.provider_id):
                raise AuthorizationException(
                    f"You can only {action} your own bookings",
                    code="FORBIDDEN",
                    details={"entity_id": booking_id},
                )
            if booking.status_enum not in tuple(allowed_from):
                raise InvalidStateException(
                    f"Cannot {action} booking with status: {booking.status}",
                    entity_id=booking.id,
                    current_status=booking.status,
                )

            apply(booking, ensure_utc(self.now_provider()))
            booking.updated_by = actor.id
            self.repository.flush()
            response = BookingResponse.from_booking(booking)
            tz = self._booking_timezone(booking)

        dates = self._touched_dates([ensure_utc(response.scheduled_at)], tz)
        if response.status == BookingStatus.CONFIRMED.value:
            # Confirmation does not change which slots are free.
            dates = set()
        self._invalidate_booking_caches(response, dates)
        self.log_operation(f"{action}_booking", booking_id=booking_id, actor_id=actor.id)
        return response

    # Helpers

    @staticmethod
    def _authorize_create(data: BookingCreate, actor: Actor) -> None:
        if actor.role == RoleName.PATIENT and actor.id != data.patient_id:
            raise AuthorizationException(
                "Patients can only book appointments for themselves", code="FORBIDDEN"
            )
        if actor.role == RoleName.PROVIDER and actor.id != data.provider_id:
            raise AuthorizationException(
                "Providers can only book appointments on their own calendar", code="FORBIDDEN"
            )

    @staticmethod
    def _list_scope(actor: Actor) -> Tuple[str, str]:
        if actor.role == RoleName.PATIENT:
            return "patient", actor.id
        if actor.role == RoleName.PROVIDER:
            return "provider", actor.id
        return "all", actor.role.value

    @staticmethod
    def _conflict(provider_id: str, scheduled_at: Any) -> BookingConflictException:
        if isinstance(scheduled_at, datetime):
            scheduled_at = ensure_utc(scheduled_at).isoformat()
        return BookingConflictException(
            message=GENERIC_CONFLICT_MESSAGE,
            details={"provider_id": provider_id, "scheduled_at": scheduled_at},
        )

    @staticmethod
    def _booking_timezone(booking: Booking) -> BaseTzInfo:
        provider = booking.provider
        clinic = provider.clinic if provider is not None else None
        return get_timezone(clinic.timezone if clinic is not None else None)

    @staticmethod
    def _touched_dates(instants: Iterable[datetime], tz: BaseTzInfo) -> Set[date]:
        """Calendar days whose cached availability may show these instants."""
        dates: Set[date] = set()
        for instant in instants:
            dates.add(to_local(instant, tz).date())
            dates.add(ensure_utc(instant).date())
        return dates

    def _invalidate_booking_caches(self, booking: BookingResponse, dates: Iterable[date]) -> None:
        """Drop every cached view that could show this booking. Never raises."""
        if not self.cache:
            return
        try:
            self.invalidate_cache(CacheKeyBuilder.booking(booking.id))
            self.invalidate_pattern(f"{CacheKeyBuilder.booking_list('patient', booking.patient_id)}:*")
            self.invalidate_pattern(f"{CacheKeyBuilder.booking_list('provider', booking.provider_id)}:*")
            self.invalidate_pattern("bookings:all:*")
            for target_date in dates:
                self.availability_service.invalidate_availability(booking.provider_id, target_date)
        except Exception as cache_error:
            logger.warning(f"Failed to invalidate caches for booking {booking.id}: {cache_error}")

# backend/clinic_booking/services/availability_service.py
"""
Availability Service for the clinic booking core.

Derives bookable slots for a provider and calendar day from recurring
schedule windows, blocked slots, and existing pending/confirmed bookings.

Schedule windows are wall-clock times in the requested timezone (the
clinic's timezone by default). Every slot carries both its local ``HH:MM``
label and the UTC instant a booking for it must use, and matching against
bookings and blocked slots is done on UTC instants.

Results are cached per (provider, date, service type, timezone) for a short
TTL. Cache failures never fail a call; the day is simply recomputed.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Callable, List, Optional, Set

from pytz.tzinfo import BaseTzInfo
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RangeTooLargeException, ValidationException
from ..core.timezone_utils import (
    day_bounds_utc,
    day_of_week,
    ensure_utc,
    format_hhmm,
    get_timezone,
    to_local,
    utc_now,
)
from ..models.schedule import ProviderSchedule
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import DayAvailability, ProviderAvailability, TimeSlot
from .base import BaseService
from .cache_service import CacheKeyBuilder, CacheService

logger = logging.getLogger(__name__)


class AvailabilityService(BaseService):
    """
    Computes provider availability.

    ``now_provider`` supplies the current UTC instant; it drives the
    minimum-notice cutoff for "today" and the start of next-slot searches.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        now_provider: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db, cache)
        self.now_provider = now_provider
        self.schedule_repository = RepositoryFactory.create_schedule_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_repository(db)
        self.clinic_repository = RepositoryFactory.create_clinic_repository(db)

    # Timezone resolution

    def resolve_timezone(self, provider_id: str, timezone_name: Optional[str] = None) -> BaseTzInfo:
        """Requested zone, else the provider's clinic zone, else the configured default."""
        if timezone_name:
            return get_timezone(timezone_name)
        provider = self.provider_repository.get_by_id(provider_id, load_relationships=True)
        if provider is not None and provider.clinic is not None and provider.clinic.timezone:
            return get_timezone(provider.clinic.timezone)
        return get_timezone(None)

    # Public API

    @BaseService.measure_operation("get_availability")
    def get_availability(
        self,
        provider_id: str,
        target_date: date,
        service_type_id: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> DayAvailability:
        """
        Ordered slots for one calendar day.

        Args:
            provider_id: Provider to compute for
            target_date: Calendar day in ``timezone``
            service_type_id: Restrict to windows offering this type (unscoped windows always apply)
            timezone: IANA zone name; defaults to the provider's clinic zone

        Returns:
            DayAvailability with slots sorted ascending by time. Overlapping
            windows each contribute their own slots.
        """
        with self.storage_guard():
            tz = self.resolve_timezone(provider_id, timezone)
            tz_name = tz.zone
            cache_key = CacheKeyBuilder.availability(provider_id, target_date, service_type_id, tz_name)

            if self.cache:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    try:
                        return DayAvailability.model_validate(cached)
                    except ValueError as e:
                        self.logger.warning(f"Discarding malformed availability cache entry {cache_key}: {e}")

            day = self._compute_day(provider_id, target_date, service_type_id, tz)

        if self.cache:
            self.cache.set(
                cache_key, day.model_dump(mode="json"), ttl=settings.availability_cache_ttl_seconds
            )
        return day

    def get_availability_range(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
        service_type_id: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> List[DayAvailability]:
        """
        Day-by-day availability for [start_date, end_date] inclusive.

        Raises:
            ValidationException: If end_date is before start_date
            RangeTooLargeException: If the span exceeds the configured maximum (30 days)
        """
        if end_date < start_date:
            raise ValidationException(
                "End date must be on or after start date",
                code="INVALID_DATE_RANGE",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        span = (end_date - start_date).days
        if span > settings.max_availability_range_days:
            raise RangeTooLargeException(settings.max_availability_range_days, span)

        return [
            self.get_availability(
                provider_id, start_date + timedelta(days=offset), service_type_id, timezone
            )
            for offset in range(span + 1)
        ]

    @BaseService.measure_operation("get_next_available_slot")
    def get_next_available_slot(
        self,
        provider_id: str,
        service_type_id: Optional[str] = None,
        timezone: Optional[str] = None,
        from_date: Optional[date] = None,
    ) -> Optional[TimeSlot]:
        """First available slot within the search horizon, or None."""
        tz = self.resolve_timezone(provider_id, timezone)
        start = from_date or to_local(self.now_provider(), tz).date()
        for offset in range(settings.next_slot_search_days):
            day = self.get_availability(
                provider_id, start + timedelta(days=offset), service_type_id, tz.zone
            )
            for slot in day.slots:
                if slot.is_available:
                    return slot
        return None

    @BaseService.measure_operation("search_available_providers")
    def search_available_providers(
        self,
        clinic_id: str,
        target_date: date,
        service_type_id: Optional[str] = None,
        preferred_time: Optional[time] = None,
        timezone: Optional[str] = None,
    ) -> List[ProviderAvailability]:
        """
        Providers at a clinic with open slots on ``target_date``.

        With ``preferred_time`` only slots within the configured window
        (60 minutes either side) count. Providers with no qualifying slots
        are omitted; the rest are ordered by descending slot count.
        """
        with self.storage_guard():
            if timezone is None:
                clinic = self.clinic_repository.get_by_id(clinic_id)
                timezone = clinic.timezone if clinic is not None else None
            tz_name = get_timezone(timezone).zone
            providers = self.provider_repository.get_active_by_clinic(clinic_id)

        results: List[ProviderAvailability] = []
        for provider in providers:
            day = self.get_availability(provider.id, target_date, service_type_id, tz_name)
            slots = [slot for slot in day.slots if slot.is_available]
            if preferred_time is not None:
                slots = [slot for slot in slots if self._within_preferred(slot, preferred_time)]
            if not slots:
                continue
            results.append(
                ProviderAvailability(
                    provider_id=provider.id,
                    provider_name=provider.name,
                    specialization=provider.specialization,
                    average_rating=provider.average_rating,
                    available_slots=slots,
                    available_count=len(slots),
                )
            )

        results.sort(key=lambda item: item.available_count, reverse=True)
        return results

    def resolve_schedule_for(
        self,
        provider_id: str,
        scheduled_at: datetime,
        service_type_id: Optional[str],
        tz: BaseTzInfo,
    ) -> Optional[ProviderSchedule]:
        """Active window containing ``scheduled_at`` in local time, if any."""
        local = to_local(scheduled_at, tz)
        wall_time = local.time().replace(tzinfo=None)
        for schedule in self.schedule_repository.get_active_schedules(
            provider_id, day_of_week(local.date()), service_type_id
        ):
            if schedule.start_time <= wall_time < schedule.end_time:
                return schedule
        return None

    def invalidate_availability(self, provider_id: str, target_date: Optional[date] = None) -> None:
        """Drop cached days for a provider (one date, or all of them)."""
        self.invalidate_pattern(CacheKeyBuilder.availability_pattern(provider_id, target_date))

    # Computation

    def _compute_day(
        self,
        provider_id: str,
        target_date: date,
        service_type_id: Optional[str],
        tz: BaseTzInfo,
    ) -> DayAvailability:
        schedules = self.schedule_repository.get_active_schedules(
            provider_id, day_of_week(target_date), service_type_id
        )
        start_utc, end_utc = day_bounds_utc(target_date, tz)

        taken: Set[datetime] = {
            ensure_utc(booking.scheduled_at)
            for booking in self.booking_repository.get_active_bookings_between(
                provider_id, start_utc, end_utc
            )
        }
        taken.update(
            ensure_utc(blocked.blocked_at)
            for blocked in self.schedule_repository.get_blocked_between(
                provider_id, start_utc, end_utc
            )
        )

        now = ensure_utc(self.now_provider())
        cutoff: Optional[datetime] = None
        if target_date == to_local(now, tz).date():
            cutoff = now + timedelta(hours=settings.min_booking_notice_hours)

        slots: List[TimeSlot] = []
        for schedule in schedules:
            slots.extend(
                self._window_slots(schedule, target_date, tz, taken, cutoff, service_type_id)
            )

        # Stable sort keeps window order for slots sharing an instant
        slots.sort(key=lambda slot: slot.scheduled_at)
        return DayAvailability(
            provider_id=provider_id, date=target_date, timezone=tz.zone, slots=slots
        )

    def _window_slots(
        self,
        schedule: ProviderSchedule,
        target_date: date,
        tz: BaseTzInfo,
        taken: Set[datetime],
        cutoff: Optional[datetime],
        service_type_id: Optional[str],
    ) -> List[TimeSlot]:
        step = timedelta(minutes=schedule.slot_duration_minutes)
        current = datetime.combine(target_date, schedule.start_time)
        window_end = datetime.combine(target_date, schedule.end_time)

        slots: List[TimeSlot] = []
        while current < window_end:
            instant = ensure_utc(tz.localize(current))
            is_available = instant not in taken and (cutoff is None or instant >= cutoff)
            slots.append(
                TimeSlot(
                    time=format_hhmm(current.time()),
                    scheduled_at=instant,
                    date=target_date,
                    is_available=is_available,
                    provider_id=schedule.provider_id,
                    service_type_id=schedule.service_type_id or service_type_id,
                    duration_minutes=schedule.slot_duration_minutes,
                )
            )
            current += step
        return slots

    @staticmethod
    def _within_preferred(slot: TimeSlot, preferred_time: time) -> bool:
        hours, minutes = slot.time.split(":")
        slot_minutes = int(hours) * 60 + int(minutes)
        preferred_minutes = preferred_time.hour * 60 + preferred_time.minute
        return abs(slot_minutes - preferred_minutes) <= settings.preferred_time_window_minutes

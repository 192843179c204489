# backend/clinic_booking/services/schedule_service.py
"""
Schedule administration for providers.

Replaces a provider's weekly template and blocks or unblocks individual
slot instants. Each call commits atomically and then drops the cached
availability it could have changed.
"""

from datetime import date, datetime, time
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import ensure_utc, localize
from ..repositories.factory import RepositoryFactory
from ..schemas.schedule import ScheduleInput
from .availability_service import AvailabilityService
from .base import BaseService
from .cache_service import CacheService

logger = logging.getLogger(__name__)


class ScheduleService(BaseService):
    def __init__(
        self,
        db: Session,
        cache: Optional[CacheService] = None,
        availability_service: Optional[AvailabilityService] = None,
    ):
        super().__init__(db, cache)
        self.schedule_repository = RepositoryFactory.create_schedule_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_repository(db)
        self.availability_service = availability_service or AvailabilityService(db, cache)

    @BaseService.measure_operation("update_provider_schedule")
    def update_provider_schedule(
        self, provider_id: str, schedules: Sequence[Union[ScheduleInput, Dict[str, Any]]]
    ) -> int:
        """
        Replace every active window of a provider with ``schedules``.

        Old windows are deactivated, not deleted, so past bookings keep
        their history. An empty list leaves the provider with no windows.

        Returns:
            Number of windows created
        """
        windows = [self._parse_window(item) for item in schedules]

        with self.transaction():
            provider = self.provider_repository.get_by_id(provider_id)
            if provider is None:
                raise NotFoundException("Provider", provider_id)
            deactivated = self.schedule_repository.deactivate_all(provider_id)
            created = self.schedule_repository.create_schedules(
                provider_id,
                provider.clinic_id,
                [window.model_dump() for window in windows],
            )

        self.availability_service.invalidate_availability(provider_id)
        self.log_operation(
            "update_provider_schedule",
            provider_id=provider_id,
            deactivated=deactivated,
            created=len(created),
        )
        return len(created)

    @BaseService.measure_operation("block_time_slots")
    def block_time_slots(
        self,
        provider_id: str,
        dates: Sequence[date],
        times: Sequence[time],
        reason: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> int:
        """
        Block every local ``dates`` x ``times`` instant for a provider.

        Blocking an already blocked instant only refreshes its reason.

        Returns:
            Number of instants now blocked by this call
        """
        with self.transaction():
            instants = self._resolve_instants(provider_id, dates, times, timezone)
            for instant in instants:
                self.schedule_repository.upsert_blocked_slot(provider_id, instant, reason)

        self._invalidate_dates(provider_id, dates, instants)
        self.log_operation("block_time_slots", provider_id=provider_id, count=len(instants))
        return len(instants)

    @BaseService.measure_operation("unblock_time_slots")
    def unblock_time_slots(
        self,
        provider_id: str,
        dates: Sequence[date],
        times: Sequence[time],
        timezone: Optional[str] = None,
    ) -> int:
        """Remove blocks for the given local instants. Returns the number removed."""
        with self.transaction():
            instants = self._resolve_instants(provider_id, dates, times, timezone)
            removed = self.schedule_repository.delete_blocked_slots(provider_id, instants)

        self._invalidate_dates(provider_id, dates, instants)
        self.log_operation("unblock_time_slots", provider_id=provider_id, count=removed)
        return removed

    @staticmethod
    def _parse_window(item: Union[ScheduleInput, Dict[str, Any]]) -> ScheduleInput:
        if isinstance(item, ScheduleInput):
            return item
        try:
            return ScheduleInput.model_validate(item)
        except ValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            raise ValidationException(
                "Invalid schedule window", code="INVALID_SCHEDULE", details={"errors": errors}
            ) from e

    def _resolve_instants(
        self,
        provider_id: str,
        dates: Sequence[date],
        times: Sequence[time],
        timezone: Optional[str],
    ) -> List[datetime]:
        if not self.provider_repository.exists(id=provider_id):
            raise NotFoundException("Provider", provider_id)
        tz = self.availability_service.resolve_timezone(provider_id, timezone)
        instants = {
            ensure_utc(localize(target_date, wall_time, tz))
            for target_date in dates
            for wall_time in times
        }
        return sorted(instants)

    def _invalidate_dates(
        self, provider_id: str, dates: Sequence[date], instants: Sequence[datetime]
    ) -> None:
        touched = set(dates) | {instant.date() for instant in instants}
        for target_date in touched:
            self.availability_service.invalidate_availability(provider_id, target_date)

# backend/clinic_booking/repositories/schedule_repository.py
"""
Schedule Repository for the clinic booking core.

Data access for recurring provider schedule windows and blocked slots.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional, cast

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.schedule import BlockedSlot, ProviderSchedule
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ScheduleRepository(BaseRepository[ProviderSchedule]):
    def __init__(self, db: Session):
        super().__init__(db, ProviderSchedule)

    def get_active_schedules(
        self,
        provider_id: str,
        day_of_week: int,
        service_type_id: Optional[str] = None,
    ) -> List[ProviderSchedule]:
        """
        Active windows for a provider/day.

        With a service type, unscoped windows are included since they apply to
        every type. Order is by start time then id so results are stable.
        """
        try:
            query = self.db.query(ProviderSchedule).filter(
                ProviderSchedule.provider_id == provider_id,
                ProviderSchedule.day_of_week == day_of_week,
                ProviderSchedule.is_active.is_(True),
            )
            if service_type_id:
                query = query.filter(
                    or_(
                        ProviderSchedule.service_type_id.is_(None),
                        ProviderSchedule.service_type_id == service_type_id,
                    )
                )
            return cast(
                List[ProviderSchedule],
                query.order_by(ProviderSchedule.start_time, ProviderSchedule.id).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting schedules for provider {provider_id}: {str(e)}")
            raise RepositoryException(f"Failed to get provider schedules: {str(e)}") from e

    def provider_offers_service(self, provider_id: str, service_type_id: str) -> bool:
        """True when an active window is explicitly scoped to this service type."""
        try:
            return (
                self.db.query(ProviderSchedule.id)
                .filter(
                    ProviderSchedule.provider_id == provider_id,
                    ProviderSchedule.service_type_id == service_type_id,
                    ProviderSchedule.is_active.is_(True),
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to check provider offering: {str(e)}") from e

    def has_unscoped_schedule(self, provider_id: str) -> bool:
        return (
            self.db.query(ProviderSchedule.id)
            .filter(
                ProviderSchedule.provider_id == provider_id,
                ProviderSchedule.service_type_id.is_(None),
                ProviderSchedule.is_active.is_(True),
            )
            .first()
            is not None
        )

    def deactivate_all(self, provider_id: str) -> int:
        try:
            count = (
                self.db.query(ProviderSchedule)
                .filter(
                    ProviderSchedule.provider_id == provider_id,
                    ProviderSchedule.is_active.is_(True),
                )
                .update({ProviderSchedule.is_active: False}, synchronize_session="fetch")
            )
            return int(count or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deactivating schedules: {str(e)}")
            raise RepositoryException(f"Failed to deactivate schedules: {str(e)}") from e

    def create_schedules(
        self, provider_id: str, clinic_id: Optional[str], windows: Iterable[Dict[str, Any]]
    ) -> List[ProviderSchedule]:
        try:
            created = [
                ProviderSchedule(provider_id=provider_id, clinic_id=clinic_id, is_active=True, **window)
                for window in windows
            ]
            self.db.add_all(created)
            self.db.flush()
            return created
        except SQLAlchemyError as e:
            self.logger.warning(f"Error creating schedules: {str(e)}")
            raise RepositoryException(f"Failed to create schedules: {str(e)}") from e

    # Blocked slots

    def get_blocked_between(
        self, provider_id: str, start_utc: datetime, end_utc: datetime
    ) -> List[BlockedSlot]:
        try:
            return cast(
                List[BlockedSlot],
                self.db.query(BlockedSlot)
                .filter(
                    BlockedSlot.provider_id == provider_id,
                    BlockedSlot.blocked_at >= start_utc,
                    BlockedSlot.blocked_at < end_utc,
                )
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting blocked slots: {str(e)}")
            raise RepositoryException(f"Failed to get blocked slots: {str(e)}") from e

    def is_blocked(self, provider_id: str, at: datetime) -> bool:
        try:
            return (
                self.db.query(BlockedSlot.id)
                .filter(BlockedSlot.provider_id == provider_id, BlockedSlot.blocked_at == at)
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to check blocked slot: {str(e)}") from e

    def upsert_blocked_slot(self, provider_id: str, at: datetime, reason: Optional[str]) -> BlockedSlot:
        existing = cast(
            Optional[BlockedSlot],
            self.db.query(BlockedSlot)
            .filter(BlockedSlot.provider_id == provider_id, BlockedSlot.blocked_at == at)
            .first(),
        )
        if existing is not None:
            existing.reason = reason
            self.db.flush()
            return existing
        blocked = BlockedSlot(provider_id=provider_id, blocked_at=at, reason=reason)
        self.db.add(blocked)
        self.db.flush()
        return blocked

    def delete_blocked_slots(self, provider_id: str, instants: List[datetime]) -> int:
        if not instants:
            return 0
        try:
            count = (
                self.db.query(BlockedSlot)
                .filter(
                    BlockedSlot.provider_id == provider_id,
                    BlockedSlot.blocked_at.in_(instants),
                )
                .delete(synchronize_session="fetch")
            )
            return int(count or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting blocked slots: {str(e)}")
            raise RepositoryException(f"Failed to delete blocked slots: {str(e)}") from e

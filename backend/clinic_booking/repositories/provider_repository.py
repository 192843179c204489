# backend/clinic_booking/repositories/provider_repository.py
"""Provider data access."""

from typing import List, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.provider import Provider
from .base_repository import BaseRepository


class ProviderRepository(BaseRepository[Provider]):
    def __init__(self, db: Session):
        super().__init__(db, Provider)

    def get_active_by_clinic(self, clinic_id: str) -> List[Provider]:
        """Active providers at a clinic, ordered by id for deterministic ranking ties."""
        try:
            return cast(
                List[Provider],
                self.db.query(Provider)
                .filter(Provider.clinic_id == clinic_id, Provider.is_active.is_(True))
                .order_by(Provider.id)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting providers for clinic {clinic_id}: {str(e)}")
            raise RepositoryException(f"Failed to get clinic providers: {str(e)}") from e

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Provider.clinic))

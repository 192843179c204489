# backend/clinic_booking/repositories/clinic_repository.py
"""Clinic and cancellation policy data access."""

from typing import Optional, cast

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.clinic import CancellationPolicy, Clinic
from .base_repository import BaseRepository


class ClinicRepository(BaseRepository[Clinic]):
    def __init__(self, db: Session):
        super().__init__(db, Clinic)

    def get_cancellation_policy(
        self, clinic_id: str, service_type_id: Optional[str] = None
    ) -> Optional[CancellationPolicy]:
        """
        Active policy for a clinic.

        A policy scoped to ``service_type_id`` wins over the clinic-wide one.
        """
        query = self.db.query(CancellationPolicy).filter(
            CancellationPolicy.clinic_id == clinic_id,
            CancellationPolicy.is_active.is_(True),
        )
        if service_type_id:
            query = query.filter(
                or_(
                    CancellationPolicy.service_type_id.is_(None),
                    CancellationPolicy.service_type_id == service_type_id,
                )
            )
        else:
            query = query.filter(CancellationPolicy.service_type_id.is_(None))

        policies = query.order_by(CancellationPolicy.id).all()
        scoped = [p for p in policies if p.service_type_id is not None]
        chosen = scoped[0] if scoped else (policies[0] if policies else None)
        return cast(Optional[CancellationPolicy], chosen)

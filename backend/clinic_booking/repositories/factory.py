# backend/clinic_booking/repositories/factory.py
"""
Repository Factory for the clinic booking core.

Provides centralized creation of repository instances so services share one
construction path and tests can patch a single seam.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .clinic_repository import ClinicRepository
    from .patient_repository import PatientRepository
    from .provider_repository import ProviderRepository
    from .rate_limit_repository import RateLimitRepository
    from .schedule_repository import ScheduleRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_schedule_repository(db: Session) -> "ScheduleRepository":
        from .schedule_repository import ScheduleRepository

        return ScheduleRepository(db)

    @staticmethod
    def create_provider_repository(db: Session) -> "ProviderRepository":
        from .provider_repository import ProviderRepository

        return ProviderRepository(db)

    @staticmethod
    def create_patient_repository(db: Session) -> "PatientRepository":
        from .patient_repository import PatientRepository

        return PatientRepository(db)

    @staticmethod
    def create_clinic_repository(db: Session) -> "ClinicRepository":
        from .clinic_repository import ClinicRepository

        return ClinicRepository(db)

    @staticmethod
    def create_rate_limit_repository(db: Session) -> "RateLimitRepository":
        from .rate_limit_repository import RateLimitRepository

        return RateLimitRepository(db)

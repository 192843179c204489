"""
Repository Pattern Implementation for the clinic booking core.

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- RepositoryFactory: Factory for creating repository instances
- BookingRepository: Bookings, check-in references and cancellation fees
- ScheduleRepository: Recurring schedule windows and blocked slots
- ProviderRepository, PatientRepository, ClinicRepository: Reference data
- RateLimitRepository: Durable fixed-window counters

Usage:
    from clinic_booking.repositories import RepositoryFactory

    repository = RepositoryFactory.create_booking_repository(db)
    conflict = repository.find_active_conflict(provider_id, scheduled_at)
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .clinic_repository import ClinicRepository
from .factory import RepositoryFactory
from .patient_repository import PatientRepository
from .provider_repository import ProviderRepository
from .rate_limit_repository import RateLimitRepository
from .schedule_repository import ScheduleRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ClinicRepository",
    "PatientRepository",
    "ProviderRepository",
    "RateLimitRepository",
    "RepositoryFactory",
    "ScheduleRepository",
]

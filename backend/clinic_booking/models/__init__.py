"""
Database models for the clinic booking core.

The models are organized by functionality:
- Clinics and cancellation policies
- Providers, patients, payment methods and insurance
- Service types and recurring provider schedules
- Bookings, check-in references and cancellation fees
- Durable rate-limit counters
"""

from .booking import Booking, BookingReference, CancellationFee
from .clinic import CancellationPolicy, Clinic
from .patient import Patient, PatientInsurance, PaymentMethod
from .provider import Provider
from .rate_limit import RateLimitCounter
from .schedule import BlockedSlot, ProviderSchedule
from .service_type import ServiceType

__all__ = [
    "BlockedSlot",
    "Booking",
    "BookingReference",
    "CancellationFee",
    "CancellationPolicy",
    "Clinic",
    "Patient",
    "PatientInsurance",
    "PaymentMethod",
    "Provider",
    "ProviderSchedule",
    "RateLimitCounter",
    "ServiceType",
]

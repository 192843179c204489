"""
Pydantic schemas for the clinic booking core.
"""

from .availability import DayAvailability, ProviderAvailability, TimeSlot
from .booking import (
    BookingCancel,
    BookingCreate,
    BookingListFilters,
    BookingPage,
    BookingResponse,
    BookingUpdate,
    ClinicInfo,
    PatientInfo,
    ProviderInfo,
    ServiceInfo,
)
from .schedule import ScheduleInput

__all__ = [
    "BookingCancel",
    "BookingCreate",
    "BookingListFilters",
    "BookingPage",
    "BookingResponse",
    "BookingUpdate",
    "ClinicInfo",
    "DayAvailability",
    "PatientInfo",
    "ProviderAvailability",
    "ProviderInfo",
    "ScheduleInput",
    "ServiceInfo",
    "TimeSlot",
]

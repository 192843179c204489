"""
Availability schemas.

Slots are computed on demand and never persisted. ``time`` is the local
wall-clock label in the requested timezone; ``scheduled_at`` is the UTC
instant a booking for that slot must carry.
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from .base import StandardizedModel


class TimeSlot(StandardizedModel):
    time: str = Field(..., description="Local start time, HH:MM")
    scheduled_at: datetime
    date: date_type
    is_available: bool
    provider_id: str
    service_type_id: Optional[str] = None
    duration_minutes: int


class DayAvailability(StandardizedModel):
    provider_id: str
    date: date_type
    timezone: str
    slots: List[TimeSlot]

    @property
    def available_slots(self) -> List[TimeSlot]:
        return [slot for slot in self.slots if slot.is_available]


class ProviderAvailability(StandardizedModel):
    """A provider's open slots for a clinic-wide search."""

    provider_id: str
    provider_name: str
    specialization: Optional[str] = None
    average_rating: Optional[Decimal] = None
    available_slots: List[TimeSlot]
    available_count: int

"""
Reference-data builders and test doubles shared by the clinic booking tests.

Times are anchored to a Friday morning in Tokyo so "today", "next Monday"
and the booking window are the same on every run.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from clinic_booking.core.enums import RoleName
from clinic_booking.models import (
    BlockedSlot,
    CancellationPolicy,
    Clinic,
    Patient,
    PatientInsurance,
    PaymentMethod,
    Provider,
    ProviderSchedule,
    ServiceType,
)
from clinic_booking.principal import Actor

TOKYO = "Asia/Tokyo"

# Friday 2025-06-13 09:00 in Tokyo
FIXED_NOW = datetime(2025, 6, 13, 0, 0, tzinfo=timezone.utc)
NEXT_MONDAY = date(2025, 6, 16)
MONDAY = 1  # schedules use Sunday=0


def tokyo_instant(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant for a Tokyo wall-clock time (Tokyo has no DST)."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc) - timedelta(
        hours=9
    )


class FrozenClock:
    """Callable clock for the ``now_provider`` seams."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class RecordingEnqueue:
    """Stand-in for ``enqueue_task``; records calls or raises on demand."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    def __call__(self, task_name: str, args: Any = None, kwargs: Any = None, **options: Any) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append({"task": task_name, "kwargs": kwargs or {}, "options": options})

    @property
    def task_names(self) -> List[str]:
        return [call["task"] for call in self.calls]


class Seed:
    """Small factory for reference data; every helper commits."""

    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj: Any) -> Any:
        self.db.add(obj)
        self.db.commit()
        return obj

    def clinic(self, name: str = "Shibuya Family Clinic", tz: str = TOKYO) -> Clinic:
        return self._save(Clinic(name=name, timezone=tz, is_active=True))

    def provider(self, clinic: Clinic, name: str = "Dr. Sato", **kwargs: Any) -> Provider:
        kwargs.setdefault("specialization", "General Practice")
        kwargs.setdefault("is_active", True)
        return self._save(Provider(clinic_id=clinic.id, name=name, **kwargs))

    def patient(self, name: str = "Yuki Tanaka", **kwargs: Any) -> Patient:
        kwargs.setdefault("email", "yuki@example.com")
        kwargs.setdefault("is_active", True)
        return self._save(Patient(name=name, **kwargs))

    def service_type(
        self,
        clinic: Clinic,
        name: str = "General Consultation",
        duration: int = 30,
        price: str = "5000.00",
        insurance_covered: bool = True,
        **kwargs: Any,
    ) -> ServiceType:
        kwargs.setdefault("is_active", True)
        return self._save(
            ServiceType(
                clinic_id=clinic.id,
                name=name,
                duration_minutes=duration,
                base_price=Decimal(price),
                insurance_covered=insurance_covered,
                **kwargs,
            )
        )

    def schedule(
        self,
        provider: Provider,
        day_of_week: int,
        start: time,
        end: time,
        slot_minutes: int = 30,
        service_type: Optional[ServiceType] = None,
        is_active: bool = True,
    ) -> ProviderSchedule:
        return self._save(
            ProviderSchedule(
                provider_id=provider.id,
                clinic_id=provider.clinic_id,
                day_of_week=day_of_week,
                start_time=start,
                end_time=end,
                slot_duration_minutes=slot_minutes,
                service_type_id=service_type.id if service_type else None,
                is_active=is_active,
            )
        )

    def all_week(self, provider: Provider, slot_minutes: int = 30) -> None:
        """Whole-day windows on every weekday, for boundary tests."""
        for dow in range(7):
            self.schedule(provider, dow, time(0, 0), time(23, 59, 59, 999999), slot_minutes)

    def blocked(self, provider: Provider, at: datetime, reason: str = "Staff meeting") -> BlockedSlot:
        return self._save(BlockedSlot(provider_id=provider.id, blocked_at=at, reason=reason))

    def payment_method(self, patient: Patient, is_active: bool = True) -> PaymentMethod:
        return self._save(
            PaymentMethod(patient_id=patient.id, provider_reference="pm_test", is_active=is_active)
        )

    def insurance(
        self,
        patient: Patient,
        coverage: Optional[int] = 70,
        expiry: Optional[date] = date(2026, 3, 31),
        is_active: bool = True,
    ) -> PatientInsurance:
        return self._save(
            PatientInsurance(
                patient_id=patient.id,
                insurer_name="National Health Insurance",
                coverage_percentage=coverage,
                expiry_date=expiry,
                is_active=is_active,
            )
        )

    def policy(
        self,
        clinic: Clinic,
        hours: int = 24,
        penalty: str = "50.00",
        service_type: Optional[ServiceType] = None,
    ) -> CancellationPolicy:
        return self._save(
            CancellationPolicy(
                clinic_id=clinic.id,
                service_type_id=service_type.id if service_type else None,
                minimum_hours_notice=hours,
                penalty_percentage=Decimal(penalty),
                is_active=True,
            )
        )


class World:
    """One clinic with a provider working Mondays 09:00-12:00 in 30 minute slots."""

    def __init__(self, seed: Seed):
        self.clinic = seed.clinic()
        self.provider = seed.provider(self.clinic)
        self.patient = seed.patient()
        self.service_type = seed.service_type(self.clinic)
        self.schedule = seed.schedule(self.provider, MONDAY, time(9, 0), time(12, 0))

    @property
    def patient_actor(self) -> Actor:
        return Actor(self.patient.id, RoleName.PATIENT)

    @property
    def provider_actor(self) -> Actor:
        return Actor(self.provider.id, RoleName.PROVIDER)

    def booking_payload(self, at: Optional[datetime] = None, **overrides: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "patient_id": self.patient.id,
            "provider_id": self.provider.id,
            "service_type_id": self.service_type.id,
            "scheduled_at": at or tokyo_instant(NEXT_MONDAY, 10),
        }
        payload.update(overrides)
        return payload


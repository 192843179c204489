"""
Booking request and response schemas.

Request models only check shape and bounds. Business rules such as the
bookable window and slot conflicts are enforced by the booking validator.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import ConfigDict, Field, ValidationInfo, field_validator, model_validator

from ..core.enums import BookingStatus, PreferredLanguage
from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import is_valid_ulid
from ._strict_base import StrictRequestModel
from .base import Money, StandardizedModel

MAX_NOTES_LENGTH = 1000
MAX_SYMPTOMS = 10
# Columns backing these are NOT NULL; omit them to leave unchanged
NON_NULLABLE_UPDATE_FIELDS = ("scheduled_at", "service_type_id", "duration_minutes")


def _check_ulid(value: Optional[str], field_name: str) -> Optional[str]:
    if value is not None and not is_valid_ulid(value):
        raise ValueError(f"{field_name} must be a valid ULID")
    return value


class BookingCreate(StrictRequestModel):
    """Create a booking for one patient with one provider at an exact instant."""

    patient_id: str = Field(..., description="Patient the appointment is for")
    provider_id: str = Field(..., description="Provider to book")
    service_type_id: str = Field(..., description="Service type being booked")
    scheduled_at: datetime = Field(..., description="Appointment start; naive values are UTC")
    duration_minutes: Optional[int] = Field(
        None, ge=5, le=480, description="Defaults to the service type's duration"
    )
    payment_method_id: Optional[str] = None
    insurance_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    medical_record_number: Optional[str] = Field(None, max_length=50)
    is_first_visit: bool = True
    symptoms: Optional[List[str]] = Field(None, max_length=MAX_SYMPTOMS)
    preferred_language: Optional[PreferredLanguage] = None

    @field_validator(
        "patient_id", "provider_id", "service_type_id", "payment_method_id", "insurance_id"
    )
    @classmethod
    def _validate_ids(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _check_ulid(v, info.field_name)

    @field_validator("scheduled_at")
    @classmethod
    def _normalize_scheduled_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("notes")
    @classmethod
    def clean_note(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("symptoms")
    @classmethod
    def clean_symptoms(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        cleaned = [s.strip() for s in v if s and s.strip()]
        return cleaned or None


class BookingUpdate(StrictRequestModel):
    """
    Partial update of a non-terminal booking.

    At least one field must be supplied. Changing ``scheduled_at`` is a
    reschedule and re-runs slot validation.
    """

    scheduled_at: Optional[datetime] = None
    service_type_id: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=5, le=480)
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)
    medical_record_number: Optional[str] = Field(None, max_length=50)
    symptoms: Optional[List[str]] = Field(None, max_length=MAX_SYMPTOMS)
    preferred_language: Optional[PreferredLanguage] = None

    @field_validator("service_type_id")
    @classmethod
    def _validate_service_type_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_ulid(v, "service_type_id")

    @field_validator("scheduled_at")
    @classmethod
    def _normalize_scheduled_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else v

    @model_validator(mode="after")
    def _require_one_field(self) -> "BookingUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        for field in NON_NULLABLE_UPDATE_FIELDS:
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        """Fields explicitly supplied by the caller, enums flattened to their values."""
        changes = self.model_dump(exclude_unset=True)
        if isinstance(changes.get("preferred_language"), PreferredLanguage):
            changes["preferred_language"] = changes["preferred_language"].value
        return changes


class BookingCancel(StrictRequestModel):
    """Schema for cancelling a booking."""

    reason: str = Field(..., min_length=1, max_length=500, description="Cancellation reason")

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Cancellation reason cannot be empty")
        return v


class BookingListFilters(StrictRequestModel):
    status: Optional[BookingStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _validate_range(self) -> "BookingListFilters":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to must be on or after date_from")
        return self


class PatientInfo(StandardizedModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ProviderInfo(StandardizedModel):
    id: str
    name: str
    specialization: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ServiceInfo(StandardizedModel):
    id: str
    name: str
    duration_minutes: int
    base_price: Money

    model_config = ConfigDict(from_attributes=True)


class ClinicInfo(StandardizedModel):
    id: str
    name: str
    timezone: str

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(StandardizedModel):
    """
    Booking with the reference data a caller needs to display it.

    This is also the cached payload, so ``patient_id`` and ``provider_id``
    are always present for the cache-hit authorization re-check.
    """

    id: str
    patient_id: str
    provider_id: str
    service_type_id: str
    scheduled_at: datetime
    duration_minutes: int
    status: BookingStatus

    total_amount: Money
    insurance_covered_amount: Money
    patient_payment_amount: Money
    payment_method_id: Optional[str] = None
    insurance_id: Optional[str] = None

    notes: Optional[str] = None
    medical_record_number: Optional[str] = None
    is_first_visit: bool = True
    symptoms: Optional[List[str]] = None
    preferred_language: Optional[str] = None

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    created_at: datetime
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    patient: Optional[PatientInfo] = None
    provider: Optional[ProviderInfo] = None
    service_type: Optional[ServiceInfo] = None
    clinic: Optional[ClinicInfo] = None
    check_in_code: Optional[str] = None
    cancellation_fee: Optional[Money] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_booking(cls, booking, *, check_in_code: Optional[str] = None) -> "BookingResponse":
        """Build from an ORM booking, pulling joined reference data when loaded."""
        response = cls.model_validate(
            {
                "id": booking.id,
                "patient_id": booking.patient_id,
                "provider_id": booking.provider_id,
                "service_type_id": booking.service_type_id,
                "scheduled_at": booking.scheduled_at,
                "duration_minutes": booking.duration_minutes,
                "status": booking.status,
                "total_amount": booking.total_amount,
                "insurance_covered_amount": booking.insurance_covered_amount,
                "patient_payment_amount": booking.patient_payment_amount,
                "payment_method_id": booking.payment_method_id,
                "insurance_id": booking.insurance_id,
                "notes": booking.notes,
                "medical_record_number": booking.medical_record_number,
                "is_first_visit": booking.is_first_visit,
                "symptoms": booking.symptoms,
                "preferred_language": booking.preferred_language,
                "cancellation_reason": booking.cancellation_reason,
                "cancelled_by": booking.cancelled_by,
                "cancelled_at": booking.cancelled_at,
                "created_at": booking.created_at,
                "updated_at": booking.updated_at,
                "confirmed_at": booking.confirmed_at,
                "completed_at": booking.completed_at,
                "check_in_code": check_in_code,
            }
        )
        if booking.patient is not None:
            response.patient = PatientInfo.model_validate(booking.patient)
        if booking.provider is not None:
            response.provider = ProviderInfo.model_validate(booking.provider)
            if booking.provider.clinic is not None:
                response.clinic = ClinicInfo.model_validate(booking.provider.clinic)
        if booking.service_type is not None:
            response.service_type = ServiceInfo.model_validate(booking.service_type)
        return response


class BookingPage(StandardizedModel):
    """One page of a role-scoped booking listing."""

    bookings: List[BookingResponse]
    total: int
    limit: int
    offset: int
    has_more: bool

"""Rule-by-rule checks for BookingValidator.validate_create."""

from datetime import date, timedelta

import pytest
import ulid

from clinic_booking.core.exceptions import (
    BookingConflictException,
    ConflictException,
    NotActiveException,
    NotFoundException,
    OutOfWindowException,
    ValidationException,
)
from tests._utils.clinic_seed import FIXED_NOW, NEXT_MONDAY, tokyo_instant


def _missing_id() -> str:
    return str(ulid.ULID())


def _deactivate(db, entity):
    entity.is_active = False
    db.commit()


def test_valid_request_resolves_references(validator, world):
    validated = validator.validate_create(world.booking_payload())

    assert validated.provider.id == world.provider.id
    assert validated.patient.id == world.patient.id
    assert validated.schedule.id == world.schedule.id
    assert validated.timezone.zone == "Asia/Tokyo"
    assert validated.insurance is None


def test_malformed_input_is_invalid_input(validator, world):
    payload = world.booking_payload()
    del payload["scheduled_at"]

    with pytest.raises(ValidationException) as exc_info:
        validator.validate_create(payload)
    assert exc_info.value.code == "INVALID_INPUT"
    assert "scheduled_at" in exc_info.value.message


class TestBookableWindow:
    def test_less_than_minimum_notice(self, validator, world):
        with pytest.raises(OutOfWindowException):
            validator.validate_create(
                world.booking_payload(at=FIXED_NOW + timedelta(minutes=30))
            )

    def test_beyond_maximum_advance(self, validator, world):
        with pytest.raises(OutOfWindowException) as exc_info:
            validator.validate_create(world.booking_payload(at=tokyo_instant(date(2025, 9, 15), 10)))
        assert "months" in exc_info.value.message

    def test_window_is_checked_before_references(self, validator, db, world):
        _deactivate(db, world.provider)

        with pytest.raises(OutOfWindowException):
            validator.validate_create(world.booking_payload(at=FIXED_NOW))


class TestReferences:
    def test_unknown_provider(self, validator, world):
        with pytest.raises(NotFoundException) as exc_info:
            validator.validate_create(world.booking_payload(provider_id=_missing_id()))
        assert exc_info.value.details["entity"] == "Provider"

    def test_inactive_provider(self, validator, db, world):
        _deactivate(db, world.provider)
        with pytest.raises(NotActiveException):
            validator.validate_create(world.booking_payload())

    def test_inactive_patient(self, validator, db, world):
        _deactivate(db, world.patient)
        with pytest.raises(NotActiveException) as exc_info:
            validator.validate_create(world.booking_payload())
        assert exc_info.value.details["entity"] == "Patient"

    def test_unknown_service_type(self, validator, world):
        with pytest.raises(NotFoundException):
            validator.validate_create(world.booking_payload(service_type_id=_missing_id()))

    def test_inactive_service_type(self, validator, db, world):
        _deactivate(db, world.service_type)
        with pytest.raises(NotActiveException):
            validator.validate_create(world.booking_payload())

    def test_service_from_another_clinic_is_not_offered(self, validator, seed, world):
        other_clinic = seed.clinic(name="Osaka Clinic")
        foreign_service = seed.service_type(other_clinic, name="Dermatology")

        with pytest.raises(ValidationException) as exc_info:
            validator.validate_create(world.booking_payload(service_type_id=foreign_service.id))
        assert exc_info.value.code == "SERVICE_NOT_OFFERED"

    def test_only_scoped_windows_offer_nothing_else(self, validator, db, seed, world):
        vaccination = seed.service_type(world.clinic, name="Vaccination")
        world.schedule.service_type_id = vaccination.id
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            validator.validate_create(world.booking_payload())
        assert exc_info.value.code == "SERVICE_NOT_OFFERED"

        validated = validator.validate_create(world.booking_payload(service_type_id=vaccination.id))
        assert validated.service_type.id == vaccination.id


class TestSlot:
    def test_outside_schedule(self, validator, world):
        with pytest.raises(ValidationException) as exc_info:
            validator.validate_create(world.booking_payload(at=tokyo_instant(NEXT_MONDAY, 13)))
        assert exc_info.value.code == "OUTSIDE_SCHEDULE"
        assert exc_info.value.details["local_time"] == "2025-06-16 13:00"

    def test_window_end_is_exclusive(self, validator, world):
        with pytest.raises(ValidationException):
            validator.validate_create(world.booking_payload(at=tokyo_instant(NEXT_MONDAY, 12)))

    def test_off_grid_time_inside_window_is_accepted(self, validator, world):
        validated = validator.validate_create(world.booking_payload(at=tokyo_instant(NEXT_MONDAY, 10, 15)))
        assert validated.schedule.id == world.schedule.id

    def test_blocked_slot(self, validator, seed, world):
        seed.blocked(world.provider, tokyo_instant(NEXT_MONDAY, 10))

        with pytest.raises(ConflictException) as exc_info:
            validator.validate_create(world.booking_payload())
        assert exc_info.value.code == "SLOT_BLOCKED"

    def test_slot_already_booked(self, validator, booking_service, world):
        booking_service.create(world.booking_payload(), world.patient_actor)

        with pytest.raises(BookingConflictException):
            validator.validate_create(world.booking_payload())


class TestPaymentAndInsurance:
    def test_own_payment_method(self, validator, seed, world):
        method = seed.payment_method(world.patient)
        validated = validator.validate_create(world.booking_payload(payment_method_id=method.id))
        assert validated.payment_method.id == method.id

    def test_payment_method_of_another_patient(self, validator, seed, world):
        stranger = seed.patient(name="Ken Ito", email="ken@example.com")
        method = seed.payment_method(stranger)

        with pytest.raises(NotFoundException):
            validator.validate_create(world.booking_payload(payment_method_id=method.id))

    def test_inactive_payment_method(self, validator, seed, world):
        method = seed.payment_method(world.patient, is_active=False)

        with pytest.raises(NotActiveException):
            validator.validate_create(world.booking_payload(payment_method_id=method.id))

    def test_insurance_of_another_patient(self, validator, seed, world):
        stranger = seed.patient(name="Ken Ito", email="ken@example.com")
        insurance = seed.insurance(stranger)

        with pytest.raises(NotFoundException):
            validator.validate_create(world.booking_payload(insurance_id=insurance.id))

    def test_expired_insurance(self, validator, seed, world):
        insurance = seed.insurance(world.patient, expiry=date(2025, 6, 12))

        with pytest.raises(NotActiveException) as exc_info:
            validator.validate_create(world.booking_payload(insurance_id=insurance.id))
        assert exc_info.value.message == "Insurance has expired"

    def test_insurance_expiring_today_is_still_valid(self, validator, seed, world):
        insurance = seed.insurance(world.patient, expiry=date(2025, 6, 13))

        validated = validator.validate_create(world.booking_payload(insurance_id=insurance.id))
        assert validated.insurance.id == insurance.id

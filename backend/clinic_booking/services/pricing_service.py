"""Centralized pricing calculations for bookings."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from ..core.config import settings

CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BookingPricing:
    """Amounts fixed on a booking at creation. ``total == insurance + patient``."""

    total_amount: Decimal
    insurance_covered_amount: Decimal
    patient_payment_amount: Decimal
    coverage_percentage: int = 0


class PricingService:
    """Pure pricing rules; no storage access."""

    @staticmethod
    def compute_booking_pricing(service_type: Any, insurance: Optional[Any] = None) -> BookingPricing:
        """
        Split a service's base price between insurer and patient.

        Insurance applies only when the service type is insurance-eligible.
        The insurer share is rounded to the cent and the patient pays the
        remainder, so the split always sums to the total exactly.
        """
        total = _quantize(_to_decimal(service_type.base_price))
        if insurance is None or not service_type.insurance_covered:
            return BookingPricing(total, Decimal("0.00"), total)

        coverage = insurance.coverage_percentage
        if coverage is None:
            coverage = settings.default_coverage_percentage
        coverage = max(0, min(100, int(coverage)))

        insurance_share = _quantize(total * Decimal(coverage) / Decimal(100))
        return BookingPricing(total, insurance_share, total - insurance_share, coverage)

    @staticmethod
    def compute_cancellation_fee(patient_payment_amount: Any, penalty_percentage: Any) -> Decimal:
        """Late-cancellation fee: patient share times penalty percent, to the cent."""
        return _quantize(
            _to_decimal(patient_payment_amount) * _to_decimal(penalty_percentage) / Decimal(100)
        )

# backend/clinic_booking/core/enums.py
"""
Core enums for the clinic booking platform.

These enums are shared by models, schemas and services so that status and
role values stay consistent across the storage and service layers.
"""

from enum import Enum


class RoleName(str, Enum):
    """
    Roles supplied by the identity boundary with every request.

    The core trusts the supplied role and only uses it to scope reads and
    decide who may change a booking.
    """

    PATIENT = "patient"
    PROVIDER = "provider"
    STAFF = "staff"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Default - awaiting clinic confirmation
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


NON_TERMINAL_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

# Privileged roles may act on any booking at the clinic.
PRIVILEGED_ROLES = (RoleName.STAFF, RoleName.ADMIN)


class PreferredLanguage(str, Enum):
    JA = "ja"
    EN = "en"
    ZH = "zh"
    KO = "ko"


class CancellationFeeStatus(str, Enum):
    """Collection state of a cancellation fee; billing happens outside the core."""

    PENDING = "pending"
    COLLECTED = "collected"
    WAIVED = "waived"

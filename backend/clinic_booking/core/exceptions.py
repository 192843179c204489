# backend/clinic_booking/core/exceptions.py
"""
Domain-specific exceptions for the clinic booking core.

These exceptions carry a business-focused message plus the entity id and
reason in ``details`` so the boundary layer can translate them into its own
error responses.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException using the class status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed or out of range. Not retryable."""

    status_code = status.HTTP_400_BAD_REQUEST


class OutOfWindowException(ValidationException):
    """Raised when a scheduled time falls outside the bookable window."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="OUT_OF_WINDOW", details=details)


class RangeTooLargeException(ValidationException):
    """Raised when an availability range query spans too many days."""

    def __init__(self, max_days: int, requested_days: int):
        super().__init__(
            message=f"Date range cannot exceed {max_days} days",
            code="RANGE_TOO_LARGE",
            details={"max_days": max_days, "requested_days": requested_days},
        )


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        super().__init__(
            message=f"{entity} not found",
            code="NOT_FOUND",
            details={"entity": entity, "entity_id": entity_id},
        )


class NotActiveException(DomainException):
    """Raised when a referenced resource exists but is deactivated."""

    status_code = HTTP_422_UNPROCESSABLE

    def __init__(self, entity: str, entity_id: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(
            message=reason or f"{entity} is not active",
            code="NOT_ACTIVE",
            details={"entity": entity, "entity_id": entity_id},
        )


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BookingConflictException(ConflictException):
    """Raised when a booking collides with another booking or a blocked slot."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is already booked",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class AuthorizationException(DomainException):
    """Raised when the actor may not act on the target resource."""

    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateException(DomainException):
    """Raised when a transition is illegal for the booking's current status."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, *, entity_id: Optional[str] = None, current_status: Any = None):
        super().__init__(
            message=message,
            code="INVALID_STATE",
            details={"entity_id": entity_id, "status": current_status},
        )


class TransientInfraException(DomainException):
    """Raised when storage or another collaborator is unavailable. Callers may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": "2"}
        return exc


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as query failures or unexpected constraint violations.
    """

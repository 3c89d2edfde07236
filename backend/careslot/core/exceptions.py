# backend/careslot/core/exceptions.py
"""
Domain-specific exceptions for the booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
All of them are recoverable by the caller (retry, re-fetch, or show a
user-facing message).
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

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
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed or fails business validation."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested booking or slot does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenException(DomainException):
    """Raised when the actor lacks ownership or role for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ConflictException(DomainException):
    """Raised when a concurrent state change won the race."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails unexpectedly."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class SlotUnavailableException(ConflictException):
    """Raised when a slot is no longer available to reserve."""

    def __init__(
        self,
        slot_id: str,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available",
            code="SLOT_UNAVAILABLE",
            details={"slot_id": slot_id, **(details or {})},
        )


class BookingStateConflictException(ConflictException):
    """Raised when a booking changed state underneath the caller."""

    def __init__(self, booking_id: str, expected: str, actual: Optional[str] = None):
        details: Dict[str, Any] = {"booking_id": booking_id, "expected_status": expected}
        if actual is not None:
            details["current_status"] = actual
        super().__init__(
            message="Booking was modified by another request - reload and try again",
            code="BOOKING_STATE_CONFLICT",
            details=details,
        )


class InvalidBookingTransitionException(BusinessRuleException):
    """Raised when a transition is attempted from a terminal or otherwise invalid state."""

    def __init__(self, booking_id: str, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} booking in {current_status} status",
            code="INVALID_TRANSITION",
            details={
                "booking_id": booking_id,
                "current_status": current_status,
                "action": action,
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

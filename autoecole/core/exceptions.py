# autoecole/core/exceptions.py
"""
Domain-specific exceptions for the scheduling engine.

Every business-rule rejection is a DomainException carrying a human-readable
message, a stable code and a category. The engine turns these into structured
failure results; the API layer converts them with to_http_exception().
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from .constants import ERROR_CONCURRENT_MODIFICATION, ERROR_FREEZE_WINDOW, ERROR_SLOT_OVERLAP

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    category = "domain_error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

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

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "category": self.category,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.http_status, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when input or an illegal state target is rejected."""

    category = "validation_error"
    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    category = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when a request collides with existing data."""

    category = "conflict"
    http_status = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    category = "business_rule"
    http_status = HTTP_422_UNPROCESSABLE


class TimingException(BusinessRuleException):
    """Raised when an operation is attempted outside its allowed time window."""

    category = "timing_error"


class ForbiddenException(DomainException):
    """Raised when the caller's role or ownership does not allow the action."""

    category = "authorization_error"
    http_status = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails for infrastructure reasons."""

    category = "service_error"

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.http_status,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "category": self.category,
                "details": self.details if self.details else {},
            },
        )


# Business-rule failures reported as structured results rather than raised
BUSINESS_RULE_ERRORS = (
    ValidationException,
    NotFoundException,
    ConflictException,
    BusinessRuleException,
    ForbiddenException,
)

HTTP_STATUS_BY_CATEGORY: Dict[str, int] = {
    cls.category: cls.http_status
    for cls in (*BUSINESS_RULE_ERRORS, TimingException, ServiceException)
}


def http_status_for_category(category: str) -> int:
    return HTTP_STATUS_BY_CATEGORY.get(category, status.HTTP_500_INTERNAL_SERVER_ERROR)


# Specific business exceptions


class SlotOverlapException(ConflictException):
    """Raised when a slot intersects another slot of the same instructor on the same day."""

    def __init__(self, specific_date: str, new_range: str, conflicting_range: str, conflicting_id: str):
        super().__init__(
            message=ERROR_SLOT_OVERLAP,
            code="SLOT_OVERLAP",
            details={
                "date": specific_date,
                "new_slot": new_range,
                "conflicting_slot": conflicting_range,
                "conflicting_slot_id": conflicting_id,
            },
        )


class FreezeWindowException(TimingException):
    """Raised when a booking or cancellation falls inside the pre-lesson freeze window."""

    def __init__(self, required_hours: int, provided_hours: float):
        super().__init__(
            message=ERROR_FREEZE_WINDOW,
            code="FREEZE_WINDOW",
            details={
                "required_hours": required_hours,
                "provided_hours": round(provided_hours, 2),
            },
        )


class InvalidPhaseTransitionException(ValidationException):
    """Raised when a requested phase is not the single allowed successor."""

    def __init__(self, current_label: str, next_label: Optional[str]):
        next_text = f'"{next_label}"' if next_label else "none"
        super().__init__(
            message=(
                f'Invalid transition. Current phase is "{current_label}". '
                f"Next allowed phase is {next_text}."
            ),
            code="INVALID_PHASE_TRANSITION",
            details={"current_phase": current_label, "next_allowed_phase": next_label},
        )


class ConcurrentModificationException(ConflictException):
    """Raised when an optimistic version check fails or a racing insert loses."""

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message or ERROR_CONCURRENT_MODIFICATION,
            code="CONCURRENT_MODIFICATION",
            details=details or {},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues or
    query failures.
    """

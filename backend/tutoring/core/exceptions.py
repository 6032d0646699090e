# backend/tutoring/core/exceptions.py
"""
Domain-specific exceptions for the reservation scheduling core.

These exceptions carry business-focused messages and a stable ``code``
so the API layer can translate them with ``to_http_exception()``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


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
    """Raised when input validation fails.

    ``details["errors"]`` maps a field path (``available_slots[0].weekday``)
    to the list of messages for that field.
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str = "The given data was invalid",
        errors: Optional[Dict[str, List[str]]] = None,
        code: Optional[str] = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(message=message, code=code, details={"errors": errors or {}})

    @property
    def errors(self) -> Dict[str, List[str]]:
        return self.details.get("errors", {})


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenException(DomainException):
    """Raised when the actor lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class TeacherNotFoundException(NotFoundException):
    def __init__(self, teacher_id: Optional[int] = None, user_id: Optional[int] = None):
        details: Dict[str, Any] = {}
        if teacher_id is not None:
            details["teacher_id"] = teacher_id
        if user_id is not None:
            details["user_id"] = user_id
        super().__init__(message="Teacher not found", code="TEACHER_NOT_FOUND", details=details)


class ReservationNotFoundException(NotFoundException):
    def __init__(self, reservation_id: Any):
        super().__init__(
            message="Reservation not found",
            code="RESERVATION_NOT_FOUND",
            details={"reservation_id": reservation_id},
        )


class ReservationAccessDeniedException(ForbiddenException):
    """Raised when the actor is not a party to the reservation."""

    def __init__(self, message: str = "You are not allowed to access this reservation"):
        super().__init__(message=message, code="RESERVATION_ACCESS_DENIED")


class ReservationConflictException(ConflictException):
    """Raised when the teacher already has a booking at the requested instant."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "The teacher already has a reservation at this time",
            code="RESERVATION_CONFLICT",
            details=details or {},
        )


class TeacherUnavailableException(BusinessRuleException):
    """Raised when the requested time is outside the teacher's weekly availability."""

    def __init__(self, teacher_id: int, reserve_time: datetime):
        super().__init__(
            message="The teacher is not available at the requested time",
            code="TEACHER_UNAVAILABLE",
            details={"teacher_id": teacher_id, "reserve_time": reserve_time.isoformat()},
        )


class CourseNotPurchasedException(BusinessRuleException):
    def __init__(self, course_id: int):
        super().__init__(
            message="You have not purchased this course",
            code="COURSE_NOT_PURCHASED",
            details={"course_id": course_id},
        )


class InsufficientLessonsException(BusinessRuleException):
    def __init__(self, course_id: int, total: int, used: int):
        super().__init__(
            message="No remaining lessons for this course",
            code="INSUFFICIENT_LESSONS",
            details={"course_id": course_id, "total": total, "used": used},
        )


class ReservationStatusInvalidException(BusinessRuleException):
    """Raised when a transition is attempted from a state that does not permit it."""

    def __init__(self, message: str, *, current: Optional[Dict[str, str]] = None):
        super().__init__(
            message=message,
            code="RESERVATION_STATUS_INVALID",
            details={"current": current or {}},
        )


class ReservationExpiredException(ReservationStatusInvalidException):
    """Raised when a teacher responds after the response deadline."""

    def __init__(self, response_deadline: datetime):
        super().__init__("The response deadline for this reservation has expired")
        self.code = "RESERVATION_EXPIRED"
        self.details = {"response_deadline": response_deadline.isoformat()}


class CancellationWindowException(BusinessRuleException):
    """Raised when a cancellation is requested inside the cancellation window."""

    def __init__(self, required_hours: int, hours_until_start: float):
        super().__init__(
            message=f"Reservations can only be cancelled at least {required_hours} hours in advance",
            code="CANCELLATION_WINDOW",
            details={
                "required_hours": required_hours,
                "hours_until_start": round(hours_until_start, 2),
            },
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures or constraint violations.
    """


def validation_exception_from_pydantic(exc: Any) -> ValidationException:
    """Convert a pydantic ``ValidationError`` into a field-indexed ValidationException."""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
        message = str(error.get("msg", "Invalid value"))
        errors.setdefault(field, []).append(message.removeprefix("Value error, "))
    return ValidationException(errors=errors)

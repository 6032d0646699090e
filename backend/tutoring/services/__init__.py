"""Service layer for the reservation scheduling core."""

from .availability_service import AvailabilityService
from .calendar_service import CalendarService
from .conflict_checker import ConflictChecker
from .reservation_service import ReservationService
from .teacher_service import TeacherService

__all__ = [
    "AvailabilityService",
    "CalendarService",
    "ConflictChecker",
    "ReservationService",
    "TeacherService",
]

# backend/tutoring/core/enums.py
"""
Core enums for the reservation scheduling domain.

Values are stored as-is in the database, so renaming a member is a
data migration.
"""

from enum import Enum


class ReservationStatus(str, Enum):
    """
    Lifecycle state of one side (teacher or student) of a reservation.

    OVERDUE only ever appears on the student side and is set by an
    external process once the session time has passed.
    """

    PENDING = "pending"
    RESERVED = "reserved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class ParticipantRole(str, Enum):
    """The two parties of a reservation."""

    TEACHER = "teacher"
    STUDENT = "student"


class CalendarView(str, Enum):
    WEEK = "week"
    MONTH = "month"


class CalendarStatus(str, Enum):
    """Three-way status shown on calendar entries."""

    RESERVED = "reserved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OverallStatus(str, Enum):
    """Combined status of both sides, used for list filters."""

    PENDING = "pending"
    RESERVED = "reserved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TimeRange(str, Enum):
    """Relative windows accepted by reservation listings."""

    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"

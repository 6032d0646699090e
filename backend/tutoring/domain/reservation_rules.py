"""
Pure reservation rules.

Nothing here touches the database, so the rules can be unit tested
without a session.
"""

from datetime import datetime, timedelta
from typing import Optional

from ..core.enums import CalendarStatus, OverallStatus, ReservationStatus
from ..core.timezone_utils import end_of_tomorrow, ensure_utc

_PENDING = ReservationStatus.PENDING.value
_RESERVED = ReservationStatus.RESERVED.value
_COMPLETED = ReservationStatus.COMPLETED.value
_CANCELLED = ReservationStatus.CANCELLED.value


def compute_response_deadline(
    reserve_time: datetime,
    now: datetime,
    near_term_hours: int = 12,
    default_hours: int = 24,
) -> datetime:
    """
    Deadline for the teacher to confirm or reject a new request.

    Requests for today or tomorrow (UTC) get the shorter window.
    """
    now = ensure_utc(now)
    if ensure_utc(reserve_time) <= end_of_tomorrow(now):
        return now + timedelta(hours=near_term_hours)
    return now + timedelta(hours=default_hours)


def hours_until(reserve_time: datetime, now: datetime) -> float:
    return (ensure_utc(reserve_time) - ensure_utc(now)).total_seconds() / 3600


def is_fully_completed(teacher_status: str, student_status: str) -> bool:
    return teacher_status == _COMPLETED and student_status == _COMPLETED


def is_cancelled(teacher_status: str, student_status: str) -> bool:
    return teacher_status == _CANCELLED or student_status == _CANCELLED


def calendar_status(teacher_status: str, student_status: str) -> CalendarStatus:
    if is_cancelled(teacher_status, student_status):
        return CalendarStatus.CANCELLED
    if is_fully_completed(teacher_status, student_status):
        return CalendarStatus.COMPLETED
    return CalendarStatus.RESERVED


def overall_status(teacher_status: str, student_status: str) -> OverallStatus:
    if is_cancelled(teacher_status, student_status):
        return OverallStatus.CANCELLED
    if teacher_status == _PENDING:
        return OverallStatus.PENDING
    if is_fully_completed(teacher_status, student_status):
        return OverallStatus.COMPLETED
    return OverallStatus.RESERVED


def is_upcoming(teacher_status: str, student_status: str) -> bool:
    return teacher_status == _RESERVED and student_status == _RESERVED


def remaining_snapshot(total: int, used: int, pending: int = 0) -> dict:
    """Lesson counts as shown to the student, optionally counting ``pending`` units as used."""
    shown_used = used + pending
    return {"total": total, "used": shown_used, "remaining": max(total - shown_used, 0)}


def response_expired(response_deadline: Optional[datetime], now: datetime) -> bool:
    if response_deadline is None:
        return False
    return ensure_utc(now) > ensure_utc(response_deadline)

# backend/tutoring/schemas/reservation.py
"""
Reservation schemas.

Requests carry the wall-clock date and time of the lesson as strings
(``YYYY-MM-DD`` and ``HH:MM``, UTC); responses expose UTC instants.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, List, Optional

from pydantic import Field, field_validator, model_validator

from ..core.enums import OverallStatus, ReservationStatus, TimeRange
from ..core.timezone_utils import format_hhmm, parse_date_string, parse_time_string
from ..domain.reservation_rules import overall_status
from ._strict_base import StrictModel, StrictRequestModel


def _parse_date_field(value: object, field_name: str) -> object:
    if isinstance(value, str):
        parsed = parse_date_string(value)
        if parsed is None:
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date")
        return parsed
    return value


class ReservationCreate(StrictRequestModel):
    """Student request for a lesson."""

    course_id: int = Field(..., gt=0)
    teacher_id: int = Field(..., gt=0)
    reserve_date: date = Field(..., description="Lesson date (UTC)")
    reserve_time: time = Field(..., description="Lesson start time (UTC)")

    @field_validator("reserve_date", mode="before")
    @classmethod
    def _parse_reserve_date(cls, v: object) -> object:
        return _parse_date_field(v, "reserve_date")

    @field_validator("reserve_time", mode="before")
    @classmethod
    def _parse_reserve_time(cls, v: object) -> object:
        """Convert HH:MM strings to time objects."""
        if isinstance(v, str):
            parsed = parse_time_string(v)
            if parsed is None:
                raise ValueError(f"Invalid time format: {v}. Expected HH:MM format.")
            return parsed
        return v


class ReservationReject(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("reason")
    @classmethod
    def _clean_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class ReservationListQuery(StrictRequestModel):
    """Filters for a participant's reservation list."""

    page: int = Field(default=1, ge=1)
    per_page: Optional[int] = Field(default=None, ge=1)
    course_id: Optional[int] = Field(default=None, gt=0)
    status: Optional[ReservationStatus] = None
    overall_status: Optional[OverallStatus] = None
    time_range: Optional[TimeRange] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _parse_dates(cls, v: object) -> object:
        return _parse_date_field(v, "date")

    @model_validator(mode="after")
    def _check_range(self) -> "ReservationListQuery":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class LessonSnapshot(StrictModel):
    total: int
    used: int
    remaining: int


class ReservationResponse(StrictModel):
    id: int
    uuid: str
    course_id: int
    teacher_id: int
    student_id: int
    reserve_time: datetime
    teacher_status: ReservationStatus
    student_status: ReservationStatus
    response_deadline: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReservationCreateResponse(StrictModel):
    reservation: ReservationResponse
    remaining_lessons: LessonSnapshot


class ReservationListItem(ReservationResponse):
    overall_status: OverallStatus
    reserve_date: date
    reserve_start_time: str
    reserve_end_time: str

    @classmethod
    def from_reservation(cls, reservation: Any, lesson_minutes: int) -> "ReservationListItem":
        base = ReservationResponse.model_validate(reservation).model_dump()
        start = base["reserve_time"]
        return cls(
            **base,
            overall_status=overall_status(reservation.teacher_status, reservation.student_status),
            reserve_date=start.date(),
            reserve_start_time=format_hhmm(start.time()),
            reserve_end_time=format_hhmm((start + timedelta(minutes=lesson_minutes)).time()),
        )


class Pagination(StrictModel):
    current_page: int
    per_page: int
    total: int
    total_pages: int


class ReservationListResponse(StrictModel):
    reservations: List[ReservationListItem]
    pagination: Pagination

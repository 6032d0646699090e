"""Calendar view schemas."""

from datetime import date as date_type
from typing import List, Optional

from ..core.enums import CalendarStatus, CalendarView, ParticipantRole
from ._strict_base import StrictModel


class CalendarCourse(StrictModel):
    id: int


class CalendarParticipant(StrictModel):
    """The other party of the reservation, from the viewer's perspective."""

    id: int
    role: ParticipantRole


class CalendarReservation(StrictModel):
    id: int
    uuid: str
    time: str
    duration: int
    status: CalendarStatus
    course: CalendarCourse
    participant: CalendarParticipant


class CalendarDay(StrictModel):
    date: date_type
    weekday: int
    weekday_name: str
    reservations: List[CalendarReservation]


class CalendarPeriod(StrictModel):
    start_date: date_type
    end_date: date_type
    year: Optional[int] = None
    month: Optional[int] = None


class CalendarSummary(StrictModel):
    total_reservations: int
    completed_reservations: int
    upcoming_reservations: int


class CalendarViewResponse(StrictModel):
    view: CalendarView
    period: CalendarPeriod
    days: List[CalendarDay]
    summary: Optional[CalendarSummary] = None

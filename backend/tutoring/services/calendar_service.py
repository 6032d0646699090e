# backend/tutoring/services/calendar_service.py
"""
Calendar Service

Buckets a participant's reservations into week or month views. Weeks run
Monday..Sunday; months run from the first to the last calendar day. All
dates are UTC.
"""

from collections import defaultdict
import calendar
from datetime import date, timedelta
import logging
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import CalendarStatus, CalendarView, ParticipantRole
from ..core.timezone_utils import (
    WEEKDAY_NAMES,
    end_of_day,
    ensure_utc,
    format_hhmm,
    parse_date_string,
    start_of_day,
    sunday_based_weekday,
)
from ..core.exceptions import ValidationException
from ..domain.reservation_rules import calendar_status, is_upcoming
from ..models.reservation import Reservation
from ..repositories.factory import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from ..schemas.calendar import (
    CalendarCourse,
    CalendarDay,
    CalendarParticipant,
    CalendarPeriod,
    CalendarReservation,
    CalendarSummary,
    CalendarViewResponse,
)
from .base import BaseService
from .teacher_service import TeacherService

logger = logging.getLogger(__name__)


def calendar_range(view: CalendarView, anchor: date) -> Tuple[date, date]:
    """First and last day (inclusive) of the week or month containing ``anchor``."""
    if view == CalendarView.WEEK:
        monday = anchor - timedelta(days=anchor.weekday())
        return monday, monday + timedelta(days=6)
    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last_day)


class CalendarService(BaseService):
    def __init__(
        self,
        db: Session,
        repository: Optional[ReservationRepository] = None,
        teacher_service: Optional[TeacherService] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_reservation_repository(db)
        self.teacher_service = teacher_service or TeacherService(db)

    @BaseService.measure_operation("get_calendar_view")
    def get_calendar_view(
        self,
        user_id: int,
        role: ParticipantRole,
        view: CalendarView,
        anchor_date: Union[date, str],
    ) -> CalendarViewResponse:
        """
        Reservations of the caller bucketed per day.

        Args:
            user_id: Authenticated user ID
            role: Whether the caller views as teacher or student
            view: ``week`` or ``month``
            anchor_date: Any day inside the requested period

        Returns:
            One entry per calendar day; month views also carry a summary
        """
        role = ParticipantRole(role)
        view = CalendarView(view)
        anchor = self._parse_anchor(anchor_date)

        if role == ParticipantRole.TEACHER:
            participant_id = self.teacher_service.get_teacher_for_user(user_id).id
            other_role = ParticipantRole.STUDENT
        else:
            participant_id = user_id
            other_role = ParticipantRole.TEACHER

        first_day, last_day = calendar_range(view, anchor)
        reservations = self.repository.get_in_range_for_participant(
            role, participant_id, start_of_day(first_day), end_of_day(last_day)
        )

        by_day: Dict[date, List[CalendarReservation]] = defaultdict(list)
        for reservation in reservations:
            reserve_time = ensure_utc(reservation.reserve_time)
            by_day[reserve_time.date()].append(
                self._to_entry(reservation, other_role)
            )

        days = []
        current = first_day
        while current <= last_day:
            weekday = sunday_based_weekday(current)
            days.append(
                CalendarDay(
                    date=current,
                    weekday=weekday,
                    weekday_name=WEEKDAY_NAMES[weekday],
                    reservations=by_day.get(current, []),
                )
            )
            current += timedelta(days=1)

        if view == CalendarView.WEEK:
            return CalendarViewResponse(
                view=view,
                period=CalendarPeriod(start_date=first_day, end_date=last_day),
                days=days,
            )

        return CalendarViewResponse(
            view=view,
            period=CalendarPeriod(
                start_date=first_day, end_date=last_day, year=anchor.year, month=anchor.month
            ),
            days=days,
            summary=self._summarize(reservations),
        )

    @staticmethod
    def _parse_anchor(anchor_date: Union[date, str]) -> date:
        if isinstance(anchor_date, date):
            return anchor_date
        parsed = parse_date_string(anchor_date)
        if parsed is None:
            raise ValidationException(errors={"date": ["The date must be in YYYY-MM-DD format."]})
        return parsed

    @staticmethod
    def _to_entry(reservation: Reservation, other_role: ParticipantRole) -> CalendarReservation:
        other_id = (
            reservation.student_id if other_role == ParticipantRole.STUDENT else reservation.teacher_id
        )
        return CalendarReservation(
            id=reservation.id,
            uuid=reservation.uuid,
            time=format_hhmm(ensure_utc(reservation.reserve_time).time()),
            duration=settings.lesson_duration_minutes,
            status=calendar_status(reservation.teacher_status, reservation.student_status),
            course=CalendarCourse(id=reservation.course_id),
            participant=CalendarParticipant(id=other_id, role=other_role),
        )

    @staticmethod
    def _summarize(reservations: List[Reservation]) -> CalendarSummary:
        completed = sum(
            1
            for r in reservations
            if calendar_status(r.teacher_status, r.student_status) == CalendarStatus.COMPLETED
        )
        upcoming = sum(1 for r in reservations if is_upcoming(r.teacher_status, r.student_status))
        return CalendarSummary(
            total_reservations=len(reservations),
            completed_reservations=completed,
            upcoming_reservations=upcoming,
        )

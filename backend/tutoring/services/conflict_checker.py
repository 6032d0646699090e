# backend/tutoring/services/conflict_checker.py
"""
Conflict Checker Service

Decides whether a candidate reservation time is bookable:

1. Availability: the UTC weekday and time of the request fall inside an
   active weekly slot of the teacher.
2. Double booking: the teacher has no confirmed reservation at exactly the
   same instant.

Also runs the batch scan used before destructive schedule edits, reporting
booked reservations that sit inside the teacher's slot windows.
"""

from datetime import date, datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ReservationConflictException,
    TeacherUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import end_of_day, ensure_utc, start_of_day, sunday_based_weekday, utc_now
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import CheckPeriod, ConflictCheckResponse, ScheduleConflict
from .availability_service import AvailabilityService
from .base import BaseService
from .teacher_service import TeacherService

logger = logging.getLogger(__name__)


class ConflictChecker(BaseService):
    """
    Service for reservation conflict detection.

    The two checks in ``validate_reservation_slot`` read disjoint data but
    share the request's session, so they run one after the other. Races
    between concurrent creators are settled by the unique index on
    ``(teacher_id, reserve_time)``.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[ConflictCheckerRepository] = None,
        availability_service: Optional[AvailabilityService] = None,
        availability_repository: Optional[AvailabilityRepository] = None,
        teacher_service: Optional[TeacherService] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)
        self.availability_repository = (
            availability_repository or RepositoryFactory.create_availability_repository(db)
        )
        self.teacher_service = teacher_service or TeacherService(db)
        self.availability_service = availability_service or AvailabilityService(
            db, repository=self.availability_repository, teacher_service=self.teacher_service
        )

    def ensure_teacher_available(self, teacher_id: int, reserve_time: datetime) -> None:
        """
        Raises:
            TeacherUnavailableException: If no active slot covers ``reserve_time``
        """
        reserve_time = ensure_utc(reserve_time)
        weekday = sunday_based_weekday(reserve_time.date())
        if not self.availability_service.is_time_within_availability(
            teacher_id, weekday, reserve_time.time()
        ):
            raise TeacherUnavailableException(teacher_id, reserve_time)

    def ensure_no_double_booking(self, teacher_id: int, reserve_time: datetime) -> None:
        """
        Raises:
            ReservationConflictException: If a confirmed reservation exists at ``reserve_time``
        """
        existing = self.repository.find_reserved_at(teacher_id, ensure_utc(reserve_time))
        if existing is not None:
            raise ReservationConflictException(
                details={
                    "teacher_id": teacher_id,
                    "reserve_time": ensure_utc(reserve_time).isoformat(),
                    "conflicting_reservation_id": existing.id,
                }
            )

    @BaseService.measure_operation("validate_reservation_slot")
    def validate_reservation_slot(self, teacher_id: int, reserve_time: datetime) -> None:
        """Both checks must pass before a reservation may be written."""
        self.ensure_teacher_available(teacher_id, reserve_time)
        self.ensure_no_double_booking(teacher_id, reserve_time)

    @BaseService.measure_operation("detect_conflicts")
    def detect_conflicts(
        self,
        teacher_id: int,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        slot_ids: Optional[List[int]] = None,
    ) -> ConflictCheckResponse:
        """
        Booked reservations that fall inside the teacher's slot windows.

        Args:
            teacher_id: The teacher ID
            from_date: First day of the scan (default: today, UTC)
            to_date: Last day of the scan (default: ``conflict_check_default_days`` ahead)
            slot_ids: Only consider these slots

        Returns:
            Conflict report with the (slot, reservation) pairs found

        Raises:
            TeacherNotFoundException: If the teacher does not exist
            ValidationException: If the range is empty or too long
        """
        self.teacher_service.get_teacher(teacher_id)

        today = utc_now().date()
        from_date = from_date or today
        to_date = to_date or (from_date + timedelta(days=settings.conflict_check_default_days))
        if from_date >= to_date:
            raise ValidationException(
                errors={"date": ["The start date must be before the end date."]}
            )
        if (to_date - from_date).days > settings.conflict_check_max_days:
            raise ValidationException(
                errors={
                    "date": [
                        f"The date range cannot exceed {settings.conflict_check_max_days} days."
                    ]
                }
            )

        slots = self.availability_repository.get_slots_for_teacher(
            teacher_id, active_only=False, slot_ids=slot_ids
        )
        reservations = self.repository.get_reservations_in_range(
            teacher_id, start_of_day(from_date), end_of_day(to_date)
        )

        conflicts = []
        for reservation in reservations:
            reserve_time = ensure_utc(reservation.reserve_time)
            weekday = sunday_based_weekday(reserve_time.date())
            at = reserve_time.time()
            for slot in slots:
                if slot.weekday == weekday and slot.start_time <= at < slot.end_time:
                    conflicts.append(
                        ScheduleConflict(
                            slot_id=slot.id,
                            reservation_id=reservation.id,
                            reserve_time=reserve_time,
                            student_id=reservation.student_id,
                            reason="Reservation exists in this time slot",
                        )
                    )

        if conflicts:
            self.logger.info(
                f"Found {len(conflicts)} schedule conflicts for teacher {teacher_id}"
            )
        return ConflictCheckResponse(
            has_conflicts=bool(conflicts),
            conflicts=conflicts,
            total_conflicts=len(conflicts),
            check_period=CheckPeriod(from_date=from_date, to_date=to_date),
        )

# backend/tutoring/services/reservation_service.py
"""
Reservation Service

Handles the reservation lifecycle:
- Creating lesson requests (teacher PENDING, student RESERVED)
- Teacher confirmation / rejection within the response deadline
- Per-side completion
- Cancellation with the cancellation window and lesson refund
- Listing a participant's reservations
- Expiring unanswered requests and external overdue/review events

Lesson units are deducted from the purchase ledger on confirmation, not
on creation, and refunded when a confirmed reservation is cancelled. The
ledger change is written in the same transaction as the status change.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import math
import time
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import ParticipantRole, ReservationStatus, TimeRange
from ..core.exceptions import (
    CancellationWindowException,
    CourseNotPurchasedException,
    InsufficientLessonsException,
    ReservationAccessDeniedException,
    ReservationConflictException,
    ReservationExpiredException,
    ReservationNotFoundException,
    ReservationStatusInvalidException,
    RepositoryException,
    ValidationException,
    validation_exception_from_pydantic,
)
from ..core.timezone_utils import combine_utc, end_of_day, ensure_utc, start_of_day, utc_now
from ..domain.reservation_rules import (
    compute_response_deadline,
    hours_until,
    is_cancelled,
    is_fully_completed,
    remaining_snapshot,
    response_expired,
)
from ..models.purchase import CoursePurchase
from ..models.reservation import Reservation
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.purchase_ledger_repository import PurchaseLedgerRepository
from ..repositories.reservation_repository import ReservationRepository
from ..schemas.reservation import (
    LessonSnapshot,
    Pagination,
    ReservationCreate,
    ReservationListItem,
    ReservationListQuery,
    ReservationListResponse,
)
from .base import BaseService
from .conflict_checker import ConflictChecker
from .teacher_service import TeacherService

logger = logging.getLogger(__name__)

PENDING = ReservationStatus.PENDING.value
RESERVED = ReservationStatus.RESERVED.value
COMPLETED = ReservationStatus.COMPLETED.value
CANCELLED = ReservationStatus.CANCELLED.value
OVERDUE = ReservationStatus.OVERDUE.value

_RETRYABLE_PGCODES = {"40P01", "40001"}


def _now_utc() -> datetime:
    return utc_now()


@dataclass
class ReservationCreated:
    reservation: Reservation
    remaining_lessons: LessonSnapshot


@dataclass
class CompletionResult:
    reservation: Reservation
    is_fully_completed: bool


@dataclass
class CancellationResult:
    reservation: Reservation
    refunded_lessons: int
    cancelled_by: ParticipantRole


@dataclass
class ExpirationResult:
    count: int = 0
    reservation_ids: List[int] = field(default_factory=list)


class ReservationService(BaseService):
    """
    Service layer for reservation operations.

    Every transition runs in one transaction covering the reservation row
    and, where lesson units move, the purchase ledger row.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[ReservationRepository] = None,
        ledger_repository: Optional[PurchaseLedgerRepository] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        teacher_service: Optional[TeacherService] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_reservation_repository(db)
        self.ledger_repository = (
            ledger_repository or RepositoryFactory.create_purchase_ledger_repository(db)
        )
        self.teacher_service = teacher_service or TeacherService(db)
        self.conflict_checker = conflict_checker or ConflictChecker(
            db, teacher_service=self.teacher_service
        )

    @staticmethod
    def _is_retryable_error(exc: Exception) -> bool:
        """Deadlock or serialization failure, raw or wrapped by a repository."""
        if isinstance(exc, RepositoryException):
            exc = exc.__cause__
        if not isinstance(exc, OperationalError):
            return False
        orig = getattr(exc, "orig", None)
        pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if pgcode in _RETRYABLE_PGCODES:
            return True
        message = str(exc).lower()
        return "deadlock detected" in message or "could not serialize access" in message

    # Creation

    @BaseService.measure_operation("create_reservation")
    def create_reservation(
        self, student_id: int, data: Union[ReservationCreate, Mapping[str, Any]]
    ) -> ReservationCreated:
        """
        Create a lesson request.

        Args:
            student_id: The requesting student's user ID
            data: Course, teacher, date (YYYY-MM-DD) and time (HH:MM), UTC

        Returns:
            The created reservation and the student's lesson counts, showing
            this request as already used

        Raises:
            ValidationException: Malformed input or a time in the past
            TeacherNotFoundException: If the teacher does not exist
            CourseNotPurchasedException: No purchase for the course
            InsufficientLessonsException: No remaining lesson units
            TeacherUnavailableException: Outside the teacher's weekly slots
            ReservationConflictException: The slot is already booked
        """
        request = self._parse_create_request(data)
        self.log_operation(
            "create_reservation",
            student_id=student_id,
            teacher_id=request.teacher_id,
            course_id=request.course_id,
        )

        self.teacher_service.get_teacher(request.teacher_id)
        purchase = self._require_remaining_lessons(student_id, request.course_id)

        now = _now_utc()
        reserve_time = combine_utc(request.reserve_date, request.reserve_time)
        if reserve_time <= now:
            raise ValidationException(
                errors={"reserve_time": ["The reservation time must be in the future."]}
            )

        reservation = self._insert_with_retry(student_id, request, reserve_time, now)
        prometheus_metrics.inc_reservation_transition("created")
        self.logger.info(
            f"Reservation {reservation.id} requested by student {student_id} "
            f"with teacher {reservation.teacher_id} at {reserve_time.isoformat()}"
        )

        return ReservationCreated(
            reservation=reservation,
            remaining_lessons=LessonSnapshot(
                **remaining_snapshot(purchase.quantity_total, purchase.quantity_used, pending=1)
            ),
        )

    def _parse_create_request(
        self, data: Union[ReservationCreate, Mapping[str, Any]]
    ) -> ReservationCreate:
        if isinstance(data, ReservationCreate):
            return data
        try:
            return ReservationCreate.model_validate(dict(data))
        except ValidationError as exc:
            raise validation_exception_from_pydantic(exc) from exc

    def _insert_with_retry(
        self, student_id: int, request: ReservationCreate, reserve_time: datetime, now: datetime
    ) -> Reservation:
        """
        Check and insert in one transaction, retrying on deadlock/serialization failures.

        The partial unique index on (teacher_id, reserve_time) rejects the loser
        of a concurrent race; that IntegrityError surfaces as a conflict.
        """
        max_attempts = settings.reservation_create_max_retries
        conflict_details = {
            "teacher_id": request.teacher_id,
            "reserve_time": reserve_time.isoformat(),
        }
        attempt = 1
        while True:
            try:
                with self.repository.transaction():
                    self.conflict_checker.validate_reservation_slot(request.teacher_id, reserve_time)
                    return self.repository.create(
                        course_id=request.course_id,
                        teacher_id=request.teacher_id,
                        student_id=student_id,
                        reserve_time=reserve_time,
                        teacher_status=PENDING,
                        student_status=RESERVED,
                        response_deadline=compute_response_deadline(
                            reserve_time,
                            now,
                            near_term_hours=settings.near_term_response_hours,
                            default_hours=settings.default_response_hours,
                        ),
                    )
            except IntegrityError as exc:
                raise ReservationConflictException(details=conflict_details) from exc
            except (OperationalError, RepositoryException) as exc:
                if not self._is_retryable_error(exc):
                    raise
                if attempt >= max_attempts:
                    raise ReservationConflictException(details=conflict_details) from exc
                self.logger.warning(
                    f"Retrying reservation insert after transient failure (attempt {attempt})"
                )
                time.sleep(0.05 * attempt)
                attempt += 1

    def _require_remaining_lessons(self, student_id: int, course_id: int) -> CoursePurchase:
        purchase = self.ledger_repository.get_for_student_course(student_id, course_id)
        if purchase is None:
            raise CourseNotPurchasedException(course_id)
        if purchase.remaining <= 0:
            raise InsufficientLessonsException(
                course_id, total=purchase.quantity_total, used=purchase.quantity_used
            )
        return purchase

    # Teacher response

    @BaseService.measure_operation("confirm_reservation")
    def confirm_reservation(self, reservation_id: int, user_id: int) -> Reservation:
        """
        Teacher accepts a pending request and one lesson unit is deducted.

        Raises:
            TeacherNotFoundException: ``user_id`` is not a teacher
            ReservationNotFoundException: Unknown or deleted reservation
            ReservationAccessDeniedException: Not this teacher's reservation
            ReservationStatusInvalidException: Teacher side is not pending
            ReservationExpiredException: The response deadline has passed
            InsufficientLessonsException: The student has no unit left
        """
        self.log_operation("confirm_reservation", reservation_id=reservation_id, user_id=user_id)

        with self.transaction():
            reservation = self._get_for_teacher_user(reservation_id, user_id)
            self._require_teacher_pending(reservation, "Only pending reservations can be confirmed")

            if response_expired(reservation.response_deadline, _now_utc()):
                raise ReservationExpiredException(ensure_utc(reservation.response_deadline))

            purchase = self.ledger_repository.get_for_student_course(
                reservation.student_id, reservation.course_id, for_update=True
            )
            if purchase is not None and purchase.remaining <= 0:
                raise InsufficientLessonsException(
                    reservation.course_id,
                    total=purchase.quantity_total,
                    used=purchase.quantity_used,
                )

            reservation.teacher_status = RESERVED
            reservation.response_deadline = None
            self.repository.flush()

            if purchase is None:
                self._flag_ledger_reconciliation("confirm", reservation)
            else:
                self.ledger_repository.adjust_used(purchase, 1)

        prometheus_metrics.inc_reservation_transition("confirmed")
        return reservation

    @BaseService.measure_operation("reject_reservation")
    def reject_reservation(
        self, reservation_id: int, user_id: int, reason: Optional[str] = None
    ) -> Reservation:
        """
        Teacher declines a pending request. No lesson unit was deducted, so
        nothing is refunded.
        """
        self.log_operation("reject_reservation", reservation_id=reservation_id, user_id=user_id)

        with self.transaction():
            reservation = self._get_for_teacher_user(reservation_id, user_id)
            self._require_teacher_pending(reservation, "Only pending reservations can be rejected")

            reservation.teacher_status = CANCELLED
            reservation.student_status = CANCELLED
            reservation.response_deadline = None
            reservation.rejection_reason = reason
            self.repository.flush()

        prometheus_metrics.inc_reservation_transition("rejected")
        return reservation

    # Completion and cancellation

    @BaseService.measure_operation("mark_complete")
    def mark_complete(
        self, reservation_id: int, user_id: int, side: ParticipantRole
    ) -> CompletionResult:
        """
        Mark one side of the reservation as completed.

        The teacher side is resolved from the teacher record of ``user_id``;
        the student side requires ``user_id`` to be the reservation's student.
        """
        side = ParticipantRole(side)
        self.log_operation(
            "mark_complete", reservation_id=reservation_id, user_id=user_id, side=side.value
        )

        with self.transaction():
            reservation = self._get_reservation(reservation_id)
            if side == ParticipantRole.TEACHER:
                teacher = self.teacher_service.get_teacher_for_user(user_id)
                if reservation.teacher_id != teacher.id:
                    raise ReservationAccessDeniedException()
            elif reservation.student_id != user_id:
                raise ReservationAccessDeniedException()

            if is_cancelled(reservation.teacher_status, reservation.student_status):
                raise ReservationStatusInvalidException(
                    "Cancelled reservations cannot be completed",
                    current=self._status_snapshot(reservation),
                )

            if side == ParticipantRole.TEACHER:
                reservation.teacher_status = COMPLETED
            else:
                reservation.student_status = COMPLETED
            self.repository.flush()

        prometheus_metrics.inc_reservation_transition(f"{side.value}_completed")
        return CompletionResult(
            reservation=reservation,
            is_fully_completed=is_fully_completed(
                reservation.teacher_status, reservation.student_status
            ),
        )

    @BaseService.measure_operation("cancel_reservation")
    def cancel_reservation(self, reservation_id: int, user_id: int) -> CancellationResult:
        """
        Cancel a reservation on behalf of either party.

        Raises:
            ReservationNotFoundException: Unknown or deleted reservation
            ReservationAccessDeniedException: ``user_id`` is not a party
            ReservationStatusInvalidException: Already completed or cancelled
            CancellationWindowException: Less than the cancellation window remains
        """
        self.log_operation("cancel_reservation", reservation_id=reservation_id, user_id=user_id)

        with self.transaction():
            reservation = self._get_reservation(reservation_id, for_update=True)
            role = self._resolve_participant_role(reservation, user_id)

            if COMPLETED in (reservation.teacher_status, reservation.student_status):
                raise ReservationStatusInvalidException(
                    "Completed reservations cannot be cancelled",
                    current=self._status_snapshot(reservation),
                )
            if reservation.teacher_status == CANCELLED:
                raise ReservationStatusInvalidException(
                    "Reservation is already cancelled",
                    current=self._status_snapshot(reservation),
                )

            remaining_hours = hours_until(reservation.reserve_time, _now_utc())
            if remaining_hours < settings.cancellation_window_hours:
                raise CancellationWindowException(
                    settings.cancellation_window_hours, remaining_hours
                )

            lesson_was_deducted = reservation.teacher_status == RESERVED
            reservation.teacher_status = CANCELLED
            reservation.student_status = CANCELLED
            reservation.response_deadline = None
            self.repository.flush()

            refunded = 0
            if lesson_was_deducted:
                refunded = self._refund_lesson(reservation)

        prometheus_metrics.inc_reservation_transition(f"cancelled_by_{role.value}")
        self.logger.info(
            f"Reservation {reservation.id} cancelled by {role.value} {user_id}, "
            f"refunded {refunded} lesson(s)"
        )
        return CancellationResult(
            reservation=reservation, refunded_lessons=refunded, cancelled_by=role
        )

    def _refund_lesson(self, reservation: Reservation) -> int:
        purchase = self.ledger_repository.get_for_student_course(
            reservation.student_id, reservation.course_id, for_update=True
        )
        if purchase is None:
            self._flag_ledger_reconciliation("refund", reservation)
            return 0
        if purchase.quantity_used <= 0:
            return 0
        self.ledger_repository.adjust_used(purchase, -1)
        return 1

    def _flag_ledger_reconciliation(self, operation: str, reservation: Reservation) -> None:
        self.logger.warning(
            f"Purchase ledger row missing for student {reservation.student_id}, "
            f"course {reservation.course_id}; {operation} for reservation "
            f"{reservation.id} needs reconciliation"
        )
        prometheus_metrics.inc_ledger_reconciliation(operation)

    # Reads

    @BaseService.measure_operation("get_reservation")
    def get_reservation(self, reservation_id: int, user_id: int) -> Reservation:
        reservation = self._get_reservation(reservation_id)
        self._resolve_participant_role(reservation, user_id)
        return reservation

    @BaseService.measure_operation("list_reservations")
    def list_reservations(
        self,
        user_id: int,
        role: ParticipantRole,
        query: Optional[Union[ReservationListQuery, Mapping[str, Any]]] = None,
    ) -> ReservationListResponse:
        """
        Page of the caller's reservations, newest first.

        ``status`` filters the caller's own side; ``time_range`` takes
        precedence over ``date_from``/``date_to``.
        """
        role = ParticipantRole(role)
        query = self._parse_list_query(query)

        if role == ParticipantRole.TEACHER:
            participant_id = self.teacher_service.get_teacher_for_user(user_id).id
        else:
            participant_id = user_id

        start, end = self._resolve_list_range(query, _now_utc())
        per_page = min(query.per_page or settings.default_page_size, settings.max_page_size)

        items, total = self.repository.list_for_participant(
            role,
            participant_id,
            course_id=query.course_id,
            status=query.status,
            overall_status=query.overall_status,
            start=start,
            end=end,
            page=query.page,
            per_page=per_page,
        )
        return ReservationListResponse(
            reservations=[
                ReservationListItem.from_reservation(item, settings.lesson_duration_minutes)
                for item in items
            ],
            pagination=Pagination(
                current_page=query.page,
                per_page=per_page,
                total=total,
                total_pages=math.ceil(total / per_page) if total else 0,
            ),
        )

    def _parse_list_query(
        self, query: Optional[Union[ReservationListQuery, Mapping[str, Any]]]
    ) -> ReservationListQuery:
        if query is None:
            return ReservationListQuery()
        if isinstance(query, ReservationListQuery):
            return query
        try:
            return ReservationListQuery.model_validate(dict(query))
        except ValidationError as exc:
            raise validation_exception_from_pydantic(exc) from exc

    @staticmethod
    def _resolve_list_range(
        query: ReservationListQuery, now: datetime
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        today = now.date()
        if query.time_range == TimeRange.TODAY:
            return start_of_day(today), end_of_day(today)
        if query.time_range == TimeRange.WEEK:
            monday = today - timedelta(days=today.weekday())
            return start_of_day(monday), end_of_day(monday + timedelta(days=6))
        if query.time_range == TimeRange.MONTH:
            first = today.replace(day=1)
            next_month = (first + timedelta(days=32)).replace(day=1)
            return start_of_day(first), end_of_day(next_month - timedelta(days=1))
        if query.time_range == TimeRange.ALL:
            return None, None

        start = start_of_day(query.date_from) if query.date_from else None
        end = end_of_day(query.date_to) if query.date_to else None
        return start, end

    # Sweeps and external events

    @BaseService.measure_operation("expire_pending_reservations")
    def expire_pending_reservations(self, now: Optional[datetime] = None) -> ExpirationResult:
        """Cancel both sides of every pending request whose response deadline has passed."""
        now = ensure_utc(now) if now else _now_utc()
        result = ExpirationResult()

        with self.transaction():
            for reservation in self.repository.get_expired_pending(now):
                reservation.teacher_status = CANCELLED
                reservation.student_status = CANCELLED
                reservation.response_deadline = None
                result.reservation_ids.append(reservation.id)
            self.repository.flush()

        result.count = len(result.reservation_ids)
        if result.count:
            prometheus_metrics.inc_reservation_transition("expired", result.count)
            self.logger.info(f"Expired {result.count} unanswered reservation request(s)")
        return result

    @BaseService.measure_operation("mark_student_overdue")
    def mark_student_overdue(self, reservation_id: int) -> Reservation:
        """
        Record that a session passed without the student marking it complete.

        Called by the external overdue process.
        """
        with self.transaction():
            reservation = self._get_reservation(reservation_id)
            if is_cancelled(reservation.teacher_status, reservation.student_status):
                raise ReservationStatusInvalidException(
                    "Cancelled reservations cannot become overdue",
                    current=self._status_snapshot(reservation),
                )
            if reservation.student_status != RESERVED:
                raise ReservationStatusInvalidException(
                    "Only reserved sessions can become overdue",
                    current=self._status_snapshot(reservation),
                )
            if ensure_utc(reservation.reserve_time) > _now_utc():
                raise ReservationStatusInvalidException(
                    "The session has not started yet",
                    current=self._status_snapshot(reservation),
                )
            reservation.student_status = OVERDUE
            self.repository.flush()

        prometheus_metrics.inc_reservation_transition("student_overdue")
        return reservation

    @BaseService.measure_operation("apply_review_submitted")
    def apply_review_submitted(self, reservation_uuid: str, student_id: int) -> Reservation:
        """
        Side effect of a review submission: an overdue student side becomes completed.

        Raises:
            ReservationNotFoundException: No such reservation for this student
            ReservationStatusInvalidException: The lesson is not completed or overdue
        """
        with self.transaction():
            reservation = self.repository.get_active_by_uuid(reservation_uuid)
            if reservation is None or reservation.student_id != student_id:
                raise ReservationNotFoundException(reservation_uuid)
            if reservation.student_status not in (COMPLETED, OVERDUE):
                raise ReservationStatusInvalidException(
                    "Only completed lessons can be reviewed",
                    current=self._status_snapshot(reservation),
                )
            if reservation.student_status == OVERDUE:
                reservation.student_status = COMPLETED
                self.repository.flush()
                prometheus_metrics.inc_reservation_transition("overdue_reviewed")
        return reservation

    # Helpers

    def _get_reservation(self, reservation_id: int, for_update: bool = False) -> Reservation:
        reservation = self.repository.get_active_by_id(reservation_id, for_update=for_update)
        if reservation is None:
            raise ReservationNotFoundException(reservation_id)
        return reservation

    def _get_for_teacher_user(self, reservation_id: int, user_id: int) -> Reservation:
        teacher = self.teacher_service.get_teacher_for_user(user_id)
        reservation = self._get_reservation(reservation_id, for_update=True)
        if reservation.teacher_id != teacher.id:
            raise ReservationAccessDeniedException()
        return reservation

    def _resolve_participant_role(self, reservation: Reservation, user_id: int) -> ParticipantRole:
        if reservation.student_id == user_id:
            return ParticipantRole.STUDENT
        teacher = self.teacher_service.repository.get_by_user_id(user_id)
        if teacher is not None and teacher.id == reservation.teacher_id:
            return ParticipantRole.TEACHER
        raise ReservationAccessDeniedException()

    @staticmethod
    def _require_teacher_pending(reservation: Reservation, message: str) -> None:
        if reservation.teacher_status != PENDING:
            raise ReservationStatusInvalidException(
                message, current=ReservationService._status_snapshot(reservation)
            )

    @staticmethod
    def _status_snapshot(reservation: Reservation) -> dict:
        return {
            "teacher_status": reservation.teacher_status,
            "student_status": reservation.student_status,
        }

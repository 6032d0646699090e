"""
Tests for ReservationService: creation, teacher response, completion,
cancellation, and the external overdue/review events.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from tutoring.core.enums import ParticipantRole, ReservationStatus
from tutoring.core.exceptions import (
    CancellationWindowException,
    CourseNotPurchasedException,
    InsufficientLessonsException,
    ReservationAccessDeniedException,
    ReservationConflictException,
    ReservationExpiredException,
    ReservationNotFoundException,
    ReservationStatusInvalidException,
    RepositoryException,
    TeacherNotFoundException,
    TeacherUnavailableException,
    ValidationException,
)
from tutoring.models.purchase import CoursePurchase
from tutoring.models.reservation import Reservation
from tutoring.models.teacher import Teacher
from tutoring.monitoring.prometheus_metrics import REGISTRY
from tutoring.schemas.reservation import (
    ReservationCreate,
    ReservationCreateResponse,
    ReservationResponse,
)
from tutoring.services.reservation_service import ReservationService

from tests.factories.reservation_builders import (
    COURSE_ID,
    NOW,
    OTHER_STUDENT_ID,
    OTHER_TEACHER_USER_ID,
    STUDENT_ID,
    TEACHER_USER_ID,
    make_reservation,
)

PENDING = ReservationStatus.PENDING.value
RESERVED = ReservationStatus.RESERVED.value
COMPLETED = ReservationStatus.COMPLETED.value
CANCELLED = ReservationStatus.CANCELLED.value
OVERDUE = ReservationStatus.OVERDUE.value

MONDAY_0930 = datetime(2025, 1, 20, 9, 30, tzinfo=timezone.utc)


def _request(teacher: Teacher, reserve_date: str = "2025-01-20", reserve_time: str = "09:30", **extra):
    return {
        "course_id": COURSE_ID,
        "teacher_id": teacher.id,
        "reserve_date": reserve_date,
        "reserve_time": reserve_time,
        **extra,
    }


def _used(db: Session, purchase: CoursePurchase) -> int:
    db.refresh(purchase)
    return purchase.quantity_used


@pytest.fixture
def service(db: Session, frozen_now) -> ReservationService:
    return ReservationService(db)


class TestCreateReservation:
    def test_creates_pending_request(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        created = service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

        reservation = created.reservation
        assert reservation.id is not None
        assert reservation.teacher_status == PENDING
        assert reservation.student_status == RESERVED
        assert reservation.reserve_time == MONDAY_0930
        assert reservation.response_deadline == NOW + timedelta(hours=24)
        assert created.remaining_lessons.model_dump() == {"total": 5, "used": 1, "remaining": 4}
        # Nothing is deducted until the teacher confirms
        assert _used(db, purchase) == 0

    def test_response_uses_schema(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        created = service.create_reservation(STUDENT_ID, _request(teacher_with_slots))
        response = ReservationCreateResponse(
            reservation=ReservationResponse.model_validate(created.reservation),
            remaining_lessons=created.remaining_lessons,
        )

        assert response.reservation.teacher_status == ReservationStatus.PENDING
        assert response.reservation.student_id == STUDENT_ID
        assert response.remaining_lessons.remaining == 4

    def test_accepts_request_model(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        request = ReservationCreate.model_validate(_request(teacher_with_slots))
        created = service.create_reservation(STUDENT_ID, request)
        assert created.reservation.reserve_time == MONDAY_0930

    def test_near_term_request_gets_short_deadline(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        # Tuesday 2025-01-14 is "tomorrow" relative to NOW
        created = service.create_reservation(
            STUDENT_ID, _request(teacher_with_slots, reserve_date="2025-01-14", reserve_time="10:00")
        )
        assert created.reservation.response_deadline == NOW + timedelta(hours=12)

    def test_past_time_rejected(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        with pytest.raises(ValidationException) as exc_info:
            service.create_reservation(
                STUDENT_ID, _request(teacher_with_slots, reserve_date="2025-01-13", reserve_time="07:00")
            )
        assert "reserve_time" in exc_info.value.errors

    def test_malformed_input(self, service: ReservationService, teacher_with_slots: Teacher, purchase):
        with pytest.raises(ValidationException) as exc_info:
            service.create_reservation(
                STUDENT_ID, _request(teacher_with_slots, reserve_date="20-01-2025", reserve_time="9.30")
            )

        assert set(exc_info.value.errors) == {"reserve_date", "reserve_time"}

    def test_unknown_field_rejected(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        with pytest.raises(ValidationException) as exc_info:
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots, price=10))
        assert "price" in exc_info.value.errors

    def test_unknown_teacher(self, service: ReservationService, purchase):
        with pytest.raises(TeacherNotFoundException):
            service.create_reservation(
                STUDENT_ID,
                {"course_id": COURSE_ID, "teacher_id": 999, "reserve_date": "2025-01-20", "reserve_time": "09:30"},
            )

    def test_course_not_purchased(self, service: ReservationService, teacher_with_slots: Teacher):
        with pytest.raises(CourseNotPurchasedException):
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

    def test_no_remaining_lessons(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        purchase.quantity_used = purchase.quantity_total
        db.commit()

        with pytest.raises(InsufficientLessonsException) as exc_info:
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))
        assert exc_info.value.details == {"course_id": COURSE_ID, "total": 5, "used": 5}

    def test_outside_availability(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        with pytest.raises(TeacherUnavailableException):
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots, reserve_time="10:30"))

    def test_confirmed_slot_conflicts(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        make_reservation(db, teacher_with_slots, MONDAY_0930, student_id=OTHER_STUDENT_ID)

        with pytest.raises(ReservationConflictException):
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

    def test_pending_slot_conflicts_through_unique_index(
        self,
        db: Session,
        service: ReservationService,
        teacher_with_slots: Teacher,
        purchase,
        other_purchase,
    ):
        service.create_reservation(OTHER_STUDENT_ID, _request(teacher_with_slots))

        with pytest.raises(ReservationConflictException) as exc_info:
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

        assert exc_info.value.details["teacher_id"] == teacher_with_slots.id
        assert db.query(Reservation).count() == 1

    def test_cancelled_slot_can_be_rebooked(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        make_reservation(
            db,
            teacher_with_slots,
            MONDAY_0930,
            student_id=OTHER_STUDENT_ID,
            teacher_status=ReservationStatus.CANCELLED,
            student_status=ReservationStatus.CANCELLED,
        )

        created = service.create_reservation(STUDENT_ID, _request(teacher_with_slots))
        assert created.reservation.teacher_status == PENDING


class TestCreateRetry:
    def test_retries_transient_failures(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase, monkeypatch
    ):
        deadlock = OperationalError("INSERT", {}, Exception("deadlock detected"))
        monkeypatch.setattr(
            service.conflict_checker,
            "validate_reservation_slot",
            Mock(side_effect=[deadlock, deadlock, None]),
        )
        sleep = Mock()
        monkeypatch.setattr("tutoring.services.reservation_service.time.sleep", sleep)

        created = service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

        assert created.reservation.id is not None
        assert sleep.call_count == 2

    def test_gives_up_with_conflict(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase, monkeypatch
    ):
        serialization = OperationalError("INSERT", {}, Exception("could not serialize access"))
        check = Mock(side_effect=serialization)
        monkeypatch.setattr(service.conflict_checker, "validate_reservation_slot", check)
        monkeypatch.setattr("tutoring.services.reservation_service.time.sleep", Mock())

        with pytest.raises(ReservationConflictException):
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))
        assert check.call_count == 3

    def test_other_operational_errors_propagate(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase, monkeypatch
    ):
        failure = OperationalError("INSERT", {}, Exception("disk I/O error"))
        check = Mock(side_effect=failure)
        monkeypatch.setattr(service.conflict_checker, "validate_reservation_slot", check)

        with pytest.raises(OperationalError):
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))
        assert check.call_count == 1

    def test_deadlock_on_insert_flush_is_retried(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase, monkeypatch
    ):
        real_flush = db.flush
        calls = {"count": 0}

        def flaky_flush(*args, **kwargs):
            calls["count"] += 1
            if calls["count"] == 1:
                raise OperationalError("INSERT", {}, Exception("deadlock detected"))
            return real_flush(*args, **kwargs)

        monkeypatch.setattr(db, "flush", flaky_flush)
        sleep = Mock()
        monkeypatch.setattr("tutoring.services.reservation_service.time.sleep", sleep)

        created = service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

        assert created.reservation.id is not None
        assert sleep.call_count == 1
        assert db.query(Reservation).count() == 1

    def test_deadlock_in_conflict_query_is_retried(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase, monkeypatch
    ):
        repository = service.conflict_checker.repository
        real_find = repository.find_reserved_at
        deadlock = OperationalError("SELECT", {}, Exception("deadlock detected"))
        query_calls = {"count": 0}

        def flaky_find(*args, **kwargs):
            query_calls["count"] += 1
            if query_calls["count"] == 1:
                try:
                    raise deadlock
                except OperationalError as e:
                    raise RepositoryException("Failed to check reservation conflicts") from e
            return real_find(*args, **kwargs)

        monkeypatch.setattr(repository, "find_reserved_at", flaky_find)
        monkeypatch.setattr("tutoring.services.reservation_service.time.sleep", Mock())

        created = service.create_reservation(STUDENT_ID, _request(teacher_with_slots))

        assert created.reservation.id is not None
        assert query_calls["count"] == 2

    def test_wrapped_non_transient_error_propagates(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase, monkeypatch
    ):
        monkeypatch.setattr(
            db, "flush", Mock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))
        )

        with pytest.raises(OperationalError):
            service.create_reservation(STUDENT_ID, _request(teacher_with_slots))


class TestTeacherResponse:
    def test_confirm_deducts_one_lesson(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation

        confirmed = service.confirm_reservation(reservation.id, TEACHER_USER_ID)

        assert confirmed.teacher_status == RESERVED
        assert confirmed.student_status == RESERVED
        assert confirmed.response_deadline is None
        assert _used(db, purchase) == 1

    def test_reject_keeps_ledger_and_cancels_both_sides(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation

        rejected = service.reject_reservation(reservation.id, TEACHER_USER_ID, reason="Travelling")

        assert rejected.teacher_status == CANCELLED
        assert rejected.student_status == CANCELLED
        assert rejected.rejection_reason == "Travelling"
        assert rejected.response_deadline is None
        assert _used(db, purchase) == 0

    def test_confirm_after_deadline_fails(
        self, db: Session, service: ReservationService, teacher_with_slots: Teacher, purchase, frozen_now
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation
        frozen_now(NOW + timedelta(hours=24, seconds=1))

        with pytest.raises(ReservationExpiredException) as exc_info:
            service.confirm_reservation(reservation.id, TEACHER_USER_ID)

        assert exc_info.value.code == "RESERVATION_EXPIRED"
        db.refresh(reservation)
        assert reservation.teacher_status == PENDING
        assert _used(db, purchase) == 0

    def test_confirm_exactly_at_deadline_succeeds(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase, frozen_now
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation
        frozen_now(NOW + timedelta(hours=24))

        assert service.confirm_reservation(reservation.id, TEACHER_USER_ID).teacher_status == RESERVED

    def test_confirm_twice_fails(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation
        service.confirm_reservation(reservation.id, TEACHER_USER_ID)

        with pytest.raises(ReservationStatusInvalidException) as exc_info:
            service.confirm_reservation(reservation.id, TEACHER_USER_ID)
        assert exc_info.value.details["current"]["teacher_status"] == RESERVED

    def test_reject_confirmed_fails(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation
        service.confirm_reservation(reservation.id, TEACHER_USER_ID)

        with pytest.raises(ReservationStatusInvalidException):
            service.reject_reservation(reservation.id, TEACHER_USER_ID)

    def test_other_teacher_cannot_respond(
        self,
        service: ReservationService,
        teacher_with_slots: Teacher,
        other_teacher: Teacher,
        purchase,
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation

        with pytest.raises(ReservationAccessDeniedException):
            service.confirm_reservation(reservation.id, OTHER_TEACHER_USER_ID)
        with pytest.raises(ReservationAccessDeniedException):
            service.reject_reservation(reservation.id, OTHER_TEACHER_USER_ID)

    def test_student_is_not_a_teacher(
        self, service: ReservationService, teacher_with_slots: Teacher, purchase
    ):
        reservation = service.create_reservation(STUDENT_ID, _request(teacher_with_slots)).reservation

        with pytest.raises(TeacherNotFoundException):
            service.confirm_reservation(reservation.id, STUDENT_ID)

    def test_confirm_without_remaining_lessons(
        self, db: Session, service: ReservationService, teacher: Teacher, purchase
    ):
        purchase.quantity_used = purchase.quantity_total
        db.commit()
        reservation = make_reservation(
            db,
            teacher,
            MONDAY_0930,
            teacher_status=ReservationStatus.PENDING,
            response_deadline=NOW + timedelta(hours=24),
        )

        with pytest.raises(InsufficientLessonsException):
            service.confirm_reservation(reservation.id, TEACHER_USER_ID)

    def test_confirm_without_ledger_row_is_flagged(
        self, db: Session, service: ReservationService, teacher: Teacher
    ):
        reservation = make_reservation(
            db,
            teacher,
            MONDAY_0930,
            teacher_status=ReservationStatus.PENDING,
            response_deadline=NOW + timedelta(hours=24),
        )
        labels = {"operation": "confirm"}
        before = REGISTRY.get_sample_value("tutoring_lesson_ledger_reconciliation_total", labels) or 0.0

        confirmed = service.confirm_reservation(reservation.id, TEACHER_USER_ID)

        assert confirmed.teacher_status == RESERVED
        assert (
            REGISTRY.get_sample_value("tutoring_lesson_ledger_reconciliation_total", labels)
            == before + 1
        )

    def test_unknown_reservation(self, service: ReservationService, teacher: Teacher):
        with pytest.raises(ReservationNotFoundException):
            service.confirm_reservation(12345, TEACHER_USER_ID)


class TestCompletion:
    def test_each_side_completes_independently(
        self, service: ReservationService, reservation_factory
    ):
        reservation = reservation_factory()

        teacher_done = service.mark_complete(reservation.id, TEACHER_USER_ID, ParticipantRole.TEACHER)
        assert teacher_done.reservation.teacher_status == COMPLETED
        assert teacher_done.reservation.student_status == RESERVED
        assert teacher_done.is_fully_completed is False

        both_done = service.mark_complete(reservation.id, STUDENT_ID, "student")
        assert both_done.reservation.student_status == COMPLETED
        assert both_done.is_fully_completed is True

    def test_cancelled_cannot_complete(self, service: ReservationService, reservation_factory):
        reservation = reservation_factory(
            teacher_status=ReservationStatus.CANCELLED, student_status=ReservationStatus.CANCELLED
        )

        with pytest.raises(ReservationStatusInvalidException):
            service.mark_complete(reservation.id, STUDENT_ID, ParticipantRole.STUDENT)

    def test_only_parties_can_complete(
        self, service: ReservationService, reservation_factory, other_teacher: Teacher
    ):
        reservation = reservation_factory()

        with pytest.raises(ReservationAccessDeniedException):
            service.mark_complete(reservation.id, OTHER_STUDENT_ID, ParticipantRole.STUDENT)
        with pytest.raises(ReservationAccessDeniedException):
            service.mark_complete(reservation.id, OTHER_TEACHER_USER_ID, ParticipantRole.TEACHER)


class TestCancellation:
    def test_inside_window_rejected(
        self, db: Session, service: ReservationService, reservation_factory, purchase
    ):
        purchase.quantity_used = 1
        db.commit()
        reservation = reservation_factory(NOW + timedelta(hours=10))

        with pytest.raises(CancellationWindowException) as exc_info:
            service.cancel_reservation(reservation.id, STUDENT_ID)

        assert exc_info.value.details == {"required_hours": 24, "hours_until_start": 10.0}
        db.refresh(reservation)
        assert reservation.teacher_status == RESERVED
        assert _used(db, purchase) == 1

    def test_confirmed_cancel_refunds_lesson(
        self, db: Session, service: ReservationService, reservation_factory, purchase
    ):
        purchase.quantity_used = 1
        db.commit()
        reservation = reservation_factory(NOW + timedelta(hours=48))

        result = service.cancel_reservation(reservation.id, STUDENT_ID)

        assert result.refunded_lessons == 1
        assert result.cancelled_by == ParticipantRole.STUDENT
        assert result.reservation.teacher_status == CANCELLED
        assert result.reservation.student_status == CANCELLED
        assert _used(db, purchase) == 0

    def test_exactly_at_window_is_allowed(
        self, db: Session, service: ReservationService, reservation_factory, purchase
    ):
        purchase.quantity_used = 1
        db.commit()
        reservation = reservation_factory(NOW + timedelta(hours=24))

        assert service.cancel_reservation(reservation.id, STUDENT_ID).refunded_lessons == 1

    def test_teacher_can_cancel(self, service: ReservationService, reservation_factory, purchase):
        reservation = reservation_factory(NOW + timedelta(days=3))

        result = service.cancel_reservation(reservation.id, TEACHER_USER_ID)

        assert result.cancelled_by == ParticipantRole.TEACHER

    def test_pending_cancel_refunds_nothing(
        self, db: Session, service: ReservationService, reservation_factory, purchase
    ):
        purchase.quantity_used = 2
        db.commit()
        reservation = reservation_factory(
            NOW + timedelta(days=3), teacher_status=ReservationStatus.PENDING
        )

        result = service.cancel_reservation(reservation.id, STUDENT_ID)

        assert result.refunded_lessons == 0
        assert _used(db, purchase) == 2

    def test_refund_never_goes_negative(
        self, db: Session, service: ReservationService, reservation_factory, purchase
    ):
        reservation = reservation_factory(NOW + timedelta(days=3))

        result = service.cancel_reservation(reservation.id, STUDENT_ID)

        assert result.refunded_lessons == 0
        assert _used(db, purchase) == 0

    def test_completed_cannot_be_cancelled(self, service: ReservationService, reservation_factory):
        reservation = reservation_factory(
            NOW + timedelta(days=3), teacher_status=ReservationStatus.COMPLETED
        )

        with pytest.raises(ReservationStatusInvalidException):
            service.cancel_reservation(reservation.id, STUDENT_ID)

    def test_cancel_twice_fails(self, service: ReservationService, reservation_factory, purchase):
        reservation = reservation_factory(NOW + timedelta(days=3))
        service.cancel_reservation(reservation.id, STUDENT_ID)

        with pytest.raises(ReservationStatusInvalidException):
            service.cancel_reservation(reservation.id, STUDENT_ID)

    def test_outsider_cannot_cancel(
        self, service: ReservationService, reservation_factory, other_teacher: Teacher
    ):
        reservation = reservation_factory(NOW + timedelta(days=3))

        with pytest.raises(ReservationAccessDeniedException):
            service.cancel_reservation(reservation.id, OTHER_STUDENT_ID)
        with pytest.raises(ReservationAccessDeniedException):
            service.cancel_reservation(reservation.id, OTHER_TEACHER_USER_ID)


class TestReads:
    def test_parties_can_read(self, service: ReservationService, reservation_factory):
        reservation = reservation_factory()

        assert service.get_reservation(reservation.id, STUDENT_ID).id == reservation.id
        assert service.get_reservation(reservation.id, TEACHER_USER_ID).id == reservation.id
        with pytest.raises(ReservationAccessDeniedException):
            service.get_reservation(reservation.id, OTHER_STUDENT_ID)

    def test_soft_deleted_is_invisible(
        self, db: Session, service: ReservationService, reservation_factory
    ):
        reservation = reservation_factory()
        reservation.deleted_at = NOW
        db.commit()

        with pytest.raises(ReservationNotFoundException):
            service.get_reservation(reservation.id, STUDENT_ID)


class TestExpiration:
    def test_expires_only_overdue_pending_requests(
        self, db: Session, service: ReservationService, reservation_factory
    ):
        expired = reservation_factory(
            NOW + timedelta(days=2),
            teacher_status=ReservationStatus.PENDING,
            response_deadline=NOW - timedelta(minutes=1),
        )
        still_open = reservation_factory(
            NOW + timedelta(days=3),
            teacher_status=ReservationStatus.PENDING,
            response_deadline=NOW + timedelta(hours=1),
        )
        confirmed = reservation_factory(NOW + timedelta(days=4))

        result = service.expire_pending_reservations()

        assert result.count == 1
        assert result.reservation_ids == [expired.id]
        for reservation in (expired, still_open, confirmed):
            db.refresh(reservation)
        assert (expired.teacher_status, expired.student_status) == (CANCELLED, CANCELLED)
        assert expired.response_deadline is None
        assert still_open.teacher_status == PENDING
        assert confirmed.teacher_status == RESERVED

    def test_explicit_now(self, service: ReservationService, reservation_factory):
        reservation_factory(
            NOW + timedelta(days=3),
            teacher_status=ReservationStatus.PENDING,
            response_deadline=NOW + timedelta(hours=1),
        )

        assert service.expire_pending_reservations(now=NOW + timedelta(hours=2)).count == 1

    def test_nothing_to_expire(self, service: ReservationService, teacher: Teacher):
        assert service.expire_pending_reservations().count == 0


class TestOverdueAndReview:
    def test_overdue_then_review_completes_student_side(
        self, service: ReservationService, reservation_factory
    ):
        reservation = reservation_factory(NOW - timedelta(hours=2))

        overdue = service.mark_student_overdue(reservation.id)
        assert overdue.student_status == OVERDUE
        assert overdue.teacher_status == RESERVED

        reviewed = service.apply_review_submitted(reservation.uuid, STUDENT_ID)
        assert reviewed.student_status == COMPLETED

    def test_future_session_cannot_be_overdue(self, service: ReservationService, reservation_factory):
        reservation = reservation_factory(NOW + timedelta(hours=2))

        with pytest.raises(ReservationStatusInvalidException):
            service.mark_student_overdue(reservation.id)

    def test_cancelled_session_cannot_be_overdue(
        self, service: ReservationService, reservation_factory
    ):
        reservation = reservation_factory(
            NOW - timedelta(hours=2),
            teacher_status=ReservationStatus.CANCELLED,
            student_status=ReservationStatus.CANCELLED,
        )

        with pytest.raises(ReservationStatusInvalidException):
            service.mark_student_overdue(reservation.id)

    def test_review_of_completed_lesson_is_a_no_op(
        self, service: ReservationService, reservation_factory
    ):
        reservation = reservation_factory(
            NOW - timedelta(hours=2), student_status=ReservationStatus.COMPLETED
        )

        assert service.apply_review_submitted(reservation.uuid, STUDENT_ID).student_status == COMPLETED

    def test_review_requires_finished_lesson(self, service: ReservationService, reservation_factory):
        reservation = reservation_factory()

        with pytest.raises(ReservationStatusInvalidException):
            service.apply_review_submitted(reservation.uuid, STUDENT_ID)

    def test_review_by_other_student(self, service: ReservationService, reservation_factory):
        reservation = reservation_factory(
            NOW - timedelta(hours=2), student_status=ReservationStatus.OVERDUE
        )

        with pytest.raises(ReservationNotFoundException):
            service.apply_review_submitted(reservation.uuid, OTHER_STUDENT_ID)

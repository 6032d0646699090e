# backend/tutoring/models/reservation.py
"""
Reservation model.

A reservation is one concrete session between a teacher and a student for
a course, at an absolute UTC instant. Teacher and student lifecycles are
tracked in two independent status columns; combined statuses are derived
(see ``tutoring.domain.reservation_rules``) and never stored.
"""

import logging
from typing import Any
import uuid as uuid_lib

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text, text

from ..core.enums import ReservationStatus
from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ReservationStatus)

ACTIVE_SLOT_PREDICATE = "teacher_status <> 'cancelled' AND deleted_at IS NULL"
ACTIVE_SLOT_INDEX_NAME = "uq_reservations_active_teacher_slot"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(
        String(36), nullable=False, unique=True, default=lambda: str(uuid_lib.uuid4())
    )

    course_id = Column(Integer, nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False)
    student_id = Column(Integer, nullable=False)

    reserve_time = Column(UTCDateTime, nullable=False)

    teacher_status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    student_status = Column(String(20), nullable=False, default=ReservationStatus.RESERVED.value)

    response_deadline = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utc_now)
    deleted_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        # No two live reservations for one teacher at the same instant.
        Index(
            ACTIVE_SLOT_INDEX_NAME,
            "teacher_id",
            "reserve_time",
            unique=True,
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
            sqlite_where=text(ACTIVE_SLOT_PREDICATE),
        ),
        Index("idx_reservations_student_time", "student_id", "reserve_time"),
        Index("idx_reservations_teacher_time", "teacher_id", "reserve_time"),
        Index(
            "idx_reservations_teacher_time_status",
            "teacher_id",
            "reserve_time",
            "teacher_status",
        ),
        Index(
            "idx_reservations_student_time_status",
            "student_id",
            "reserve_time",
            "student_status",
        ),
        CheckConstraint(f"teacher_status IN ({_STATUS_VALUES})", name="ck_reservations_teacher_status"),
        CheckConstraint(f"student_status IN ({_STATUS_VALUES})", name="ck_reservations_student_status"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.uuid:
            self.uuid = str(uuid_lib.uuid4())
        if not self.teacher_status:
            self.teacher_status = ReservationStatus.PENDING.value
        if not self.student_status:
            self.student_status = ReservationStatus.RESERVED.value

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: teacher={self.teacher_id}, student={self.student_id}, "
            f"time={self.reserve_time}, teacher_status={self.teacher_status}, "
            f"student_status={self.student_status}>"
        )

# backend/tutoring/models/availability.py
"""
Recurring weekly availability of a teacher.

A teacher's slots are replaced wholesale on every schedule update
(delete-all-then-insert), so rows are never patched in place. Overlapping
slots for the same teacher are allowed; they are redundant, not wrong.
"""

import logging

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, Time

from ..core.timezone_utils import WEEKDAY_NAMES, format_hhmm, utc_now
from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class AvailableSlot(Base):
    """
    One weekly opening: ``weekday`` (0=Sunday..6=Saturday) from
    ``start_time`` up to, but not including, ``end_time`` (UTC).
    """

    __tablename__ = "teacher_available_slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    teacher_id = Column(
        Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    weekday = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utc_now)

    __table_args__ = (
        Index("idx_available_slots_teacher_weekday", "teacher_id", "weekday"),
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_available_slots_weekday"),
        CheckConstraint("start_time < end_time", name="ck_available_slots_time_order"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "teacher_id": self.teacher_id,
            "weekday": self.weekday,
            "weekday_name": WEEKDAY_NAMES[self.weekday],
            "start_time": format_hhmm(self.start_time),
            "end_time": format_hhmm(self.end_time),
            "is_active": bool(self.is_active),
        }

    def __repr__(self) -> str:
        return (
            f"<AvailableSlot {self.id}: teacher={self.teacher_id} weekday={self.weekday} "
            f"{self.start_time}-{self.end_time}>"
        )

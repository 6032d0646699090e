"""
Course purchase ledger.

One row per (student, course) pair with the number of lesson units bought
and consumed. Owned by the payment subsystem; the scheduling core reads it
before creating a reservation and moves ``quantity_used`` by one unit when
a reservation is confirmed or refunded.
"""

from sqlalchemy import CheckConstraint, Column, Integer, UniqueConstraint

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class CoursePurchase(Base):
    __tablename__ = "user_course_purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    course_id = Column(Integer, nullable=False, index=True)
    quantity_total = Column(Integer, nullable=False, default=0)
    quantity_used = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_course_purchases_user_course"),
        CheckConstraint("quantity_total >= 0", name="ck_purchases_total_non_negative"),
        CheckConstraint("quantity_used >= 0", name="ck_purchases_used_non_negative"),
    )

    @property
    def remaining(self) -> int:
        return max(int(self.quantity_total) - int(self.quantity_used), 0)

    def __repr__(self) -> str:
        return (
            f"<CoursePurchase {self.id}: user={self.user_id}, course={self.course_id}, "
            f"used={self.quantity_used}/{self.quantity_total}>"
        )

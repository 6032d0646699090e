"""
Teacher registry record.

Teacher profiles are owned by the profile subsystem; the scheduling core
only needs the mapping between a teacher and the user account behind it.
"""

from sqlalchemy import Column, Integer, String

from ..core.timezone_utils import utc_now
from ..database import Base
from .types import UTCDateTime


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)

    def __repr__(self) -> str:
        return f"<Teacher {self.id}: user={self.user_id}>"

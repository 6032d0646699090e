"""Read access to the teacher registry."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.teacher import Teacher
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TeacherRepository(BaseRepository[Teacher]):
    def __init__(self, db: Session):
        super().__init__(db, Teacher)

    def get_by_user_id(self, user_id: int) -> Optional[Teacher]:
        """Resolve the teacher record behind an authenticated user."""
        try:
            return self.db.query(Teacher).filter(Teacher.user_id == user_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting teacher for user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to get teacher: {str(e)}") from e

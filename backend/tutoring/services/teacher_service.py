"""Teacher registry lookups shared by the scheduling services."""

from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import TeacherNotFoundException
from ..models.teacher import Teacher
from ..repositories.factory import RepositoryFactory
from ..repositories.teacher_repository import TeacherRepository
from .base import BaseService


class TeacherService(BaseService):
    def __init__(self, db: Session, repository: Optional[TeacherRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_teacher_repository(db)

    def get_teacher(self, teacher_id: int) -> Teacher:
        teacher = self.repository.get_by_id(teacher_id)
        if teacher is None:
            raise TeacherNotFoundException(teacher_id=teacher_id)
        return teacher

    def get_teacher_for_user(self, user_id: int) -> Teacher:
        """Teacher record of an authenticated user; NotFound when the user is not a teacher."""
        teacher = self.repository.get_by_user_id(user_id)
        if teacher is None:
            raise TeacherNotFoundException(user_id=user_id)
        return teacher

# backend/tutoring/repositories/availability_repository.py
"""
Availability Repository

Data access for a teacher's recurring weekly slots. A schedule update is
a delete-all-then-insert pair executed inside the caller's transaction.
"""

from datetime import time
import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailableSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailableSlot]):
    """Repository for teacher availability slots."""

    def __init__(self, db: Session):
        super().__init__(db, AvailableSlot)

    def get_slots_for_teacher(
        self, teacher_id: int, active_only: bool = True, slot_ids: Optional[List[int]] = None
    ) -> List[AvailableSlot]:
        """
        Slots of a teacher ordered by weekday, then start time.

        Args:
            teacher_id: The teacher ID
            active_only: Skip deactivated slots
            slot_ids: Restrict to these slot IDs

        Returns:
            List of slots
        """
        try:
            query = self.db.query(AvailableSlot).filter(AvailableSlot.teacher_id == teacher_id)
            if active_only:
                query = query.filter(AvailableSlot.is_active.is_(True))
            if slot_ids:
                query = query.filter(AvailableSlot.id.in_(slot_ids))
            return query.order_by(AvailableSlot.weekday, AvailableSlot.start_time).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slots for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to get availability slots: {str(e)}") from e

    def has_slot_covering(self, teacher_id: int, weekday: int, at: time) -> bool:
        """True when an active slot on ``weekday`` contains ``at`` in [start, end)."""
        try:
            return (
                self.db.query(AvailableSlot.id)
                .filter(
                    AvailableSlot.teacher_id == teacher_id,
                    AvailableSlot.weekday == weekday,
                    AvailableSlot.is_active.is_(True),
                    AvailableSlot.start_time <= at,
                    AvailableSlot.end_time > at,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking availability for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to check availability: {str(e)}") from e

    def delete_all_for_teacher(self, teacher_id: int) -> int:
        """Delete every slot of the teacher; returns the number of rows removed."""
        try:
            count = (
                self.db.query(AvailableSlot)
                .filter(AvailableSlot.teacher_id == teacher_id)
                .delete(synchronize_session="fetch")
            )
            self.db.flush()
            return int(count)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting slots for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to delete availability slots: {str(e)}") from e

    def bulk_create_slots(self, teacher_id: int, windows: Iterable) -> List[AvailableSlot]:
        """
        Insert slots from ``(weekday, start_time, end_time)`` windows.

        Returns:
            The created slots with IDs populated
        """
        try:
            slots = [
                AvailableSlot(
                    teacher_id=teacher_id,
                    weekday=window.weekday,
                    start_time=window.start_time,
                    end_time=window.end_time,
                    is_active=True,
                )
                for window in windows
            ]
            self.db.add_all(slots)
            self.db.flush()
            return slots
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating slots for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to create availability slots: {str(e)}") from e

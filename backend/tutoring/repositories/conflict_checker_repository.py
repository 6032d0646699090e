# backend/tutoring/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository

Queries used to decide whether a new reservation collides with existing
bookings, and to scan a date range for bookings that a schedule edit would
leave uncovered.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import ReservationStatus
from ..core.exceptions import RepositoryException
from ..models.reservation import Reservation
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Reservation]):
    """Repository for reservation conflict queries."""

    def __init__(self, db: Session):
        super().__init__(db, Reservation)

    def find_reserved_at(self, teacher_id: int, reserve_time: datetime) -> Optional[Reservation]:
        """
        Confirmed reservation of the teacher at exactly ``reserve_time``.

        Only teacher-confirmed bookings block a new request; pending ones are
        left to the unique index on insert.
        """
        try:
            return (
                self.db.query(Reservation)
                .filter(
                    Reservation.teacher_id == teacher_id,
                    Reservation.reserve_time == reserve_time,
                    Reservation.teacher_status == ReservationStatus.RESERVED.value,
                    Reservation.deleted_at.is_(None),
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking reservation at {reserve_time}: {str(e)}")
            raise RepositoryException(f"Failed to check reservation conflicts: {str(e)}") from e

    def get_reservations_in_range(
        self,
        teacher_id: int,
        start: datetime,
        end: datetime,
        teacher_statuses: Iterable[ReservationStatus] = (
            ReservationStatus.RESERVED,
            ReservationStatus.COMPLETED,
        ),
    ) -> List[Reservation]:
        """
        Reservations of a teacher with ``start <= reserve_time <= end``.

        Args:
            teacher_id: The teacher ID
            start: Range start (UTC)
            end: Range end (UTC, inclusive)
            teacher_statuses: Teacher-side statuses to include

        Returns:
            Reservations ordered by reserve_time
        """
        try:
            return (
                self.db.query(Reservation)
                .filter(
                    Reservation.teacher_id == teacher_id,
                    Reservation.reserve_time >= start,
                    Reservation.reserve_time <= end,
                    Reservation.teacher_status.in_([s.value for s in teacher_statuses]),
                    Reservation.deleted_at.is_(None),
                )
                .order_by(Reservation.reserve_time)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservations in range: {str(e)}")
            raise RepositoryException(f"Failed to get reservations in range: {str(e)}") from e

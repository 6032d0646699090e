# backend/tutoring/repositories/reservation_repository.py
"""
Reservation Repository

Data access for reservations:
- Lookups by id / uuid (soft-deleted rows are invisible)
- Filtered, paginated listings for one participant
- Date-range reads for calendar views
- Expired pending requests for the expiration sweep
"""

from datetime import datetime
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy import and_, not_, or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.enums import OverallStatus, ParticipantRole, ReservationStatus
from ..core.exceptions import RepositoryException
from ..models.reservation import Reservation
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_PENDING = ReservationStatus.PENDING.value
_COMPLETED = ReservationStatus.COMPLETED.value
_CANCELLED = ReservationStatus.CANCELLED.value


def _participant_column(role: ParticipantRole):
    return Reservation.teacher_id if role == ParticipantRole.TEACHER else Reservation.student_id


def _own_status_column(role: ParticipantRole):
    return (
        Reservation.teacher_status if role == ParticipantRole.TEACHER else Reservation.student_status
    )


def overall_status_clause(status: OverallStatus):
    """SQL equivalent of ``reservation_rules.overall_status``."""
    cancelled = or_(Reservation.teacher_status == _CANCELLED, Reservation.student_status == _CANCELLED)
    both_completed = and_(
        Reservation.teacher_status == _COMPLETED, Reservation.student_status == _COMPLETED
    )
    if status == OverallStatus.CANCELLED:
        return cancelled
    if status == OverallStatus.PENDING:
        return and_(not_(cancelled), Reservation.teacher_status == _PENDING)
    if status == OverallStatus.COMPLETED:
        return both_completed
    return and_(not_(cancelled), Reservation.teacher_status != _PENDING, not_(both_completed))


class ReservationRepository(BaseRepository[Reservation]):
    """Repository for reservation data access."""

    def __init__(self, db: Session):
        super().__init__(db, Reservation)

    def create(self, **kwargs: Any) -> Reservation:
        """Create a reservation, exposing integrity and lock errors to the retry loop."""
        try:
            return super().create(**kwargs)
        except RepositoryException as exc:
            if isinstance(exc.__cause__, (IntegrityError, OperationalError)):
                raise exc.__cause__
            raise

    def get_active_by_id(self, reservation_id: int, for_update: bool = False) -> Optional[Reservation]:
        try:
            query = self.db.query(Reservation).filter(
                Reservation.id == reservation_id,
                Reservation.deleted_at.is_(None),
            )
            if for_update and self.dialect_name == "postgresql":
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservation {reservation_id}: {str(e)}")
            raise RepositoryException(f"Failed to get reservation: {str(e)}") from e

    def get_active_by_uuid(self, reservation_uuid: str) -> Optional[Reservation]:
        try:
            return (
                self.db.query(Reservation)
                .filter(Reservation.uuid == reservation_uuid, Reservation.deleted_at.is_(None))
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservation {reservation_uuid}: {str(e)}")
            raise RepositoryException(f"Failed to get reservation: {str(e)}") from e

    def list_for_participant(
        self,
        role: ParticipantRole,
        participant_id: int,
        *,
        course_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
        overall_status: Optional[OverallStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Tuple[List[Reservation], int]:
        """
        Page of a participant's reservations, newest ``reserve_time`` first.

        Args:
            role: Which side ``participant_id`` refers to
            participant_id: Teacher ID or student user ID
            course_id: Only this course
            status: Status of the caller's own side
            overall_status: Derived combined status
            start: Earliest reserve_time (inclusive)
            end: Latest reserve_time (inclusive)
            page: 1-based page number
            per_page: Page size

        Returns:
            Tuple of (reservations on the page, total matching count)
        """
        try:
            query = self._participant_query(role, participant_id)
            if course_id is not None:
                query = query.filter(Reservation.course_id == course_id)
            if status is not None:
                query = query.filter(_own_status_column(role) == status.value)
            if overall_status is not None:
                query = query.filter(overall_status_clause(overall_status))
            if start is not None:
                query = query.filter(Reservation.reserve_time >= start)
            if end is not None:
                query = query.filter(Reservation.reserve_time <= end)

            total = query.count()
            items = (
                query.order_by(Reservation.reserve_time.desc(), Reservation.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
                .all()
            )
            return items, total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing reservations for {role.value} {participant_id}: {str(e)}")
            raise RepositoryException(f"Failed to list reservations: {str(e)}") from e

    def get_in_range_for_participant(
        self, role: ParticipantRole, participant_id: int, start: datetime, end: datetime
    ) -> List[Reservation]:
        """All non-deleted reservations of a participant in [start, end], oldest first."""
        try:
            return (
                self._participant_query(role, participant_id)
                .filter(Reservation.reserve_time >= start, Reservation.reserve_time <= end)
                .order_by(Reservation.reserve_time, Reservation.id)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting calendar reservations: {str(e)}")
            raise RepositoryException(f"Failed to get reservations in range: {str(e)}") from e

    def get_expired_pending(self, now: datetime) -> List[Reservation]:
        """Pending requests whose response deadline has passed."""
        try:
            query = self.db.query(Reservation).filter(
                Reservation.teacher_status == _PENDING,
                Reservation.response_deadline.isnot(None),
                Reservation.response_deadline < now,
                Reservation.deleted_at.is_(None),
            )
            if self.dialect_name == "postgresql":
                query = query.with_for_update(skip_locked=True)
            return query.order_by(Reservation.response_deadline).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting expired pending reservations: {str(e)}")
            raise RepositoryException(f"Failed to get expired reservations: {str(e)}") from e

    def _participant_query(self, role: ParticipantRole, participant_id: int) -> Query:
        return self.db.query(Reservation).filter(
            _participant_column(role) == participant_id,
            Reservation.deleted_at.is_(None),
        )

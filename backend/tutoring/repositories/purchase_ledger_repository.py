"""
Purchase Ledger Repository

Reads and adjusts lesson units on a student's course purchase. Writes are
made inside the reservation transaction they accompany; on PostgreSQL the
row is locked for the duration of that transaction.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.purchase import CoursePurchase
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PurchaseLedgerRepository(BaseRepository[CoursePurchase]):
    def __init__(self, db: Session):
        super().__init__(db, CoursePurchase)

    def get_for_student_course(
        self, student_id: int, course_id: int, for_update: bool = False
    ) -> Optional[CoursePurchase]:
        try:
            query = self.db.query(CoursePurchase).filter(
                CoursePurchase.user_id == student_id,
                CoursePurchase.course_id == course_id,
            )
            if for_update and self.dialect_name == "postgresql":
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error getting purchase for student {student_id}, course {course_id}: {str(e)}"
            )
            raise RepositoryException(f"Failed to get course purchase: {str(e)}") from e

    def adjust_used(self, purchase: CoursePurchase, delta: int) -> CoursePurchase:
        """
        Move ``quantity_used`` by ``delta``, never below zero.

        Does not commit.
        """
        try:
            purchase.quantity_used = max(int(purchase.quantity_used) + delta, 0)
            self.db.flush()
            return purchase
        except SQLAlchemyError as e:
            self.logger.error(f"Error adjusting purchase {purchase.id}: {str(e)}")
            raise RepositoryException(f"Failed to adjust lesson units: {str(e)}") from e

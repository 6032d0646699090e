# backend/tutoring/repositories/factory.py
"""
Repository Factory

Central place where services obtain repository instances, so tests can
swap implementations without touching service constructors.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .purchase_ledger_repository import PurchaseLedgerRepository
    from .reservation_repository import ReservationRepository
    from .teacher_repository import TeacherRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for weekly availability slots."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for conflict checking queries."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_reservation_repository(db: Session) -> "ReservationRepository":
        from .reservation_repository import ReservationRepository

        return ReservationRepository(db)

    @staticmethod
    def create_purchase_ledger_repository(db: Session) -> "PurchaseLedgerRepository":
        from .purchase_ledger_repository import PurchaseLedgerRepository

        return PurchaseLedgerRepository(db)

    @staticmethod
    def create_teacher_repository(db: Session) -> "TeacherRepository":
        from .teacher_repository import TeacherRepository

        return TeacherRepository(db)

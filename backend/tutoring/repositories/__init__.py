"""Data access layer for the scheduling core."""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .factory import RepositoryFactory
from .purchase_ledger_repository import PurchaseLedgerRepository
from .reservation_repository import ReservationRepository
from .teacher_repository import TeacherRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "ConflictCheckerRepository",
    "PurchaseLedgerRepository",
    "RepositoryFactory",
    "ReservationRepository",
    "TeacherRepository",
]

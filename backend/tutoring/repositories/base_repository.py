# backend/tutoring/repositories/base_repository.py
"""
Base Repository Pattern

Common data access for the scheduling repositories:
- Lookup, create and flush on one model
- Transaction support (boundaries owned by services)
- Uniform translation of driver errors into RepositoryException
"""

from contextlib import contextmanager
import logging
from typing import Any, Generic, Iterator, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository with common data access patterns.

    Methods flush but never commit; the caller decides the transaction
    boundary, either through ``transaction()`` or a service-level one.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit on exit; roll back and re-raise the original error otherwise."""
        try:
            yield self.db
            self.db.commit()
        except Exception as exc:
            if isinstance(exc, SQLAlchemyError):
                self.logger.error("Rolling back %s transaction: %s", self.model.__name__, exc)
            self.db.rollback()
            raise

    def _wrap(self, action: str, exc: SQLAlchemyError) -> RepositoryException:
        name = self.model.__name__
        self.logger.error("Could not %s %s: %s", action, name, exc)
        return RepositoryException(f"Could not {action} {name}: {exc}")

    def get_by_id(self, id: int) -> Optional[T]:
        try:
            return self.db.query(self.model).filter(self.model.id == id).first()
        except SQLAlchemyError as exc:
            raise self._wrap("load", exc) from exc

    def create(self, **kwargs: Any) -> T:
        """
        Add a new row and flush it so its primary key is assigned.

        The session is left uncommitted; a failed insert rolls it back.
        """
        entity = self.model(**kwargs)
        try:
            self.db.add(entity)
            self.db.flush()
        except SQLAlchemyError as exc:
            self.db.rollback()
            action = "insert (constraint violated)" if isinstance(exc, IntegrityError) else "insert"
            raise self._wrap(action, exc) from exc
        return entity

    def flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            raise self._wrap("flush", exc) from exc

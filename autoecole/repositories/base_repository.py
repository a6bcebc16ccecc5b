# autoecole/repositories/base_repository.py
"""
Shared data access for the scheduling aggregates.

Repositories never commit. Services own the transaction and decide when a
row lock is needed; BaseRepository only knows how to take one on dialects
that support it.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """Lookup, insert and locking helpers for one mapped model."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        """Dialect of the bound engine; unbound sessions are treated as SQLite."""
        try:
            return self.db.get_bind().dialect.name
        except SQLAlchemyError:
            return "sqlite"

    def _lockable(self, query: Query) -> Query:
        """Apply SELECT ... FOR UPDATE where the dialect supports it."""
        if self.dialect_name == "sqlite":
            return query
        return query.with_for_update()

    def get_by_id(self, id: str, for_update: bool = False) -> Optional[T]:
        """Retrieve an entity by its primary key, optionally row-locked."""
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if for_update:
                query = self._lockable(query).populate_existing()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        Integrity errors propagate so the owning service can map them.
        """
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def flush(self) -> None:
        """Flush pending ORM changes."""
        self.db.flush()


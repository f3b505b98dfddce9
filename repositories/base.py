"""
Base Repository class with common database operations.
"""

from typing import Generic, List, Optional, Type, TypeVar
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from models import Base

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=Base)

class BaseRepository(Generic[T]):
    """Lookups shared by the mirror repositories.

    Repositories never commit; the caller's ``session_scope`` owns the
    transaction.
    """

    def __init__(self, model: Type[T], session: Session):
        self.model = model
        self.session = session

    def _scalar(self, statement, description: str):
        try:
            return self.session.execute(statement).scalar()
        except SQLAlchemyError as e:
            logger.error(f"Error {description} {self.model.__name__}: {e}")
            raise

    def get(self, id: int) -> Optional[T]:
        return self.session.get(self.model, id)

    def get_by(self, **filters) -> Optional[T]:
        """First row matching all column filters."""
        return self._scalar(select(self.model).filter_by(**filters).limit(1), 'looking up')

    def get_all(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[T]:
        statement = select(self.model).order_by(self.model.id)
        if offset:
            statement = statement.offset(offset)
        if limit:
            statement = statement.limit(limit)
        try:
            return list(self.session.scalars(statement))
        except SQLAlchemyError as e:
            logger.error(f"Error listing {self.model.__name__}: {e}")
            raise

    def count(self) -> int:
        return self._scalar(select(func.count()).select_from(self.model), 'counting')

    def exists(self, **filters) -> bool:
        return bool(self._scalar(select(select(self.model).filter_by(**filters).exists()), 'checking'))

"""Repository base class for database operations.

Wraps the add/commit/refresh boilerplate shared by the meal store and the
identity service, and turns driver failures into `DatabaseError`.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import TypeVar, Generic, Type, Optional, Any
from core.exceptions import DatabaseError
from core.logger import get_logger
from database.models import Base

T = TypeVar('T', bound=Base)

logger = get_logger("core.repository")


class BaseRepository(Generic[T]):
    """Generic repository for a single ORM model.

    Attributes:
        model: SQLAlchemy model class to operate on.
        session: Database session for executing queries.
    """

    def __init__(self, model: Type[T], session: Session):
        self.model = model
        self.session = session

    def create(self, obj: T) -> T:
        """Add, commit and refresh a new object."""
        return save(self.session, obj)

    def get_by_id(self, id: Any) -> Optional[T]:
        return self.session.get(self.model, id)

    def delete_by_id(self, id: Any) -> bool:
        """Delete an object by primary key.

        Returns:
            True if the object was deleted, False if it did not exist.
        """
        obj = self.get_by_id(id)
        if obj is None:
            return False
        try:
            self.session.delete(obj)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Delete failed for %s %s", self.model.__name__, id)
            raise DatabaseError(f"Failed to delete {self.model.__name__}", operation="delete") from exc
        return True


def save(session: Session, obj: Base) -> Base:
    """Add, commit and refresh an object, rolling back on failure.

    Raises:
        DatabaseError: If the commit fails.
    """
    try:
        session.add(obj)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Save failed for %s", type(obj).__name__)
        raise DatabaseError(f"Failed to save {type(obj).__name__}", operation="save") from exc
    session.refresh(obj)
    return obj

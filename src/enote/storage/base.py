"""Shared plumbing for the SQLAlchemy repositories."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from enote.exceptions import ErrorCode, StorageError
from enote.models.db_models import get_session_factory, init_db

logger = logging.getLogger(__name__)


def apply_changes(db_obj: Any, values: Dict[str, Any]) -> List[str]:
    """Assign each value that differs from the stored attribute.

    Returns:
        Names of the attributes that were changed, in ``values`` order.
    """
    changed = []
    for name, value in values.items():
        if getattr(db_obj, name) != value:
            setattr(db_obj, name, value)
            changed.append(name)
    return changed


class BaseRepository:
    """Base class for repositories working on a pooled engine.

    Each public operation opens a session for its own duration. Leaving the
    session without an explicit commit rolls the transaction back.
    """

    def __init__(self, engine: Optional[Engine] = None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    @contextmanager
    def session_scope(
        self,
        operation: str,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
    ) -> Iterator[Session]:
        """Open a session and translate driver errors into StorageError.

        Args:
            operation: Short description used in logs and error details.
            code: Error code for a failure in this operation.
        """
        try:
            with self.session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Storage operation '{operation}' failed: {e}")
            raise StorageError(
                f"Failed to {operation}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e

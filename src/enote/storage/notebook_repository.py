"""Repository for notebook storage and retrieval."""
import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from enote.exceptions import ErrorCode, ValidationError
from enote.models.db_models import DBNotebook
from enote.models.schema import Notebook
from enote.storage.base import BaseRepository, apply_changes
from enote.utils import now

logger = logging.getLogger(__name__)


class NotebookRepository(BaseRepository):
    """Repository for notebooks.

    Notebooks form a tree through ``parent_id`` (0 = root). Writes reject a
    parent that does not exist, a notebook parented to itself and any change
    that would close a cycle.
    """

    def find_all(self) -> List[Notebook]:
        """Get all notebooks, highest sort_order first, then most recently updated."""
        with self.session_scope("list notebooks") as session:
            db_notebooks = session.scalars(
                select(DBNotebook).order_by(
                    DBNotebook.sort_order.desc(), DBNotebook.update_time.desc()
                )
            ).all()
            return [self._db_to_model(db) for db in db_notebooks]

    def find_by_id(self, id: int) -> Optional[Notebook]:
        with self.session_scope("read notebook") as session:
            db_notebook = session.get(DBNotebook, id)
            if not db_notebook:
                return None
            return self._db_to_model(db_notebook)

    def create(self, notebook: Notebook) -> Notebook:
        """Create a notebook.

        The id and both timestamps are assigned here; client values are
        ignored.

        Raises:
            ValidationError: If the parent notebook does not exist.
        """
        with self.session_scope("create notebook", ErrorCode.STORAGE_WRITE_FAILED) as session:
            if notebook.parent_id:
                self._check_parent_exists(session, notebook.parent_id)

            timestamp = now()
            db_notebook = DBNotebook(
                parent_id=notebook.parent_id,
                name=notebook.name,
                description=notebook.description,
                icon=notebook.icon,
                cls=notebook.cls,
                sort_order=notebook.sort_order,
                create_time=timestamp,
                update_time=timestamp,
            )
            session.add(db_notebook)
            session.commit()

            logger.info(f"Created notebook: {db_notebook.id}")
            return self._db_to_model(db_notebook)

    def update(self, notebook: Notebook) -> Optional[Notebook]:
        """Update a notebook, touching update_time only if a field changed.

        Returns:
            The stored notebook, or None if it does not exist.

        Raises:
            ValidationError: If the new parent is missing, is the notebook
                itself, or is one of its descendants.
        """
        with self.session_scope("update notebook", ErrorCode.STORAGE_WRITE_FAILED) as session:
            db_notebook = session.get(DBNotebook, notebook.id)
            if not db_notebook:
                return None

            if notebook.parent_id and notebook.parent_id != db_notebook.parent_id:
                self._check_parent(session, notebook.id, notebook.parent_id)

            changed = apply_changes(db_notebook, {
                "parent_id": notebook.parent_id,
                "name": notebook.name,
                "description": notebook.description,
                "icon": notebook.icon,
                "cls": notebook.cls,
                "sort_order": notebook.sort_order,
            })
            if changed:
                db_notebook.update_time = now()
                session.commit()
                logger.info(f"Updated notebook {notebook.id}: {', '.join(changed)}")

            return self._db_to_model(db_notebook)

    def delete_by_id(self, id: int) -> None:
        """Delete a notebook. Deleting a missing notebook is a no-op.

        Notes keep their notebook_id and resolve to an empty notebook name.
        """
        with self.session_scope("delete notebook", ErrorCode.STORAGE_DELETE_FAILED) as session:
            result = session.execute(delete(DBNotebook).where(DBNotebook.id == id))
            session.commit()
            if result.rowcount:
                logger.info(f"Deleted notebook: {id}")

    def _check_parent_exists(self, session: Session, parent_id: int) -> DBNotebook:
        parent = session.get(DBNotebook, parent_id)
        if not parent:
            raise ValidationError(
                f"Parent notebook {parent_id} not found",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.INVALID_NOTEBOOK_PARENT,
            )
        return parent

    def _check_parent(self, session: Session, notebook_id: int, parent_id: int) -> None:
        if parent_id == notebook_id:
            raise ValidationError(
                f"Notebook {notebook_id} cannot be its own parent",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.INVALID_NOTEBOOK_PARENT,
            )
        parent = self._check_parent_exists(session, parent_id)

        # Walk up from the new parent; reaching notebook_id means a cycle
        visited = {parent_id}
        current = parent
        while current and current.parent_id:
            if current.parent_id == notebook_id:
                raise ValidationError(
                    f"Moving notebook {notebook_id} under {parent_id} would create a cycle",
                    field="parent_id",
                    value=parent_id,
                    code=ErrorCode.INVALID_NOTEBOOK_PARENT,
                )
            if current.parent_id in visited:
                break
            visited.add(current.parent_id)
            current = session.get(DBNotebook, current.parent_id)

    @staticmethod
    def _db_to_model(db_notebook: DBNotebook) -> Notebook:
        return Notebook(
            id=db_notebook.id,
            parent_id=db_notebook.parent_id,
            name=db_notebook.name,
            description=db_notebook.description,
            icon=db_notebook.icon,
            cls=db_notebook.cls,
            sort_order=db_notebook.sort_order,
            create_time=db_notebook.create_time,
            update_time=db_notebook.update_time,
        )

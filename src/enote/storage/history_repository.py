"""Read path for the note edit history."""
import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from enote.models.db_models import DBNoteHistory
from enote.models.schema import (
    NoteHistory,
    NoteHistoryExtra,
    NoteHistorySearchPageParam,
    PageResult,
)
from enote.storage.base import BaseRepository

logger = logging.getLogger(__name__)


def parse_extra(raw: str, history_id: int = 0) -> NoteHistoryExtra:
    """Parse a stored snapshot, falling back to an empty one if it is unreadable."""
    try:
        return NoteHistoryExtra.model_validate_json(raw or "")
    except PydanticValidationError as e:
        logger.warning(f"Unreadable extra on history row {history_id}: {e.errors()[0]['msg']}")
        return NoteHistoryExtra()


class HistoryRepository(BaseRepository):
    """Repository for history rows. Rows are written by NoteRepository only."""

    def search_page(self, param: NoteHistorySearchPageParam) -> PageResult[NoteHistory]:
        """Get one page of history rows, newest first.

        Rows are filtered by note_id when it is greater than 0.
        """
        with self.session_scope("search note history") as session:
            count_query = select(func.count()).select_from(DBNoteHistory)
            query = select(DBNoteHistory)
            if param.note_id > 0:
                count_query = count_query.where(DBNoteHistory.note_id == param.note_id)
                query = query.where(DBNoteHistory.note_id == param.note_id)

            total = session.scalar(count_query)
            if not total:
                return PageResult[NoteHistory]()

            rows = session.scalars(
                query.order_by(DBNoteHistory.id.desc())
                .offset(param.start())
                .limit(param.page_size)
            ).all()
            data = [self._db_to_model(row) for row in rows]
            return PageResult[NoteHistory].create(total, param.page_size, data)

    @staticmethod
    def _db_to_model(row: DBNoteHistory) -> NoteHistory:
        return NoteHistory(
            id=row.id,
            note_id=row.note_id,
            old_content=row.old_content,
            new_content=row.new_content,
            extra=parse_extra(row.extra, row.id),
            operate_type=row.operate_type,
            operate_time=row.operate_time,
            create_time=row.create_time,
        )

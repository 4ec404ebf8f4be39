"""Service layer for note and history operations."""

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from enote.exceptions import ErrorCode, ValidationError
from enote.models.schema import (
    DEFAULT_PAGE_INDEX,
    ContentType,
    Note,
    NoteHistory,
    NoteHistorySearchPageParam,
    NoteSearchPageParam,
    NoteStatsResult,
    PageResult,
)
from enote.storage.history_repository import HistoryRepository
from enote.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 10_000_000
CONTENT_TYPES = {member.value for member in ContentType}


class NoteService:
    """Service for managing notes and reading their history.

    Validates note input and normalises paging parameters before handing
    them to the repositories.
    """

    def __init__(
        self,
        note_repository: Optional[NoteRepository] = None,
        history_repository: Optional[HistoryRepository] = None,
        engine: Optional[Engine] = None,
    ):
        """Initialize the service.

        Args:
            note_repository: Note storage backend. Created with defaults if None.
            history_repository: History storage backend. Created with defaults
                if None.
            engine: Pre-configured SQLAlchemy engine for repositories created
                here. Only used when a repository is not given.
        """
        self.note_repository = note_repository or NoteRepository(engine)
        self.history_repository = history_repository or HistoryRepository(
            engine or self.note_repository.engine
        )

    def get_note(self, note_id: int) -> Optional[Note]:
        return self.note_repository.find_by_id(note_id)

    def count_notes(self) -> int:
        return self.note_repository.total_count()

    def create_note(self, note: Note) -> Optional[Note]:
        """Create a note after validating its title, content and content type."""
        self._validate_note(note)
        created = self.note_repository.create(note)
        logger.info(f"Note created: {created.id if created else None}")
        return created

    def update_note(self, note: Note) -> Optional[Note]:
        """Update a note. Returns None if the note does not exist."""
        self._validate_note(note)
        updated = self.note_repository.update(note)
        if updated is None:
            logger.info(f"Note update skipped, no note with id {note.id}")
        else:
            logger.info(f"Note updated: {note.id}")
        return updated

    def delete_note(self, note_id: int) -> None:
        self.note_repository.delete_by_id(note_id)
        logger.info(f"Note deleted: {note_id}")

    def search_notes(self, param: NoteSearchPageParam) -> PageResult[Note]:
        """Search notes with paging clamped and the keyword cut to size."""
        return self.note_repository.search_page(param.normalize())

    def note_stats(self, param: NoteSearchPageParam) -> NoteStatsResult:
        """Count matching notes; paging fields in ``param`` are ignored."""
        unpaged = param.model_copy(update={"page_index": DEFAULT_PAGE_INDEX})
        return self.note_repository.stats(unpaged.normalize())

    def search_histories(
        self, param: NoteHistorySearchPageParam
    ) -> PageResult[NoteHistory]:
        return self.history_repository.search_page(param.normalize())

    def _validate_note(self, note: Note) -> None:
        if len(note.title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                f"Title exceeds {MAX_TITLE_LENGTH} characters",
                field="title",
                code=ErrorCode.VALIDATION_FAILED,
            )
        if len(note.content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Content exceeds {MAX_CONTENT_LENGTH} characters",
                field="content",
                code=ErrorCode.VALIDATION_FAILED,
            )
        if note.content_type not in CONTENT_TYPES:
            raise ValidationError(
                "Content type must be 0 (HTML) or 1 (Markdown)",
                field="content_type",
                value=note.content_type,
                code=ErrorCode.VALIDATION_FAILED,
            )

"""Storage layer for the ENote backend."""

from enote.storage.base import BaseRepository
from enote.storage.history_repository import HistoryRepository
from enote.storage.note_repository import NoteRepository
from enote.storage.notebook_repository import NotebookRepository
from enote.storage.tag_repository import TagRepository

__all__ = [
    "BaseRepository",
    "HistoryRepository",
    "NoteRepository",
    "NotebookRepository",
    "TagRepository",
]

"""Common test fixtures for the ENote backend."""

import datetime

import pytest

from enote.config import config
from enote.models.db_models import init_db
from enote.models.schema import Notebook, Tag
from enote.services.note_service import NoteService
from enote.storage.history_repository import HistoryRepository
from enote.storage.note_repository import NoteRepository
from enote.storage.notebook_repository import NotebookRepository
from enote.storage.tag_repository import TagRepository


class FakeClock:
    """Callable stand-in for enote.utils.now with a manually advanced time."""

    def __init__(self, start=datetime.datetime(2024, 3, 1, 9, 0, 0)):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, seconds=1):
        self.current += datetime.timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point the global config at a throwaway SQLite file (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "test_enote.db")
    monkeypatch.setattr(config, "database_url", None)
    monkeypatch.setattr(config, "min_connections", 1)
    monkeypatch.setattr(config, "max_connections", 5)
    monkeypatch.setattr(config, "fts_enabled", True)
    monkeypatch.setattr(config, "debug", False)
    yield config


@pytest.fixture
def engine(test_config):
    """Bootstrapped engine on the temporary database."""
    engine = init_db(test_config)
    yield engine
    engine.dispose()


@pytest.fixture
def clock(monkeypatch):
    """Freeze the repositories' clock so timestamps can be asserted."""
    fake = FakeClock()
    for module in (
        "enote.storage.note_repository",
        "enote.storage.notebook_repository",
        "enote.storage.tag_repository",
    ):
        monkeypatch.setattr(f"{module}.now", fake)
    return fake


@pytest.fixture
def notebook_repository(engine):
    return NotebookRepository(engine)


@pytest.fixture
def tag_repository(engine):
    return TagRepository(engine)


@pytest.fixture
def note_repository(engine):
    return NoteRepository(engine)


@pytest.fixture
def history_repository(engine):
    return HistoryRepository(engine)


@pytest.fixture
def note_service(note_repository, history_repository):
    return NoteService(
        note_repository=note_repository, history_repository=history_repository
    )


@pytest.fixture
def work_notebook(notebook_repository):
    """A stored notebook named "Work"."""
    return notebook_repository.create(Notebook(name="Work"))


@pytest.fixture
def tags(tag_repository):
    """Three stored tags: urgent, later, idea."""
    return [
        tag_repository.create(Tag(name=name))
        for name in ("urgent", "later", "idea")
    ]

# tests/test_note_service.py
"""Tests for the note service boundary."""
from unittest.mock import MagicMock

import pytest

from enote.exceptions import ErrorCode, ValidationError
from enote.models.schema import (
    MAX_ROW_OFFSET,
    Note,
    NoteHistorySearchPageParam,
    NoteSearchPageParam,
)
from enote.services.note_service import MAX_TITLE_LENGTH, NoteService


class TestValidation:
    def test_title_too_long(self, note_service):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create_note(Note(title="x" * (MAX_TITLE_LENGTH + 1)))
        assert exc_info.value.field == "title"
        assert note_service.count_notes() == 0

    def test_title_at_limit_is_accepted(self, note_service):
        created = note_service.create_note(Note(title="x" * MAX_TITLE_LENGTH))
        assert len(created.title) == MAX_TITLE_LENGTH

    def test_content_too_long(self):
        service = NoteService(note_repository=MagicMock(), history_repository=MagicMock())
        with pytest.raises(ValidationError) as exc_info:
            service.update_note(Note(id=1, content="x" * 10_000_001))
        assert exc_info.value.field == "content"
        service.note_repository.update.assert_not_called()

    @pytest.mark.parametrize("content_type", [-1, 2, 7])
    def test_unknown_content_type(self, note_service, content_type):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create_note(Note(title="t", content_type=content_type))
        assert exc_info.value.code == ErrorCode.VALIDATION_FAILED


class TestNormalisation:
    def setup_method(self):
        self.note_repository = MagicMock()
        self.history_repository = MagicMock()
        self.service = NoteService(
            note_repository=self.note_repository,
            history_repository=self.history_repository,
        )

    def test_search_params_are_clamped(self):
        self.service.search_notes(
            NoteSearchPageParam(page_index=0, page_size=5000, keyword="  plan  ", tag_id=-2)
        )
        [param] = self.note_repository.search_page.call_args.args
        assert (param.page_index, param.page_size, param.keyword, param.tag_id) == (1, 1000, "plan", 0)

    def test_stats_params_are_clamped(self):
        self.service.note_stats(NoteSearchPageParam(notebook_id=-1, keyword=" x "))
        [param] = self.note_repository.stats.call_args.args
        assert (param.notebook_id, param.keyword) == (0, "x")

    def test_history_params_are_clamped(self):
        self.service.search_histories(NoteHistorySearchPageParam(page_size=0, note_id=4))
        [param] = self.history_repository.search_page.call_args.args
        assert (param.page_size, param.note_id) == (50, 4)

    def test_update_of_missing_note_returns_none(self):
        self.note_repository.update.return_value = None
        assert self.service.update_note(Note(id=5, title="t")) is None


def test_service_round_trip(note_service):
    created = note_service.create_note(Note(title="Plan", content="draft"))
    assert note_service.get_note(created.id) == created

    note_service.delete_note(created.id)
    assert note_service.get_note(created.id) is None

    page = note_service.search_histories(NoteHistorySearchPageParam(note_id=created.id))
    assert [h.operate_type for h in page.data] == [3, 1]


def test_builds_repositories_from_engine(engine):
    service = NoteService(engine=engine)
    assert service.note_repository.engine is engine
    assert service.history_repository.engine is engine


class TestPageBounds:
    def test_note_search_past_last_offset(self, note_service):
        note_service.create_note(Note(title="t"))
        with pytest.raises(ValidationError) as exc_info:
            note_service.search_notes(NoteSearchPageParam(page_index=10**17, page_size=1000))
        assert exc_info.value.code == ErrorCode.INVALID_PAGE_PARAM
        assert exc_info.value.field == "page_index"

    def test_history_search_past_last_offset(self, note_service):
        note_service.create_note(Note(title="t"))
        with pytest.raises(ValidationError) as exc_info:
            note_service.search_histories(
                NoteHistorySearchPageParam(page_index=10**17, page_size=1000)
            )
        assert exc_info.value.code == ErrorCode.INVALID_PAGE_PARAM

    def test_last_addressable_page_is_empty(self, note_service):
        note_service.create_note(Note(title="t"))
        last = MAX_ROW_OFFSET // 1000 + 1

        page = note_service.search_notes(NoteSearchPageParam(page_index=last, page_size=1000))
        histories = note_service.search_histories(
            NoteHistorySearchPageParam(page_index=last, page_size=1000)
        )

        assert (page.total, page.data) == (1, [])
        assert (histories.total, histories.data) == (1, [])

    def test_stats_ignore_page_index(self, note_service):
        note_service.create_note(Note(title="t"))
        stats = note_service.note_stats(NoteSearchPageParam(page_index=10**17, page_size=1000))
        assert stats.total == 1

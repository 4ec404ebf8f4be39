# tests/test_history_repository.py
"""Tests for reading the note history."""
import logging

from sqlalchemy import update

from enote.models.db_models import DBNoteHistory
from enote.models.schema import Note, NoteHistoryExtra, NoteHistorySearchPageParam
from enote.storage.history_repository import parse_extra


def search(history_repository, **kwargs):
    return history_repository.search_page(NoteHistorySearchPageParam(**kwargs))


class TestSearchPage:
    def test_empty(self, history_repository):
        page = search(history_repository)
        assert (page.total, page.total_pages, page.data) == (0, 0, [])

    def test_newest_first_filtered_by_note(self, history_repository, note_repository):
        first = note_repository.create(Note(title="a", content="1"))
        second = note_repository.create(Note(title="b", content="1"))
        note_repository.update(first.model_copy(update={"content": "2"}))

        page = search(history_repository, note_id=first.id)
        assert page.total == 2
        assert [h.operate_type for h in page.data] == [2, 1]
        assert all(h.note_id == first.id for h in page.data)
        assert page.data[0].id > page.data[1].id

        everything = search(history_repository, note_id=0)
        assert everything.total == 3
        assert everything.data[-1].note_id == first.id
        assert {h.note_id for h in everything.data} == {first.id, second.id}

    def test_paging(self, history_repository, note_repository):
        note = note_repository.create(Note(title="t", content="0"))
        for i in range(1, 5):
            note = note_repository.update(note.model_copy(update={"content": str(i)}))

        page = search(history_repository, note_id=note.id, page_index=2, page_size=2)
        assert page.total == 5
        assert page.total_pages == 3
        assert [h.new_content for h in page.data] == ["2", "1"]

    def test_timestamps_are_set(self, history_repository, note_repository, clock):
        note_repository.create(Note(title="t"))
        [history] = search(history_repository).data
        assert history.operate_time == clock.current
        assert history.create_time == clock.current
        assert history.to_wire()["operateTime"] == "2024-03-01 09:00:00"


class TestMalformedExtra:
    def _corrupt(self, engine, value):
        with engine.begin() as conn:
            conn.execute(update(DBNoteHistory).values(extra=value))

    def test_malformed_extra_degrades_to_empty(
        self, history_repository, note_repository, engine, caplog
    ):
        note = note_repository.create(Note(title="t", content="c"))
        self._corrupt(engine, "{not json")

        with caplog.at_level(logging.WARNING, logger="enote.storage.history_repository"):
            [history] = search(history_repository, note_id=note.id).data

        assert history.extra == NoteHistoryExtra()
        assert history.new_content == "c"
        assert "Unreadable extra" in caplog.text

    def test_empty_extra_degrades_to_empty(self, history_repository, note_repository, engine):
        note = note_repository.create(Note(title="t"))
        self._corrupt(engine, "")

        [history] = search(history_repository, note_id=note.id).data
        assert history.extra == NoteHistoryExtra()


class TestParseExtra:
    def test_parses_camel_case_snapshot(self):
        extra = parse_extra('{"notebookId": 3, "notebookName": "Work", "title": "Plan", "tags": null}')
        assert extra.notebook_id == 3
        assert extra.notebook_name == "Work"
        assert extra.tags == []

    def test_wrong_shape_is_empty(self):
        assert parse_extra("[1, 2]") == NoteHistoryExtra()

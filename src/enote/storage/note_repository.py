"""Repository for notes: transactional writes with history, search and stats."""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, func, insert, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from enote.exceptions import ErrorCode
from enote.models.db_models import DBNote, DBNotebook, DBNoteHistory, DBNoteTag, DBTag
from enote.models.schema import (
    Note,
    NoteHistoryExtra,
    NoteSearchPageParam,
    NoteStatsResult,
    OperationType,
    PageResult,
    Tag,
)
from enote.storage.base import BaseRepository, apply_changes
from enote.storage.tag_repository import tag_from_db
from enote.utils import escape_like_pattern, now

logger = logging.getLogger(__name__)


class NoteRepository(BaseRepository):
    """Repository for notes.

    Every create, update and delete writes the note row, its junction rows
    and one history row in a single transaction. Create and update return
    the note re-read after commit, so callers see exactly what a later
    find_by_id would return.
    """

    def find_by_id(self, id: int) -> Optional[Note]:
        """Get a note with its notebook name and tags, or None."""
        with self.session_scope("read note") as session:
            row = session.execute(
                select(DBNote, DBNotebook.name)
                .outerjoin(DBNotebook, DBNotebook.id == DBNote.notebook_id)
                .where(DBNote.id == id)
            ).first()
            if row is None:
                return None

            db_note, notebook_name = row
            return self._db_to_model(
                db_note, notebook_name or "", self._load_tags(session, id)
            )

    def total_count(self) -> int:
        with self.session_scope("count notes") as session:
            return session.scalar(select(func.count()).select_from(DBNote))

    def create(self, note: Note) -> Optional[Note]:
        """Create a note, its tag links and a Create history row.

        The id and timestamps are assigned here; client values are ignored.
        Duplicate tag ids keep their first occurrence.
        """
        tags = note.unique_tags()
        with self.session_scope("create note", ErrorCode.STORAGE_WRITE_FAILED) as session:
            timestamp = now()
            db_note = DBNote(
                notebook_id=note.notebook_id,
                title=note.title,
                content=note.content,
                content_type=note.content_type,
                create_time=timestamp,
                update_time=timestamp,
            )
            session.add(db_note)
            session.flush()
            note_id = db_note.id

            self._insert_links(session, note_id, tags, timestamp)

            notebook_id, notebook_name = self._resolve_notebook(session, note.notebook_id)
            extra = NoteHistoryExtra(
                notebook_id=notebook_id,
                notebook_name=notebook_name,
                content_type=note.content_type,
                title=note.title,
                tags=tags,
            )
            self._add_history(
                session, note_id, OperationType.CREATE, "", note.content, extra, timestamp
            )
            session.commit()

        logger.info(f"Created note {note_id} with {len(tags)} tags")
        return self.find_by_id(note_id)

    def update(self, note: Note) -> Optional[Note]:
        """Apply the changed fields and tag delta of ``note``.

        Only fields whose value differs are written, and update_time is bumped
        only in that case. Tags are reconciled by set difference so retained
        links keep their row and sort_order. One Update history row holding
        the pre-update snapshot is written if anything changed.

        Returns:
            The updated note, or None if no note has this id.
        """
        new_tags = note.unique_tags()
        new_ids = {tag.id for tag in new_tags}

        with self.session_scope("update note", ErrorCode.STORAGE_WRITE_FAILED) as session:
            db_note = session.get(DBNote, note.id)
            if not db_note:
                return None

            # Snapshot before mutating
            old_title = db_note.title
            old_content = db_note.content
            old_content_type = db_note.content_type
            old_notebook_id, old_notebook_name = self._resolve_notebook(
                session, db_note.notebook_id
            )
            old_tags = self._load_tags(session, note.id)
            old_ids = set(session.scalars(
                select(DBNoteTag.tag_id).where(DBNoteTag.note_id == note.id)
            ).all())

            changed = apply_changes(db_note, {
                "notebook_id": note.notebook_id,
                "title": note.title,
                "content": note.content,
                "content_type": note.content_type,
            })
            note_changed = bool(changed)

            to_delete = old_ids - new_ids
            to_add = new_ids - old_ids
            tags_changed = old_ids != new_ids

            timestamp = now()
            if to_delete:
                session.execute(
                    delete(DBNoteTag).where(
                        DBNoteTag.note_id == note.id, DBNoteTag.tag_id.in_(to_delete)
                    )
                )
            if to_add:
                self._insert_links(
                    session, note.id, [t for t in new_tags if t.id in to_add], timestamp
                )

            if note_changed:
                db_note.update_time = timestamp

            if note_changed or tags_changed:
                extra = NoteHistoryExtra(
                    notebook_id=old_notebook_id,
                    notebook_name=old_notebook_name,
                    content_type=old_content_type,
                    title=old_title,
                    tags=old_tags,
                )
                self._add_history(
                    session, note.id, OperationType.UPDATE,
                    old_content, note.content, extra, timestamp,
                )
                session.commit()
                logger.info(
                    f"Updated note {note.id}: fields={changed}, "
                    f"tags +{len(to_add)} -{len(to_delete)}"
                )

        return self.find_by_id(note.id)

    def delete_by_id(self, id: int) -> None:
        """Delete a note and its tag links, recording a Delete history row.

        Deleting a missing note is a no-op.
        """
        with self.session_scope("delete note", ErrorCode.STORAGE_DELETE_FAILED) as session:
            db_note = session.get(DBNote, id)
            if not db_note:
                return

            notebook_id, notebook_name = self._resolve_notebook(session, db_note.notebook_id)
            extra = NoteHistoryExtra(
                notebook_id=notebook_id,
                notebook_name=notebook_name,
                content_type=db_note.content_type,
                title=db_note.title,
                tags=self._load_tags(session, id),
            )
            self._add_history(
                session, id, OperationType.DELETE, db_note.content, "", extra, now()
            )
            session.delete(db_note)
            session.execute(delete(DBNoteTag).where(DBNoteTag.note_id == id))
            session.commit()

        logger.info(f"Deleted note {id}")

    def search_page(self, param: NoteSearchPageParam) -> PageResult[Note]:
        """Get one page of notes matching the filters in ``param``.

        Filters are ANDed: notebook_id > 0, tag_id > 0, and a keyword matched
        as a substring of the title or the content. Results are ordered by
        update_time then id, newest first.
        """
        with self.session_scope("search notes", ErrorCode.SEARCH_FAILED) as session:
            total = session.scalar(
                self._apply_filters(select(func.count()).select_from(DBNote), param)
            )
            if not total:
                return PageResult[Note]()

            db_notes = session.scalars(
                self._apply_filters(select(DBNote), param)
                .order_by(DBNote.update_time.desc(), DBNote.id.desc())
                .offset(param.start())
                .limit(param.page_size)
            ).all()

            notebook_names = self._notebook_names(
                session, {n.notebook_id for n in db_notes if n.notebook_id > 0}
            )
            tags_by_note = self._tags_for_notes(session, [n.id for n in db_notes])

            data = [
                self._db_to_model(
                    db_note,
                    notebook_names.get(db_note.notebook_id, ""),
                    tags_by_note.get(db_note.id, []),
                )
                for db_note in db_notes
            ]
            return PageResult[Note].create(total, param.page_size, data)

    def stats(self, param: NoteSearchPageParam) -> NoteStatsResult:
        """Count notes matching ``param`` in total and per notebook id."""
        with self.session_scope("count notes", ErrorCode.SEARCH_FAILED) as session:
            total = session.scalar(
                self._apply_filters(select(func.count()).select_from(DBNote), param)
            )
            if not total:
                return NoteStatsResult()

            rows = session.execute(
                self._apply_filters(
                    select(DBNote.notebook_id, func.count()), param
                ).group_by(DBNote.notebook_id)
            ).all()
            return NoteStatsResult(
                total=total,
                notebook_counts={notebook_id: count for notebook_id, count in rows},
            )

    @staticmethod
    def _apply_filters(query: Select, param: NoteSearchPageParam) -> Select:
        if param.notebook_id > 0:
            query = query.where(DBNote.notebook_id == param.notebook_id)
        if param.tag_id > 0:
            tagged = (
                select(DBNoteTag.note_id)
                .where(DBNoteTag.tag_id == param.tag_id)
                .distinct()
            )
            query = query.where(DBNote.id.in_(tagged))
        if param.keyword:
            pattern = f"%{escape_like_pattern(param.keyword)}%"
            query = query.where(
                or_(
                    DBNote.title.like(pattern, escape="\\"),
                    DBNote.content.like(pattern, escape="\\"),
                )
            )
        return query

    @staticmethod
    def _resolve_notebook(session: Session, notebook_id: int) -> Tuple[int, str]:
        """Return (id, name) of the notebook, or (0, "") if unset or missing."""
        if notebook_id > 0:
            db_notebook = session.get(DBNotebook, notebook_id)
            if db_notebook:
                return db_notebook.id, db_notebook.name
        return 0, ""

    @staticmethod
    def _notebook_names(session: Session, notebook_ids: Set[int]) -> Dict[int, str]:
        if not notebook_ids:
            return {}
        rows = session.execute(
            select(DBNotebook.id, DBNotebook.name).where(DBNotebook.id.in_(notebook_ids))
        ).all()
        return {notebook_id: name for notebook_id, name in rows}

    @staticmethod
    def _load_tags(session: Session, note_id: int) -> List[Tag]:
        """Tags of one note in per-note order, carrying the link's sort_order."""
        rows = session.execute(
            select(DBTag, DBNoteTag.sort_order)
            .join(DBNoteTag, DBNoteTag.tag_id == DBTag.id)
            .where(DBNoteTag.note_id == note_id)
            .order_by(DBNoteTag.sort_order.asc(), DBNoteTag.id.asc())
        ).all()
        return [tag_from_db(db_tag, sort_order) for db_tag, sort_order in rows]

    @staticmethod
    def _tags_for_notes(session: Session, note_ids: List[int]) -> Dict[int, List[Tag]]:
        """Tags of many notes using one link query and one tag query."""
        if not note_ids:
            return {}
        links = session.execute(
            select(DBNoteTag.note_id, DBNoteTag.tag_id, DBNoteTag.sort_order)
            .where(DBNoteTag.note_id.in_(note_ids))
            .order_by(DBNoteTag.sort_order.asc(), DBNoteTag.id.asc())
        ).all()
        if not links:
            return {}

        tag_ids = {link.tag_id for link in links}
        db_tags = {
            db_tag.id: db_tag
            for db_tag in session.scalars(select(DBTag).where(DBTag.id.in_(tag_ids)))
        }

        result: Dict[int, List[Tag]] = defaultdict(list)
        for note_id, tag_id, sort_order in links:
            db_tag = db_tags.get(tag_id)
            if db_tag is not None:
                result[note_id].append(tag_from_db(db_tag, sort_order))
        return result

    @staticmethod
    def _insert_links(session: Session, note_id: int, tags: Iterable[Tag], timestamp) -> None:
        rows = [
            {
                "note_id": note_id,
                "tag_id": tag.id,
                "sort_order": tag.sort_order,
                "create_time": timestamp,
                "update_time": timestamp,
            }
            for tag in tags
        ]
        if rows:
            session.execute(insert(DBNoteTag), rows)

    @staticmethod
    def _add_history(
        session: Session,
        note_id: int,
        operate_type: OperationType,
        old_content: str,
        new_content: str,
        extra: NoteHistoryExtra,
        timestamp,
    ) -> None:
        session.add(DBNoteHistory(
            note_id=note_id,
            old_content=old_content,
            new_content=new_content,
            extra=extra.to_json(),
            operate_type=int(operate_type),
            operate_time=timestamp,
            create_time=timestamp,
        ))

    @staticmethod
    def _db_to_model(db_note: DBNote, notebook_name: str, tags: List[Tag]) -> Note:
        return Note(
            id=db_note.id,
            notebook_id=db_note.notebook_id,
            notebook_name=notebook_name,
            title=db_note.title,
            content=db_note.content,
            content_type=db_note.content_type,
            create_time=db_note.create_time,
            update_time=db_note.update_time,
            tags=tags,
        )

"""Repository for tag storage and retrieval."""
import logging
from typing import List, Optional

from sqlalchemy import delete, select

from enote.exceptions import ErrorCode
from enote.models.db_models import DBNoteTag, DBTag
from enote.models.schema import Tag
from enote.storage.base import BaseRepository, apply_changes
from enote.utils import now

logger = logging.getLogger(__name__)


def tag_from_db(db_tag: DBTag, sort_order: Optional[int] = None) -> Tag:
    """Build a Tag, optionally overriding sort_order with a per-note position."""
    return Tag(
        id=db_tag.id,
        name=db_tag.name,
        icon=db_tag.icon,
        cls=db_tag.cls,
        sort_order=db_tag.sort_order if sort_order is None else sort_order,
        create_time=db_tag.create_time,
        update_time=db_tag.update_time,
    )


class TagRepository(BaseRepository):
    """Repository for managing tags."""

    def find_all(self) -> List[Tag]:
        """Get all tags, highest sort_order first, then most recently updated."""
        with self.session_scope("list tags") as session:
            db_tags = session.scalars(
                select(DBTag).order_by(DBTag.sort_order.desc(), DBTag.update_time.desc())
            ).all()
            return [tag_from_db(db_tag) for db_tag in db_tags]

    def find_by_id(self, id: int) -> Optional[Tag]:
        with self.session_scope("read tag") as session:
            db_tag = session.get(DBTag, id)
            if not db_tag:
                return None
            return tag_from_db(db_tag)

    def create(self, tag: Tag) -> Tag:
        """Create a tag with a store-assigned id and fresh timestamps."""
        with self.session_scope("create tag", ErrorCode.STORAGE_WRITE_FAILED) as session:
            timestamp = now()
            db_tag = DBTag(
                name=tag.name,
                icon=tag.icon,
                cls=tag.cls,
                sort_order=tag.sort_order,
                create_time=timestamp,
                update_time=timestamp,
            )
            session.add(db_tag)
            session.commit()

            logger.info(f"Created tag: {db_tag.id}")
            return tag_from_db(db_tag)

    def update(self, tag: Tag) -> Optional[Tag]:
        """Update a tag, touching update_time only if a field changed.

        Returns:
            The stored tag, or None if it does not exist.
        """
        with self.session_scope("update tag", ErrorCode.STORAGE_WRITE_FAILED) as session:
            db_tag = session.get(DBTag, tag.id)
            if not db_tag:
                return None

            changed = apply_changes(db_tag, {
                "name": tag.name,
                "icon": tag.icon,
                "cls": tag.cls,
                "sort_order": tag.sort_order,
            })
            if changed:
                db_tag.update_time = now()
                session.commit()
                logger.info(f"Updated tag {tag.id}: {', '.join(changed)}")

            return tag_from_db(db_tag)

    def delete_by_id(self, id: int) -> None:
        """Delete a tag and detach it from every note.

        Deleting a missing tag is a no-op.
        """
        with self.session_scope("delete tag", ErrorCode.STORAGE_DELETE_FAILED) as session:
            result = session.execute(delete(DBTag).where(DBTag.id == id))
            detached = session.execute(delete(DBNoteTag).where(DBNoteTag.tag_id == id))
            session.commit()
            if result.rowcount:
                logger.info(f"Deleted tag {id}, detached from {detached.rowcount} notes")

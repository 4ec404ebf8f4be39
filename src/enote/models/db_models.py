"""SQLAlchemy database models and engine bootstrap for the ENote backend."""
import logging
import time
from typing import Optional

from sqlalchemy import (BigInteger, Column, DateTime, Index, Integer, String,
                        Text, create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from enote.config import ENoteConfig, config
from enote.utils import now

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNotebook(Base):
    """Database model for a notebook."""
    __tablename__ = "notebook"
    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_id = Column(BigInteger, default=0, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(String(1024), default="", nullable=False)
    icon = Column(String(255), default="", nullable=False)
    cls = Column(String(255), default="", nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    create_time = Column(DateTime, default=now, nullable=False)
    update_time = Column(DateTime, default=now, nullable=False)

    def __repr__(self) -> str:
        return f"<Notebook(id={self.id}, name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "note"
    id = Column(Integer, primary_key=True, autoincrement=True)
    notebook_id = Column(BigInteger, default=0, nullable=False)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    # 0 = HTML, 1 = Markdown
    content_type = Column(Integer, default=0, nullable=False)
    create_time = Column(DateTime, default=now, nullable=False)
    update_time = Column(DateTime, default=now, nullable=False)

    __table_args__ = (
        Index("idx_note_notebook_id", "notebook_id"),
        Index("idx_note_update_time", "update_time"),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tag"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    icon = Column(String(255), default="", nullable=False)
    cls = Column(String(255), default="", nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    create_time = Column(DateTime, default=now, nullable=False)
    update_time = Column(DateTime, default=now, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBNoteTag(Base):
    """Junction row attaching a tag to a note at a per-note position."""
    __tablename__ = "note_tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(BigInteger, nullable=False)
    tag_id = Column(BigInteger, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    create_time = Column(DateTime, default=now, nullable=False)
    update_time = Column(DateTime, default=now, nullable=False)

    __table_args__ = (
        Index("idx_note_tags_note_id", "note_id"),
        Index("idx_note_tags_tag_id", "tag_id"),
        Index("idx_note_tags_unique", "note_id", "tag_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<NoteTag(note_id={self.note_id}, tag_id={self.tag_id})>"


class DBNoteHistory(Base):
    """Append-only history row.

    note_id carries no foreign key: rows outlive the note they describe.
    """
    __tablename__ = "note_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(BigInteger, nullable=False)
    old_content = Column(Text, nullable=False)
    new_content = Column(Text, nullable=False)
    extra = Column(Text, default="", nullable=False)
    operate_type = Column(Integer, nullable=False)
    operate_time = Column(DateTime, default=now, nullable=False)
    create_time = Column(DateTime, default=now, nullable=False)

    __table_args__ = (
        Index("idx_note_history_note_id", "note_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<NoteHistory(id={self.id}, note_id={self.note_id}, "
            f"operate_type={self.operate_type})>"
        )


def create_db_engine(cfg: Optional[ENoteConfig] = None) -> Engine:
    """Create the pooled engine described by the datasource settings.

    Pool mapping:
    - pool_size = min connections, max_overflow = max - min
    - pool_timeout = acquire timeout, pool_recycle = max lifetime
    - connections idle in the pool longer than idle timeout are replaced
      on their next checkout
    """
    cfg = cfg or config
    url = cfg.get_db_url()
    is_sqlite = url.startswith("sqlite")

    if is_sqlite:
        # Pooled connections are shared between worker threads
        connect_args = {"timeout": cfg.connect_timeout, "check_same_thread": False}
    else:
        connect_args = {"connect_timeout": cfg.connect_timeout}

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=cfg.min_connections,
        max_overflow=cfg.max_connections - cfg.min_connections,
        pool_timeout=cfg.acquire_timeout,
        pool_recycle=cfg.max_lifetime,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

    idle_timeout = cfg.idle_timeout

    @event.listens_for(engine, "checkin")
    def mark_checkin(dbapi_connection, connection_record):
        connection_record.info["checked_in_at"] = time.monotonic()

    @event.listens_for(engine, "checkout")
    def discard_idle(dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.pop("checked_in_at", None)
        if checked_in_at is not None and time.monotonic() - checked_in_at > idle_timeout:
            # The pool retries the checkout with a fresh connection
            raise DisconnectionError("Connection exceeded idle timeout")

    if is_sqlite:
        busy_timeout_ms = cfg.connect_timeout * 1000

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # WAL mode: writes go to separate journal, preventing corruption on crash
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            cursor.close()

    return engine


def init_db(cfg: Optional[ENoteConfig] = None) -> Engine:
    """Initialize the database and return the engine.

    Creates missing tables and indexes, then the FTS5 mirror of the note
    table when enabled and supported.
    """
    cfg = cfg or config
    engine = create_db_engine(cfg)
    Base.metadata.create_all(engine)

    if cfg.fts_enabled and engine.dialect.name == "sqlite":
        init_fts5(engine)

    logger.info(
        f"Database ready: pool {cfg.min_connections}-{cfg.max_connections} "
        f"connections, dialect {engine.dialect.name}"
    )
    return engine


def fts_table_exists(engine: Engine) -> bool:
    with engine.connect() as conn:
        result = conn.execute(text(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='note_fts'"
        ))
        return result.first() is not None


def init_fts5(engine: Engine) -> bool:
    """Initialize the FTS5 mirror of the note table.

    Creates the external-content virtual table, the triggers that keep it in
    sync on insert/update/delete, and back-fills it from existing notes when
    the table is created for the first time.

    Returns:
        True if the index is available, False if SQLite lacks FTS5.
    """
    created = not fts_table_exists(engine)
    try:
        with engine.connect() as conn:
            conn.execute(text("""
                CREATE VIRTUAL TABLE IF NOT EXISTS note_fts USING fts5(
                    title,
                    content,
                    content='note',
                    content_rowid='id',
                    tokenize='unicode61'
                )
            """))

            conn.execute(text("""
                CREATE TRIGGER IF NOT EXISTS note_fts_insert AFTER INSERT ON note BEGIN
                    INSERT INTO note_fts(rowid, title, content)
                    VALUES (new.id, new.title, new.content);
                END
            """))

            conn.execute(text("""
                CREATE TRIGGER IF NOT EXISTS note_fts_update AFTER UPDATE ON note BEGIN
                    INSERT INTO note_fts(note_fts, rowid, title, content)
                    VALUES ('delete', old.id, old.title, old.content);
                    INSERT INTO note_fts(rowid, title, content)
                    VALUES (new.id, new.title, new.content);
                END
            """))

            conn.execute(text("""
                CREATE TRIGGER IF NOT EXISTS note_fts_delete AFTER DELETE ON note BEGIN
                    INSERT INTO note_fts(note_fts, rowid, title, content)
                    VALUES ('delete', old.id, old.title, old.content);
                END
            """))

            conn.commit()
    except OperationalError as e:
        logger.warning(f"FTS5 unavailable, full-text mirror disabled: {e}")
        return False

    if created:
        count = rebuild_fts_index(engine)
        logger.info(f"Created FTS5 index, back-filled {count} notes")
    return True


def rebuild_fts_index(engine: Engine) -> int:
    """Rebuild the FTS5 index from the note table.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO note_fts(note_fts) VALUES ('rebuild')"))
        conn.commit()

        count = conn.execute(text("SELECT COUNT(*) FROM note")).scalar()

    return count


def get_session_factory(engine: Engine) -> sessionmaker:
    """Get a session factory bound to the engine."""
    return sessionmaker(bind=engine)

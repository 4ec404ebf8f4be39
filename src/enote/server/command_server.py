"""Command server exposing the ENote backend to the UI.

Each tool maps onto one repository or service operation and returns a JSON
envelope string: ``{"ok": true, "data": ...}`` on success and
``{"ok": false, "error": {...}}`` on failure.
"""

import json
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from enote.config import config
from enote.exceptions import ENoteError, ErrorCode, InternalError
from enote.models.db_models import fts_table_exists, init_db
from enote.models.schema import (
    Note,
    Notebook,
    NoteHistorySearchPageParam,
    NoteSearchPageParam,
    ServerStatus,
    Tag,
)
from enote.observability import metrics, timed_operation
from enote.services.note_service import NoteService
from enote.storage.notebook_repository import NotebookRepository
from enote.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


def to_data(value: Any) -> Any:
    """Convert a result into JSON-compatible data with camelCase keys."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_data(item) for item in value]
    return value


class ENoteCommandServer:
    """Command server for the ENote backend."""

    def __init__(self, engine=None, debug: Optional[bool] = None):
        """Initialize the command server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by all
                repositories. Created from config when None.
            debug: Expose storage and internal error details to the caller.
                Defaults to config.debug.
        """
        self.mcp = FastMCP(
            config.server_name,
            instructions="Notebooks, notes, tags and note history for the ENote desktop app.",
        )
        self.debug = config.debug if debug is None else debug

        self.engine = engine or init_db()
        self.notebook_repository = NotebookRepository(self.engine)
        self.tag_repository = TagRepository(self.engine)
        self.note_service = NoteService(engine=self.engine)

        self._register_tools()
        logger.info("ENote command server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Build the error envelope for an exception.

        A short ref is logged with the full error and returned to the caller
        so the two can be matched up.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, ENoteError):
            if error.is_sensitive:
                logger.error(f"[{error.code.name}] [{error_id}]: {error}", exc_info=error)
            else:
                logger.warning(f"[{error.code.name}] [{error_id}]: {error}")
            payload = error.to_response(self.debug)
        elif isinstance(error, PydanticValidationError):
            logger.warning(f"Validation error [{error_id}]: {error}")
            payload = {
                "code": ErrorCode.VALIDATION_FAILED.value,
                "codeName": ErrorCode.VALIDATION_FAILED.name,
                "message": "Invalid input",
                "details": {
                    "errors": [
                        {
                            "field": ".".join(str(part) for part in err["loc"]),
                            "message": err["msg"],
                        }
                        for err in error.errors()
                    ]
                },
            }
        else:
            logger.error(f"Unexpected error [{error_id}]: {error}", exc_info=error)
            payload = InternalError(str(error), original_error=error).to_response(self.debug)

        payload["ref"] = error_id
        return json.dumps({"ok": False, "error": payload}, ensure_ascii=False)

    def execute(self, operation: str, action: Callable[[], Any], **context) -> str:
        """Run ``action`` under timing and wrap its result in an envelope."""
        with timed_operation(operation, **context) as op:
            try:
                result = action()
            except Exception as e:
                op["error"] = e
                return self.format_error_response(e)
            return json.dumps({"ok": True, "data": to_data(result)}, ensure_ascii=False)

    def _register_tools(self) -> None:
        """Register command tools."""

        # Notebooks
        @self.mcp.tool(name="find_all_notebooks")
        def find_all_notebooks() -> str:
            """List all notebooks, highest sort order first."""
            return self.execute(
                "find_all_notebooks", self.notebook_repository.find_all
            )

        @self.mcp.tool(name="create_notebook")
        def create_notebook(notebook: Payload) -> str:
            """Create a notebook.
            Args:
                notebook: Notebook fields (name, parentId, description, icon, cls, sortOrder)
            """
            return self.execute(
                "create_notebook",
                lambda: self.notebook_repository.create(Notebook.model_validate(notebook)),
            )

        @self.mcp.tool(name="update_notebook")
        def update_notebook(notebook: Payload) -> str:
            """Update a notebook. Returns null data if the notebook does not exist.
            Args:
                notebook: Notebook fields including its id
            """
            return self.execute(
                "update_notebook",
                lambda: self.notebook_repository.update(Notebook.model_validate(notebook)),
            )

        @self.mcp.tool(name="delete_notebook_by_id")
        def delete_notebook_by_id(id: int) -> str:
            """Delete a notebook. Notes inside it are kept.
            Args:
                id: Notebook id
            """
            return self.execute(
                "delete_notebook_by_id",
                lambda: self.notebook_repository.delete_by_id(id),
                id=id,
            )

        # Tags
        @self.mcp.tool(name="find_all_tags")
        def find_all_tags() -> str:
            """List all tags, highest sort order first."""
            return self.execute("find_all_tags", self.tag_repository.find_all)

        @self.mcp.tool(name="create_tag")
        def create_tag(tag: Payload) -> str:
            """Create a tag.
            Args:
                tag: Tag fields (name, icon, cls, sortOrder)
            """
            return self.execute(
                "create_tag",
                lambda: self.tag_repository.create(Tag.model_validate(tag)),
            )

        @self.mcp.tool(name="update_tag")
        def update_tag(tag: Payload) -> str:
            """Update a tag. Returns null data if the tag does not exist.
            Args:
                tag: Tag fields including its id
            """
            return self.execute(
                "update_tag",
                lambda: self.tag_repository.update(Tag.model_validate(tag)),
            )

        @self.mcp.tool(name="delete_tag_by_id")
        def delete_tag_by_id(id: int) -> str:
            """Delete a tag and remove it from every note.
            Args:
                id: Tag id
            """
            return self.execute(
                "delete_tag_by_id",
                lambda: self.tag_repository.delete_by_id(id),
                id=id,
            )

        # Notes
        @self.mcp.tool(name="find_note_by_id")
        def find_note_by_id(id: int) -> str:
            """Get a note with its notebook name and tags. Null data if absent.
            Args:
                id: Note id
            """
            return self.execute(
                "find_note_by_id", lambda: self.note_service.get_note(id), id=id
            )

        @self.mcp.tool(name="create_note")
        def create_note(note: Payload) -> str:
            """Create a note and record a Create history entry.
            Args:
                note: Note fields (title, content, contentType, notebookId, tags)
            """
            return self.execute(
                "create_note",
                lambda: self.note_service.create_note(Note.model_validate(note)),
            )

        @self.mcp.tool(name="update_note")
        def update_note(note: Payload) -> str:
            """Update a note; a history entry is recorded only if something changed.
            Args:
                note: Full note state including its id. Tags not listed are removed.
            """
            return self.execute(
                "update_note",
                lambda: self.note_service.update_note(Note.model_validate(note)),
            )

        @self.mcp.tool(name="delete_note_by_id")
        def delete_note_by_id(id: int) -> str:
            """Delete a note and record a Delete history entry.
            Args:
                id: Note id
            """
            return self.execute(
                "delete_note_by_id", lambda: self.note_service.delete_note(id), id=id
            )

        @self.mcp.tool(name="search_page_notes")
        def search_page_notes(param: Optional[Payload] = None) -> str:
            """Search notes one page at a time.
            Args:
                param: pageIndex, pageSize, notebookId, tagId and keyword (all optional)
            """
            return self.execute(
                "search_page_notes",
                lambda: self.note_service.search_notes(
                    NoteSearchPageParam.model_validate(param or {})
                ),
            )

        @self.mcp.tool(name="note_stats")
        def note_stats(param: Optional[Payload] = None) -> str:
            """Count matching notes in total and per notebook.
            Args:
                param: Same filters as search_page_notes; paging is ignored
            """
            return self.execute(
                "note_stats",
                lambda: self.note_service.note_stats(
                    NoteSearchPageParam.model_validate(param or {})
                ),
            )

        @self.mcp.tool(name="search_page_note_histories")
        def search_page_note_histories(param: Optional[Payload] = None) -> str:
            """List history entries, newest first.
            Args:
                param: pageIndex, pageSize and noteId (0 for all notes)
            """
            return self.execute(
                "search_page_note_histories",
                lambda: self.note_service.search_histories(
                    NoteHistorySearchPageParam.model_validate(param or {})
                ),
            )

        # Status
        @self.mcp.tool(name="server_status")
        def server_status(include_operations: bool = False) -> str:
            """Report version, note count, full-text index state and command metrics.
            Args:
                include_operations: Also return per-command timings and last errors
            """
            return self.execute("server_status", lambda: self.status(include_operations))

    def status(self, include_operations: bool = False) -> ServerStatus:
        """Collect the figures reported by the ``server_status`` tool."""
        fts_enabled = (
            self.engine.dialect.name == "sqlite" and fts_table_exists(self.engine)
        )
        return ServerStatus(
            version=config.server_version,
            note_count=self.note_service.count_notes(),
            fts_enabled=fts_enabled,
            operations=metrics.get_metrics() if include_operations else {},
            **metrics.get_summary(),
        )

    def run(self) -> None:
        """Run the command server."""
        self.mcp.run()

"""Data models exchanged between the ENote backend and the UI.

Every model serializes with camelCase keys (``notebookId``, ``sortOrder``)
and accepts either camelCase or snake_case on input. A ``null`` value for a
field is read as that field's default. Timestamps travel as
``YYYY-MM-DD HH:MM:SS`` strings.
"""

import datetime
import math
from enum import IntEnum
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from enote.exceptions import ErrorCode, ValidationError
from enote.utils import format_datetime, parse_datetime

T = TypeVar("T")

# Paging limits
DEFAULT_PAGE_INDEX = 1
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000
MAX_KEYWORD_LENGTH = 500
# OFFSET is bound as a signed 64-bit integer
MAX_ROW_OFFSET = 2**63 - 1


def _parse_wire_datetime(value: Any) -> Any:
    if isinstance(value, str):
        return parse_datetime(value)
    return value


# Optional timestamp in the "YYYY-MM-DD HH:MM:SS" wire format
WireDateTime = Annotated[
    Optional[datetime.datetime],
    BeforeValidator(_parse_wire_datetime),
    PlainSerializer(format_datetime, return_type=Optional[str]),
]


class OperationType(IntEnum):
    """Kind of change recorded by a history row."""

    CREATE = 1
    UPDATE = 2
    DELETE = 3


class ContentType(IntEnum):
    """Storage format of a note's content."""

    HTML = 0
    MARKDOWN = 1


class WireModel(BaseModel):
    """Base for all models crossing the command boundary."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def _null_as_default(cls, data: Any) -> Any:
        """Drop null values so the field default applies."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_wire(self) -> Dict[str, Any]:
        """Dump to a JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Tag(WireModel):
    """A reusable label.

    When attached to a note, ``sort_order`` is the per-note position stored
    on the junction row rather than the tag's own ordering.
    """

    id: int = 0
    name: str = ""
    icon: str = ""
    cls: str = ""
    sort_order: int = 0
    create_time: WireDateTime = None
    update_time: WireDateTime = None


class Notebook(WireModel):
    """A named container for notes, optionally nested under ``parent_id``."""

    id: int = 0
    parent_id: int = Field(default=0, description="Parent notebook, 0 for root")
    name: str = ""
    description: str = ""
    icon: str = ""
    cls: str = ""
    sort_order: int = 0
    create_time: WireDateTime = None
    update_time: WireDateTime = None


class Note(WireModel):
    """A titled document with an optional notebook and any number of tags.

    ``notebook_name`` and ``tags`` are resolved at read time and are not
    stored on the note row.
    """

    id: int = 0
    notebook_id: int = Field(default=0, description="Containing notebook, 0 if unfiled")
    notebook_name: str = ""
    title: str = ""
    content: str = ""
    content_type: int = Field(
        default=ContentType.HTML.value, description="0 = HTML, 1 = Markdown"
    )
    create_time: WireDateTime = None
    update_time: WireDateTime = None
    tags: List[Tag] = Field(default_factory=list)

    def unique_tags(self) -> List[Tag]:
        """Tags with duplicate ids collapsed to their first occurrence."""
        seen = set()
        result = []
        for tag in self.tags:
            if tag.id in seen:
                continue
            seen.add(tag.id)
            result.append(tag)
        return result


class NoteHistoryExtra(WireModel):
    """Snapshot of a note's context stored alongside each history row."""

    notebook_id: int = 0
    notebook_name: str = ""
    content_type: int = 0
    title: str = ""
    tags: List[Tag] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class NoteHistory(WireModel):
    """An immutable record of one create/update/delete event on a note."""

    id: int = 0
    note_id: int = 0
    old_content: str = ""
    new_content: str = ""
    extra: NoteHistoryExtra = Field(default_factory=NoteHistoryExtra)
    operate_type: int = 0
    operate_time: WireDateTime = None
    create_time: WireDateTime = None


class PageParam(WireModel):
    """Page position, 1-based."""

    page_index: int = DEFAULT_PAGE_INDEX
    page_size: int = DEFAULT_PAGE_SIZE

    def start(self) -> int:
        """Row offset of the first item on the page."""
        return (self.page_index - 1) * self.page_size

    def _normalized_paging(self) -> Dict[str, int]:
        page_index = self.page_index if self.page_index >= 1 else DEFAULT_PAGE_INDEX
        page_size = self.page_size
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE
        elif page_size > MAX_PAGE_SIZE:
            page_size = MAX_PAGE_SIZE
        if (page_index - 1) * page_size > MAX_ROW_OFFSET:
            raise ValidationError(
                f"Page {page_index} is beyond the last addressable row",
                field="page_index",
                value=page_index,
                code=ErrorCode.INVALID_PAGE_PARAM,
            )
        return {"page_index": page_index, "page_size": page_size}

    def normalize(self) -> "PageParam":
        """Return a copy with page_index and page_size clamped into range.

        Raises:
            ValidationError: If the page starts past the largest row offset
                the database accepts.
        """
        return self.model_copy(update=self._normalized_paging())


class NoteSearchPageParam(PageParam):
    """Note search filters. A notebook_id or tag_id of 0 means "no filter"."""

    notebook_id: int = 0
    tag_id: int = 0
    keyword: str = ""

    def normalize(self) -> "NoteSearchPageParam":
        """Return a copy with paging clamped and the keyword cut and trimmed.

        Negative filter ids are treated as "no filter".
        """
        update = self._normalized_paging()
        update["keyword"] = self.keyword[:MAX_KEYWORD_LENGTH].strip()
        update["notebook_id"] = max(self.notebook_id, 0)
        update["tag_id"] = max(self.tag_id, 0)
        return self.model_copy(update=update)


class NoteHistorySearchPageParam(PageParam):
    """History paging filtered by note."""

    note_id: int = 0

    def normalize(self) -> "NoteHistorySearchPageParam":
        update = self._normalized_paging()
        update["note_id"] = max(self.note_id, 0)
        return self.model_copy(update=update)


def count_pages(total: int, page_size: int) -> int:
    """Number of pages needed for ``total`` rows, 0 when there are none."""
    if total <= 0 or page_size <= 0:
        return 0
    return math.ceil(total / page_size)


class PageResult(WireModel, Generic[T]):
    """One page of results plus the overall count."""

    total: int = 0
    total_pages: int = 0
    data: List[T] = Field(default_factory=list)

    @classmethod
    def create(cls, total: int, page_size: int, data: List[T]) -> "PageResult[T]":
        return cls(total=total, total_pages=count_pages(total, page_size), data=data)


class NoteStatsResult(WireModel):
    """Total matching notes and their count per notebook id."""

    total: int = 0
    notebook_counts: Dict[int, int] = Field(default_factory=dict)

    @field_validator("notebook_counts", mode="before")
    @classmethod
    def _int_keys(cls, v: Any) -> Any:
        # JSON object keys arrive as strings
        if isinstance(v, dict):
            return {int(k): int(c) for k, c in v.items()}
        return v


class OperationStats(WireModel):
    """Timing and failure counts of one command."""

    count: int = 0
    success_count: int = 0
    error_count: int = 0
    success_rate: float = 0.0
    avg_duration_ms: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[str] = None


class ServerStatus(WireModel):
    """Health of the running backend, as reported by ``server_status``."""

    version: str = ""
    note_count: int = 0
    fts_enabled: bool = False
    uptime_seconds: float = 0.0
    total_operations: int = 0
    total_errors: int = 0
    overall_success_rate: float = 1.0
    operations: Dict[str, OperationStats] = Field(default_factory=dict)

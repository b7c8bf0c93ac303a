"""Data models for the NoteGraph MCP server."""

import datetime
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(
    dt_value: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite drops tzinfo on the way in, so every datetime read back from the
    database goes through here.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, None for None.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class IndexRunStatus(str, Enum):
    """Lifecycle states of a reindex batch."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class ReindexMode(str, Enum):
    """How a reindex batch treats stored indexing state."""

    INCREMENTAL = "incremental"  # Skip notes whose content hash is unchanged
    FULL = "full"  # Ignore stored state, treat every note as changed


class ImportStatus(str, Enum):
    """Outcome of importing a single note path."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"  # Title, hash and tags unchanged
    MISSING = "missing"  # File does not exist
    FAILED = "failed"  # File exists but could not be read


class Tag(BaseModel):
    """A tag for categorizing notes."""

    name: str = Field(..., description="Tag name")

    model_config = {"validate_assignment": True, "frozen": True}

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


class Note(BaseModel):
    """A Markdown note known to the index."""

    id: str = Field(..., description="Stable ID derived from the note path")
    title: str = Field(..., description="Title used to resolve wiki links")
    path: str = Field(..., description="Storage path of the note (unique)")
    content: str = Field(default="", description="Current body of the note")
    content_hash: str = Field(..., description="Fingerprint of the current body")
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note row last changed (UTC)"
    )
    tags: List[Tag] = Field(default_factory=list, description="Tags for categorization")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate that the path is not empty."""
        if not v.strip():
            raise ValueError("Path cannot be empty")
        return v


@dataclass(frozen=True)
class ExtractedLink:
    """A wiki link occurrence found in a note body.

    Attributes:
        title: Trimmed target title.
        label: Display label, equal to the title when none was given.
        position: Zero-based ordinal among the links of the note.
        offset: Character offset of the opening ``[[`` in the body.
    """

    title: str
    label: str
    position: int
    offset: int


@dataclass(frozen=True)
class ResolvedLink:
    """An extracted link bound (or not) to a target note, ready to persist."""

    from_note_id: str
    to_note_id: Optional[str]
    to_title: str
    to_path: Optional[str]
    link_text: str
    position: int

    @property
    def is_resolved(self) -> bool:
        return self.to_note_id is not None


class Link(BaseModel):
    """A persisted wiki link edge."""

    id: Optional[int] = Field(default=None, description="Row ID")
    from_note_id: str = Field(..., description="ID of the source note")
    to_note_id: Optional[str] = Field(
        default=None, description="ID of the target note; None while unresolved"
    )
    to_title: str = Field(..., description="Target title as written in the source")
    to_path: Optional[str] = Field(default=None, description="Resolved target path")
    link_text: Optional[str] = Field(default=None, description="Display label")
    position: Optional[int] = Field(default=None, description="Order within the source")

    model_config = {"frozen": True}


class NoteLinkState(BaseModel):
    """What the reindex engine last indexed for one note."""

    note_id: str
    content_hash: str
    indexed_at: datetime.datetime


class IndexRun(BaseModel):
    """One row of the reindex ledger."""

    id: int
    started_at: datetime.datetime
    finished_at: Optional[datetime.datetime] = None
    status: IndexRunStatus = IndexRunStatus.RUNNING
    mode: ReindexMode = ReindexMode.INCREMENTAL
    error: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[float]:
        """Wall time of a finished run."""
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000


class _CamelModel(BaseModel):
    """Base for result payloads exposed with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys and JSON-safe values."""
        return self.model_dump(by_alias=True, mode="json")


class ReindexSummary(_CamelModel):
    """Counters and timing of a completed reindex batch."""

    started_at: datetime.datetime
    finished_at: datetime.datetime
    duration_ms: float
    notes_total: int = 0
    notes_indexed: int = 0
    notes_skipped: int = 0
    links_inserted: int = 0
    links_deleted: int = 0
    links_relinked: int = 0
    run_id: Optional[int] = None
    mode: ReindexMode = ReindexMode.INCREMENTAL


class ImportEntry(BaseModel):
    """A note path to import, with an optional explicit title."""

    path: str
    title: Optional[str] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Path cannot be empty")
        return v.strip()


class ImportEntryResult(_CamelModel):
    """Per-entry outcome of an import batch."""

    path: str
    status: ImportStatus
    note_id: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None


class ImportResult(_CamelModel):
    """Outcome of an import batch."""

    notes: List[ImportEntryResult] = Field(default_factory=list)

    def _count(self, status: ImportStatus) -> int:
        return sum(1 for entry in self.notes if entry.status == status)

    @property
    def total(self) -> int:
        return len(self.notes)

    @property
    def created(self) -> int:
        return self._count(ImportStatus.CREATED)

    @property
    def updated(self) -> int:
        return self._count(ImportStatus.UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(ImportStatus.SKIPPED)

    @property
    def missing(self) -> int:
        return self._count(ImportStatus.MISSING)

    @property
    def failed(self) -> int:
        return self._count(ImportStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            total=self.total,
            created=self.created,
            updated=self.updated,
            skipped=self.skipped,
            missing=self.missing,
            failed=self.failed,
        )
        return data


class Backlink(_CamelModel):
    """A note that links to a given title."""

    note_id: str
    title: str
    label: str


class GraphNode(_CamelModel):
    id: str
    title: str


class GraphEdge(_CamelModel):
    source: str
    target: str


class NoteGraph(_CamelModel):
    """Node/edge view of the note network."""

    nodes: List[GraphNode] = Field(default_factory=list)
    links: List[GraphEdge] = Field(default_factory=list)


class UnresolvedTarget(_CamelModel):
    """A wiki link title that matches no note, with the notes that use it."""

    to_title: str
    source_note_ids: List[str] = Field(default_factory=list)
    occurrences: int = 0

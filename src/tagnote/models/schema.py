"""Data models for tagnote."""

import datetime
import re
from datetime import timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# Canonical timestamp format; lexicographic order equals time order
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def utc_timestamp(dt_value: Optional[datetime.datetime] = None) -> str:
    """Format a datetime (default: now) as a canonical UTC timestamp string.

    Naive datetimes are treated as UTC.
    """
    if dt_value is None:
        dt_value = utc_now()
    elif dt_value.tzinfo is not None:
        dt_value = dt_value.astimezone(timezone.utc)
    return dt_value.strftime(TIMESTAMP_FORMAT)


def validate_timestamp(value: str, field_name: str = "timestamp") -> str:
    """Validate that a value is in the canonical "YYYY-MM-DD HH:MM:SS" format."""
    if not TIMESTAMP_PATTERN.match(value):
        raise ValueError(f"{field_name} must look like 'YYYY-MM-DD HH:MM:SS'")
    datetime.datetime.strptime(value, TIMESTAMP_FORMAT)
    return value


class NoteRecord(BaseModel):
    """The on-disk form of a note: everything except its ID and tags.

    Tags are not part of the record; they are derived from the tag index.
    """

    title: str = Field(..., description="Title of the note")
    body: str = Field(default="", description="Body text, may be empty")
    references: List[str] = Field(
        default_factory=list,
        description="References to external resources (paths, URLs, docs)",
    )
    modified: str = Field(
        default_factory=utc_timestamp, description="Last modified time (UTC)"
    )

    # Unknown keys are tolerated so newer records stay readable
    model_config = {"extra": "ignore"}

    @field_validator("modified")
    @classmethod
    def validate_modified(cls, v: str) -> str:
        return validate_timestamp(v, "modified")


class Note(BaseModel):
    """A note as seen by callers: record fields plus ID and derived tags."""

    id: int = Field(..., gt=0, description="Unique, never reused note ID")
    title: str
    body: str = ""
    tags: List[str] = Field(default_factory=list)
    references: List[str] = Field(default_factory=list)
    modified: str

    @classmethod
    def from_record(cls, note_id: int, record: NoteRecord, tags: List[str]) -> "Note":
        """Build a Note from a stored record and its index-derived tags."""
        return cls(
            id=note_id,
            title=record.title,
            body=record.body,
            tags=tags,
            references=list(record.references),
            modified=record.modified,
        )

    def to_summary(self, max_len: int = 140) -> "NoteSummary":
        """Convert to a summary with a single-line, truncated body preview."""
        flattened = self.body.replace("\r", " ").replace("\n", " ").strip()
        if len(flattened) > max_len:
            preview = f"{flattened[:max_len]}..."
        else:
            preview = flattened
        return NoteSummary(
            id=self.id,
            title=self.title,
            body_preview=preview,
            tags=list(self.tags),
            modified=self.modified,
        )


class NoteSummary(BaseModel):
    """A note summary for listings."""

    id: int
    title: str
    body_preview: str
    tags: List[str] = Field(default_factory=list)
    modified: str


class TagCount(BaseModel):
    """A tag with the number of notes carrying it."""

    name: str
    count: int = Field(..., ge=0)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        noun = "note" if self.count == 1 else "notes"
        return f"{self.name} ({self.count} {noun})"


class NoteQuery(BaseModel):
    """Filter for listing notes.

    Tags use OR semantics. ``since``/``until`` are inclusive bounds on the
    modified timestamp. A limit of None or 0 means unlimited.
    """

    tags: Optional[List[str]] = None
    since: Optional[str] = None
    until: Optional[str] = None
    limit: Optional[int] = None

    @field_validator("since", "until")
    @classmethod
    def validate_bounds(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return validate_timestamp(v, "date bound")

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("limit must be >= 0")
        return v

    def without_limit(self) -> "NoteQuery":
        """Return the same filter with no limit applied."""
        return self.model_copy(update={"limit": None})


class NoteUpdate(BaseModel):
    """Fields to change on an existing note; None means leave unchanged."""

    title: Optional[str] = None
    body: Optional[str] = None
    tags: Optional[List[str]] = None
    references: Optional[List[str]] = None


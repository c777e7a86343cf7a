"""Service layer for note operations.

The service is the boundary where input is validated and normalized, once,
before it reaches the store.
"""
import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tagnote.config import config
from tagnote.exceptions import ErrorCode, ValidationError
from tagnote.models.schema import Note, NoteQuery, NoteSummary, NoteUpdate, TagCount
from tagnote.observability import traced
from tagnote.storage.note_repository import NoteRepository
from tagnote.utils import normalize_references, normalize_tags

logger = logging.getLogger(__name__)


def _normalize_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise ValidationError(
            "Title is required", field="title", code=ErrorCode.NOTE_TITLE_REQUIRED
        )
    return title


class NoteService:
    """Service for managing notes."""

    def __init__(
        self,
        repository: Optional[NoteRepository] = None,
        preview_length: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            repository: Note store. Opened at the configured path if None.
            preview_length: Body preview length for summaries. Uses config if None.
        """
        self.repository = repository or NoteRepository()
        self.preview_length = preview_length or config.preview_length

    @traced("create")
    def create(
        self,
        title: str,
        body: str = "",
        tags: Optional[Iterable[str]] = None,
        references: Optional[Iterable[str]] = None,
    ) -> int:
        """Create a new note.

        Args:
            title: Note title, required and non-empty after trimming.
            body: Note body, may be empty.
            tags: Tag names; trimmed, lowercased, deduplicated and sorted.
            references: External references; trimmed and deduplicated.

        Returns:
            The new note's ID.

        Raises:
            ValidationError: If the title is empty or a tag is not usable.
        """
        title = _normalize_title(title)
        return self.repository.create(
            title=title,
            body=body,
            tags=normalize_tags(tags or []),
            references=normalize_references(references or []),
        )

    def get(self, note_id: int) -> Optional[Note]:
        """Retrieve a note by ID, or None if it does not exist."""
        return self.repository.get(note_id)

    @traced("update")
    def update(
        self,
        note_id: int,
        title: Optional[str] = None,
        body: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        references: Optional[Iterable[str]] = None,
    ) -> bool:
        """Update the provided fields of a note.

        Returns:
            False if the note does not exist.
        """
        changes = NoteUpdate(
            title=_normalize_title(title) if title is not None else None,
            body=body,
            tags=normalize_tags(tags) if tags is not None else None,
            references=(
                normalize_references(references) if references is not None else None
            ),
        )
        return self.repository.update(note_id, changes)

    @traced("delete")
    def delete(self, note_id: int) -> bool:
        """Delete a note. Returns False if it does not exist."""
        return self.repository.delete(note_id)

    def _query(
        self,
        tags: Optional[Iterable[str]],
        since: Optional[str],
        until: Optional[str],
        limit: Optional[int],
    ) -> NoteQuery:
        normalized = normalize_tags(tags) if tags is not None else None
        try:
            return NoteQuery(tags=normalized, since=since, until=until, limit=limit)
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = str(error["loc"][0]) if error.get("loc") else None
            code = ErrorCode.VALIDATION_FAILED
            if field in ("since", "until"):
                code = ErrorCode.INVALID_DATE
            raise ValidationError(
                error["msg"], field=field, value=error.get("input"), code=code
            ) from e

    @traced("list")
    def list(
        self,
        tags: Optional[Iterable[str]] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Note]:
        """List notes, newest first.

        Args:
            tags: Only notes carrying any of these tags.
            since: Inclusive lower bound on the modified timestamp.
            until: Inclusive upper bound on the modified timestamp.
            limit: Maximum number of notes; None or 0 for all.
        """
        return self.repository.list(self._query(tags, since, until, limit))

    def count(
        self,
        tags: Optional[Iterable[str]] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
    ) -> int:
        """Number of notes the same filter would list without a limit."""
        return self.repository.count(self._query(tags, since, until, None))

    def list_summaries(
        self,
        tags: Optional[Iterable[str]] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[NoteSummary]:
        notes = self.list(tags=tags, since=since, until=until, limit=limit)
        return [note.to_summary(self.preview_length) for note in notes]

    @traced("grep")
    def grep(
        self,
        pattern: str,
        tags: Optional[Iterable[str]] = None,
        case_sensitive: bool = False,
    ) -> List[Note]:
        """Search titles and bodies with a regular expression.

        Raises:
            ValidationError: If the pattern is not a valid regular expression.
        """
        normalized = normalize_tags(tags) if tags is not None else None
        return self.repository.grep(pattern, normalized, case_sensitive)

    def grep_summaries(
        self,
        pattern: str,
        tags: Optional[Iterable[str]] = None,
        case_sensitive: bool = False,
    ) -> List[NoteSummary]:
        notes = self.grep(pattern, tags=tags, case_sensitive=case_sensitive)
        return [note.to_summary(self.preview_length) for note in notes]

    def list_tags(self) -> List[TagCount]:
        """All tags with note counts, most used first."""
        return self.repository.list_tags()

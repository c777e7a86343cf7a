"""List, count and grep over the note store.

All queries are lock-free. Candidates come from the tag index when a tag
filter is given, otherwise from a scan of the records directory.
"""
import logging
import re
from typing import Iterable, List, Optional

from tagnote.exceptions import ErrorCode, ValidationError
from tagnote.models.schema import Note, NoteQuery
from tagnote.storage.record_store import RecordStore
from tagnote.storage.tag_index import TagIndex

logger = logging.getLogger(__name__)


def compile_pattern(pattern: str, case_sensitive: bool = False) -> "re.Pattern[str]":
    """Compile a grep pattern, folding case with an inline ``(?i)`` flag.

    Raises:
        ValidationError: If the pattern is not a valid regular expression.
    """
    source = pattern if case_sensitive else f"(?i){pattern}"
    try:
        return re.compile(source)
    except re.error as e:
        raise ValidationError(
            f"Invalid search pattern: {e}",
            field="pattern",
            value=pattern,
            code=ErrorCode.SEARCH_INVALID_PATTERN,
        ) from e


def sort_notes(notes: List[Note]) -> List[Note]:
    """Most recently modified first; ties go to the higher ID."""
    return sorted(notes, key=lambda n: (n.modified, n.id), reverse=True)


def apply_limit(notes: List[Note], limit: Optional[int]) -> List[Note]:
    """Truncate after sorting. None or 0 means no limit."""
    if not limit:
        return notes
    return notes[:limit]


class QueryEngine:
    """Resolves candidates, loads them and applies filters and ordering."""

    def __init__(self, records: RecordStore, index: TagIndex):
        self._records = records
        self._index = index

    def candidate_ids(self, tags: Optional[Iterable[str]] = None) -> List[int]:
        """IDs to consider: union over the given tags (OR), or every note."""
        if tags:
            return sorted(self._index.ids_with_any_tag(tags))
        return sorted(self._records.list_ids())

    def load(self, note_id: int) -> Optional[Note]:
        """Load a note with its derived tags, or None if it has no record."""
        record = self._records.read(note_id)
        if record is None:
            return None
        return Note.from_record(note_id, record, self._index.tags_of(note_id))

    def _load_all(self, ids: Iterable[int]) -> List[Note]:
        notes = []
        for note_id in ids:
            note = self.load(note_id)
            if note is None:
                # Deleted between the index lookup and the read
                logger.debug(f"Skipping note {note_id}: record disappeared during query")
                continue
            notes.append(note)
        return notes

    def _filtered(self, query: NoteQuery) -> List[Note]:
        notes = self._load_all(self.candidate_ids(query.tags))
        if query.since is not None:
            notes = [n for n in notes if n.modified >= query.since]
        if query.until is not None:
            notes = [n for n in notes if n.modified <= query.until]
        return sort_notes(notes)

    def list(self, query: Optional[NoteQuery] = None) -> List[Note]:
        """Notes matching the filter, sorted and truncated to the limit."""
        query = query or NoteQuery()
        return apply_limit(self._filtered(query), query.limit)

    def count(self, query: Optional[NoteQuery] = None) -> int:
        """Number of notes matching the filter, ignoring its limit."""
        query = query or NoteQuery()
        return len(self._filtered(query.without_limit()))

    def grep(
        self,
        pattern: str,
        tags: Optional[Iterable[str]] = None,
        case_sensitive: bool = False,
    ) -> List[Note]:
        """Notes whose title or body matches a regular expression.

        The pattern is compiled before any note is read, so an invalid
        pattern fails even on an empty store.
        """
        regex = compile_pattern(pattern, case_sensitive)
        matches = [
            note
            for note in self._load_all(self.candidate_ids(tags))
            if regex.search(note.title) or regex.search(note.body)
        ]
        return sort_notes(matches)

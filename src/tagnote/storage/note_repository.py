"""Repository for note storage and retrieval.

Composes the store lock, ID allocator, record store, tag index and query
engine into the single set of operations external code may call. Values
passed in are expected to be normalized already (see ``NoteService``).
"""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tagnote.config import config
from tagnote.exceptions import ConfigurationError, ErrorCode, StorageError
from tagnote.models.schema import (
    Note,
    NoteQuery,
    NoteRecord,
    NoteUpdate,
    TagCount,
    utc_timestamp,
)
from tagnote.observability import timed_operation
from tagnote.storage.id_allocator import IdAllocator
from tagnote.storage.links import get_link_encoding
from tagnote.storage.lock import StoreLock
from tagnote.storage.query import QueryEngine
from tagnote.storage.record_store import RecordStore
from tagnote.storage.tag_index import IndexReport, TagIndex

logger = logging.getLogger(__name__)


class NoteRepository:
    """File-based note store rooted at one directory.

    Mutations (create, update, delete, import) take the whole-store lock;
    reads never do. Within a mutation the record is renamed into place
    before any tag link changes, and removed before its links are, so a
    crash in between leaves at worst an untagged record.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        link_mode: Optional[str] = None,
        create: bool = True,
    ):
        """Open (and by default create) a store.

        Args:
            root: Store root directory. If None, uses the configured store path.
            link_mode: ``auto``, ``symlink`` or ``pointer``. If None, uses config.
            create: Create the store layout if it does not exist yet.

        Raises:
            ConfigurationError: If the store does not exist and create is False.
            StorageError: If the layout cannot be created.
        """
        self.root = Path(root) if root else config.get_store_path()
        if not create and not self.root.is_dir():
            raise ConfigurationError(
                f"No note store at {self.root}",
                config_key="store_dir",
                code=ErrorCode.STORE_NOT_FOUND,
            )

        self._lock = StoreLock(self.root)
        self.records = RecordStore(self.root)
        self.ids = IdAllocator(self.root, self.records)
        self.index = TagIndex(
            self.root, self.records, get_link_encoding(link_mode or config.link_mode)
        )
        self.query = QueryEngine(self.records, self.index)

        for directory in (self.root, self.records.notes_dir, self.index.tags_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    "Failed to create store directory",
                    operation="open",
                    path=str(directory),
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e

        self._recover_if_needed()
        logger.debug(
            f"NoteRepository opened: root={self.root}, "
            f"link_mode={self.index.encoding.name}"
        )

    def _recover_if_needed(self) -> None:
        """Rebuild the counter and clear crash debris, once, at open time.

        Skipped (and no lock taken) when the store is already consistent,
        so opening a healthy store for reading never blocks.
        """
        if not (self.ids.needs_recovery() or self.records.has_temp_files()):
            return
        with self._lock.acquire() as lock:
            self.ids.recover(lock)
            self.records.cleanup_temp_files(lock)

    @property
    def lock(self) -> StoreLock:
        return self._lock

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        body: str = "",
        tags: Optional[List[str]] = None,
        references: Optional[List[str]] = None,
    ) -> int:
        """Store a new note and return its ID.

        An ID allocated before a failed write is not reused.
        """
        tags = tags or []
        with timed_operation("repo.create", tag_count=len(tags)) as op:
            with self._lock.acquire() as lock:
                note_id = self.ids.next_id(lock)
                record = NoteRecord(
                    title=title,
                    body=body,
                    references=list(references or []),
                    modified=utc_timestamp(),
                )
                self.records.write(lock, note_id, record)
                self.index.set_tags(lock, note_id, tags)
            op["note_id"] = note_id
        logger.info(f"Created note {note_id}")
        return note_id

    def update(self, note_id: int, changes: NoteUpdate) -> bool:
        """Overwrite the provided fields of an existing note.

        The record is rewritten with a fresh modified timestamp whenever at
        least one field is provided. Tags, when provided, replace the
        note's whole tag set; links are only rewritten if the set changed.

        Returns:
            False if the note does not exist, True otherwise.
        """
        with timed_operation("repo.update", note_id=note_id) as op:
            with self._lock.acquire() as lock:
                current = self.records.read(note_id)
                if current is None:
                    op["found"] = False
                    return False

                updated = current.model_copy()
                if changes.title is not None:
                    updated.title = changes.title
                if changes.body is not None:
                    updated.body = changes.body
                if changes.references is not None:
                    updated.references = list(changes.references)
                provided = any(
                    value is not None
                    for value in (changes.title, changes.body, changes.tags, changes.references)
                )
                tags_changed = (
                    changes.tags is not None
                    and sorted(changes.tags) != self.index.tags_of(note_id)
                )

                if provided:
                    updated.modified = utc_timestamp()
                    self.records.write(lock, note_id, updated)
                if tags_changed:
                    self.index.set_tags(lock, note_id, changes.tags)
                op["changed"] = provided
        logger.info(f"Updated note {note_id}")
        return True

    def delete(self, note_id: int) -> bool:
        """Delete a note and its tag links.

        Returns:
            False if the note does not exist, True otherwise.
        """
        with timed_operation("repo.delete", note_id=note_id):
            with self._lock.acquire() as lock:
                if not self.records.delete(lock, note_id):
                    return False
                self.index.remove_note(lock, note_id)
        logger.info(f"Deleted note {note_id}")
        return True

    def import_notes(self, notes: Iterable[Tuple[int, NoteRecord, List[str]]]) -> int:
        """Write notes under caller-chosen IDs, bypassing ID allocation.

        Used to bring notes over from another backend without renumbering
        them. Existing records with the same ID are overwritten. The counter
        is advanced past the largest imported ID.

        Returns:
            Number of notes written.
        """
        written = 0
        highest = 0
        with timed_operation("repo.import") as op:
            with self._lock.acquire() as lock:
                for note_id, record, tags in notes:
                    self.records.write(lock, note_id, record)
                    self.index.set_tags(lock, note_id, tags)
                    written += 1
                    highest = max(highest, note_id)
                if highest:
                    self.ids.ensure_at_least(lock, highest)
            op["result_count"] = written
        logger.info(f"Imported {written} note(s) into {self.root}")
        return written

    def import_note(self, note_id: int, record: NoteRecord, tags: List[str]) -> None:
        """Write a single note under a caller-chosen ID."""
        self.import_notes([(note_id, record, tags)])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, note_id: int) -> Optional[Note]:
        """Load a note, or None if it does not exist."""
        return self.query.load(note_id)

    def list(self, query: Optional[NoteQuery] = None) -> List[Note]:
        with timed_operation("repo.list") as op:
            notes = self.query.list(query)
            op["result_count"] = len(notes)
        return notes

    def count(self, query: Optional[NoteQuery] = None) -> int:
        return self.query.count(query)

    def grep(
        self,
        pattern: str,
        tags: Optional[List[str]] = None,
        case_sensitive: bool = False,
    ) -> List[Note]:
        with timed_operation("repo.grep", case_sensitive=case_sensitive) as op:
            notes = self.query.grep(pattern, tags, case_sensitive)
            op["result_count"] = len(notes)
        return notes

    def list_tags(self) -> List[TagCount]:
        return self.index.counts()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def check_index(self, repair: bool = False) -> IndexReport:
        """Check that every tag link resolves; optionally drop dangling ones."""
        if not repair:
            return self.index.check()
        with self._lock.acquire() as lock:
            return self.index.check(lock, repair=True)

    def store_info(self) -> Dict[str, Any]:
        """Summary of the store for status displays."""
        tags = self.list_tags()
        return {
            "root": str(self.root),
            "link_mode": self.index.encoding.name,
            "note_count": len(self.records.list_ids()),
            "tag_count": len(tags),
            "last_id": self.ids.current(),
        }


def open_store(
    root: Optional[Path] = None,
    link_mode: Optional[str] = None,
) -> NoteRepository:
    """Open an existing store without creating one.

    Raises:
        ConfigurationError: If nothing exists at root.
    """
    return NoteRepository(root, link_mode=link_mode, create=False)

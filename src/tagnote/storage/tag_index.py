"""Tag index: one directory per tag, one link entry per tagged note.

```
<root>/tags/<tag>/<id>.json  ->  ../../notes/<id>.json
```

The index is a projection over live records. A tag exists only while its
directory holds at least one link; directories emptied by a mutation are
pruned before the mutation returns.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from tagnote.exceptions import ErrorCode, InternalError, StorageError
from tagnote.models.schema import TagCount
from tagnote.storage.links import LinkEncoding, link_exists, resolve_link
from tagnote.storage.lock import LockHandle
from tagnote.storage.record_store import (
    NOTES_DIR_NAME,
    RECORD_SUFFIX,
    RecordStore,
    parse_record_id,
)

logger = logging.getLogger(__name__)

TAGS_DIR_NAME = "tags"


@dataclass
class IndexReport:
    """Result of an index integrity check.

    Attributes:
        links_checked: Number of link entries examined
        dangling: (tag, note_id) pairs whose link resolves to no record
        stray_entries: Paths under tags/ that are not link entries
        untagged_ids: Live notes without any tag (valid, listed for information)
        errors: The invariant violations found, one per dangling link
        repaired: Number of dangling links removed (repair mode only)
    """

    links_checked: int = 0
    dangling: List[Tuple[str, int]] = field(default_factory=list)
    stray_entries: List[str] = field(default_factory=list)
    untagged_ids: List[int] = field(default_factory=list)
    errors: List[InternalError] = field(default_factory=list)
    repaired: int = 0

    @property
    def ok(self) -> bool:
        return not self.dangling and not self.stray_entries


class TagIndex:
    """Maintains and queries the note/tag link directories."""

    def __init__(self, root: Path, records: RecordStore, encoding: LinkEncoding):
        self.tags_dir = Path(root) / TAGS_DIR_NAME
        self._records = records
        self._encoding = encoding

    @property
    def encoding(self) -> LinkEncoding:
        return self._encoding

    def tag_dir(self, tag: str) -> Path:
        return self.tags_dir / tag

    def link_path(self, tag: str, note_id: int) -> Path:
        return self.tags_dir / tag / f"{note_id}{RECORD_SUFFIX}"

    @staticmethod
    def link_target(note_id: int) -> str:
        """Relative path from a tag directory to the note's record."""
        return f"../../{NOTES_DIR_NAME}/{note_id}{RECORD_SUFFIX}"

    def _tag_names(self) -> List[str]:
        try:
            with os.scandir(self.tags_dir) as entries:
                return [e.name for e in entries if e.is_dir(follow_symlinks=False)]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(
                "Failed to scan tags directory",
                operation="index_scan",
                path=str(self.tags_dir),
                code=ErrorCode.INDEX_READ_FAILED,
                original_error=e,
            ) from e

    def _link_ids(self, tag: str) -> List[int]:
        tag_dir = self.tag_dir(tag)
        try:
            with os.scandir(tag_dir) as entries:
                return [
                    note_id
                    for note_id in (parse_record_id(e.name) for e in entries)
                    if note_id is not None
                ]
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as e:
            raise StorageError(
                f"Failed to read tag '{tag}'",
                operation="index_scan",
                path=str(tag_dir),
                code=ErrorCode.INDEX_READ_FAILED,
                original_error=e,
            ) from e

    def _unlink(self, link: Path) -> bool:
        try:
            os.remove(link)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                "Failed to remove tag link",
                operation="index_update",
                path=str(link),
                code=ErrorCode.INDEX_WRITE_FAILED,
                original_error=e,
            ) from e

    # ------------------------------------------------------------------
    # Mutations (store lock required)
    # ------------------------------------------------------------------

    def remove_note(self, lock: LockHandle, note_id: int) -> List[str]:
        """Remove every link entry for a note and prune emptied tags.

        Returns:
            The tags the note was removed from.
        """
        lock.require("tag index update")
        removed = [
            tag
            for tag in self._tag_names()
            if self._unlink(self.link_path(tag, note_id))
        ]
        if removed:
            self.prune_empty(lock)
        return sorted(removed)

    def set_tags(self, lock: LockHandle, note_id: int, tags: Iterable[str]) -> None:
        """Replace a note's tag set. Tags must already be normalized.

        Old links are removed first, then one link per tag is created, then
        empty tag directories are pruned. An empty tag set is valid.
        """
        lock.require("tag index update")
        for tag in self._tag_names():
            self._unlink(self.link_path(tag, note_id))

        target = self.link_target(note_id)
        for tag in tags:
            link = self.link_path(tag, note_id)
            try:
                link.parent.mkdir(parents=True, exist_ok=True)
                self._encoding.create(link, target)
            except OSError as e:
                raise StorageError(
                    f"Failed to link note {note_id} to tag '{tag}'",
                    operation="index_update",
                    path=str(link),
                    code=ErrorCode.INDEX_WRITE_FAILED,
                    original_error=e,
                ) from e

        self.prune_empty(lock)

    def prune_empty(self, lock: LockHandle) -> int:
        """Remove tag directories with no entries left.

        ``rmdir`` refuses non-empty directories, so a concurrently
        repopulated tag is never lost; such races are ignored.
        """
        lock.require("tag pruning")
        pruned = 0
        for tag in self._tag_names():
            try:
                os.rmdir(self.tag_dir(tag))
                pruned += 1
            except OSError:
                continue
        if pruned:
            logger.debug(f"Pruned {pruned} empty tag director{'y' if pruned == 1 else 'ies'}")
        return pruned

    # ------------------------------------------------------------------
    # Reads (lock-free)
    # ------------------------------------------------------------------

    def tags_of(self, note_id: int) -> List[str]:
        """Tags currently linked to a note, sorted."""
        return sorted(
            tag
            for tag in self._tag_names()
            if link_exists(self.link_path(tag, note_id))
        )

    def ids_with_tag(self, tag: str) -> List[int]:
        """IDs linked under one tag; empty if the tag does not exist."""
        return self._link_ids(tag)

    def ids_with_any_tag(self, tags: Iterable[str]) -> Set[int]:
        """Union of ``ids_with_tag`` over several tags."""
        ids: Set[int] = set()
        for tag in tags:
            ids.update(self._link_ids(tag))
        return ids

    def counts(self) -> List[TagCount]:
        """Tags with their link counts, most used first, then by name."""
        counts = []
        for tag in self._tag_names():
            count = len(self._link_ids(tag))
            if count > 0:
                counts.append(TagCount(name=tag, count=count))
        counts.sort(key=lambda tc: (-tc.count, tc.name))
        return counts

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def check(self, lock: Optional[LockHandle] = None, repair: bool = False) -> IndexReport:
        """Verify every link entry resolves to a live record.

        With ``repair=True`` (store lock required) dangling links are
        removed and emptied tags pruned. Untagged notes are reported but are
        not an error.
        """
        if repair:
            if lock is None:
                raise InternalError(
                    "Store lock must be held for index repair",
                    code=ErrorCode.LOCK_NOT_HELD,
                )
            lock.require("index repair")

        report = IndexReport()
        tagged: Set[int] = set()
        for tag in sorted(self._tag_names()):
            tag_dir = self.tag_dir(tag)
            try:
                names = sorted(os.listdir(tag_dir))
            except OSError as e:
                raise StorageError(
                    f"Failed to read tag '{tag}'",
                    operation="index_check",
                    path=str(tag_dir),
                    code=ErrorCode.INDEX_READ_FAILED,
                    original_error=e,
                ) from e
            for name in names:
                note_id = parse_record_id(name)
                if note_id is None:
                    report.stray_entries.append(f"{tag}/{name}")
                    continue
                report.links_checked += 1
                link = tag_dir / name
                try:
                    resolved = resolve_link(link)
                except InternalError as e:
                    report.dangling.append((tag, note_id))
                    report.errors.append(e)
                    continue
                if resolved.name != name:
                    report.dangling.append((tag, note_id))
                    report.errors.append(
                        InternalError(
                            f"Tag link {tag}/{name} points at {resolved.name}",
                            details={"link": str(link)},
                        )
                    )
                    continue
                tagged.add(note_id)

        report.untagged_ids = sorted(set(self._records.list_ids()) - tagged)

        if repair and report.dangling:
            for tag, note_id in report.dangling:
                if self._unlink(self.link_path(tag, note_id)):
                    report.repaired += 1
            self.prune_empty(lock)
            logger.warning(f"Removed {report.repaired} dangling tag link(s)")
        return report

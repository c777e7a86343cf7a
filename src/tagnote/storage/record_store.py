"""Note record files: ``<root>/notes/<id>.json``."""
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from tagnote.exceptions import ErrorCode, RecordDecodeError, StorageError
from tagnote.models.schema import NoteRecord
from tagnote.storage.lock import LockHandle
from tagnote.utils import TEMP_SUFFIX, atomic_write_text

logger = logging.getLogger(__name__)

NOTES_DIR_NAME = "notes"
RECORD_SUFFIX = ".json"


def parse_record_id(name: str) -> Optional[int]:
    """Return the note ID encoded in a record or link filename, if any."""
    if not name.endswith(RECORD_SUFFIX):
        return None
    stem = name[: -len(RECORD_SUFFIX)]
    if not stem.isdigit():
        return None
    note_id = int(stem)
    return note_id if note_id > 0 else None


class RecordStore:
    """Reads and writes individual note records.

    Writes go through a temp file and an atomic rename, so readers only
    ever see complete records and never need the store lock.
    """

    def __init__(self, root: Path):
        self.notes_dir = Path(root) / NOTES_DIR_NAME

    def path_for(self, note_id: int) -> Path:
        return self.notes_dir / f"{note_id}{RECORD_SUFFIX}"

    def exists(self, note_id: int) -> bool:
        return self.path_for(note_id).is_file()

    def read(self, note_id: int) -> Optional[NoteRecord]:
        """Read a record.

        Returns:
            The record, or None if no record file exists.

        Raises:
            RecordDecodeError: If the file exists but is not a valid record.
            StorageError: If the file cannot be read.
        """
        path = self.path_for(note_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                contents = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(
                f"Failed to read note {note_id}",
                operation="read",
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

        try:
            return NoteRecord.model_validate(json.loads(contents))
        except (ValueError, PydanticValidationError) as e:
            # json.JSONDecodeError is a ValueError
            raise RecordDecodeError(note_id, path=str(path), original_error=e) from e

    def write(self, lock: LockHandle, note_id: int, record: NoteRecord) -> None:
        """Atomically write a record, replacing any previous version."""
        lock.require("record write")
        path = self.path_for(note_id)
        contents = json.dumps(record.model_dump(), indent=2, ensure_ascii=False)
        try:
            atomic_write_text(path, contents + "\n")
        except OSError as e:
            raise StorageError(
                f"Failed to write note {note_id}",
                operation="write",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Wrote record {note_id}")

    def delete(self, lock: LockHandle, note_id: int) -> bool:
        """Remove a record. Returns whether it existed."""
        lock.require("record delete")
        path = self.path_for(note_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(
                f"Failed to delete note {note_id}",
                operation="delete",
                path=str(path),
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Deleted record {note_id}")
        return True

    def list_ids(self) -> List[int]:
        """All note IDs with a record file, in no particular order."""
        try:
            with os.scandir(self.notes_dir) as entries:
                return [
                    note_id
                    for note_id in (parse_record_id(entry.name) for entry in entries)
                    if note_id is not None
                ]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(
                "Failed to scan notes directory",
                operation="list",
                path=str(self.notes_dir),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def max_id(self) -> int:
        """Largest note ID with a record file, or 0."""
        return max(self.list_ids(), default=0)

    def cleanup_temp_files(self, lock: LockHandle) -> int:
        """Remove temp files orphaned by writes that crashed before rename.

        Only safe under the lock: an in-flight writer's temp file would
        otherwise be deleted out from under it.
        """
        lock.require("temp file cleanup")
        removed = 0
        for tmp_path in self.notes_dir.glob(f".*{TEMP_SUFFIX}"):
            try:
                tmp_path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to remove orphaned temp file {tmp_path.name}: {e}")
        if removed:
            logger.info(f"Removed {removed} orphaned temp file(s) from {self.notes_dir}")
        return removed

    def has_temp_files(self) -> bool:
        return any(self.notes_dir.glob(f".*{TEMP_SUFFIX}"))

"""Monotonic note ID allocation backed by ``<root>/counter``."""
import logging
from pathlib import Path
from typing import Optional

from tagnote.exceptions import ErrorCode, StorageError
from tagnote.storage.lock import LockHandle
from tagnote.storage.record_store import RecordStore
from tagnote.utils import TEMP_SUFFIX, atomic_write_text

logger = logging.getLogger(__name__)

COUNTER_FILE_NAME = "counter"


class IdAllocator:
    """Hands out strictly increasing note IDs.

    The counter holds the last assigned ID and is only ever increased, so
    IDs of deleted notes are never reissued. All writes happen under the
    store lock.
    """

    def __init__(self, root: Path, records: RecordStore):
        self.counter_path = Path(root) / COUNTER_FILE_NAME
        self._records = records

    def _read_counter(self) -> Optional[int]:
        """Return the persisted counter, or None if missing or unparseable."""
        try:
            text = self.counter_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(
                "Failed to read ID counter",
                operation="next_id",
                path=str(self.counter_path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        if not (text.isascii() and text.isdigit()):
            logger.warning(f"Ignoring unparseable ID counter {text[:20]!r}")
            return None
        return int(text)

    def _write_counter(self, value: int) -> None:
        try:
            atomic_write_text(self.counter_path, str(value))
        except OSError as e:
            raise StorageError(
                "Failed to write ID counter",
                operation="next_id",
                path=str(self.counter_path),
                code=ErrorCode.COUNTER_WRITE_FAILED,
                original_error=e,
            ) from e

    def needs_recovery(self) -> bool:
        """Whether the counter is missing or corrupt."""
        return self._read_counter() is None

    def recover(self, lock: LockHandle) -> int:
        """Rebuild the counter from the largest record ID on disk.

        Run once when a store is opened without a usable counter (fresh
        store, migrated store, or corruption). Never lowers a valid counter.
        """
        lock.require("counter recovery")
        for tmp_path in self.counter_path.parent.glob(f".{COUNTER_FILE_NAME}.*{TEMP_SUFFIX}"):
            try:
                tmp_path.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove orphaned counter temp file: {e}")

        current = self._read_counter()
        if current is not None:
            return current
        scanned = self._records.max_id()
        self._write_counter(scanned)
        logger.info(f"Initialized ID counter at {scanned} from {self._records.notes_dir}")
        return scanned

    def current(self) -> int:
        """Last assigned ID, falling back to a record scan. Lock-free."""
        value = self._read_counter()
        if value is None:
            return self._records.max_id()
        return value

    def next_id(self, lock: LockHandle) -> int:
        """Allocate the next ID. Must be called with the store lock held."""
        lock.require("ID allocation")
        current = self._read_counter()
        if current is None:
            current = self._records.max_id()
        next_id = current + 1
        self._write_counter(next_id)
        return next_id

    def ensure_at_least(self, lock: LockHandle, value: int) -> int:
        """Raise the counter to at least value (used after importing IDs)."""
        lock.require("counter update")
        current = self._read_counter()
        if current is None:
            current = self._records.max_id()
        if value > current:
            self._write_counter(value)
            return value
        return current

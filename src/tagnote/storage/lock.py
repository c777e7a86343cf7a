"""Whole-store exclusive lock.

The lock is an advisory lock on ``<root>/.lock`` so that separate CLI
processes exclude each other, not just threads of one process. Every
mutating call path receives the held ``LockHandle`` explicitly.
"""
import logging
import os
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from tagnote.exceptions import ErrorCode, InternalError, StorageError

# File locking - platform specific
if sys.platform != "win32":
    import fcntl

    HAS_FCNTL = True
else:
    import msvcrt

    HAS_FCNTL = False

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".lock"

# Poll interval for platforms without a blocking lock call
_WIN_RETRY_SECONDS = 0.05


def _lock_fd(fd: int) -> None:
    """Block until an exclusive lock on fd is held."""
    if HAS_FCNTL:
        fcntl.flock(fd, fcntl.LOCK_EX)
        return
    os.lseek(fd, 0, os.SEEK_SET)
    while True:
        try:
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            return
        except OSError:
            time.sleep(_WIN_RETRY_SECONDS)


def _unlock_fd(fd: int) -> None:
    if HAS_FCNTL:
        fcntl.flock(fd, fcntl.LOCK_UN)
        return
    os.lseek(fd, 0, os.SEEK_SET)
    msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)


class LockHandle:
    """A held store lock.

    Obtained from ``StoreLock.acquire()`` and released when the ``with``
    block ends, on every exit path.
    """

    def __init__(self, owner: "StoreLock", fd: int):
        self._owner = owner
        self._fd: Optional[int] = fd

    @property
    def held(self) -> bool:
        return self._fd is not None

    def require(self, operation: str) -> None:
        """Raise unless this handle still holds the lock."""
        if not self.held:
            raise InternalError(
                f"Store lock must be held for {operation}",
                code=ErrorCode.LOCK_NOT_HELD,
                details={"operation": operation},
            )

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            _unlock_fd(fd)
        except OSError as e:
            # Closing the descriptor below drops the lock regardless
            logger.warning(f"Failed to unlock {self._owner.lock_path}: {e}")
        finally:
            os.close(fd)
            self._owner._released(self)
            logger.debug(f"Released store lock {self._owner.lock_path}")

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class StoreLock:
    """Factory for the exclusive, store-wide lock.

    Acquisition blocks indefinitely; there is no timeout. The lock is not
    reentrant: acquiring it again from the same thread through the same
    StoreLock while a handle is outstanding raises ``InternalError`` instead
    of deadlocking. Other threads block like other processes do.
    """

    def __init__(self, root: Path):
        self.lock_path = Path(root) / LOCK_FILE_NAME
        self._local = threading.local()

    @property
    def _active(self) -> Optional[LockHandle]:
        return getattr(self._local, "active", None)

    @property
    def is_held(self) -> bool:
        """Whether the calling thread holds the lock through this object."""
        return self._active is not None and self._active.held

    def acquire(self) -> LockHandle:
        """Block until the store lock is held and return its handle.

        Raises:
            InternalError: If this StoreLock already holds the lock.
            StorageError: If the lock file cannot be opened or locked.
        """
        if self.is_held:
            raise InternalError(
                "Store lock is not reentrant",
                code=ErrorCode.LOCK_REENTERED,
                details={"path": str(self.lock_path)},
            )

        try:
            fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR, 0o644)
        except OSError as e:
            raise StorageError(
                "Failed to open lock file",
                operation="lock",
                path=str(self.lock_path),
                code=ErrorCode.LOCK_FAILED,
                original_error=e,
            ) from e

        try:
            _lock_fd(fd)
        except OSError as e:
            os.close(fd)
            raise StorageError(
                "Failed to acquire store lock",
                operation="lock",
                path=str(self.lock_path),
                code=ErrorCode.LOCK_FAILED,
                original_error=e,
            ) from e

        handle = LockHandle(self, fd)
        self._local.active = handle
        logger.debug(f"Acquired store lock {self.lock_path}")
        return handle

    def _released(self, handle: LockHandle) -> None:
        if self._active is handle:
            self._local.active = None

"""Link entries of the tag index.

A link entry ``tags/<tag>/<id>.json`` points at ``notes/<id>.json`` through
a relative path. Two encodings are supported and read identically:

- a native symbolic link whose target is the relative path
- a plain "pointer" file whose contents are the relative path, for
  platforms or filesystems where symbolic links are unavailable
"""
import errno
import logging
import os
import posixpath
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

from tagnote.exceptions import ErrorCode, InternalError
from tagnote.utils import atomic_write_text

logger = logging.getLogger(__name__)


class LinkEncoding(ABC):
    """One way of persisting a link entry on disk."""

    name: str = ""

    @abstractmethod
    def create(self, link: Path, target: str) -> None:
        """Create a link at ``link`` pointing at the relative path ``target``.

        Raises:
            OSError: If the link cannot be created.
        """

    @abstractmethod
    def read_target(self, link: Path) -> Optional[str]:
        """Return the stored relative target, or None if ``link`` is not
        written in this encoding."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class SymlinkEncoding(LinkEncoding):
    """Native filesystem symbolic link."""

    name = "symlink"

    def create(self, link: Path, target: str) -> None:
        os.symlink(target, link)

    def read_target(self, link: Path) -> Optional[str]:
        if not os.path.islink(link):
            return None
        return os.readlink(link).replace("\\", "/")


class PointerFileEncoding(LinkEncoding):
    """Plain file holding the relative target path."""

    name = "pointer"

    def create(self, link: Path, target: str) -> None:
        atomic_write_text(link, target)

    def read_target(self, link: Path) -> Optional[str]:
        if os.path.islink(link) or not os.path.isfile(link):
            return None
        with open(link, "r", encoding="utf-8") as f:
            return f.read().strip()


class AutoLinkEncoding(LinkEncoding):
    """Symbolic links, falling back to pointer files once the platform
    refuses to create one (e.g. Windows without the symlink privilege)."""

    name = "auto"

    def __init__(self):
        self._symlink = SymlinkEncoding()
        self._pointer = PointerFileEncoding()
        self.symlinks_refused = False

    def create(self, link: Path, target: str) -> None:
        if not self.symlinks_refused:
            try:
                self._symlink.create(link, target)
                return
            except NotImplementedError:
                pass
            except OSError as e:
                if e.errno in (errno.EEXIST, errno.ENOENT):
                    raise
            self.symlinks_refused = True
            logger.info("Symbolic links unavailable; using pointer files for tag links")
        self._pointer.create(link, target)

    def read_target(self, link: Path) -> Optional[str]:
        return resolve_target(link)


# Read side: every encoding, tried in turn
_READERS: Tuple[LinkEncoding, ...] = (SymlinkEncoding(), PointerFileEncoding())


def resolve_target(link: Path) -> Optional[str]:
    """Return the relative target of a link entry in any encoding, or None
    if nothing exists at ``link``."""
    for reader in _READERS:
        target = reader.read_target(link)
        if target is not None:
            return target
    return None


def resolve_link(link: Path) -> Path:
    """Resolve a link entry to the path of the record it points at.

    Raises:
        InternalError: If the entry is missing, empty, or points at nothing.
    """
    try:
        target = resolve_target(link)
    except OSError as e:
        raise InternalError(
            f"Unreadable tag link {link.parent.name}/{link.name}",
            details={"link": str(link), "error": str(e)[:200]},
        ) from e
    if not target:
        raise InternalError(
            f"Tag link {link.parent.name}/{link.name} has no target",
            details={"link": str(link)},
        )
    resolved = Path(posixpath.normpath(posixpath.join(link.parent.as_posix(), target)))
    if not resolved.is_file():
        raise InternalError(
            f"Tag link {link.parent.name}/{link.name} points at a missing record",
            code=ErrorCode.DANGLING_LINK,
            details={"link": str(link), "target": target},
        )
    return resolved


def link_exists(link: Path) -> bool:
    """Whether a link entry exists, even if its target is gone."""
    return os.path.lexists(link)


def get_link_encoding(mode: str) -> LinkEncoding:
    """Map a configured link mode to an encoding."""
    if mode == "symlink":
        return SymlinkEncoding()
    if mode == "pointer":
        return PointerFileEncoding()
    if mode == "auto":
        return AutoLinkEncoding()
    raise ValueError(f"Unknown link mode: {mode!r}")

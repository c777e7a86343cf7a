"""Utility functions for tagnote."""
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List

from tagnote.exceptions import ErrorCode, ValidationError

logger = logging.getLogger(__name__)

# Suffix of in-flight temp files; never matches a record or link name
TEMP_SUFFIX = ".tmp"

_UNSAFE_TAG_CHARS = ("/", "\\", "\x00")


def fsync_directory(directory: Path) -> None:
    """Flush a directory entry to disk so a completed rename survives a crash.

    Best effort: not every platform allows opening a directory.
    """
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_text(path: Path, text: str) -> None:
    """Write text to path via a temp file in the same directory and a rename.

    The rename is the only step that makes the new content visible; a crash
    before it leaves the previous version intact and an orphaned temp file.

    Raises:
        OSError: If any step fails. The temp file is removed first.
    """
    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=TEMP_SUFFIX
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
    fsync_directory(path.parent)


def validate_tag_name(tag: str) -> str:
    """Validate that a normalized tag can be used as a directory name.

    Raises:
        ValidationError: If the tag contains a path separator or is '.'/'..'.
    """
    if tag in (".", "..") or any(c in tag for c in _UNSAFE_TAG_CHARS):
        raise ValidationError(
            f"Invalid tag name: {tag!r}",
            field="tags",
            value=tag,
            code=ErrorCode.TAG_INVALID,
        )
    return tag


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """Trim, lowercase, drop empties, dedupe and sort tag names.

    Examples:
        [" A ", "a", "", "b"] -> ["a", "b"]
    """
    normalized = {t.strip().lower() for t in tags}
    normalized.discard("")
    return sorted(validate_tag_name(t) for t in normalized)


def normalize_references(references: Iterable[str]) -> List[str]:
    """Trim, drop empties and dedupe references, keeping first-seen order."""
    seen = set()
    result = []
    for ref in references:
        ref = ref.strip()
        if ref and ref not in seen:
            seen.add(ref)
            result.append(ref)
    return result


def split_csv(value: str) -> List[str]:
    """Split a comma-separated CLI/tool argument into trimmed, non-empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]

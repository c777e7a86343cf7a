"""Import notes from a legacy SQLite database into the file store.

Notes keep their original IDs and modification times. The import runs
under one store lock, then the legacy file is removed so it is only ever
imported once.
"""
import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError

from tagnote.config import LEGACY_DB_FILE
from tagnote.exceptions import LegacyImportError, ValidationError
from tagnote.models.legacy_db import get_legacy_engine, note_tags, notes, tags
from tagnote.models.schema import NoteRecord, utc_timestamp, validate_timestamp
from tagnote.storage.note_repository import NoteRepository
from tagnote.utils import normalize_references, normalize_tags

logger = logging.getLogger(__name__)

LegacyNote = Tuple[int, NoteRecord, List[str]]


def find_legacy_db(store_root: Path) -> Optional[Path]:
    """Return the legacy database inside a store root, if one is present."""
    candidate = Path(store_root) / LEGACY_DB_FILE
    return candidate if candidate.is_file() else None


def _parse_references(raw: Optional[str], note_id: int) -> List[str]:
    if not raw:
        return []
    value = json.loads(raw)
    if not isinstance(value, list):
        raise ValueError(f"references of note {note_id} is not a JSON array")
    return normalize_references(str(item) for item in value)


def _modified_of(raw: Optional[str], note_id: int) -> str:
    try:
        return validate_timestamp(raw or "", "updated_at")
    except ValueError:
        logger.warning(
            f"Legacy note {note_id} has unusable updated_at {raw!r}; using current time"
        )
        return utc_timestamp()


class LegacyImporter:
    """Copies every note of a legacy database into a ``NoteRepository``."""

    def __init__(self, repository: NoteRepository):
        self.repository = repository

    def read_notes(self, db_path: Path) -> List[LegacyNote]:
        """Read all notes with their tags from a legacy database.

        Raises:
            LegacyImportError: If the database cannot be read.
        """
        engine = get_legacy_engine(db_path)
        try:
            inspector = inspect(engine)
            table_names = set(inspector.get_table_names())
            if "notes" not in table_names:
                raise LegacyImportError(
                    "Legacy database has no notes table", path=str(db_path)
                )
            note_columns = {col["name"] for col in inspector.get_columns("notes")}
            has_references = "references" in note_columns

            columns = [notes.c.id, notes.c.title, notes.c.body, notes.c.updated_at]
            if has_references:
                columns.append(notes.c.references)

            tags_by_note: Dict[int, List[str]] = defaultdict(list)
            with engine.connect() as conn:
                rows = conn.execute(select(*columns).order_by(notes.c.id)).fetchall()
                if {"tags", "note_tags"} <= table_names:
                    tag_rows = conn.execute(
                        select(note_tags.c.note_id, tags.c.name).select_from(
                            note_tags.join(tags, note_tags.c.tag_id == tags.c.id)
                        )
                    ).fetchall()
                    for note_id, name in tag_rows:
                        tags_by_note[note_id].append(name)
        except SQLAlchemyError as e:
            raise LegacyImportError(
                "Failed to read legacy database", path=str(db_path), original_error=e
            ) from e
        finally:
            engine.dispose()

        result: List[LegacyNote] = []
        for row in rows:
            note_id = int(row.id)
            try:
                record = NoteRecord(
                    title=row.title,
                    body=row.body or "",
                    references=_parse_references(
                        row.references if has_references else None, note_id
                    ),
                    modified=_modified_of(row.updated_at, note_id),
                )
                note_tags_normalized = normalize_tags(tags_by_note.get(note_id, []))
            except (ValueError, ValidationError) as e:
                raise LegacyImportError(
                    f"Legacy note {note_id} cannot be converted",
                    path=str(db_path),
                    original_error=e,
                ) from e
            result.append((note_id, record, note_tags_normalized))
        return result

    def run(self, db_path: Path, remove: bool = True) -> int:
        """Import every note, then (optionally) delete the legacy database.

        Returns:
            Number of notes imported.
        """
        db_path = Path(db_path)
        legacy_notes = self.read_notes(db_path)
        logger.info(f"Importing {len(legacy_notes)} note(s) from {db_path}")
        imported = self.repository.import_notes(legacy_notes)

        if remove:
            try:
                db_path.unlink()
            except OSError as e:
                raise LegacyImportError(
                    "Imported notes but failed to remove legacy database",
                    path=str(db_path),
                    imported_count=imported,
                    original_error=e,
                ) from e
            for suffix in ("-wal", "-shm", "-journal"):
                sidecar = db_path.with_name(db_path.name + suffix)
                if sidecar.exists():
                    sidecar.unlink()
        return imported


def import_if_present(repository: NoteRepository) -> int:
    """Run the import when the store root still holds a legacy database."""
    db_path = find_legacy_db(repository.root)
    if db_path is None:
        return 0
    return LegacyImporter(repository).run(db_path)

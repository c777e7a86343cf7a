"""SQLAlchemy table definitions for the legacy SQLite note database.

Older versions kept notes in ``<store>/db.sqlite``. These tables are only
ever read, by the importer; ``create_legacy_schema`` exists so a database
in the old layout can be produced for tests and tooling.
"""
from pathlib import Path

from sqlalchemy import (Column, ForeignKey, Integer, MetaData, Table, Text,
                        create_engine, text)
from sqlalchemy.engine import Engine

metadata = MetaData()

notes = Table(
    "notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", Text, nullable=False),
    Column("body", Text, nullable=False),
    Column("created_at", Text, nullable=False, server_default=text("(datetime('now'))")),
    Column("updated_at", Text, nullable=False, server_default=text("(datetime('now'))")),
    # JSON array; absent in databases created before references existed
    Column("references", Text, nullable=False, server_default="[]"),
)

tags = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
)

note_tags = Table(
    "note_tags",
    metadata,
    Column("note_id", Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


def get_legacy_engine(db_path: Path) -> Engine:
    """Create an engine for a legacy database file."""
    return create_engine(f"sqlite:///{Path(db_path).as_posix()}")


def create_legacy_schema(engine: Engine) -> None:
    """Create the legacy tables in an empty database."""
    metadata.create_all(engine)

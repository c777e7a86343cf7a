"""Common test fixtures for tagnote."""

import tempfile
from pathlib import Path

import pytest

from tagnote.config import config
from tagnote.models.schema import NoteRecord
from tagnote.observability import metrics
from tagnote.services.note_service import NoteService
from tagnote.storage.note_repository import NoteRepository


@pytest.fixture
def store_root():
    """A fresh, not yet created store root inside a temporary directory."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "store"


@pytest.fixture
def test_config(store_root, monkeypatch):
    """Point the global config at the temporary store (auto-restored)."""
    monkeypatch.setattr(config, "store_dir", store_root)
    monkeypatch.setattr(config, "link_mode", "auto")
    yield config


@pytest.fixture
def repository(test_config, store_root):
    """A repository over a fresh store."""
    yield NoteRepository(store_root)


@pytest.fixture
def pointer_repository(store_root):
    """A repository that writes tag links as pointer files."""
    yield NoteRepository(store_root, link_mode="pointer")


@pytest.fixture
def service(repository):
    """A NoteService over the test repository."""
    yield NoteService(repository=repository)


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated per test."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def put_note(repository):
    """Place a note with a fixed ID and timestamp directly into the store."""

    def _put(note_id: int, title: str, modified: str, tags=(), body: str = "") -> None:
        record = NoteRecord(title=title, body=body, modified=modified)
        repository.import_note(note_id, record, sorted(tags))

    return _put

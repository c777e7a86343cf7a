"""File-based storage engine for tagnote."""

from tagnote.storage.id_allocator import IdAllocator
from tagnote.storage.lock import StoreLock
from tagnote.storage.note_repository import NoteRepository
from tagnote.storage.record_store import RecordStore
from tagnote.storage.tag_index import TagIndex

__all__ = [
    "IdAllocator",
    "NoteRepository",
    "RecordStore",
    "StoreLock",
    "TagIndex",
]

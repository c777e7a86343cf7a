"""True multi-process concurrency tests.

These tests spawn separate processes against one store root to verify
that the whole-store lock serializes mutations across process boundaries:
every create gets a distinct ID and every note is readable afterwards.
"""
import multiprocessing
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

# Add src to path for subprocess imports
SRC_PATH = str(Path(__file__).parent.parent / "src")


def worker_create_notes(args: Dict[str, Any]) -> Dict[str, Any]:
    """Worker that creates several notes in a separate process."""
    sys.path.insert(0, args["src_path"])

    from tagnote.services.note_service import NoteService
    from tagnote.storage.note_repository import NoteRepository

    try:
        service = NoteService(NoteRepository(Path(args["root"]), link_mode=args["link_mode"]))
        ids = [
            service.create(
                title=f"Worker {args['worker_id']} note {i}",
                body=f"Body from worker {args['worker_id']}",
                tags=["shared", f"worker-{args['worker_id']}"],
            )
            for i in range(args["count"])
        ]
        return {"success": True, "worker_id": args["worker_id"], "ids": ids}
    except Exception as e:
        return {"success": False, "worker_id": args["worker_id"], "error": str(e)}


def worker_retag(args: Dict[str, Any]) -> Dict[str, Any]:
    """Worker that repeatedly rewrites the tags of one note."""
    sys.path.insert(0, args["src_path"])

    from tagnote.services.note_service import NoteService
    from tagnote.storage.note_repository import NoteRepository

    try:
        service = NoteService(NoteRepository(Path(args["root"]), link_mode=args["link_mode"]))
        for i in range(args["count"]):
            service.update(args["note_id"], tags=[f"w{args['worker_id']}", f"round-{i % 3}"])
        return {"success": True, "worker_id": args["worker_id"]}
    except Exception as e:
        return {"success": False, "worker_id": args["worker_id"], "error": str(e)}


@pytest.mark.slow
class TestMultiProcessConcurrency:
    """Concurrent mutations from independent processes."""

    @pytest.fixture(params=["auto", "pointer"])
    def shared_root(self, request, store_root):
        from tagnote.storage.note_repository import NoteRepository

        NoteRepository(store_root, link_mode=request.param)
        return store_root, request.param

    def test_parallel_creates_get_distinct_ids(self, shared_root):
        root, link_mode = shared_root
        num_workers, per_worker = 4, 5
        worker_args = [
            {
                "src_path": SRC_PATH,
                "root": str(root),
                "link_mode": link_mode,
                "worker_id": i,
                "count": per_worker,
            }
            for i in range(num_workers)
        ]

        with multiprocessing.Pool(num_workers) as pool:
            results = pool.map(worker_create_notes, worker_args)

        failures = [r for r in results if not r["success"]]
        assert not failures, f"Workers failed: {failures}"

        all_ids = [note_id for r in results for note_id in r["ids"]]
        assert len(all_ids) == num_workers * per_worker
        assert len(set(all_ids)) == len(all_ids)
        assert sorted(all_ids) == list(range(1, len(all_ids) + 1))
        for r in results:
            assert r["ids"] == sorted(r["ids"])

        from tagnote.services.note_service import NoteService
        from tagnote.storage.note_repository import NoteRepository

        service = NoteService(NoteRepository(root, link_mode=link_mode))
        for note_id in all_ids:
            note = service.get(note_id)
            assert note is not None
            assert "shared" in note.tags
        counts = {tc.name: tc.count for tc in service.list_tags()}
        assert counts["shared"] == len(all_ids)
        assert service.repository.check_index().ok

    def test_concurrent_retagging_leaves_consistent_index(self, shared_root):
        root, link_mode = shared_root
        from tagnote.services.note_service import NoteService
        from tagnote.storage.note_repository import NoteRepository

        service = NoteService(NoteRepository(root, link_mode=link_mode))
        note_id = service.create(title="contended", tags=["start"])

        num_workers = 3
        worker_args = [
            {
                "src_path": SRC_PATH,
                "root": str(root),
                "link_mode": link_mode,
                "worker_id": i,
                "note_id": note_id,
                "count": 6,
            }
            for i in range(num_workers)
        ]
        with multiprocessing.Pool(num_workers) as pool:
            results = pool.map(worker_retag, worker_args)
        assert all(r["success"] for r in results), results

        tags = service.get(note_id).tags
        # The last writer wins with exactly one full tag set
        assert len(tags) == 2
        assert tags[0].startswith("round-")
        assert tags[1].startswith("w")
        assert {tc.name for tc in service.list_tags()} == set(tags)
        assert service.repository.check_index().ok

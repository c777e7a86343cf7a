"""Tests for NoteService and the repository operations behind it."""
import os

import pytest

from tagnote.exceptions import ErrorCode, ValidationError
from tagnote.models.schema import TIMESTAMP_PATTERN


class TestCreateAndGet:
    """Creating and reading notes."""

    def test_ids_strictly_increase(self, service):
        ids = [service.create(title=f"Note {i}", tags=["t"]) for i in range(5)]
        assert ids == sorted(set(ids))
        assert ids[0] == 1

    def test_round_trip(self, service):
        note_id = service.create(
            title="T",
            body="B\nsecond line",
            tags=["b", "a"],
            references=["r1"],
        )
        note = service.get(note_id)
        assert note.id == note_id
        assert note.title == "T"
        assert note.body == "B\nsecond line"
        assert note.tags == ["a", "b"]
        assert note.references == ["r1"]
        assert TIMESTAMP_PATTERN.match(note.modified)

    def test_tags_are_normalized(self, service):
        note_id = service.create(title="T", tags=[" A ", "a", "", "B"])
        assert service.get(note_id).tags == ["a", "b"]

    def test_references_are_normalized(self, service):
        note_id = service.create(title="T", references=[" x ", "", "y", "x"])
        assert service.get(note_id).references == ["x", "y"]

    def test_title_is_trimmed(self, service):
        note_id = service.create(title="  Spaced  ")
        assert service.get(note_id).title == "Spaced"

    @pytest.mark.parametrize("title", ["", "   ", "\n\t"])
    def test_empty_title_rejected(self, service, title):
        with pytest.raises(ValidationError) as exc_info:
            service.create(title=title)
        assert exc_info.value.code == ErrorCode.NOTE_TITLE_REQUIRED
        assert service.list() == []

    @pytest.mark.parametrize("tag", ["a/b", "..", "back\\slash"])
    def test_unsafe_tag_rejected(self, service, tag):
        with pytest.raises(ValidationError) as exc_info:
            service.create(title="T", tags=[tag])
        assert exc_info.value.code == ErrorCode.TAG_INVALID

    def test_get_missing_returns_none(self, service):
        assert service.get(99) is None

    def test_untagged_note_is_valid(self, service):
        note_id = service.create(title="Loose")
        assert service.get(note_id).tags == []
        assert service.list_tags() == []


class TestUpdate:
    """Selective updates."""

    def test_update_missing_returns_false(self, service):
        assert service.update(42, title="x") is False

    def test_update_only_provided_fields(self, service):
        note_id = service.create(title="T", body="B", tags=["a"], references=["r"])
        assert service.update(note_id, body="New body") is True
        note = service.get(note_id)
        assert note.title == "T"
        assert note.body == "New body"
        assert note.tags == ["a"]
        assert note.references == ["r"]

    def test_tags_replaced_wholesale(self, service):
        note_id = service.create(title="T", tags=["a", "b"])
        service.update(note_id, tags=["C"])
        assert service.get(note_id).tags == ["c"]
        assert [t.name for t in service.list_tags()] == ["c"]

    def test_update_to_no_tags(self, service):
        note_id = service.create(title="T", tags=["a"])
        service.update(note_id, tags=[])
        assert service.get(note_id).tags == []
        assert service.list_tags() == []

    def test_idempotent_retag(self, service, repository):
        note_id = service.create(title="T", tags=["a", "b"])
        service.update(note_id, tags=["b", "c"])
        service.update(note_id, tags=["b", "c"])
        assert sorted(os.listdir(repository.index.tags_dir)) == ["b", "c"]
        for tag in ("b", "c"):
            assert os.listdir(repository.index.tag_dir(tag)) == [f"{note_id}.json"]

    def test_timestamp_refreshed_on_change(self, service, repository, put_note):
        put_note(1, "Old", "2020-01-01 00:00:00", tags=["a"])
        service.update(1, title="New")
        assert service.get(1).modified > "2020-01-01 00:00:00"

    def test_timestamp_refreshed_on_tag_change(self, service, put_note):
        put_note(1, "Old", "2020-01-01 00:00:00", tags=["a"])
        service.update(1, tags=["b"])
        assert service.get(1).modified > "2020-01-01 00:00:00"

    def test_timestamp_refreshed_when_values_unchanged(self, service, put_note):
        put_note(1, "Same", "2020-01-01 00:00:00", tags=["a"], body="B")
        put_note(2, "Other", "2021-01-01 00:00:00")
        assert service.update(1, title="Same", body="B", tags=["A"]) is True

        note = service.get(1)
        assert note.modified > "2020-01-01 00:00:00"
        assert note.tags == ["a"]
        # An edit moves the note to the top of the listing
        assert [n.id for n in service.list()] == [1, 2]

    def test_timestamp_kept_when_no_field_provided(self, service, put_note):
        put_note(1, "Same", "2020-01-01 00:00:00")
        assert service.update(1) is True
        assert service.get(1).modified == "2020-01-01 00:00:00"

    def test_empty_title_rejected_on_update(self, service):
        note_id = service.create(title="T")
        with pytest.raises(ValidationError):
            service.update(note_id, title="  ")
        assert service.get(note_id).title == "T"


class TestDelete:
    """Deleting notes."""

    def test_delete_then_get(self, service):
        keep = service.create(title="keep", tags=["shared"])
        gone = service.create(title="gone", tags=["shared", "only-gone"])
        assert service.delete(gone) is True
        assert service.get(gone) is None
        assert [t.name for t in service.list_tags()] == ["shared"]
        assert service.get(keep).tags == ["shared"]

    def test_delete_missing_returns_false(self, service):
        assert service.delete(7) is False

    def test_deleted_ids_not_reused(self, service):
        first = service.create(title="a")
        service.delete(first)
        assert service.create(title="b") == first + 1


class TestList:
    """Listing, filtering, ordering and counting."""

    def test_or_tag_filter(self, service):
        a = service.create(title="a", tags=["alpha"])
        b = service.create(title="b", tags=["beta"])
        ab = service.create(title="ab", tags=["alpha", "beta"])
        service.create(title="other", tags=["gamma"])

        ids = [n.id for n in service.list(tags=["alpha", "beta"])]
        assert sorted(ids) == sorted([a, b, ab])
        assert len(ids) == len(set(ids))

    def test_tag_filter_is_normalized(self, service):
        note_id = service.create(title="a", tags=["alpha"])
        assert [n.id for n in service.list(tags=[" ALPHA "])] == [note_id]

    def test_sort_ties_break_by_id_desc(self, service, put_note):
        put_note(5, "five", "2024-01-02 10:00:00")
        put_note(7, "seven", "2024-01-02 10:00:00")
        put_note(6, "older", "2024-01-01 10:00:00")
        assert [n.id for n in service.list()] == [7, 5, 6]

    def test_limit_and_count(self, service):
        for i in range(5):
            service.create(title=f"n{i}")
        assert len(service.list(limit=2)) == 2
        assert service.count() == 5

    def test_zero_limit_means_all(self, service):
        for i in range(3):
            service.create(title=f"n{i}")
        assert len(service.list(limit=0)) == 3

    def test_date_bounds_are_inclusive(self, service, put_note):
        put_note(1, "jan", "2024-01-01 00:00:00")
        put_note(2, "feb", "2024-02-01 00:00:00")
        put_note(3, "mar", "2024-03-01 00:00:00")
        notes = service.list(since="2024-02-01 00:00:00", until="2024-03-01 00:00:00")
        assert [n.id for n in notes] == [3, 2]
        assert service.count(since="2024-02-01 00:00:00") == 2

    def test_invalid_date_bound_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.list(since="last tuesday")
        assert exc_info.value.code == ErrorCode.INVALID_DATE

    def test_summaries_flatten_and_truncate(self, service):
        service.create(title="long", body="line one\nline two " + "x" * 200)
        summary = service.list_summaries()[0]
        assert "\n" not in summary.body_preview
        assert summary.body_preview.startswith("line one line two")
        assert summary.body_preview.endswith("...")
        assert len(summary.body_preview) == 140 + 3

    def test_list_skips_note_deleted_mid_query(self, service, repository, monkeypatch):
        keep = service.create(title="keep")
        gone = service.create(title="gone")
        original = repository.query.candidate_ids

        def stale_candidates(tags=None):
            ids = original(tags)
            os.remove(repository.records.path_for(gone))
            return ids

        monkeypatch.setattr(repository.query, "candidate_ids", stale_candidates)
        assert [n.id for n in service.list()] == [keep]


class TestGrep:
    """Regex search over titles and bodies."""

    def test_case_insensitive_by_default(self, service):
        note_id = service.create(title="hello world")
        assert [n.id for n in service.grep("Hello")] == [note_id]
        assert service.grep("Hello", case_sensitive=True) == []

    def test_matches_body(self, service):
        note_id = service.create(title="t", body="the needle is here")
        assert [n.id for n in service.grep(r"need\w+")] == [note_id]

    def test_tag_filter(self, service):
        service.create(title="match one", tags=["x"])
        second = service.create(title="match two", tags=["y"])
        assert [n.id for n in service.grep("match", tags=["y"])] == [second]

    def test_invalid_pattern_is_validation_error(self, service):
        service.create(title="anything")
        with pytest.raises(ValidationError) as exc_info:
            service.grep("(unclosed")
        assert exc_info.value.code == ErrorCode.SEARCH_INVALID_PATTERN

    def test_invalid_pattern_on_empty_store(self, service):
        with pytest.raises(ValidationError):
            service.grep("[")

    def test_grep_summaries(self, service):
        service.create(title="Hello", body="a\nb")
        summaries = service.grep_summaries("hello")
        assert summaries[0].body_preview == "a b"


class TestRepositoryLifecycle:
    """Opening stores and recovery at open time."""

    def test_open_missing_store_without_create(self, store_root):
        from tagnote.exceptions import ConfigurationError
        from tagnote.storage.note_repository import open_store

        with pytest.raises(ConfigurationError) as exc_info:
            open_store(store_root)
        assert exc_info.value.code == ErrorCode.STORE_NOT_FOUND

    def test_recovery_rebuilds_counter_and_cleans_temp_files(self, service, repository):
        service.create(title="one")
        service.create(title="two")
        (repository.root / "counter").unlink()
        (repository.records.notes_dir / ".3.json.abc.tmp").write_text("{")

        from tagnote.storage.note_repository import NoteRepository

        reopened = NoteRepository(repository.root)
        assert reopened.ids.current() == 2
        assert not reopened.records.has_temp_files()
        assert reopened.create(title="three") == 3

    def test_store_info(self, service, repository):
        service.create(title="one", tags=["a", "b"])
        info = repository.store_info()
        assert info["note_count"] == 1
        assert info["tag_count"] == 2
        assert info["last_id"] == 1
        assert info["link_mode"] == "auto"

    def test_metrics_recorded(self, service):
        from tagnote.observability import metrics

        service.create(title="one")
        service.list()
        recorded = metrics.get_metrics()
        assert recorded["create"]["success_count"] == 1
        assert recorded["repo.create"]["count"] == 1
        assert recorded["list"]["count"] == 1

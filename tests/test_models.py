"""Tests for data models."""

import pytest

from chatsync.models import SourceDocument, SyncChange, SyncReport


class TestSourceDocument:
    def test_from_raw(self):
        document = SourceDocument.from_raw(
            {
                "_id": "project-1",
                "_type": "project",
                "_updatedAt": "2024-01-01T00:00:00Z",
                "_rev": "abc",
                "title": "One",
            }
        )
        assert document.id == "project-1"
        assert document.type == "project"
        assert document.updated_at == "2024-01-01T00:00:00Z"
        assert document.fields == {"title": "One"}

    def test_from_raw_missing_id(self):
        with pytest.raises(ValueError, match="_id"):
            SourceDocument.from_raw({"_type": "project"})


class TestSyncReport:
    def test_record_counts(self):
        report = SyncReport()
        report.record(SyncChange("a", "A", "added", chunk_count=3))
        report.record(SyncChange("b", "B", "updated", chunk_count=2))
        report.record(SyncChange("c", "C", "deleted", chunk_count=4))
        report.record(SyncChange("d", "D", "unchanged"))
        report.record(SyncChange("e", "E", "skipped"))
        report.record(SyncChange("f", "F", "failed", error="boom"))

        assert report.summary() == {
            "added": 1,
            "updated": 1,
            "deleted": 1,
            "unchanged": 1,
            "totalChunks": 5,
        }
        assert (report.skipped, report.failed) == (1, 1)

    def test_to_dict(self):
        report = SyncReport()
        report.record(SyncChange("a", "A", "added", chunk_count=3))
        report.record(SyncChange("f", "F", "failed", error="boom"))

        payload = report.to_dict()

        assert payload["failed"] == 1
        assert payload["changes"] == [
            {"sourceId": "a", "title": "A", "action": "added", "chunkCount": 3},
            {"sourceId": "f", "title": "F", "action": "failed", "error": "boom"},
        ]

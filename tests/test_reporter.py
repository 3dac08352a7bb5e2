"""Tests for sync report formatting.

Covers:
- format_sync_result sections for success, failure and dry runs
- build_differences classification and item cap
- format_differences / format_item_diff text
- result_to_json is JSON-serialisable
"""

import json

from conftest import make_item

from snapsync.sync.models import (
    ConflictResolution,
    ResolutionStrategy,
    SyncActionKind,
    SyncResult,
)
from snapsync.sync.reporter import (
    MAX_LISTED_ITEMS,
    build_differences,
    format_differences,
    format_item_diff,
    format_sync_result,
    result_to_json,
)
from snapsync.sync.snapshot import assemble_snapshot


def _snap(items):
    return assemble_snapshot(items, "device-x", timestamp="2026-03-01T10:00:00Z")


# ---------------------------------------------------------------------------
# format_sync_result
# ---------------------------------------------------------------------------


class TestFormatSyncResult:
    """Tests for format_sync_result()."""

    def test_success(self):
        result = SyncResult(
            success=True,
            message="Uploaded 2 records to folder",
            action=SyncActionKind.UPLOAD_ONLY,
            reason="No remote data found",
            backend="folder",
            counts={"uploaded": 2},
        )
        text = format_sync_result(result)
        assert text.startswith("Sync succeeded (folder)")
        assert "Uploaded 2 records to folder" in text
        assert "Action: upload_only" in text
        assert "  uploaded: 2" in text
        assert "Errors:" not in text

    def test_failure_lists_errors_and_code(self):
        result = SyncResult(
            success=False,
            message="Sync failed: boom",
            errors=["boom"],
            error_code="remote_unavailable",
        )
        text = format_sync_result(result)
        assert text.startswith("Sync failed")
        assert "Errors:\n  boom\n  code: remote_unavailable" in text

    def test_dry_run_and_conflicts(self):
        result = SyncResult(
            success=True,
            message="Would merge",
            dry_run=True,
            conflicts=[
                ConflictResolution(
                    item_id="p1",
                    strategy=ResolutionStrategy.MERGE,
                    timestamp="2026-03-01T10:00:00Z",
                    reason="Merged remote fields",
                )
            ],
        )
        text = format_sync_result(result)
        assert "(DRY RUN)" in text
        assert "  p1 [merge]: Merged remote fields" in text


# ---------------------------------------------------------------------------
# Differences
# ---------------------------------------------------------------------------


class TestBuildDifferences:
    """Tests for build_differences()."""

    def test_classifies_from_local_point_of_view(self):
        local = _snap(
            [
                make_item("same"),
                make_item("changed", {"title": "changed", "content": "old"}),
                make_item("local-only"),
                make_item("dead-remotely"),
            ]
        )
        remote = _snap(
            [
                make_item("same"),
                make_item("changed", {"title": "changed", "content": "new"}),
                make_item("remote-only"),
                make_item("dead-remotely", deleted=True),
            ]
        )

        diff = build_differences(local, remote)

        assert diff["local_total"] == 4
        assert diff["remote_total"] == 3
        assert diff["conflicting"] == 1
        assert diff["by_kind"] == {
            "prompt": {"added": 1, "modified": 1, "deleted": 2}
        }
        changes = {entry["id"]: entry["change"] for entry in diff["items"]}
        assert changes == {
            "changed": "modified",
            "dead-remotely": "deleted",
            "local-only": "deleted",
            "remote-only": "added",
        }
        assert diff["truncated"] is False

    def test_item_list_is_capped(self):
        local = _snap([make_item(f"r{n:03d}") for n in range(MAX_LISTED_ITEMS + 5)])
        diff = build_differences(local, _snap([]))
        assert len(diff["items"]) == MAX_LISTED_ITEMS
        assert diff["by_kind"]["prompt"]["deleted"] == MAX_LISTED_ITEMS + 5
        assert diff["truncated"] is True

    def test_identical_snapshots(self):
        items = [make_item("a")]
        diff = build_differences(_snap(items), _snap(items))
        assert diff["by_kind"] == {}
        assert format_differences(diff).endswith("No differences.")


class TestFormatDifferences:
    """Tests for format_differences()."""

    def test_lists_kinds_records_and_backup(self):
        diff = build_differences(_snap([make_item("a")]), _snap([make_item("b")]))
        diff["backup"] = "/tmp/backup.json"

        text = format_differences(diff)

        assert "prompt: 1 added, 0 modified, 1 deleted" in text
        assert "[ADDED] prompt b" in text
        assert "[DELETED] prompt a" in text
        assert text.endswith("Local backup: /tmp/backup.json")


class TestFormatItemDiff:
    """Tests for format_item_diff()."""

    def test_shows_changed_lines(self):
        local = make_item("p1", {"title": "p1", "content": "old text"})
        remote = make_item("p1", {"title": "p1", "content": "new text"})
        text = format_item_diff(local, remote)
        assert "--- local: p1" in text
        assert '-    "content": "old text"' in text
        assert '+    "content": "new text"' in text

    def test_no_differences(self):
        item = make_item("p1")
        assert format_item_diff(item, item) == "(no textual differences)"


class TestResultToJson:
    """Tests for result_to_json()."""

    def test_serialisable(self):
        result = SyncResult(
            success=True, message="ok", action=SyncActionKind.MERGE, counts={"added": 1}
        )
        data = result_to_json(result)
        assert data["action"] == "merge"
        assert data["retryable"] is True
        json.dumps(data)

"""Tests for whole-snapshot merge.

Covers:
- Merged id set is the union of both sides
- Remote-only live records become local additions
- Remote-only tombstones kept but not applied
- Local-only records carried unchanged
- Shared records resolved; modified vs deleted classification
- Lineage (previousSyncId) and recomputed checksums
- Inputs not modified
"""

from conftest import make_item

from snapsync.sync.canonical import snapshot_checksum
from snapsync.sync.merger import merge_snapshots
from snapsync.sync.snapshot import assemble_snapshot

EARLY = "2026-03-01T10:00:00.000Z"
LATE = "2026-03-01T11:00:00.000Z"
NOW = "2026-03-02T00:00:00.000Z"


def _snap(items, device):
    return assemble_snapshot(items, device, timestamp=EARLY)


class TestMergeSnapshots:
    """Tests for merge_snapshots()."""

    def test_union_of_ids(self):
        local = _snap([make_item("a"), make_item("b")], "device-a")
        remote = _snap([make_item("b"), make_item("c")], "device-b")

        result = merge_snapshots(local, remote, "device-a", now=NOW)

        assert [i.id for i in result.merged_snapshot.items] == ["a", "b", "c"]
        assert result.counts["total"] == 3
        assert result.counts["carried"] == 1

    def test_remote_only_live_is_added(self):
        local = _snap([make_item("a")], "device-a")
        remote = _snap([make_item("a"), make_item("n")], "device-b")

        result = merge_snapshots(local, remote, "device-a", now=NOW)

        assert [i.id for i in result.local_changes.added] == ["n"]
        assert result.counts["added"] == 1
        assert result.local_changes.modified == []

    def test_remote_only_tombstone_not_applied(self):
        local = _snap([make_item("a")], "device-a")
        remote = _snap([make_item("a"), make_item("gone", deleted=True)], "device-b")

        result = merge_snapshots(local, remote, "device-a", now=NOW)

        assert "gone" in result.merged_snapshot.item_map()
        assert result.local_changes.is_empty

    def test_shared_record_modified(self):
        local = _snap(
            [make_item("a", {"title": "a", "content": "old"}, updated_at=EARLY)],
            "device-a",
        )
        remote = _snap(
            [make_item("a", {"title": "a", "content": "newer"}, updated_at=LATE)],
            "device-b",
        )

        result = merge_snapshots(local, remote, "device-a", now=NOW)

        (changed,) = result.local_changes.modified
        assert changed.content["content"] == "newer"
        assert result.counts["modified"] == 1

    def test_shared_record_deleted(self):
        local = _snap([make_item("a", updated_at=EARLY)], "device-a")
        remote = _snap([make_item("a", deleted=True, updated_at=LATE)], "device-b")

        result = merge_snapshots(local, remote, "device-a", now=NOW)

        assert [i.id for i in result.local_changes.deleted] == ["a"]
        assert result.merged_snapshot.item_map()["a"].deleted

    def test_local_winner_is_not_a_change(self):
        local = _snap(
            [make_item("a", {"title": "a", "content": "newer"}, updated_at=LATE)],
            "device-a",
        )
        remote = _snap(
            [make_item("a", {"title": "a", "content": "old"}, updated_at=EARLY)],
            "device-b",
        )
        result = merge_snapshots(local, remote, "device-a", now=NOW)
        assert result.local_changes.is_empty

    def test_conflicts_are_reported(self):
        local = _snap([make_item("a", {"title": "a", "content": "mine"})], "device-a")
        remote = _snap(
            [make_item("a", {"title": "a", "content": "them"})], "device-b"
        )

        result = merge_snapshots(local, remote, "device-a", now=NOW)

        assert result.counts["conflicts"] == 1
        assert result.merged_snapshot.snapshot_metadata.conflicts_resolved == (
            result.conflicts
        )

    def test_lineage_and_checksum(self):
        local = _snap([make_item("a")], "device-a")
        remote = _snap([make_item("b")], "device-b")

        result = merge_snapshots(local, remote, "device-a", now=NOW)
        merged = result.merged_snapshot

        assert merged.device_id == "device-a"
        assert merged.timestamp == NOW
        assert merged.snapshot_metadata.previous_sync_id == (
            local.snapshot_metadata.sync_id
        )
        assert merged.snapshot_metadata.sync_id not in (
            local.snapshot_metadata.sync_id,
            remote.snapshot_metadata.sync_id,
        )
        assert merged.snapshot_metadata.checksum == snapshot_checksum(merged.items)

    def test_inputs_not_modified(self):
        local = _snap([make_item("a", updated_at=EARLY)], "device-a")
        remote = _snap([make_item("a", deleted=True, updated_at=LATE)], "device-b")
        local_before = local.model_dump()
        remote_before = remote.model_dump()

        merge_snapshots(local, remote, "device-a", now=NOW)

        assert local.model_dump() == local_before
        assert remote.model_dump() == remote_before

"""Whole-snapshot merge.

``merge_snapshots()`` walks the union of record ids from both snapshots in
sorted order:

- remote-only records are taken and reported as ``added`` locally
  (remote-only tombstones are kept in the merged snapshot but not applied,
  since local never had the record);
- local-only records are carried over unchanged;
- records on both sides go through ``resolve_item()``.

The merged id set is always the union of the two input id sets.  Inputs
are never modified; the result wraps a new snapshot with a fresh
``syncId`` whose ``previousSyncId`` is the local snapshot's ``syncId``.
"""

from __future__ import annotations

import logging

from .canonical import item_checksum
from .models import (
    ChangeSet,
    ConflictResolution,
    DataItem,
    DeviceInfo,
    MergeResult,
    Snapshot,
)
from .resolver import resolve_item
from .snapshot import assemble_snapshot
from .timestamps import utc_now_iso

logger = logging.getLogger(__name__)


def _with_checksum(item: DataItem) -> DataItem:
    checksum = item_checksum(item.content)
    if item.metadata.checksum == checksum:
        return item
    return item.model_copy(
        update={"metadata": item.metadata.model_copy(update={"checksum": checksum})}
    )


def _differs(winner: DataItem, local: DataItem) -> bool:
    return (
        winner.deleted != local.deleted
        or winner.title != local.title
        or winner.metadata.tags != local.metadata.tags
        or item_checksum(winner.content) != item_checksum(local.content)
    )


def merge_snapshots(
    local: Snapshot,
    remote: Snapshot,
    device_id: str,
    *,
    device_info: DeviceInfo | None = None,
    now: str | None = None,
) -> MergeResult:
    """Merge *remote* into *local*.

    Args:
        local: Local snapshot.
        remote: Remote snapshot.
        device_id: Device performing the merge.
        device_info: Optional description for the merged snapshot.
        now: Timestamp for the merged snapshot and conflict records.

    Returns:
        ``MergeResult`` with the merged snapshot, the changes local must
        apply, the conflict list and per-category counts.
    """
    now = now or utc_now_iso()
    local_items = local.item_map()
    remote_items = remote.item_map()

    merged: list[DataItem] = []
    added: list[DataItem] = []
    modified: list[DataItem] = []
    deleted: list[DataItem] = []
    conflicts: list[ConflictResolution] = []
    carried = 0

    for item_id in sorted(set(local_items) | set(remote_items)):
        local_item = local_items.get(item_id)
        remote_item = remote_items.get(item_id)

        if local_item is None:
            item = _with_checksum(remote_item)
            merged.append(item)
            if not item.deleted:
                added.append(item)
            continue

        if remote_item is None:
            merged.append(_with_checksum(local_item))
            carried += 1
            continue

        resolution = resolve_item(local_item, remote_item, device_id, now)
        winner = _with_checksum(resolution.winner)
        merged.append(winner)
        if resolution.conflict is not None:
            conflicts.append(resolution.conflict)
        if _differs(winner, local_item):
            if winner.deleted and not local_item.deleted:
                deleted.append(winner)
            else:
                modified.append(winner)

    merged_snapshot = assemble_snapshot(
        merged,
        device_id,
        device_info=device_info,
        previous_sync_id=local.snapshot_metadata.sync_id,
        conflicts=conflicts,
        timestamp=now,
    )
    counts = {
        "added": len(added),
        "modified": len(modified),
        "deleted": len(deleted),
        "carried": carried,
        "conflicts": len(conflicts),
        "total": len(merged),
    }
    logger.info(
        "Merged snapshots: %d added, %d modified, %d deleted, %d conflicts",
        counts["added"],
        counts["modified"],
        counts["deleted"],
        counts["conflicts"],
    )
    return MergeResult(
        merged_snapshot=merged_snapshot,
        local_changes=ChangeSet(added=added, modified=modified, deleted=deleted),
        conflicts=conflicts,
        counts=counts,
    )

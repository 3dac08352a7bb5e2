"""Ordered decision rules choosing the whole-dataset sync action.

``decide()`` evaluates the rules below in order; the first match wins.

==  ==========================================  ==============================
#   Condition                                   Action
==  ==========================================  ==============================
1   remote snapshot or metadata absent          upload_only
2   local has 0 records, remote has >= 1        download_only
3   local data hash == remote data hash         upload_only (no-op)
4   local.totalRecords - remote.totalRecords>0  upload_only
5   that difference < -5                        download_only
6   same device, syncCount differs              higher syncCount wins
7   same device, equal syncCount                upload_only
8   different devices, |dt| > 5 min             newer snapshot wins
9   different devices, |dt| < 1 min             merge
10  |syncCount_l - syncCount_r| > 5             larger syncCount wins
11  otherwise                                   conflict_detected
==  ==========================================  ==============================

``dt`` compares the time of each snapshot, taken as its latest record
``updatedAt``.  A gap of exactly five minutes, or between one and five
minutes, falls through to rules 10 and 11.

The rules are pure and never raise.  ``reason`` is for logs and audit
only; nothing branches on its text.
"""

from __future__ import annotations

import logging

from .canonical import data_hash
from .models import (
    DecisionStrategy,
    Snapshot,
    SyncActionKind,
    SyncDecision,
    SyncMetadata,
)
from .timestamps import latest, parse_timestamp

logger = logging.getLogger(__name__)

LARGE_GAP_MS = 5 * 60 * 1000
MERGE_WINDOW_MS = 60 * 1000
RECORD_SURPLUS_LIMIT = 5
SYNC_COUNT_GAP_LIMIT = 5


def _upload(reason: str, rule: int, noop: bool = False) -> SyncDecision:
    return SyncDecision(
        action=SyncActionKind.UPLOAD_ONLY,
        strategy=DecisionStrategy.LOCAL_WINS,
        reason=reason,
        rule=rule,
        noop=noop,
    )


def _download(reason: str, rule: int) -> SyncDecision:
    return SyncDecision(
        action=SyncActionKind.DOWNLOAD_ONLY,
        strategy=DecisionStrategy.REMOTE_WINS,
        reason=reason,
        rule=rule,
    )


def snapshot_time(
    snapshot: Snapshot,
    metadata: SyncMetadata | None = None,
    *,
    fallback: bool = True,
) -> float:
    """Epoch milliseconds of the newest change in *snapshot*.

    Falls back to the metadata ``lastSyncTime`` and then to the snapshot
    timestamp when no record carries an ``updatedAt``.  With
    ``fallback=False`` such a snapshot returns ``0.0`` instead; a freshly
    built local snapshot is stamped with the time of the run, which says
    nothing about when its data changed.
    """
    newest = latest([item.updated_at for item in snapshot.items])
    if newest is None and fallback:
        if metadata is not None:
            newest = metadata.last_sync_time
        if newest is None:
            newest = snapshot.timestamp
    return parse_timestamp(newest)


def forced_decision(action: SyncActionKind) -> SyncDecision:
    """Decision for a user-forced upload or download."""
    if action == SyncActionKind.UPLOAD_ONLY:
        return _upload("Upload forced by user", 0)
    if action == SyncActionKind.DOWNLOAD_ONLY:
        return _download("Download forced by user", 0)
    raise ValueError(
        f"Only upload_only and download_only can be forced, got '{action.value}'"
    )


def decide(
    local_snapshot: Snapshot,
    local_meta: SyncMetadata,
    local_hash: str,
    remote_snapshot: Snapshot | None = None,
    remote_meta: SyncMetadata | None = None,
) -> SyncDecision:
    """Choose the sync action for a local/remote pair.

    Args:
        local_snapshot: Freshly built local snapshot.
        local_meta: Local bookkeeping for this run.
        local_hash: ``data_hash`` of the local items.
        remote_snapshot: Remote snapshot, or ``None`` if absent.
        remote_meta: Remote metadata, or ``None`` if absent.

    Returns:
        The ``SyncDecision`` of the first matching rule.
    """
    decision = _evaluate(
        local_snapshot, local_meta, local_hash, remote_snapshot, remote_meta
    )
    logger.info(
        "Sync decision (rule %d): %s -- %s",
        decision.rule,
        decision.action.value,
        decision.reason,
    )
    return decision


def _evaluate(
    local_snapshot: Snapshot,
    local_meta: SyncMetadata,
    local_hash: str,
    remote_snapshot: Snapshot | None,
    remote_meta: SyncMetadata | None,
) -> SyncDecision:
    # Rule 1
    if remote_snapshot is None or remote_meta is None:
        return _upload("No remote data found; first sync to this remote", 1)

    local_count = local_meta.total_records
    remote_count = remote_meta.total_records

    # Rule 2
    if local_count == 0 and remote_count >= 1:
        return _download(
            f"Local dataset is empty; remote has {remote_count} records", 2
        )

    # Rule 3
    if local_hash == data_hash(remote_snapshot.items):
        return _upload(
            "Local and remote data are identical; refreshing sync metadata only",
            3,
            noop=True,
        )

    # Rules 4 and 5
    record_diff = local_count - remote_count
    if record_diff > 0:
        return _upload(
            f"Local has {record_diff} more records than remote "
            f"({local_count} vs {remote_count})",
            4,
        )
    if record_diff < -RECORD_SURPLUS_LIMIT:
        return _download(
            f"Remote has {-record_diff} more records than local "
            f"({remote_count} vs {local_count})",
            5,
        )

    # Rules 6 and 7
    if local_meta.device_id == remote_meta.device_id:
        if local_meta.sync_count > remote_meta.sync_count:
            return _upload(
                f"Same device; local sync count {local_meta.sync_count} "
                f"is ahead of remote {remote_meta.sync_count}",
                6,
            )
        if local_meta.sync_count < remote_meta.sync_count:
            return _download(
                f"Same device; remote sync count {remote_meta.sync_count} "
                f"is ahead of local {local_meta.sync_count}",
                6,
            )
        return _upload(
            "Same device with equal sync count; unsynced local changes win",
            7,
        )

    # Rules 8 and 9.  Local records without updatedAt give no usable time.
    local_time = snapshot_time(local_snapshot, fallback=False)
    remote_time = snapshot_time(remote_snapshot, remote_meta)
    time_diff = local_time - remote_time
    if local_time and abs(time_diff) > LARGE_GAP_MS:
        minutes = abs(time_diff) / 60000
        if time_diff > 0:
            return _upload(
                f"Local data is newer by {minutes:.1f} minutes", 8
            )
        return _download(f"Remote data is newer by {minutes:.1f} minutes", 8)
    if local_time and abs(time_diff) < MERGE_WINDOW_MS:
        return SyncDecision(
            action=SyncActionKind.MERGE,
            strategy=DecisionStrategy.AUTO_MERGE,
            reason=(
                f"Concurrent edits on different devices "
                f"({abs(time_diff) / 1000:.0f}s apart); merging"
            ),
            rule=9,
        )

    # Rule 10
    count_diff = local_meta.sync_count - remote_meta.sync_count
    if abs(count_diff) > SYNC_COUNT_GAP_LIMIT:
        if count_diff > 0:
            return _upload(
                f"Local sync history is {count_diff} syncs deeper", 10
            )
        return _download(
            f"Remote sync history is {-count_diff} syncs deeper", 10
        )

    # Rule 11
    return SyncDecision(
        action=SyncActionKind.CONFLICT_DETECTED,
        strategy=DecisionStrategy.CREATE_BACKUP,
        reason=(
            "Both sides changed on different devices and no rule can pick "
            "a winner; manual resolution required"
        ),
        rule=11,
    )

"""Snapshot-based sync and conflict-resolution engine.

Public API for keeping one local dataset in step with a shared remote
snapshot written by any number of devices.

Architecture
------------
Each side is reduced to a ``Snapshot``: canonicalized, checksummed items
plus bookkeeping metadata.  An ordered rule table decides the whole-run
action (upload, download, merge, or stop on conflict).  Merges reconcile
items one by one: newer wins, free-text fields from the older side fill
gaps, tombstones carry deletes across devices.

Modules:

- ``engine``     -- ``SyncOrchestrator``: the state machine running one sync.
- ``decision``   -- ``decide``: the ordered rule table.
- ``resolver``   -- ``resolve_item``: per-item reconciliation.
- ``merger``     -- ``merge_snapshots``: union of two snapshots.
- ``snapshot``   -- ``SnapshotBuilder``: dataset <-> snapshot items.
- ``canonical``  -- order-independent hashing.
- ``identity``   -- ``DeviceIdentityProvider``: device id and sync counters.
- ``state``      -- ``JsonPreferencesStore``: atomic JSON preferences file.
- ``codec``      -- JSON encode/decode of remote files.
- ``scheduler``  -- ``AutoSyncScheduler``: periodic background sync.
- ``reporter``   -- human-readable and JSON result formatting.

Usage example
-------------
::

    from pathlib import Path
    from snapsync.dataset import JsonDataset
    from snapsync.remote import FolderStore
    from snapsync.sync import (
        DeviceIdentityProvider,
        JsonPreferencesStore,
        SyncOrchestrator,
        format_sync_result,
    )

    dataset = JsonDataset(Path("data.json"))
    orchestrator = SyncOrchestrator(
        FolderStore(Path("~/Dropbox")),
        dataset,
        dataset,
        DeviceIdentityProvider(JsonPreferencesStore(Path("state.json"))),
        backup=dataset,
    )

    preview = await orchestrator.run(dry_run=True)
    print(format_sync_result(preview))
"""

from .decision import decide, forced_decision
from .engine import SyncOrchestrator
from .identity import DeviceIdentityProvider
from .merger import merge_snapshots
from .models import (
    ConflictResolution,
    DataItem,
    Snapshot,
    SyncActionKind,
    SyncDecision,
    SyncMetadata,
    SyncPhase,
    SyncResult,
)
from .reporter import (
    build_differences,
    format_differences,
    format_item_diff,
    format_sync_result,
    result_to_json,
)
from .resolver import resolve_item
from .scheduler import AutoSyncScheduler
from .snapshot import SnapshotBuilder
from .state import JsonPreferencesStore

__all__ = [
    "AutoSyncScheduler",
    "ConflictResolution",
    "DataItem",
    "DeviceIdentityProvider",
    "JsonPreferencesStore",
    "Snapshot",
    "SnapshotBuilder",
    "SyncActionKind",
    "SyncDecision",
    "SyncMetadata",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncResult",
    "build_differences",
    "decide",
    "format_differences",
    "format_item_diff",
    "format_sync_result",
    "forced_decision",
    "merge_snapshots",
    "resolve_item",
    "result_to_json",
]

"""Pydantic models for the snapshot sync engine.

Defines the data contracts shared by all sync modules:

- ``DataItem`` / ``RecordMetadata``: one synchronizable record.
- ``Snapshot`` / ``SnapshotMetadata`` / ``DeviceInfo``: a full view of the
  dataset exchanged between replicas.
- ``SyncMetadata``: per-side bookkeeping stored next to the snapshot.
- ``ConflictResolution``: append-only audit record.
- ``SyncDecision``: output of the decision rules.
- ``ItemResolution``, ``ChangeSet``, ``MergeResult``: merge outputs.
- ``SyncResult``: outcome of one orchestrator run.

All models are frozen (immutable).  Wire models serialize with camelCase
field names and keep unknown fields so that newer peers can add data
without older peers dropping it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

_WIRE_CONFIG = {
    "frozen": True,
    "populate_by_name": True,
    "alias_generator": to_camel,
    "extra": "allow",
}

SCHEMA_VERSION = "2.0.0"


class ItemKind(str, Enum):
    """Known record kinds.  Unknown kinds are tolerated on read."""

    CATEGORY = "category"
    PROMPT = "prompt"
    AI_CONFIG = "aiConfig"
    SETTING = "setting"
    HISTORY = "history"


class ResolutionStrategy(str, Enum):
    """How a single record conflict was settled."""

    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    MERGE = "merge"
    CREATE_DUPLICATE = "create_duplicate"


class SyncActionKind(str, Enum):
    """Whole-dataset action chosen by the decision rules."""

    UPLOAD_ONLY = "upload_only"
    DOWNLOAD_ONLY = "download_only"
    MERGE = "merge"
    CONFLICT_DETECTED = "conflict_detected"


class DecisionStrategy(str, Enum):
    """Strategy attached to a ``SyncDecision``."""

    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    AUTO_MERGE = "auto_merge"
    CREATE_BACKUP = "create_backup"


class SyncPhase(str, Enum):
    """Orchestrator state machine phases."""

    IDLE = "idle"
    FETCHING = "fetching"
    DECIDING = "deciding"
    EXECUTING = "executing"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class RecordMetadata(BaseModel):
    """Provenance and change-tracking fields of a record.

    Attributes:
        created_at: ISO 8601 creation time.
        updated_at: ISO 8601 time of last change; decides who is newer.
        version: Incremented on every accepted mutation.
        owner_device_id: Device that created the record.
        last_modified_by_device_id: Device that last changed the record.
        checksum: Canonical hash of ``content``.
        deleted: Tombstone flag.
        tags: Optional labels, unioned on merge.
    """

    created_at: str | None = None
    updated_at: str | None = None
    version: int = 1
    owner_device_id: str | None = None
    last_modified_by_device_id: str | None = None
    checksum: str = ""
    deleted: bool = False
    tags: list[str] | None = None

    model_config = _WIRE_CONFIG


class DataItem(BaseModel):
    """A single synchronizable record.

    ``kind`` is kept as a plain string so records of kinds this version
    does not know about survive a round-trip.
    """

    id: str
    kind: str
    title: str | None = None
    content: Any = None
    metadata: RecordMetadata = RecordMetadata()

    model_config = _WIRE_CONFIG

    @property
    def deleted(self) -> bool:
        return self.metadata.deleted

    @property
    def checksum(self) -> str:
        return self.metadata.checksum

    @property
    def updated_at(self) -> str | None:
        return self.metadata.updated_at


class ConflictResolution(BaseModel):
    """Audit record for one settled conflict."""

    item_id: str
    strategy: ResolutionStrategy
    timestamp: str
    reason: str

    model_config = _WIRE_CONFIG


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class DeviceInfo(BaseModel):
    """Description of the device that produced a snapshot."""

    id: str
    name: str | None = None
    platform: str | None = None
    app_version: str | None = None

    model_config = _WIRE_CONFIG


class SnapshotMetadata(BaseModel):
    """Integrity and lineage information for a snapshot.

    Attributes:
        total_items: Number of items, tombstones included.
        checksum: Hash over per-item checksums, sorted by id.
        sync_id: Fresh identifier per snapshot.
        previous_sync_id: ``sync_id`` of the snapshot this one descends from.
        conflicts_resolved: Audit records produced while building it.
        device_info: Producer description.
    """

    total_items: int = 0
    checksum: str = ""
    sync_id: str
    previous_sync_id: str | None = None
    conflicts_resolved: list[ConflictResolution] = []
    device_info: DeviceInfo | None = None

    model_config = _WIRE_CONFIG


class Snapshot(BaseModel):
    """A complete, timestamped view of the dataset."""

    timestamp: str
    schema_version: str = SCHEMA_VERSION
    device_id: str
    items: list[DataItem] = []
    snapshot_metadata: SnapshotMetadata

    model_config = _WIRE_CONFIG

    @property
    def live_items(self) -> list[DataItem]:
        """Items that are not tombstoned."""
        return [item for item in self.items if not item.deleted]

    def item_map(self) -> dict[str, DataItem]:
        """Return items keyed by id."""
        return {item.id: item for item in self.items}


class SyncMetadata(BaseModel):
    """Per-side sync bookkeeping.

    Attributes:
        last_sync_time: ISO 8601 time of the last completed sync.
        sync_count: Monotonic count of completed syncs.
        device_id: Device that wrote this metadata.
        total_records: Number of live records.
        data_hash: Change-detection hash of the live records.
    """

    last_sync_time: str | None = None
    sync_count: int = 0
    device_id: str
    total_records: int = 0
    data_hash: str = ""

    model_config = _WIRE_CONFIG


# ---------------------------------------------------------------------------
# Decision and merge outputs
# ---------------------------------------------------------------------------


class SyncDecision(BaseModel):
    """Outcome of the ordered decision rules.

    Attributes:
        action: Chosen whole-dataset action.
        strategy: Strategy label for the action.
        reason: Human-readable explanation, used for logs and audit only.
        rule: Number of the rule that matched (0 when forced).
        noop: True when both sides are already identical.
    """

    action: SyncActionKind
    strategy: DecisionStrategy
    reason: str
    rule: int = 0
    noop: bool = False

    model_config = {"frozen": True}


class ItemResolution(BaseModel):
    """Winner of a single-record resolution plus its audit record, if any."""

    winner: DataItem
    conflict: ConflictResolution | None = None

    model_config = {"frozen": True}


class ChangeSet(BaseModel):
    """Records the local dataset must apply after a merge or download."""

    added: list[DataItem] = []
    modified: list[DataItem] = []
    deleted: list[DataItem] = []

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)

    def all_items(self) -> list[DataItem]:
        return [*self.added, *self.modified, *self.deleted]


class MergeResult(BaseModel):
    """Output of merging two snapshots."""

    merged_snapshot: Snapshot
    local_changes: ChangeSet
    conflicts: list[ConflictResolution] = []
    counts: dict[str, int] = {}

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Orchestrator result
# ---------------------------------------------------------------------------


class SyncResult(BaseModel):
    """Outcome of one orchestrator run.

    Attributes:
        success: Whether the run completed without error.
        message: Human-readable one-line summary.
        action: Action that was (or would be) executed.
        strategy: Strategy attached to the action.
        reason: Decision reason.
        dry_run: Whether writes were skipped.
        backend: Name of the remote backend.
        started_at: ISO 8601 start time.
        completed_at: ISO 8601 completion time.
        counts: added/modified/deleted/conflicts/uploaded/downloaded.
        conflicts: Audit records produced by the run.
        errors: Error messages, verbatim.
        error_code: Machine-readable failure code.
        differences: Side-by-side comparison, set for conflicts and dry runs.
        retryable: False when retrying on a timer cannot help (bad
            credentials or base path).
    """

    success: bool
    message: str
    action: SyncActionKind | None = None
    strategy: DecisionStrategy | None = None
    reason: str | None = None
    dry_run: bool = False
    backend: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    counts: dict[str, int] = {}
    conflicts: list[ConflictResolution] = []
    errors: list[str] = []
    error_code: str | None = None
    differences: dict[str, Any] | None = None
    retryable: bool = True

    model_config = {"frozen": True}

    def summary(self) -> str:
        """Format a short human-readable summary of the run.

        Returns:
            Multi-line summary string with counts.
        """
        header = "Sync " + ("succeeded" if self.success else "failed")
        if self.dry_run:
            header += " (dry run)"
        lines = [header, f"  {self.message}"]
        if self.action is not None:
            lines.append(f"  Action:    {self.action.value}")
        for key in ("added", "modified", "deleted", "conflicts"):
            lines.append(f"  {key.capitalize() + ':':<10} {self.counts.get(key, 0)}")
        for error in self.errors:
            lines.append(f"  Error: {error}")
        return "\n".join(lines)

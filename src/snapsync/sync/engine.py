"""Sync orchestrator: the single entry point for a sync run.

``SyncOrchestrator.run()`` drives one run through a small state machine::

    IDLE -> FETCHING -> DECIDING -> EXECUTING -> IDLE
                  \\________\\___________\\-> FAILED -> IDLE

1. Fetch local: export the dataset and build a snapshot.
2. Fetch remote: read ``<sync_folder>/snapshot.json`` and
   ``<sync_folder>/snapshot-metadata.json``.  Every remote call is bounded
   by ``io_timeout``.  Content that cannot be parsed fails the run; it is
   never taken to mean "remote is empty".
3. Decide: apply the ordered rules (or honour a forced direction).
4. Execute the chosen action, then persist device bookkeeping.

Only one run may be in flight per orchestrator.  A second caller gets an
immediate ``concurrent_sync_rejected`` result; nothing is queued.  The
guard is a compare-and-swap on the phase under a ``threading.Lock`` so it
holds across threads and event loops.

Errors never escape ``run()``: every failure becomes a ``SyncResult`` with
``success=False``.  A merge imports locally before it touches the remote,
so a failed import leaves the remote as it was, and a failed remote write
restores the local dataset from the pre-merge backup.  Remote writes go data
first, then metadata.  Bookkeeping is committed only after all of them
succeed, so a run that fails halfway is re-evaluated from scratch next
time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from ..core.async_utils import run_sync, run_with_timeout
from ..core.errors import (
    ConcurrentSyncRejected,
    LocalExportFailure,
    LocalImportFailure,
    RemoteConfigurationError,
    RemoteNotFound,
    RemoteUnavailable,
    SyncError,
    UnresolvableConflict,
)
from ..dataset import BackupProvider, DatasetExporter, DatasetImporter
from ..remote.base import RemoteStore, join_path
from .canonical import data_hash
from .codec import decode_metadata, decode_snapshot, encode_metadata, encode_snapshot
from .decision import decide, forced_decision
from .identity import DeviceIdentityProvider
from .merger import merge_snapshots
from .models import (
    ChangeSet,
    ConflictResolution,
    DataItem,
    Snapshot,
    SyncActionKind,
    SyncDecision,
    SyncMetadata,
    SyncPhase,
    SyncResult,
)
from .reporter import build_differences
from .snapshot import SnapshotBuilder, count_records, describe
from .timestamps import utc_now_iso

T = TypeVar("T")
logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "snapshot.json"
METADATA_FILE = "snapshot-metadata.json"


@dataclass(frozen=True)
class LocalState:
    """Everything fetched from the local side for one run."""

    device_id: str
    snapshot: Snapshot
    metadata: SyncMetadata
    data_hash: str


@dataclass(frozen=True)
class RemoteState:
    """Remote snapshot and metadata; both ``None`` when the remote is empty."""

    snapshot: Snapshot | None
    metadata: SyncMetadata | None

    def require(self) -> tuple[Snapshot, SyncMetadata]:
        """Snapshot and metadata for actions that need a populated remote."""
        if self.snapshot is None or self.metadata is None:
            raise SyncError("No remote snapshot to act on")
        return self.snapshot, self.metadata


@dataclass(frozen=True)
class Outcome:
    """What the execute phase did."""

    message: str
    counts: dict[str, int]
    conflicts: list[ConflictResolution]


class SyncOrchestrator:
    """Run sync cycles between a local dataset and one remote store.

    Args:
        remote: Remote object-store adapter.
        exporter: Local dataset exporter.
        importer: Local dataset importer.
        identity: Device identity and bookkeeping provider.
        backup: Optional local backup provider, used before merges,
            downloads that overwrite local records, and conflicts.
        backend_name: Label used in results and logs.
        sync_folder: Folder on the remote holding the snapshot files.
        io_timeout: Seconds allowed per remote call.
    """

    def __init__(
        self,
        remote: RemoteStore,
        exporter: DatasetExporter,
        importer: DatasetImporter,
        identity: DeviceIdentityProvider,
        *,
        backup: BackupProvider | None = None,
        backend_name: str | None = None,
        sync_folder: str = "snapsync",
        io_timeout: float | None = 30.0,
    ) -> None:
        self.remote = remote
        self.exporter = exporter
        self.importer = importer
        self.identity = identity
        self.backup = backup
        self.backend_name = backend_name or getattr(
            remote, "name", type(remote).__name__
        )
        self.sync_folder = sync_folder
        self.io_timeout = io_timeout

        self._guard = threading.Lock()
        self._phase = SyncPhase.IDLE
        self._decision: SyncDecision | None = None
        self._last_result: SyncResult | None = None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def in_progress(self) -> bool:
        return self._phase != SyncPhase.IDLE

    @property
    def last_result(self) -> SyncResult | None:
        return self._last_result

    def _try_begin(self) -> bool:
        with self._guard:
            if self._phase != SyncPhase.IDLE:
                return False
            self._phase = SyncPhase.FETCHING
            return True

    def _set_phase(self, phase: SyncPhase) -> None:
        with self._guard:
            self._phase = phase
        logger.debug("Sync phase -> %s", phase.value)

    @property
    def snapshot_path(self) -> str:
        return join_path(self.sync_folder, SNAPSHOT_FILE)

    @property
    def metadata_path(self) -> str:
        return join_path(self.sync_folder, METADATA_FILE)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        dry_run: bool = False,
        force: SyncActionKind | str | None = None,
    ) -> SyncResult:
        """Execute one sync cycle.

        Args:
            dry_run: Fetch and decide, but write nothing.
            force: ``upload_only`` or ``download_only`` to bypass the rules.

        Returns:
            A ``SyncResult``.  Never raises.
        """
        started_at = utc_now_iso()
        if not self._try_begin():
            logger.warning(
                "Sync requested while %s; rejecting", self._phase.value
            )
            return SyncResult(
                success=False,
                message="Sync already in progress",
                dry_run=dry_run,
                backend=self.backend_name,
                started_at=started_at,
                completed_at=utc_now_iso(),
                errors=["Another sync is running; try again when it finishes"],
                error_code=ConcurrentSyncRejected.code,
            )

        self._decision = None
        try:
            forced = SyncActionKind(force) if force else None
            result = await self._run(dry_run, forced, started_at)
        except SyncError as exc:
            logger.error(
                "Sync failed during %s: %s", self._phase.value, exc.message
            )
            self._set_phase(SyncPhase.FAILED)
            result = self._failure(
                exc.message,
                exc.code,
                started_at,
                dry_run,
                retryable=not isinstance(exc, RemoteConfigurationError),
            )
        except Exception as exc:
            logger.exception("Unexpected error during %s", self._phase.value)
            self._set_phase(SyncPhase.FAILED)
            result = self._failure(str(exc), "internal_error", started_at, dry_run)
        finally:
            self._set_phase(SyncPhase.IDLE)

        self._last_result = result
        return result

    async def _run(
        self,
        dry_run: bool,
        force: SyncActionKind | None,
        started_at: str,
    ) -> SyncResult:
        local = await run_sync(self._load_local)
        remote = await self._fetch_remote()

        self._set_phase(SyncPhase.DECIDING)
        if force is not None:
            decision = forced_decision(force)
            if force == SyncActionKind.DOWNLOAD_ONLY and remote.snapshot is None:
                raise RemoteNotFound(
                    "Cannot force a download: the remote has no snapshot"
                )
            logger.info("Forced sync action: %s", force.value)
        else:
            decision = decide(
                local.snapshot,
                local.metadata,
                local.data_hash,
                remote.snapshot,
                remote.metadata,
            )
        self._decision = decision

        if dry_run:
            return self._preview(decision, local, remote, started_at)

        if decision.action == SyncActionKind.CONFLICT_DETECTED:
            return await self._report_conflict(decision, local, remote, started_at)

        self._set_phase(SyncPhase.EXECUTING)
        match decision.action:
            case SyncActionKind.UPLOAD_ONLY:
                outcome = await self._upload(decision, local, remote)
            case SyncActionKind.DOWNLOAD_ONLY:
                outcome = await self._download(local, remote)
            case SyncActionKind.MERGE:
                outcome = await self._merge(local, remote)
            case _:
                raise ValueError(f"Unhandled sync action {decision.action}")

        logger.info("Sync completed: %s", outcome.message)
        return SyncResult(
            success=True,
            message=outcome.message,
            action=decision.action,
            strategy=decision.strategy,
            reason=decision.reason,
            backend=self.backend_name,
            started_at=started_at,
            completed_at=utc_now_iso(),
            counts=outcome.counts,
            conflicts=outcome.conflicts,
        )

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def _load_local(self) -> LocalState:
        """Export and snapshot the local dataset (runs in a worker thread)."""
        try:
            dataset = self.exporter.export_all()
        except SyncError:
            raise
        except Exception as exc:
            raise LocalExportFailure(f"Local export failed: {exc}") from exc
        if not isinstance(dataset, dict):
            raise LocalExportFailure(
                f"Local export returned {type(dataset).__name__}, expected a dict"
            )

        device_id = self.identity.get_device_id()
        builder = SnapshotBuilder(device_id, self.identity.device_info())
        snapshot = builder.build(
            dataset, previous_sync_id=self.identity.last_sync_id()
        )
        metadata = describe(
            snapshot,
            self.identity.current_sync_count(),
            self.identity.last_sync_time(),
        )
        return LocalState(
            device_id=device_id,
            snapshot=snapshot,
            metadata=metadata,
            data_hash=metadata.data_hash,
        )

    async def _remote_call(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await run_with_timeout(self.io_timeout, func, *args)
        except SyncError:
            raise
        except Exception as exc:
            raise RemoteUnavailable(
                f"Remote store error in {getattr(func, '__name__', func)}: {exc}"
            ) from exc

    async def _fetch_remote(self) -> RemoteState:
        if not await self._remote_call(self.remote.exists, self.snapshot_path):
            logger.info("No remote snapshot at %s", self.snapshot_path)
            return RemoteState(snapshot=None, metadata=None)

        try:
            raw = await self._remote_call(self.remote.read_bytes, self.snapshot_path)
        except RemoteNotFound:
            logger.info("Remote snapshot disappeared before it could be read")
            return RemoteState(snapshot=None, metadata=None)
        snapshot = decode_snapshot(raw)

        metadata: SyncMetadata | None = None
        if await self._remote_call(self.remote.exists, self.metadata_path):
            try:
                raw_meta = await self._remote_call(
                    self.remote.read_bytes, self.metadata_path
                )
                metadata = decode_metadata(raw_meta)
            except RemoteNotFound:
                metadata = None

        if metadata is None:
            # Snapshot without metadata: an earlier run wrote data but not
            # metadata.  Rebuild it rather than treat the remote as empty.
            logger.warning(
                "Remote metadata missing; reconstructing it from the snapshot"
            )
            return RemoteState(
                snapshot=snapshot,
                metadata=describe(snapshot, 0, snapshot.timestamp),
            )

        actual_hash = data_hash(snapshot.items)
        actual_count = count_records(snapshot.items)
        if metadata.data_hash != actual_hash or metadata.total_records != actual_count:
            logger.warning(
                "Remote metadata does not match the snapshot; using counts "
                "and hash computed from the snapshot"
            )
            metadata = metadata.model_copy(
                update={"data_hash": actual_hash, "total_records": actual_count}
            )
        return RemoteState(snapshot=snapshot, metadata=metadata)

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    async def _write_remote(
        self, snapshot: Snapshot | None, metadata: SyncMetadata
    ) -> None:
        """Write snapshot (if given) then metadata.

        Metadata goes last so that a reader never sees metadata describing
        data that was not written.
        """
        await self._remote_call(self.remote.ensure_directory, self.sync_folder)
        if snapshot is not None:
            await self._remote_call(
                self.remote.write_bytes, self.snapshot_path, encode_snapshot(snapshot)
            )
        await self._remote_call(
            self.remote.write_bytes, self.metadata_path, encode_metadata(metadata)
        )

    async def _apply_local(self, changes: ChangeSet) -> None:
        if changes.is_empty:
            return
        partial = SnapshotBuilder.to_dataset(changes.all_items())
        try:
            await run_sync(self.importer.apply_changes, partial)
        except SyncError:
            raise
        except Exception as exc:
            raise LocalImportFailure(f"Local import failed: {exc}") from exc

    async def _backup(self, label: str) -> str | None:
        if self.backup is None:
            return None
        try:
            location = await run_sync(self.backup.create_backup, label)
        except SyncError:
            raise
        except Exception as exc:
            raise LocalExportFailure(f"Local backup failed: {exc}") from exc
        logger.info("Local backup written to %s", location)
        return location

    async def _restore(self, location: str) -> None:
        if self.backup is None:
            return
        try:
            await run_sync(self.backup.restore_backup, location)
        except Exception:
            logger.exception("Could not restore local dataset from %s", location)
            return
        logger.warning("Local dataset restored from %s", location)

    async def _commit(
        self, sync_count: int, now: str, sync_id: str, hash_value: str
    ) -> None:
        await run_sync(self.identity.commit, sync_count, now, sync_id, hash_value)

    async def _upload(
        self, decision: SyncDecision, local: LocalState, remote: RemoteState
    ) -> Outcome:
        now = utc_now_iso()
        remote_count = remote.metadata.sync_count if remote.metadata else 0
        new_count = max(local.metadata.sync_count, remote_count) + 1
        metadata = describe(local.snapshot, new_count, now)

        if decision.noop and remote.snapshot is not None:
            await self._write_remote(None, metadata)
            await self._commit(
                new_count, now, remote.snapshot.snapshot_metadata.sync_id, local.data_hash
            )
            return Outcome(
                message="Already in sync; sync metadata refreshed",
                counts={"uploaded": 0},
                conflicts=[],
            )

        await self._write_remote(local.snapshot, metadata)
        await self._commit(
            new_count, now, local.snapshot.snapshot_metadata.sync_id, local.data_hash
        )
        uploaded = local.metadata.total_records
        return Outcome(
            message=f"Uploaded {uploaded} records to {self.backend_name}",
            counts={"uploaded": uploaded},
            conflicts=[],
        )

    def _download_changes(
        self, local: LocalState, remote_snapshot: Snapshot, now: str
    ) -> ChangeSet:
        """Changes that make the local dataset match *remote_snapshot*.

        Local records the remote does not have are tombstoned.
        """
        local_items = local.snapshot.item_map()
        remote_items = remote_snapshot.item_map()
        added: list[DataItem] = []
        modified: list[DataItem] = []
        deleted: list[DataItem] = []

        for item_id in sorted(remote_items):
            remote_item = remote_items[item_id]
            local_item = local_items.get(item_id)
            if local_item is None:
                if not remote_item.deleted:
                    added.append(remote_item)
            elif (
                local_item.checksum != remote_item.checksum
                or local_item.deleted != remote_item.deleted
                or local_item.title != remote_item.title
            ):
                if remote_item.deleted:
                    deleted.append(remote_item)
                else:
                    modified.append(remote_item)

        for item_id in sorted(set(local_items) - set(remote_items)):
            local_item = local_items[item_id]
            if local_item.deleted:
                continue
            deleted.append(
                local_item.model_copy(
                    update={
                        "metadata": local_item.metadata.model_copy(
                            update={
                                "deleted": True,
                                "updated_at": now,
                                "version": local_item.metadata.version + 1,
                                "last_modified_by_device_id": local.device_id,
                            }
                        )
                    }
                )
            )
        return ChangeSet(added=added, modified=modified, deleted=deleted)

    async def _download(self, local: LocalState, remote: RemoteState) -> Outcome:
        remote_snapshot, remote_meta = remote.require()
        now = utc_now_iso()
        changes = self._download_changes(local, remote_snapshot, now)
        if changes.modified or changes.deleted:
            await self._backup("pre-download")
        await self._apply_local(changes)

        new_count = max(local.metadata.sync_count + 1, remote_meta.sync_count)
        await self._commit(
            new_count,
            now,
            remote_snapshot.snapshot_metadata.sync_id,
            remote_meta.data_hash,
        )
        counts = {
            "added": len(changes.added),
            "modified": len(changes.modified),
            "deleted": len(changes.deleted),
            "downloaded": len(changes.all_items()),
        }
        return Outcome(
            message=(
                f"Downloaded from {self.backend_name}: {counts['added']} added, "
                f"{counts['modified']} modified, {counts['deleted']} deleted"
            ),
            counts=counts,
            conflicts=[],
        )

    async def _merge(self, local: LocalState, remote: RemoteState) -> Outcome:
        remote_snapshot, remote_meta = remote.require()
        backup_location = await self._backup("pre-merge")
        now = utc_now_iso()
        result = merge_snapshots(
            local.snapshot,
            remote_snapshot,
            local.device_id,
            device_info=local.snapshot.snapshot_metadata.device_info,
            now=now,
        )
        merged = result.merged_snapshot
        new_count = max(local.metadata.sync_count, remote_meta.sync_count) + 1
        metadata = describe(merged, new_count, now)

        await self._apply_local(result.local_changes)
        try:
            await self._write_remote(merged, metadata)
        except Exception:
            # The import already ran; put local data back as it was.
            if backup_location and not result.local_changes.is_empty:
                await self._restore(backup_location)
            raise
        await self._commit(
            new_count, now, merged.snapshot_metadata.sync_id, metadata.data_hash
        )

        counts = {
            "added": result.counts.get("added", 0),
            "modified": result.counts.get("modified", 0),
            "deleted": result.counts.get("deleted", 0),
            "conflicts": len(result.conflicts),
            "uploaded": metadata.total_records,
        }
        return Outcome(
            message=(
                f"Merged with {self.backend_name}: {counts['added']} added, "
                f"{counts['modified']} modified, {counts['deleted']} deleted, "
                f"{counts['conflicts']} conflicts resolved"
            ),
            counts=counts,
            conflicts=list(result.conflicts),
        )

    async def _report_conflict(
        self,
        decision: SyncDecision,
        local: LocalState,
        remote: RemoteState,
        started_at: str,
    ) -> SyncResult:
        """Back up, write nothing, and hand both sides to the caller."""
        self._set_phase(SyncPhase.EXECUTING)
        remote_snapshot, _ = remote.require()
        backup_location = await self._backup("conflict")
        differences = build_differences(local.snapshot, remote_snapshot)
        if backup_location:
            differences["backup"] = backup_location
        logger.warning("Unresolvable sync conflict: %s", decision.reason)
        return SyncResult(
            success=False,
            message="Sync conflict detected; manual resolution required",
            action=decision.action,
            strategy=decision.strategy,
            reason=decision.reason,
            backend=self.backend_name,
            started_at=started_at,
            completed_at=utc_now_iso(),
            counts={"conflicts": differences["conflicting"]},
            errors=[decision.reason],
            error_code=UnresolvableConflict.code,
            differences=differences,
        )

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def _preview(
        self,
        decision: SyncDecision,
        local: LocalState,
        remote: RemoteState,
        started_at: str,
    ) -> SyncResult:
        counts: dict[str, int] = {}
        conflicts: list[ConflictResolution] = []
        differences = None
        if remote.snapshot is not None:
            differences = build_differences(local.snapshot, remote.snapshot)

        match decision.action:
            case SyncActionKind.UPLOAD_ONLY:
                counts["uploaded"] = 0 if decision.noop else local.metadata.total_records
                message = (
                    "Already in sync"
                    if decision.noop
                    else f"Would upload {counts['uploaded']} records"
                )
            case SyncActionKind.DOWNLOAD_ONLY:
                changes = self._download_changes(local, remote.snapshot, utc_now_iso())
                counts.update(
                    added=len(changes.added),
                    modified=len(changes.modified),
                    deleted=len(changes.deleted),
                    downloaded=len(changes.all_items()),
                )
                message = f"Would download {counts['downloaded']} changes"
            case SyncActionKind.MERGE:
                result = merge_snapshots(local.snapshot, remote.snapshot, local.device_id)
                counts.update(
                    added=result.counts["added"],
                    modified=result.counts["modified"],
                    deleted=result.counts["deleted"],
                    conflicts=len(result.conflicts),
                )
                conflicts = list(result.conflicts)
                message = (
                    f"Would merge: {counts['added']} added, {counts['modified']} "
                    f"modified, {counts['deleted']} deleted, "
                    f"{counts['conflicts']} conflicts"
                )
            case _:
                counts["conflicts"] = differences["conflicting"] if differences else 0
                message = "Conflict detected; a real run would stop for manual resolution"

        return SyncResult(
            success=True,
            message=message,
            action=decision.action,
            strategy=decision.strategy,
            reason=decision.reason,
            dry_run=True,
            backend=self.backend_name,
            started_at=started_at,
            completed_at=utc_now_iso(),
            counts=counts,
            conflicts=conflicts,
            differences=differences,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failure(
        self,
        message: str,
        code: str,
        started_at: str,
        dry_run: bool,
        retryable: bool = True,
    ) -> SyncResult:
        decision = self._decision
        return SyncResult(
            success=False,
            message=f"Sync failed: {message}",
            action=decision.action if decision else None,
            strategy=decision.strategy if decision else None,
            reason=decision.reason if decision else None,
            dry_run=dry_run,
            backend=self.backend_name,
            started_at=started_at,
            completed_at=utc_now_iso(),
            errors=[message],
            error_code=code,
            retryable=retryable,
        )

    async def ping(self) -> str:
        """Check that the remote store is reachable."""
        return await self._remote_call(self.remote.check_connection)

    def status(self) -> dict[str, Any]:
        """Snapshot of orchestrator and bookkeeping state (blocking I/O)."""
        last = self._last_result
        return {
            "phase": self._phase.value,
            "in_progress": self.in_progress,
            "backend": self.backend_name,
            "sync_folder": self.sync_folder,
            "device_id": self.identity.get_device_id(),
            "sync_count": self.identity.current_sync_count(),
            "last_sync_time": self.identity.last_sync_time(),
            "last_result": last.message if last else None,
            "last_success": last.success if last else None,
        }

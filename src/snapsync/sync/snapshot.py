"""Conversion between the exported dataset and snapshots.

The exporter hands over plain collections::

    {
        "categories": [...],
        "prompts": [...],
        "aiConfigs": [...],
        "settings": {...} or [...],
        "history": [...],
    }

Each record is turned into a ``DataItem``.  Record-level keys (id,
timestamps, version, tombstone flag, provenance) move into
``RecordMetadata``; everything else becomes the item's ``content``.  A
settings object (rather than a list) becomes one item with id
``"settings"``.

``to_dataset()`` is the inverse and produces the partial dataset the
importer consumes.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from .canonical import RECORD_METADATA_KEYS, data_hash, item_checksum, snapshot_checksum
from .models import (
    SCHEMA_VERSION,
    ConflictResolution,
    DataItem,
    DeviceInfo,
    ItemKind,
    RecordMetadata,
    Snapshot,
    SnapshotMetadata,
    SyncMetadata,
)
from .timestamps import parse_timestamp, utc_now_iso

logger = logging.getLogger(__name__)

SETTINGS_ITEM_ID = "settings"

# Collection name in the export -> record kind.  ``aiHistory`` is the
# name older exports used for history.
COLLECTION_KINDS: dict[str, str] = {
    "categories": ItemKind.CATEGORY.value,
    "prompts": ItemKind.PROMPT.value,
    "aiConfigs": ItemKind.AI_CONFIG.value,
    "settings": ItemKind.SETTING.value,
    "history": ItemKind.HISTORY.value,
    "aiHistory": ItemKind.HISTORY.value,
}

KIND_COLLECTIONS: dict[str, str] = {
    ItemKind.CATEGORY.value: "categories",
    ItemKind.PROMPT.value: "prompts",
    ItemKind.AI_CONFIG.value: "aiConfigs",
    ItemKind.SETTING.value: "settings",
    ItemKind.HISTORY.value: "history",
}

_LIFTED_KEYS = RECORD_METADATA_KEYS | {"ownerDeviceId", "lastModifiedByDeviceId"}


def count_records(items: Iterable[DataItem]) -> int:
    """Number of live (non-tombstoned) items."""
    return sum(1 for item in items if not item.deleted)


def assemble_snapshot(
    items: list[DataItem],
    device_id: str,
    *,
    device_info: DeviceInfo | None = None,
    previous_sync_id: str | None = None,
    conflicts: list[ConflictResolution] | None = None,
    timestamp: str | None = None,
) -> Snapshot:
    """Wrap *items* in a new snapshot with a fresh ``syncId``.

    Items are stored in id order and the checksum is recomputed.
    """
    ordered = sorted(items, key=lambda item: item.id)
    return Snapshot(
        timestamp=timestamp or utc_now_iso(),
        schema_version=SCHEMA_VERSION,
        device_id=device_id,
        items=ordered,
        snapshot_metadata=SnapshotMetadata(
            total_items=len(ordered),
            checksum=snapshot_checksum(ordered),
            sync_id=str(uuid.uuid4()),
            previous_sync_id=previous_sync_id,
            conflicts_resolved=list(conflicts or []),
            device_info=device_info,
        ),
    )


def describe(
    snapshot: Snapshot,
    sync_count: int,
    last_sync_time: str | None = None,
) -> SyncMetadata:
    """Build the ``SyncMetadata`` that accompanies *snapshot*."""
    return SyncMetadata(
        last_sync_time=last_sync_time or snapshot.timestamp,
        sync_count=sync_count,
        device_id=snapshot.device_id,
        total_records=count_records(snapshot.items),
        data_hash=data_hash(snapshot.items),
    )


class SnapshotBuilder:
    """Assemble local snapshots for one device.

    Args:
        device_id: Id stamped on the snapshot and on records that carry no
            provenance yet.
        device_info: Optional description for ``snapshotMetadata``.
    """

    def __init__(
        self, device_id: str, device_info: DeviceInfo | None = None
    ) -> None:
        self.device_id = device_id
        self.device_info = device_info

    # ------------------------------------------------------------------
    # Dataset -> snapshot
    # ------------------------------------------------------------------

    def build(
        self,
        dataset: dict[str, Any],
        previous_sync_id: str | None = None,
        timestamp: str | None = None,
    ) -> Snapshot:
        """Build a snapshot from an exported dataset.

        Records without an id are skipped with a warning.  When the same id
        appears twice, the copy with the later ``updatedAt`` is kept.

        Args:
            dataset: Output of the dataset exporter.
            previous_sync_id: ``syncId`` this snapshot descends from.
            timestamp: Override for the snapshot time (tests).

        Returns:
            A new immutable ``Snapshot``.
        """
        items: dict[str, DataItem] = {}
        for collection, kind in COLLECTION_KINDS.items():
            raw = dataset.get(collection)
            if raw is None:
                continue
            if collection == "settings" and isinstance(raw, dict):
                # An empty settings object is not a record.
                if not raw:
                    continue
                records = [{"id": SETTINGS_ITEM_ID, **raw}]
            elif isinstance(raw, list):
                records = raw
            else:
                logger.warning(
                    "Ignoring collection %s: expected a list, got %s",
                    collection,
                    type(raw).__name__,
                )
                continue

            for record in records:
                item = self.to_item(record, kind)
                if item is None:
                    continue
                existing = items.get(item.id)
                if existing is not None:
                    logger.warning(
                        "Duplicate record id %s in %s; keeping the newer copy",
                        item.id,
                        collection,
                    )
                    if parse_timestamp(existing.updated_at) >= parse_timestamp(
                        item.updated_at
                    ):
                        continue
                items[item.id] = item

        snapshot = assemble_snapshot(
            list(items.values()),
            self.device_id,
            device_info=self.device_info,
            previous_sync_id=previous_sync_id,
            timestamp=timestamp,
        )
        logger.debug(
            "Built snapshot %s with %d items (%d live)",
            snapshot.snapshot_metadata.sync_id,
            len(snapshot.items),
            count_records(snapshot.items),
        )
        return snapshot

    def to_item(self, record: Any, kind: str) -> DataItem | None:
        """Convert one exported record, or return ``None`` if it has no id."""
        if not isinstance(record, dict):
            logger.warning("Skipping non-object %s record: %r", kind, record)
            return None
        record_id = record.get("id", record.get("uuid"))
        if record_id is None or record_id == "":
            logger.warning("Skipping %s record without id", kind)
            return None

        content = {k: v for k, v in record.items() if k not in _LIFTED_KEYS}
        tags = record.get("tags")
        try:
            version = int(record.get("version", 1))
        except (TypeError, ValueError):
            version = 1

        metadata = RecordMetadata(
            created_at=record.get("createdAt"),
            updated_at=record.get("updatedAt") or record.get("createdAt"),
            version=version,
            owner_device_id=record.get("ownerDeviceId") or self.device_id,
            last_modified_by_device_id=record.get("lastModifiedByDeviceId")
            or self.device_id,
            checksum=item_checksum(content),
            deleted=bool(record.get("deleted", False)),
            tags=[str(t) for t in tags] if isinstance(tags, list) else None,
        )
        title = record.get("title", record.get("name"))
        return DataItem(
            id=str(record_id),
            kind=kind,
            title=str(title) if title is not None else None,
            content=content,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Items -> partial dataset
    # ------------------------------------------------------------------

    @staticmethod
    def to_dataset(items: Iterable[DataItem]) -> dict[str, list[dict]]:
        """Group items back into export collections.

        Record-level fields are written back next to the content so the
        importer can upsert by id and honour tombstones.  Items of unknown
        kinds go to a collection named after the kind.
        """
        dataset: dict[str, list[dict]] = {}
        for item in items:
            collection = KIND_COLLECTIONS.get(item.kind, item.kind)
            if isinstance(item.content, dict):
                record = dict(item.content)
            else:
                record = {"value": item.content}
            meta = item.metadata
            record.update(
                {
                    "id": item.id,
                    "createdAt": meta.created_at,
                    "updatedAt": meta.updated_at,
                    "version": meta.version,
                    "deleted": meta.deleted,
                    "ownerDeviceId": meta.owner_device_id,
                    "lastModifiedByDeviceId": meta.last_modified_by_device_id,
                }
            )
            record = {k: v for k, v in record.items() if v is not None}
            dataset.setdefault(collection, []).append(record)
        return dataset

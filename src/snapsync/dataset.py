"""Local dataset exporter/importer backed by a JSON file.

The file holds the collections the sync engine works on::

    {
      "categories": [...],
      "prompts": [...],
      "aiConfigs": [...],
      "settings": {...},
      "history": [...]
    }

Deleted records are kept as tombstones (``"deleted": true``) so a later
sync can tell a delete from a record that never existed.

Protocols for the three collaborator roles are defined here so that the
orchestrator can be driven by any other store (a database, an app's IPC
bridge) with the same shape.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from .core.errors import LocalExportFailure, LocalImportFailure

logger = logging.getLogger(__name__)

COLLECTIONS = ("categories", "prompts", "aiConfigs", "settings", "history")


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class DatasetExporter(Protocol):
    def export_all(self) -> dict[str, Any]:
        """Return every collection, tombstones included."""
        ...  # pragma: no cover


class DatasetImporter(Protocol):
    def apply_changes(self, partial: dict[str, list[dict]]) -> None:
        """Upsert records by id, honouring ``deleted`` tombstones.

        Must be idempotent.
        """
        ...  # pragma: no cover


class BackupProvider(Protocol):
    def create_backup(self, label: str) -> str:
        """Snapshot the local dataset and return where it went."""
        ...  # pragma: no cover

    def restore_backup(self, location: str) -> None:
        """Put the dataset back to the copy at *location*."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# JSON file implementation
# ---------------------------------------------------------------------------


def _empty_dataset() -> dict[str, Any]:
    return {
        "categories": [],
        "prompts": [],
        "aiConfigs": [],
        "settings": {},
        "history": [],
    }


def _upsert(records: list[dict], incoming: dict) -> None:
    for index, record in enumerate(records):
        if isinstance(record, dict) and record.get("id") == incoming["id"]:
            records[index] = incoming
            return
    records.append(incoming)


class JsonDataset:
    """Exporter, importer and backup provider over one JSON file.

    Args:
        path: Dataset file.  A missing file reads as an empty dataset.
        backup_dir: Where ``create_backup()`` writes copies.  Defaults to a
            ``backups`` directory next to the dataset.
    """

    def __init__(self, path: Path, backup_dir: Path | None = None) -> None:
        self.path = Path(path)
        self.backup_dir = (
            Path(backup_dir) if backup_dir else self.path.parent / "backups"
        )
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return _empty_dataset()
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must hold a JSON object")
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # DatasetExporter
    # ------------------------------------------------------------------

    def export_all(self) -> dict[str, Any]:
        """Return every collection, tombstones included.

        Raises:
            LocalExportFailure: If the file cannot be read or parsed.
        """
        with self._lock:
            try:
                data = self._load()
            except (OSError, ValueError) as exc:
                raise LocalExportFailure(
                    f"Cannot export local dataset {self.path}: {exc}"
                ) from exc
        exported = _empty_dataset()
        exported.update(data)
        return exported

    # ------------------------------------------------------------------
    # DatasetImporter
    # ------------------------------------------------------------------

    def apply_changes(self, partial: dict[str, list[dict]]) -> None:
        """Upsert records by id into their collections.

        A settings object (as opposed to a list) is replaced by the record
        with id ``"settings"``.  Applying the same changes twice leaves the
        file unchanged.

        Raises:
            LocalImportFailure: If the file cannot be read or written.
        """
        if not partial:
            return
        with self._lock:
            try:
                data = self._load()
                for collection, records in partial.items():
                    current = data.get(collection)
                    for record in records:
                        if "id" not in record:
                            raise ValueError(
                                f"Record in {collection} has no id"
                            )
                        if isinstance(current, dict):
                            if record["id"] == "settings":
                                data[collection] = {
                                    k: v for k, v in record.items() if k != "id"
                                }
                                current = data[collection]
                            else:
                                logger.warning(
                                    "Ignoring %s record %s: collection is an object",
                                    collection,
                                    record["id"],
                                )
                            continue
                        if current is None:
                            current = data[collection] = []
                        _upsert(current, dict(record))
                self._save(data)
            except (OSError, ValueError, TypeError) as exc:
                raise LocalImportFailure(
                    f"Cannot apply changes to {self.path}: {exc}"
                ) from exc
        logger.info(
            "Applied %d records to %s",
            sum(len(r) for r in partial.values()),
            self.path,
        )

    # ------------------------------------------------------------------
    # BackupProvider
    # ------------------------------------------------------------------

    def create_backup(self, label: str) -> str:
        """Copy the dataset file into ``backup_dir``.

        Raises:
            LocalExportFailure: If the copy fails.
        """
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        safe_label = re.sub(r"[^A-Za-z0-9_-]+", "-", label).strip("-") or "backup"
        target = self.backup_dir / f"{self.path.stem}-{safe_label}-{stamp}.json"
        with self._lock:
            try:
                self.backup_dir.mkdir(parents=True, exist_ok=True)
                if self.path.exists():
                    shutil.copy2(self.path, target)
                else:
                    target.write_text(
                        json.dumps(_empty_dataset(), indent=2), encoding="utf-8"
                    )
            except OSError as exc:
                raise LocalExportFailure(
                    f"Cannot back up {self.path}: {exc}"
                ) from exc
        logger.info("Created local backup %s", target)
        return str(target)

    def restore_backup(self, location: str) -> None:
        """Replace the dataset with a copy made by ``create_backup()``.

        Raises:
            LocalImportFailure: If the copy cannot be read or written.
        """
        with self._lock:
            try:
                with open(location, encoding="utf-8") as fh:
                    data = json.load(fh)
                if not isinstance(data, dict):
                    raise ValueError(f"{location} must hold a JSON object")
                self._save(data)
            except (OSError, ValueError) as exc:
                raise LocalImportFailure(
                    f"Cannot restore {self.path} from {location}: {exc}"
                ) from exc
        logger.info("Restored %s from backup %s", self.path, location)

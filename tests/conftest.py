"""Shared pytest fixtures for snapsync tests."""

from __future__ import annotations

import copy
import json
import time
from pathlib import Path
from typing import Any

import pytest

from snapsync.core.errors import RemoteNotFound
from snapsync.dataset import JsonDataset
from snapsync.sync.canonical import item_checksum
from snapsync.sync.engine import SyncOrchestrator
from snapsync.sync.identity import DeviceIdentityProvider
from snapsync.sync.models import DataItem, RecordMetadata


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live WebDAV server",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class InMemoryRemoteStore:
    """``RemoteStore`` holding files in a dict.

    ``failures`` maps a method name to an exception raised on every call;
    ``delay`` makes ``exists`` block for that many seconds.
    """

    name = "memory"

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.directories: set[str] = set()
        self.writes: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.delay = 0.0

    def _maybe_fail(self, method: str) -> None:
        if method in self.failures:
            raise self.failures[method]

    def exists(self, path: str) -> bool:
        self._maybe_fail("exists")
        if self.delay:
            time.sleep(self.delay)
        return path in self.files or path in self.directories

    def read_bytes(self, path: str) -> bytes:
        self._maybe_fail("read_bytes")
        if path not in self.files:
            raise RemoteNotFound(f"{path} not found")
        return self.files[path]

    def write_bytes(self, path: str, data: bytes) -> None:
        self._maybe_fail("write_bytes")
        self.files[path] = data
        self.writes.append(path)

    def ensure_directory(self, path: str) -> None:
        self._maybe_fail("ensure_directory")
        self.directories.add(path)

    def check_connection(self) -> str:
        self._maybe_fail("check_connection")
        return "memory store"


class MemoryPreferences:
    """``PreferencesStore`` backed by a dict; ``broken`` makes every call fail."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(initial or {})
        self.broken = False

    def get(self) -> dict[str, Any]:
        if self.broken:
            raise OSError("preferences unavailable")
        return copy.deepcopy(self.data)

    def set(self, partial: dict[str, Any]) -> None:
        if self.broken:
            raise OSError("preferences unavailable")
        self.data.update(partial)


# ---------------------------------------------------------------------------
# Record and item factories
# ---------------------------------------------------------------------------


def make_record(
    record_id: str,
    title: str = "Untitled",
    updated_at: str = "2026-03-01T10:00:00.000Z",
    **fields: Any,
) -> dict[str, Any]:
    """Exported prompt-style record."""
    record = {
        "id": record_id,
        "title": title,
        "content": f"Body of {title}",
        "createdAt": "2026-01-01T00:00:00.000Z",
        "updatedAt": updated_at,
    }
    record.update(fields)
    return record


def make_item(
    item_id: str,
    content: dict[str, Any] | None = None,
    *,
    kind: str = "prompt",
    updated_at: str | None = "2026-03-01T10:00:00.000Z",
    version: int = 1,
    deleted: bool = False,
    device: str = "device-a",
    tags: list[str] | None = None,
) -> DataItem:
    """``DataItem`` with a correct checksum."""
    content = content if content is not None else {"title": item_id, "content": "text"}
    return DataItem(
        id=item_id,
        kind=kind,
        title=content.get("title"),
        content=content,
        metadata=RecordMetadata(
            created_at="2026-01-01T00:00:00.000Z",
            updated_at=updated_at,
            version=version,
            owner_device_id=device,
            last_modified_by_device_id=device,
            checksum=item_checksum(content),
            deleted=deleted,
            tags=tags,
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def remote():
    return InMemoryRemoteStore()


class Device:
    """One replica: a JSON dataset, its preferences and an orchestrator."""

    def __init__(self, root: Path, name: str, remote: InMemoryRemoteStore):
        self.name = name
        self.dataset = JsonDataset(root / name / "data.json")
        self.preferences = MemoryPreferences({"deviceId": f"device-{name}"})
        self.identity = DeviceIdentityProvider(self.preferences)
        self.orchestrator = SyncOrchestrator(
            remote,
            self.dataset,
            self.dataset,
            self.identity,
            backup=self.dataset,
            sync_folder="snapsync",
            io_timeout=5,
        )

    def seed(self, **collections: Any) -> None:
        self.dataset.path.parent.mkdir(parents=True, exist_ok=True)
        self.dataset.path.write_text(json.dumps(collections), encoding="utf-8")

    def records(self, collection: str = "prompts") -> list[dict]:
        return self.dataset.export_all()[collection]

    def live_ids(self, collection: str = "prompts") -> set[str]:
        return {r["id"] for r in self.records(collection) if not r.get("deleted")}


@pytest.fixture
def make_device(tmp_path, remote):
    """Factory for replicas sharing the ``remote`` fixture."""

    def _make(name: str) -> Device:
        return Device(tmp_path, name, remote)

    return _make

"""Tests for snapsync.factory: wiring Config into runtime components."""

import pytest

from snapsync.config import Config
from snapsync.dataset import JsonDataset
from snapsync.factory import build_orchestrator, build_remote, build_scheduler
from snapsync.remote import FolderStore, WebDAVStore
from snapsync.sync.scheduler import AutoSyncScheduler


class TestBuildRemote:
    """Tests for build_remote()."""

    def test_folder_backend(self, tmp_path):
        store = build_remote(Config(folder_path=str(tmp_path)))
        assert isinstance(store, FolderStore)
        assert store.root == tmp_path

    def test_webdav_backend(self):
        config = Config(
            backend="webdav",
            webdav_url="https://dav.example.com/files/",
            webdav_username="me",
            webdav_password="secret",
            webdav_insecure=True,
            io_timeout=12,
        )
        store = build_remote(config)
        assert isinstance(store, WebDAVStore)
        assert store.base_url == "https://dav.example.com/files"
        assert store.insecure is True
        assert store.timeout == (10, 12)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown backend"):
            build_remote(Config(backend="s3"))


class TestBuildOrchestrator:
    """Tests for build_orchestrator()."""

    def test_wires_dataset_and_settings(self, tmp_path):
        config = Config(
            folder_path=str(tmp_path / "drive"),
            dataset_path=str(tmp_path / "data.json"),
            state_path=str(tmp_path / "state.json"),
            backup_dir=str(tmp_path / "bak"),
            sync_folder="/team/",
            io_timeout=7,
        )

        orchestrator = build_orchestrator(config)

        assert isinstance(orchestrator.exporter, JsonDataset)
        assert orchestrator.exporter is orchestrator.importer
        assert orchestrator.backup is orchestrator.exporter
        assert orchestrator.exporter.backup_dir == tmp_path / "bak"
        assert orchestrator.backend_name == "folder"
        assert orchestrator.sync_folder == "team"
        assert orchestrator.io_timeout == 7

    def test_default_backup_dir_beside_dataset(self, tmp_path):
        config = Config(
            folder_path=str(tmp_path / "drive"),
            dataset_path=str(tmp_path / "data.json"),
            state_path=str(tmp_path / "state.json"),
        )
        orchestrator = build_orchestrator(config)
        assert orchestrator.exporter.backup_dir == tmp_path / "backups"


def test_build_scheduler(tmp_path):
    config = Config(
        folder_path=str(tmp_path),
        dataset_path=str(tmp_path / "data.json"),
        state_path=str(tmp_path / "state.json"),
        interval_minutes=2,
        max_consecutive_failures=3,
    )
    orchestrator = build_orchestrator(config)

    scheduler = build_scheduler(config, orchestrator)

    assert isinstance(scheduler, AutoSyncScheduler)
    assert scheduler.orchestrator is orchestrator
    assert scheduler.interval_seconds == 120
    assert scheduler.max_consecutive_failures == 3

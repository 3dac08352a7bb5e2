"""Tests for FolderStore.

Covers:
- exists/read/write/ensure_directory on a real directory
- RemoteNotFound for missing files
- Paths may not escape the root
- check_connection() configuration errors
"""

import pytest

from snapsync.core.errors import RemoteConfigurationError, RemoteNotFound
from snapsync.remote.folder import FolderStore


@pytest.fixture
def store(tmp_path):
    return FolderStore(tmp_path)


class TestFiles:
    """Basic file operations."""

    def test_write_then_read(self, store, tmp_path):
        store.write_bytes("snapsync/snapshot.json", b"{}")
        assert store.exists("snapsync/snapshot.json")
        assert store.read_bytes("snapsync/snapshot.json") == b"{}"
        assert (tmp_path / "snapsync" / "snapshot.json").read_bytes() == b"{}"

    def test_write_replaces_and_leaves_no_temp_files(self, store, tmp_path):
        store.write_bytes("a.json", b"1")
        store.write_bytes("a.json", b"2")
        assert store.read_bytes("a.json") == b"2"
        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]

    def test_missing_file(self, store):
        assert store.exists("nope.json") is False
        with pytest.raises(RemoteNotFound):
            store.read_bytes("nope.json")

    def test_ensure_directory(self, store, tmp_path):
        store.ensure_directory("snapsync/nested")
        store.ensure_directory("snapsync/nested")
        assert (tmp_path / "snapsync" / "nested").is_dir()

    def test_path_cannot_escape_root(self, store):
        with pytest.raises(ValueError, match="escapes"):
            store.read_bytes("../outside.json")


class TestCheckConnection:
    """Tests for check_connection()."""

    def test_existing_folder(self, store, tmp_path):
        assert store.check_connection() == f"folder {tmp_path}"

    def test_missing_folder(self, tmp_path):
        store = FolderStore(tmp_path / "missing")
        with pytest.raises(RemoteConfigurationError, match="does not exist"):
            store.check_connection()

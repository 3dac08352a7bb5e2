"""Tests for the unified config schema and to_fallbacks().

Covers every section model, build_config() and the flattening adapter
consumed by load_config().
"""

import pytest
from pydantic import ValidationError

from snapsync.config_schema import (
    LoggingConfig,
    SyncSection,
    UnifiedConfig,
    WebDAVSection,
    build_config,
    to_fallbacks,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_defaults(self):
        config = UnifiedConfig()
        assert config.sync.backend is None
        assert config.sync.sync_folder == "snapsync"
        assert config.sync.interval_minutes == 15
        assert config.folder.path is None
        assert config.webdav.insecure is False
        assert config.logging.level == "INFO"

    def test_full_config(self):
        config = build_config(
            {
                "sync": {"backend": "webdav", "auto_sync": True, "io_timeout": 5},
                "webdav": {"url": "https://dav.example.com", "username": "me"},
                "logging": {"level": "DEBUG", "file": "/tmp/s.log"},
            }
        )
        assert config.sync.backend == "webdav"
        assert config.sync.io_timeout == 5
        assert config.webdav.username == "me"
        assert config.logging.file == "/tmp/s.log"

    def test_empty_raw_data(self):
        assert build_config({}) == UnifiedConfig()

    def test_frozen(self):
        with pytest.raises(ValidationError):
            WebDAVSection().url = "https://x"


class TestSyncSection:
    """Validation rules of the sync section."""

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            SyncSection(backend="s3")

    @pytest.mark.parametrize(
        "field, value",
        [
            ("io_timeout", 0),
            ("io_timeout", 900),
            ("interval_minutes", 0),
            ("interval_minutes", 2000),
            ("max_consecutive_failures", 0),
        ],
    )
    def test_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            SyncSection(**{field: value})


class TestLoggingConfig:
    def test_defaults(self):
        assert LoggingConfig().file is None


# ---------------------------------------------------------------------------
# to_fallbacks()
# ---------------------------------------------------------------------------


class TestToFallbacks:
    """Tests for to_fallbacks()."""

    def test_drops_none_values(self):
        flat = to_fallbacks(UnifiedConfig())
        assert "backend" not in flat
        assert "folder_path" not in flat
        assert "webdav_url" not in flat
        assert flat["sync_folder"] == "snapsync"
        assert flat["webdav_insecure"] is False

    def test_maps_sections_to_flat_keys(self):
        flat = to_fallbacks(
            build_config(
                {
                    "sync": {"backend": "folder", "dataset_path": "~/data.json"},
                    "folder": {"path": "~/Dropbox"},
                    "webdav": {"password": "pw"},
                    "logging": {"file": "/tmp/s.log"},
                }
            )
        )
        assert flat["backend"] == "folder"
        assert flat["dataset_path"] == "~/data.json"
        assert flat["folder_path"] == "~/Dropbox"
        assert flat["webdav_password"] == "pw"
        assert flat["log_file"] == "/tmp/s.log"

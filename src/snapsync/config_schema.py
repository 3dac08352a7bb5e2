"""Unified configuration schema for snapsync.

Pydantic models for the YAML config file, one section per concern, plus
``to_fallbacks()`` which flattens a parsed config into the keyword
fallbacks accepted by ``config.load_config()``.

Usage:
    from snapsync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class WebDAVSection(BaseModel):
    """WebDAV server settings.

    All fields are optional: env vars and CLI args can supply them instead.
    """

    url: str | None = Field(default=None, description="Base collection URL")
    username: str | None = Field(default=None, description="WebDAV account")
    password: str | None = Field(
        default=None, description="WebDAV password or app token"
    )
    insecure: bool = Field(
        default=False,
        description="Disable TLS verification (development only)",
    )

    model_config = {"frozen": True}


class FolderSection(BaseModel):
    """Cloud-drive folder settings."""

    path: str | None = Field(
        default=None, description="Folder replicated by a cloud-drive client"
    )

    model_config = {"frozen": True}


class SyncSection(BaseModel):
    """Sync engine settings."""

    backend: Literal["folder", "webdav"] | None = Field(
        default=None, description="Remote backend"
    )
    sync_folder: str = Field(
        default="snapsync",
        description="Folder on the remote holding the snapshot files",
    )
    dataset_path: str | None = Field(
        default=None, description="Local dataset JSON file"
    )
    state_path: str | None = Field(
        default=None, description="Device identity and sync bookkeeping file"
    )
    backup_dir: str | None = Field(
        default=None, description="Where local backups are written"
    )
    io_timeout: float = Field(
        default=30.0, gt=0, le=600, description="Seconds per remote call"
    )
    auto_sync: bool = Field(
        default=False, description="Run syncs periodically in the MCP server"
    )
    interval_minutes: float = Field(
        default=15, ge=1, le=1440, description="Minutes between auto-syncs"
    )
    max_consecutive_failures: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Auto-sync pauses after this many failures in a row",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    sync: SyncSection = Field(default_factory=SyncSection)
    folder: FolderSection = Field(default_factory=FolderSection)
    webdav: WebDAVSection = Field(default_factory=WebDAVSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: On unknown backends or out-of-range numbers.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into ``load_config(yaml_fallbacks=...)`` keys.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    flat: dict[str, Any] = {
        "backend": unified.sync.backend,
        "sync_folder": unified.sync.sync_folder,
        "dataset_path": unified.sync.dataset_path,
        "state_path": unified.sync.state_path,
        "backup_dir": unified.sync.backup_dir,
        "io_timeout": unified.sync.io_timeout,
        "auto_sync": unified.sync.auto_sync,
        "interval_minutes": unified.sync.interval_minutes,
        "max_consecutive_failures": unified.sync.max_consecutive_failures,
        "folder_path": unified.folder.path,
        "webdav_url": unified.webdav.url,
        "webdav_username": unified.webdav.username,
        "webdav_password": unified.webdav.password,
        "webdav_insecure": unified.webdav.insecure,
        "log_file": unified.logging.file,
    }
    return {key: value for key, value in flat.items() if value is not None}

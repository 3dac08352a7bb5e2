"""Runtime configuration for the CLI and MCP server.

Reads backend and dataset settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SNAPSYNC_BACKEND: "folder" or "webdav" (default: folder)
    SNAPSYNC_FOLDER_PATH: Cloud-drive folder (folder backend)
    SNAPSYNC_WEBDAV_URL: WebDAV base collection URL (webdav backend)
    SNAPSYNC_WEBDAV_USERNAME: WebDAV account
    SNAPSYNC_WEBDAV_PASSWORD: WebDAV password or app token
    SNAPSYNC_WEBDAV_INSECURE: Skip TLS verification (default: false)
    SNAPSYNC_DATASET: Local dataset file
    SNAPSYNC_STATE: Device identity and bookkeeping file
    SNAPSYNC_IO_TIMEOUT: Seconds per remote call (default: 30)
    SNAPSYNC_SYNC_INTERVAL: Minutes between auto-syncs (default: 15)
    SNAPSYNC_AUTO_SYNC: Enable auto-sync in the MCP server (default: false)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DATA_HOME = Path("~/.local/share/snapsync")
BACKENDS = ("folder", "webdav")


@dataclass
class Config:
    backend: str = "folder"
    folder_path: str | None = None
    webdav_url: str | None = None
    webdav_username: str | None = None
    webdav_password: str | None = None
    webdav_insecure: bool = False
    sync_folder: str = "snapsync"
    dataset_path: str = str(DATA_HOME / "data.json")
    state_path: str = str(DATA_HOME / "state.json")
    backup_dir: str | None = None
    io_timeout: float = 30.0
    auto_sync: bool = False
    interval_minutes: float = 15.0
    max_consecutive_failures: int = 5
    debug: bool = False
    log_file: str | None = None


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the backend is unknown, its required settings are
            missing or malformed, or a number is out of range.
    """
    if config.backend not in BACKENDS:
        raise ValueError(
            f"Unknown backend '{config.backend}': expected one of {', '.join(BACKENDS)}"
        )

    if config.backend == "webdav":
        url = (config.webdav_url or "").strip()
        if not url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid WebDAV URL '{url}': must start with http:// or https://"
            )
        if not urlparse(url).hostname:
            raise ValueError(
                f"Invalid WebDAV URL '{url}': URL must include a hostname"
            )
        config.webdav_url = url.removesuffix("/")
        if not (config.webdav_username or "").strip():
            raise ValueError(
                "WebDAV username cannot be empty. Set SNAPSYNC_WEBDAV_USERNAME."
            )
        if not (config.webdav_password or "").strip():
            raise ValueError(
                "WebDAV password cannot be empty. Set SNAPSYNC_WEBDAV_PASSWORD."
            )
        if config.webdav_insecure:
            logger.warning(
                "WARNING: TLS verification disabled (insecure=True). Use only for development."
            )
    elif not (config.folder_path or "").strip():
        raise ValueError(
            "Sync folder not set. Set SNAPSYNC_FOLDER_PATH, pass --folder, "
            "or add 'folder.path' to config.yml."
        )

    if not config.sync_folder.strip("/ "):
        raise ValueError("sync_folder cannot be empty")
    if not (0 < config.io_timeout <= 600):
        raise ValueError(
            f"Invalid io_timeout {config.io_timeout}: must be between 0 and 600 seconds"
        )
    if not (1 <= config.interval_minutes <= 1440):
        raise ValueError(
            f"Invalid interval_minutes {config.interval_minutes}: must be between 1 and 1440"
        )
    if config.max_consecutive_failures < 1:
        raise ValueError("max_consecutive_failures must be at least 1")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, kind: type) -> Any:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_config(
    backend: str | None = None,
    folder: str | None = None,
    webdav_url: str | None = None,
    dataset: str | None = None,
    state: str | None = None,
    debug: bool = False,
    log_file: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` first so that
    .env values are visible through ``os.getenv()``.

    Args:
        backend: Override backend name.
        folder: Override cloud-drive folder.
        webdav_url: Override WebDAV URL.
        dataset: Override local dataset path.
        state: Override bookkeeping file path.
        debug: Enable debug logging (CLI flag).
        log_file: Log file path (CLI flag).
        yaml_fallbacks: Flat dict from ``config_schema.to_fallbacks()``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the resolved configuration is invalid.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    def pick(cli: Any, env_key: str | None, key: str) -> Any:
        if cli is not None:
            return cli
        if env_key:
            env_val = os.getenv(env_key)
            if env_val:
                return env_val.strip()
        return fb.get(key, getattr(defaults, key))

    def pick_typed(env_key: str, key: str, kind: type) -> Any:
        env_val = _get_number_env(env_key, kind)
        if env_val is not None:
            return env_val
        return kind(fb.get(key, getattr(defaults, key)))

    env_insecure = _get_bool_env("SNAPSYNC_WEBDAV_INSECURE")
    env_auto = _get_bool_env("SNAPSYNC_AUTO_SYNC")
    env_debug = _get_bool_env("SNAPSYNC_DEBUG")

    config = Config(
        backend=pick(backend, "SNAPSYNC_BACKEND", "backend").lower(),
        folder_path=pick(folder, "SNAPSYNC_FOLDER_PATH", "folder_path"),
        webdav_url=pick(webdav_url, "SNAPSYNC_WEBDAV_URL", "webdav_url"),
        webdav_username=pick(None, "SNAPSYNC_WEBDAV_USERNAME", "webdav_username"),
        webdav_password=pick(None, "SNAPSYNC_WEBDAV_PASSWORD", "webdav_password"),
        webdav_insecure=(
            env_insecure
            if env_insecure is not None
            else bool(fb.get("webdav_insecure", False))
        ),
        sync_folder=pick(None, None, "sync_folder"),
        dataset_path=pick(dataset, "SNAPSYNC_DATASET", "dataset_path"),
        state_path=pick(state, "SNAPSYNC_STATE", "state_path"),
        backup_dir=pick(None, None, "backup_dir"),
        io_timeout=pick_typed("SNAPSYNC_IO_TIMEOUT", "io_timeout", float),
        auto_sync=(
            env_auto if env_auto is not None else bool(fb.get("auto_sync", False))
        ),
        interval_minutes=pick_typed(
            "SNAPSYNC_SYNC_INTERVAL", "interval_minutes", float
        ),
        max_consecutive_failures=int(
            fb.get("max_consecutive_failures", defaults.max_consecutive_failures)
        ),
        debug=debug or bool(env_debug),
        log_file=log_file or fb.get("log_file"),
    )

    validate_config(config)
    return config

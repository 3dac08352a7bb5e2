"""
Hierarchical configuration loader for snapsync.

Finds YAML config files by convention, resolves ``!include`` directives and
``${VAR}`` references, and merges files so the project-level file wins.

Usage:
    from snapsync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SNAPSYNC_CONFIG"
PROJECT_CONFIG = Path(".snapsync") / "config.yml"
GLOBAL_CONFIG = Path(".config") / "snapsync" / "config.yml"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    An unset or empty variable falls back to *default*, or to ``""`` when
    no default is given.  A ``${`` without a closing brace is left alone.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with ``!include`` support.

    A subclass keeps the global ``yaml.SafeLoader`` untouched.  Each load
    carries its own include stack for cycle detection.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml``; relative paths resolve against
    the including file."""
    raw_path = Path(loader.construct_scalar(node)).expanduser()
    source = Path(loader.name).resolve()
    include_path = (
        raw_path if raw_path.is_absolute() else source.parent / raw_path
    ).resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in stack:
        chain = " -> ".join(str(p) for p in [*stack, include_path])
        raise ValueError(f"Circular include detected: {chain}")
    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} (referenced from {source})"
        )
    return _load_yaml(include_path, include_stack=[*stack, include_path])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml(path: Path, *, include_stack: list[Path] | None = None) -> Any:
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``SNAPSYNC_CONFIG`` (explicit path)
        2. ``.snapsync/config.yml`` in the working directory
        3. ``~/.config/snapsync/config.yml``
    """
    candidates: list[Path] = []
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())
    candidates.append(Path.cwd() / PROJECT_CONFIG)
    candidates.append(Path.home() / GLOBAL_CONFIG)

    found: list[Path] = []
    for path in candidates:
        if path.exists() and path not in found:
            found.append(path)
    return found


_STARTER_CONFIG = """\
# snapsync configuration
#
# Values may reference environment variables: ${VAR} or ${VAR:-default}.
# Environment variables (SNAPSYNC_BACKEND, SNAPSYNC_WEBDAV_URL, ...) and
# command-line flags override anything set here.
#
# sync:
#   backend: folder            # folder | webdav
#   sync_folder: snapsync
#   dataset_path: ~/.local/share/snapsync/data.json
#   state_path: ~/.local/share/snapsync/state.json
#   io_timeout: 30
#   auto_sync: false
#   interval_minutes: 15
#   max_consecutive_failures: 5
#
# folder:
#   path: ~/Dropbox
#
# webdav:
#   url: https://dav.example.com/remote.php/dav/files/me
#   username: me
#   password: ${SNAPSYNC_WEBDAV_PASSWORD}
#   insecure: false
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Highest-precedence existing config file, or the project default."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files load from lowest precedence to highest; each file's top-level
    sections replace earlier ones wholesale ("project wins").  Environment
    interpolation runs after the merge.  No files means ``{}``.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found; using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = _load_yaml(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has a %s root, expected a mapping; skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)

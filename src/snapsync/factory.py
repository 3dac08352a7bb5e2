"""Build runtime components from a resolved ``Config``.

Shared by the CLI and the MCP server so both wire the orchestrator the
same way.
"""

import logging
from pathlib import Path

from .config import Config
from .dataset import JsonDataset
from .remote import FolderStore, RemoteStore, WebDAVStore
from .sync.engine import SyncOrchestrator
from .sync.identity import DeviceIdentityProvider
from .sync.scheduler import AutoSyncScheduler
from .sync.state import JsonPreferencesStore

logger = logging.getLogger(__name__)


def build_remote(config: Config) -> RemoteStore:
    """Create the remote store for ``config.backend``."""
    match config.backend:
        case "webdav":
            return WebDAVStore(
                config.webdav_url or "",
                config.webdav_username or "",
                config.webdav_password or "",
                insecure=config.webdav_insecure,
                timeout=(10, config.io_timeout),
            )
        case "folder":
            return FolderStore(Path(config.folder_path or "."))
        case _:
            raise ValueError(f"Unknown backend '{config.backend}'")


def build_orchestrator(config: Config) -> SyncOrchestrator:
    """Create a ``SyncOrchestrator`` over the configured dataset and remote."""
    dataset = JsonDataset(
        Path(config.dataset_path).expanduser(),
        backup_dir=Path(config.backup_dir).expanduser() if config.backup_dir else None,
    )
    identity = DeviceIdentityProvider(
        JsonPreferencesStore(Path(config.state_path).expanduser())
    )
    remote = build_remote(config)
    logger.debug(
        "Orchestrator: backend=%s dataset=%s state=%s",
        config.backend,
        config.dataset_path,
        config.state_path,
    )
    return SyncOrchestrator(
        remote,
        dataset,
        dataset,
        identity,
        backup=dataset,
        backend_name=config.backend,
        sync_folder=config.sync_folder.strip("/"),
        io_timeout=config.io_timeout,
    )


def build_scheduler(
    config: Config, orchestrator: SyncOrchestrator
) -> AutoSyncScheduler:
    return AutoSyncScheduler(
        orchestrator,
        config.interval_minutes,
        max_consecutive_failures=config.max_consecutive_failures,
    )

"""Core helpers shared between the CLI, the MCP server and the sync engine."""

from .async_utils import run_sync, run_with_timeout
from .errors import (
    ConcurrentSyncRejected,
    LocalExportFailure,
    LocalImportFailure,
    RemoteConfigurationError,
    RemoteDataCorrupt,
    RemoteNotFound,
    RemoteUnavailable,
    SyncError,
    UnresolvableConflict,
)

__all__ = [
    "ConcurrentSyncRejected",
    "LocalExportFailure",
    "LocalImportFailure",
    "RemoteConfigurationError",
    "RemoteDataCorrupt",
    "RemoteNotFound",
    "RemoteUnavailable",
    "SyncError",
    "UnresolvableConflict",
    "run_sync",
    "run_with_timeout",
]

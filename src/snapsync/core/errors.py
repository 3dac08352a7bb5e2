"""Error taxonomy for the sync engine.

Only I/O boundaries raise these.  Rule evaluation, hashing and merging are
pure and never fail on well-formed input.  The orchestrator maps every
``SyncError`` to a ``SyncResult`` with ``success=False`` and the error's
``code`` as ``error_code``.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync failures.

    Attributes:
        code: Machine-readable error code exposed on ``SyncResult``.
    """

    code = "internal_error"

    def __init__(self, message: str, *, detail: dict | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class RemoteUnavailable(SyncError):
    """Network or filesystem failure reaching the remote store.

    Not retried internally; the caller's own schedule decides when to try
    again.
    """

    code = "remote_unavailable"


class RemoteConfigurationError(RemoteUnavailable):
    """The remote rejected our credentials or the base path is wrong.

    Retrying on a timer will not help, so the scheduler stops on this one.
    """


class RemoteNotFound(SyncError):
    """A path does not exist on the remote store."""

    code = "remote_not_found"


class RemoteDataCorrupt(SyncError):
    """Remote snapshot content exists but cannot be parsed.

    Never treated as an absent remote.
    """

    code = "remote_data_corrupt"


class LocalExportFailure(SyncError):
    """The local dataset could not be exported."""

    code = "local_export_failure"


class LocalImportFailure(SyncError):
    """Changes could not be applied to the local dataset."""

    code = "local_import_failure"


class ConcurrentSyncRejected(SyncError):
    """A sync was requested while another one is in flight."""

    code = "concurrent_sync_rejected"


class UnresolvableConflict(SyncError):
    """Both sides diverged and no rule could pick a winner."""

    code = "unresolvable_conflict"

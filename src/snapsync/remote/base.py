"""Remote object-store interface.

Paths are POSIX-style strings relative to the store root, e.g.
``"snapsync/snapshot.json"``.  Every method is blocking; the orchestrator
runs them in worker threads with a per-call timeout.

Errors:

- ``RemoteNotFound`` from ``read_bytes`` when the path does not exist;
- ``RemoteConfigurationError`` for bad credentials or a missing root;
- ``RemoteUnavailable`` for anything else that stops us reaching the store.
"""

from __future__ import annotations

from typing import Protocol


class RemoteStore(Protocol):
    """Byte-blob store reachable at relative paths."""

    name: str

    def exists(self, path: str) -> bool:
        """Return ``True`` if *path* exists."""
        ...  # pragma: no cover

    def read_bytes(self, path: str) -> bytes:
        """Return the content at *path*.

        Raises:
            RemoteNotFound: If *path* does not exist.
        """
        ...  # pragma: no cover

    def write_bytes(self, path: str, data: bytes) -> None:
        """Create or replace the content at *path*."""
        ...  # pragma: no cover

    def ensure_directory(self, path: str) -> None:
        """Create directory *path* (and parents) if missing."""
        ...  # pragma: no cover

    def check_connection(self) -> str:
        """Verify the store is reachable and return a short description."""
        ...  # pragma: no cover


def join_path(*parts: str) -> str:
    """Join relative store path segments with ``/``."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))

"""Remote store backed by a synced cloud-drive folder.

The cloud client (iCloud Drive, Dropbox, ...) replicates the folder; we only
read and write files in it.  Writes go through a temp file and
``os.replace()`` so the client never uploads a half-written snapshot.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from ..core.errors import RemoteConfigurationError, RemoteNotFound, RemoteUnavailable

logger = logging.getLogger(__name__)


class FolderStore:
    """``RemoteStore`` implementation over a local directory.

    Args:
        root: Cloud-drive folder.  It must already exist; the sync folder
            inside it is created on demand.
    """

    name = "folder"

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        root = self.root.resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"Path '{path}' escapes the sync root {root}")
        return target

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).exists()
        except OSError as exc:
            raise RemoteUnavailable(f"Cannot access {path}: {exc}") from exc

    def read_bytes(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise RemoteNotFound(f"{path} not found in {self.root}") from None
        except OSError as exc:
            raise RemoteUnavailable(f"Cannot read {path}: {exc}") from exc

    def write_bytes(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(target.parent), prefix=".", suffix=".tmp"
            )
        except OSError as exc:
            raise RemoteUnavailable(f"Cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, target)
        except BaseException as exc:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(exc, OSError):
                raise RemoteUnavailable(f"Cannot write {path}: {exc}") from exc
            raise
        logger.debug("Wrote %d bytes to %s", len(data), target)

    def ensure_directory(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RemoteUnavailable(
                f"Cannot create directory {path}: {exc}"
            ) from exc

    def check_connection(self) -> str:
        """Confirm the cloud folder exists and is writable."""
        if not self.root.is_dir():
            raise RemoteConfigurationError(
                f"Sync folder {self.root} does not exist or is not a directory"
            )
        if not os.access(self.root, os.W_OK):
            raise RemoteConfigurationError(
                f"Sync folder {self.root} is not writable"
            )
        return f"folder {self.root}"

"""Remote object-store adapters.

- ``RemoteStore``: the protocol the sync engine consumes.
- ``FolderStore``: a cloud-drive folder on the local filesystem.
- ``WebDAVStore``: a WebDAV collection reached with ``requests``.
"""

from .base import RemoteStore, join_path
from .folder import FolderStore
from .webdav import WebDAVStore

__all__ = ["FolderStore", "RemoteStore", "WebDAVStore", "join_path"]

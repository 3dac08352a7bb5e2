"""Persisted preferences store.

Holds the device identity and last-sync bookkeeping in a small JSON file
(``state.json`` by default, inside ``.snapsync/``).

Key design choices:

* **Atomic writes** -- ``set()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Partial updates** -- ``set()`` merges the given keys into the stored
  dict; keys not mentioned are kept.
* **Dict-based state** -- the store knows nothing about the keys it holds;
  ``DeviceIdentityProvider`` gives them meaning.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol


class PreferencesStore(Protocol):
    """Key-value store for device identity and sync bookkeeping."""

    def get(self) -> dict[str, Any]:
        """Return all stored values."""
        ...  # pragma: no cover

    def set(self, partial: dict[str, Any]) -> None:
        """Merge *partial* into the stored values and persist."""
        ...  # pragma: no cover


class JsonPreferencesStore:
    """Preferences persisted as one JSON object on disk.

    Args:
        path: Location of the JSON file.  Parent directories are created on
            first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> dict[str, Any]:
        """Load the stored values.

        Returns:
            The stored dict, or an empty dict if the file does not exist.

        Raises:
            OSError: If the file exists but cannot be read.
            ValueError: If the file is not a JSON object.
        """
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(
                f"Preferences file {self._path} must hold a JSON object"
            )
        return data

    def set(self, partial: dict[str, Any]) -> None:
        """Merge *partial* into the stored values and write atomically."""
        with self._lock:
            data = self.get()
            data.update(partial)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._path.parent), suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                os.replace(tmp_path, self._path)
            except BaseException:
                # Clean up temp file on any failure.
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise

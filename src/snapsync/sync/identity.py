"""Device identity and local sync bookkeeping.

The device id is an opaque value created once and persisted in the
preferences store.  How it was derived is irrelevant to the engine.

Preference keys used:

- ``deviceId``: stable per-installation identifier.
- ``syncCount``: number of completed syncs on this device.
- ``lastSyncTime``: ISO 8601 time of the last completed sync.
- ``lastSyncId``: ``syncId`` of the last snapshot this device wrote or
  accepted.
- ``lastDataHash``: data hash at the end of the last completed sync.
"""

from __future__ import annotations

import logging
import platform
import sys
import uuid
from typing import Any

from .. import __version__
from .models import DeviceInfo
from .state import PreferencesStore

logger = logging.getLogger(__name__)


class DeviceIdentityProvider:
    """Supply the device id and sync counter from a preferences store.

    If the store cannot be read or written, a fresh identity is used for
    the lifetime of this provider and the counter starts at zero.  That
    degrades same-device tie-breaking but never blocks a sync.

    Args:
        preferences: Persisted key-value store.
    """

    def __init__(self, preferences: PreferencesStore) -> None:
        self._preferences = preferences
        self._fallback_id: str | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Any] | None:
        try:
            return self._preferences.get()
        except Exception as exc:
            logger.warning("Preferences store unavailable: %s", exc)
            return None

    def _fallback(self) -> str:
        if self._fallback_id is None:
            self._fallback_id = uuid.uuid4().hex
            logger.warning(
                "Using temporary device id %s for this session",
                self._fallback_id,
            )
        return self._fallback_id

    def get_device_id(self) -> str:
        """Return the persisted device id, creating it on first use."""
        prefs = self._read()
        if prefs is None:
            return self._fallback()
        device_id = prefs.get("deviceId")
        if device_id:
            return str(device_id)

        device_id = uuid.uuid4().hex
        try:
            self._preferences.set({"deviceId": device_id})
        except Exception as exc:
            logger.warning("Could not persist device id: %s", exc)
            return self._fallback()
        logger.info("Created device id %s", device_id)
        return device_id

    def current_sync_count(self) -> int:
        """Return the last committed sync count (0 if none)."""
        prefs = self._read() or {}
        try:
            return int(prefs.get("syncCount", 0))
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring malformed syncCount %r", prefs.get("syncCount")
            )
            return 0

    def next_sync_count(self) -> int:
        """Return ``last + 1``.

        Optimistic: nothing is persisted here.  The caller commits the
        value after a successful sync.
        """
        return self.current_sync_count() + 1

    def last_sync_time(self) -> str | None:
        return (self._read() or {}).get("lastSyncTime")

    def last_sync_id(self) -> str | None:
        return (self._read() or {}).get("lastSyncId")

    def device_info(self) -> DeviceInfo:
        """Describe this installation for snapshot metadata."""
        return DeviceInfo(
            id=self.get_device_id(),
            name=platform.node() or None,
            platform=sys.platform,
            app_version=__version__,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def commit(
        self,
        sync_count: int,
        sync_time: str,
        sync_id: str | None = None,
        data_hash: str | None = None,
    ) -> None:
        """Persist bookkeeping after a fully successful sync.

        Raises:
            Exception: Whatever the preferences store raises on write.
        """
        update: dict[str, Any] = {
            "syncCount": sync_count,
            "lastSyncTime": sync_time,
        }
        if sync_id is not None:
            update["lastSyncId"] = sync_id
        if data_hash is not None:
            update["lastDataHash"] = data_hash
        self._preferences.set(update)
        logger.debug("Committed sync bookkeeping: %s", update)

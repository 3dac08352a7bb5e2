"""Periodic background sync.

``AutoSyncScheduler`` runs ``orchestrator.run()`` on a fixed interval as an
asyncio task.  A tick is skipped while a sync is already running or once
too many consecutive runs have failed; a success resets the failure count.
A failure that retrying cannot fix (rejected credentials, missing base
path) stops the scheduler altogether.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .engine import SyncOrchestrator
    from .models import SyncResult

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """Interval-driven sync runner.

    Args:
        orchestrator: The orchestrator to drive.
        interval_minutes: Minutes between ticks.
        max_consecutive_failures: Ticks are skipped once this many runs in a
            row have failed; a manual ``trigger_now()`` success resets it.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_minutes: float,
        max_consecutive_failures: int = 5,
    ) -> None:
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_minutes * 60
        self.max_consecutive_failures = max_consecutive_failures
        self.consecutive_failures = 0
        self.next_run_at: datetime | None = None
        self.stopped_reason: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; a no-op if already running."""
        if self.running:
            return
        self.stopped_reason = None
        self._task = asyncio.create_task(self._loop(), name="snapsync-auto-sync")
        logger.info(
            "Auto-sync started (every %.1f minutes)", self.interval_seconds / 60
        )

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task, self._task = self._task, None
        self.next_run_at = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Auto-sync stopped")

    async def _loop(self) -> None:
        while True:
            self.next_run_at = datetime.now(timezone.utc) + timedelta(
                seconds=self.interval_seconds
            )
            await asyncio.sleep(self.interval_seconds)
            if not await self.tick():
                self.next_run_at = None
                return

    async def tick(self) -> bool:
        """Run one scheduled sync unless it should be skipped.

        Returns:
            False when the scheduler must stop, True otherwise.
        """
        if self.orchestrator.in_progress:
            logger.info("Auto-sync tick skipped: a sync is already running")
            return True
        if self.consecutive_failures >= self.max_consecutive_failures:
            logger.warning(
                "Auto-sync tick skipped: %d consecutive failures",
                self.consecutive_failures,
            )
            return True

        result = await self.orchestrator.run()
        return self._record(result)

    async def trigger_now(self) -> SyncResult:
        """Run a sync immediately, outside the schedule."""
        result = await self.orchestrator.run()
        self._record(result)
        return result

    def _record(self, result: SyncResult) -> bool:
        if result.success:
            self.consecutive_failures = 0
            return True
        if result.error_code == "concurrent_sync_rejected":
            return True

        self.consecutive_failures += 1
        logger.warning(
            "Auto-sync failed (%d in a row): %s",
            self.consecutive_failures,
            result.message,
        )
        if not result.retryable:
            self.stopped_reason = result.message
            logger.error("Auto-sync disabled: %s", result.message)
            return False
        return True

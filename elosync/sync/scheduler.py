"""
Background sync scheduler.

Runs sync_all_courses periodically while the service is up:
- optional initial sync on start
- then one run every `interval_seconds`

Runs as an asyncio task on the service's event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from elosync.sync.sync_service import SyncResult, SyncService


@dataclass
class SchedulerStatus:
    """Current scheduler status."""

    is_running: bool = False
    is_syncing: bool = False
    last_run_at: datetime | None = None
    last_success: bool | None = None
    last_message: str | None = None
    total_runs: int = 0


@dataclass
class BackgroundSync:
    """
    Periodic sync manager.

    Usage:
        scheduler = BackgroundSync(service, interval_seconds=2700)
        scheduler.start()
        # ... service runs ...
        await scheduler.stop()
    """

    service: SyncService
    interval_seconds: float = 45 * 60
    run_on_start: bool = True
    on_sync_complete: Callable[[SyncResult], None] | None = None

    # Internal state
    _status: SchedulerStatus = field(default_factory=SchedulerStatus)
    _task: asyncio.Task | None = field(default=None, repr=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def status(self) -> SchedulerStatus:
        """Get current scheduler status."""
        return self._status

    def start(self) -> None:
        """Start the scheduler loop on the running event loop."""
        if self._status.is_running:
            logger.warning("Background sync already running")
            return

        self._stop_event.clear()
        self._status.is_running = True
        self._task = asyncio.create_task(self._loop(), name="elosync-background-sync")
        logger.info(
            f"Background sync started (interval: {self.interval_seconds}s, initial sync: {self.run_on_start})"
        )

    async def stop(self) -> None:
        """Stop the scheduler. A sync in progress is cancelled; its watermark stays unadvanced."""
        if not self._status.is_running:
            return

        logger.info("Stopping background sync...")
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._status.is_running = False
        self._status.is_syncing = False
        logger.info("Background sync stopped")

    async def sync_now(self) -> SyncResult | None:
        """Run one sync immediately. Returns None if a sync is already in progress."""
        return await self._do_sync()

    async def _loop(self) -> None:
        if self.run_on_start:
            await self._do_sync()

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass
            await self._do_sync()

    async def _do_sync(self) -> SyncResult | None:
        if self._status.is_syncing:
            logger.debug("Sync already in progress - skipping")
            return None

        self._status.is_syncing = True
        try:
            result = await self.service.sync_all_courses()
        except Exception as exc:  # The loop must survive any single run
            logger.error(f"Background sync error: {exc}")
            result = SyncResult(success=False, message=f"Background sync error: {exc}")
        finally:
            self._status.is_syncing = False

        self._status.last_run_at = datetime.now(timezone.utc)
        self._status.last_success = result.success
        self._status.last_message = result.message
        self._status.total_runs += 1

        if self.on_sync_complete:
            try:
                self.on_sync_complete(result)
            except Exception as exc:
                logger.warning(f"Sync callback failed: {exc}")

        return result

"""
Background retention sweeper.

Deletes records whose client-supplied date is older than the retention
horizon: once shortly after startup, then on a fixed interval.
"""

import asyncio
from datetime import date, timedelta
from typing import Optional

import structlog

from .metrics import MetricsCollector
from .storage import LogStorage

logger = structlog.get_logger(__name__)


class RetentionSweeper:
    """
    Periodic retention task.

    Retention is measured on the record's client date, not the ingestion
    time, so a skewed client clock shifts when its records expire.
    """

    def __init__(
        self,
        storage: LogStorage,
        retention_days: int = 7,
        interval_hours: float = 24,
        initial_delay_seconds: float = 5,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.storage = storage
        self.retention_days = retention_days
        self.interval_seconds = interval_hours * 3600
        self.initial_delay_seconds = initial_delay_seconds
        self.metrics = metrics
        self.last_deleted: Optional[int] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False

        logger.info(
            "Retention Sweeper initialized",
            retention_days=retention_days,
            interval_hours=interval_hours,
        )

    def cutoff_for(self, today: Optional[date] = None) -> str:
        """First date that is kept, as YYYY-MM-DD."""
        today = today or date.today()
        return (today - timedelta(days=self.retention_days)).isoformat()

    def sweep_once(self, today: Optional[date] = None) -> int:
        """Run one sweep synchronously and return the number of deleted records."""
        cutoff = self.cutoff_for(today)
        deleted = self.storage.delete_older_than(cutoff)
        self.last_deleted = deleted

        if self.metrics:
            self.metrics.record_retention_sweep(deleted)

        logger.info("Deleted old log entries", cutoff=cutoff, deleted=deleted)
        return deleted

    async def start(self) -> None:
        """Start the sweeper loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())

        logger.info("Retention Sweeper started")

    async def stop(self) -> None:
        """Stop the sweeper loop."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Retention Sweeper stopped")

    async def _run_loop(self) -> None:
        """Initial sweep after a short delay, then one per interval."""
        delay = self.initial_delay_seconds
        while self._running:
            try:
                await asyncio.sleep(delay)
                logger.info("Running log cleanup", retention_days=self.retention_days)
                await asyncio.to_thread(self.sweep_once)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Retention sweep failed", error=str(e), exc_info=True)
            delay = self.interval_seconds

    def is_healthy(self) -> bool:
        """Check if the sweeper loop is alive."""
        return self._running and self._task is not None and not self._task.done()

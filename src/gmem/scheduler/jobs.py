"""Scheduler for periodic maintenance using pure asyncio.

Jobs:
- Lock sweep: remove lock files abandoned by crashed processes
- Organize: redistribute records into their category files
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

from gmem.config import memory_dir
from gmem.memory.lock import cleanup_expired_locks
from gmem.memory.organize import organize

if TYPE_CHECKING:
    from gmem.config import GmemConfig

logger = logging.getLogger(__name__)

TIMESTAMP_FILE = ".organize_timestamp"


class Scheduler:
    """Simple asyncio-based scheduler for periodic tasks."""

    def __init__(self, config: GmemConfig, directory: Path | None = None) -> None:
        self._config = config
        self._dir = directory or memory_dir(config)
        self._sweep_interval = config.scheduler.lock_sweep_minutes * 60
        self._organize_interval = config.scheduler.organize_interval_hours * 3600

    @property
    def timestamp_file(self) -> Path:
        return self._dir / TIMESTAMP_FILE

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Run scheduled jobs until shutdown_event is set."""
        logger.info(
            "Scheduler started (lock sweep every %.0fs, organize every %.1fh) on %s",
            self._sweep_interval,
            self._organize_interval / 3600,
            self._dir,
        )

        while not shutdown_event.is_set():
            self.tick()
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self._sweep_interval)
                break  # shutdown requested
            except asyncio.TimeoutError:
                pass  # interval elapsed, run jobs

        logger.info("Scheduler stopped.")

    def tick(self, now: float | None = None) -> None:
        """Run whichever jobs are due. Job errors are logged, never raised."""
        now = time.time() if now is None else now
        try:
            self.sweep_locks()
        except Exception as e:
            logger.error("Lock sweep failed: %s", e)

        if self.organize_due(now):
            try:
                self.run_organize(now)
            except Exception as e:
                logger.error("Organize failed: %s", e)

    def sweep_locks(self) -> int:
        removed = cleanup_expired_locks(self._dir, self._config.lock.stale_seconds)
        if removed:
            logger.info("Removed %d stale lock files", removed)
        return removed

    def last_organized(self) -> float | None:
        try:
            return float(self.timestamp_file.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def organize_due(self, now: float) -> bool:
        last = self.last_organized()
        return last is None or now - last >= self._organize_interval

    def run_organize(self, now: float | None = None) -> dict[str, int]:
        counts = organize(self._config, self._dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self.timestamp_file.write_text(str(time.time() if now is None else now), encoding="utf-8")
        return counts

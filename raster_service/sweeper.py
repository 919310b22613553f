"""
Background sweep of orphaned scratch files.

Per-request cleanup lives in ScratchSpace; the sweeper only reclaims files
left behind by a crash mid-request. It runs as an explicitly owned asyncio
task with injected interval, retention window and clock, and only removes
files older than the retention window so it never races a request that is
still working on its files.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TempSweeper:
    """Periodically delete scratch files older than ``retention_seconds``."""

    def __init__(
        self,
        directory: Path,
        interval_seconds: float = 3600,
        retention_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if retention_seconds < 0:
            raise ValueError("retention_seconds must not be negative")
        self.directory = Path(directory)
        self.interval_seconds = interval_seconds
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self, max_age: Optional[float] = None) -> int:
        """
        Remove files older than ``max_age`` seconds (default: the retention window).

        Files that disappear between listing and deletion are skipped.

        Returns:
            Number of files removed
        """
        if max_age is None:
            max_age = self.retention_seconds
        if not self.directory.exists():
            return 0

        cutoff = self.clock() - max_age
        removed = 0
        for path in self.directory.iterdir():
            try:
                if not path.is_file():
                    continue
                if path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
                removed += 1
            except FileNotFoundError:
                # Deleted by its request (or another sweep) in the meantime
                continue
            except OSError as e:
                logger.warning(f"Could not remove scratch file {path}: {e}")

        if removed:
            logger.info(f"Scratch sweep removed {removed} file(s) from {self.directory}")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception as e:
                logger.error(f"Scratch sweep failed: {e}")

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Scratch sweeper started (interval={self.interval_seconds}s, "
            f"retention={self.retention_seconds}s)"
        )

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scratch sweeper stopped")

"""Cancellable background loop for periodic maintenance sweeps.

Lifecycle:
- `start()` schedules the loop on the running event loop; calling it twice is
  a no-op while the task is alive.
- `stop()` cancels the task and waits for it to finish.

Failure handling:
- Exceptions raised by the sweep callback are logged and the loop keeps
  running. Cancellation propagates.
"""

import asyncio
import logging
from typing import Callable


logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run `callback()` every `interval` seconds on an asyncio task."""

    def __init__(self, name: str, interval: float, callback: Callable[[], object]):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> None:
        try:
            self._callback()
        except Exception:
            logger.exception("Periodic task %s failed", self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("Started %s (interval=%.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped %s", self.name)

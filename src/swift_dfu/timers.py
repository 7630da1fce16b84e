"""Periodic asyncio tasks with single-instance semantics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

_LOGGER = logging.getLogger(__name__)


class PeriodicTask:
    """Run a callback every ``interval`` seconds on the running loop.

    At most one task exists per instance. ``start()`` cancels the previous
    task before creating a new one, so a stale timer can never fire after a
    restart. The callback runs on the loop thread and must not block.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        """Initialize the timer.

        Args:
            name: Task name, used in logs.
            interval: Seconds between two callbacks.
            callback: Synchronous function called on each tick.
        """
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Return True while the task is scheduled."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer, replacing any running instance."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=self.name
        )
        _LOGGER.debug("Started %s timer (every %.1fs)", self.name, self.interval)

    def cancel(self) -> None:
        """Stop the timer. Safe to call when not running."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            _LOGGER.debug("Stopped %s timer", self.name)
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self._callback()
            except Exception:
                _LOGGER.exception("Error in %s timer callback", self.name)

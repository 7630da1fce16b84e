"""Reboot countdown between the enable command and the BLE connection."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from .const import POLL_STOP_MARGIN, REBOOT_COUNTDOWN, REBOOT_TICK_INTERVAL
from .timers import PeriodicTask

_LOGGER = logging.getLogger(__name__)


class RebootPhase(Enum):
    """Countdown state."""

    IDLE = "idle"
    REBOOTING = "rebooting"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class RebootSequencer:
    """Bounded countdown that ends in confirmation or timeout.

    Each tick checks for confirmation first: an update-ready status processed
    before the tick wins over the timeout. Polling is stopped once,
    ``poll_stop_margin`` ticks into the countdown.
    """

    def __init__(
        self,
        is_confirmed: Callable[[], bool],
        stop_polling: Callable[[], None],
        on_timeout: Callable[[], None],
        tick_interval: float = REBOOT_TICK_INTERVAL,
        poll_stop_margin: int = POLL_STOP_MARGIN,
    ) -> None:
        self._is_confirmed = is_confirmed
        self._stop_polling = stop_polling
        self._on_timeout = on_timeout
        self._poll_stop_margin = poll_stop_margin
        self._timer = PeriodicTask("reboot-countdown", tick_interval, self.tick)
        self.phase = RebootPhase.IDLE
        self.budget = 0
        self.remaining = 0
        self.ticks = 0

    @property
    def rebooting(self) -> bool:
        return self.phase is RebootPhase.REBOOTING

    def start(self, budget: int = REBOOT_COUNTDOWN) -> None:
        """Start a new countdown, cancelling any running one."""
        self._timer.cancel()
        self.budget = budget
        self.remaining = budget
        self.ticks = 0
        self.phase = RebootPhase.REBOOTING
        _LOGGER.info("Rebooting device into DFU mode (%ds)", budget)
        self._timer.start()

    def cancel(self) -> None:
        """Stop the countdown without firing the timeout action."""
        self._timer.cancel()
        if self.phase is RebootPhase.REBOOTING:
            self.phase = RebootPhase.IDLE

    def tick(self) -> None:
        """Advance the countdown by one unit."""
        if self.phase is not RebootPhase.REBOOTING:
            return

        self.ticks += 1

        if self._is_confirmed():
            # Device is already reachable in DFU mode
            self.phase = RebootPhase.CONFIRMED
            self._timer.cancel()
            _LOGGER.info("DFU mode confirmed with %d ticks remaining", self.remaining)
            return

        self.remaining -= 1

        if self.remaining == self.budget - self._poll_stop_margin:
            self._stop_polling()

        if self.remaining <= 0:
            self.remaining = 0
            self.phase = RebootPhase.TIMED_OUT
            self._timer.cancel()
            _LOGGER.info("Reboot countdown expired without confirmation")
            self._on_timeout()

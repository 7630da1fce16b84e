"""Mode-transition handshake over the MIDI command link.

Flow:
1. ``request_update_mode()`` sends CC#91 (enable DFU) and starts the reboot
   countdown and status polling (CC#90, first poll immediately).
2. Every CC#90 reply is classified. Update-ready (127) stops polling and
   confirms the handshake; other values only update ``status_message``.
3. On confirmation or countdown timeout the owner starts the BLE transfer
   session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from .config import UpdaterConfig
from .const import CC_DFU_ENABLE, CC_DFU_STATUS, DFU_ENABLE_VALUE, DFU_POLL_VALUE
from .midi import CommandLink
from .reboot import RebootSequencer
from .status import DfuStatusCode, StatusKind, classify
from .timers import PeriodicTask

if TYPE_CHECKING:
    from .transfer import TransferSession

_LOGGER = logging.getLogger(__name__)


class HandshakeState(Enum):
    """Progress of the update-mode handshake."""

    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class ModeTransitionController:
    """Command the device into DFU mode and confirm it got there."""

    def __init__(
        self,
        command_link: CommandLink,
        config: UpdaterConfig | None = None,
        on_confirmed: Callable[[], None] | None = None,
        on_timeout: Callable[[], None] | None = None,
        restart_presence_check: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            command_link: Link used for commands and status replies.
            config: Updater configuration (defaults if omitted).
            on_confirmed: Called once per handshake when DFU mode is confirmed.
            on_timeout: Called when the countdown expires unconfirmed.
            restart_presence_check: Called after a completed update, once the
                device had time to reboot into normal mode.
        """
        self._link = command_link
        self._config = config or UpdaterConfig()
        self._on_confirmed = on_confirmed
        self._on_timeout = on_timeout
        self._restart_presence_check = restart_presence_check
        self._poll_timer = PeriodicTask(
            "dfu-status-poll", self._config.status_poll_interval, self._poll_tick
        )
        self._restart_handle: asyncio.TimerHandle | None = None
        self.sequencer = RebootSequencer(
            is_confirmed=lambda: self.confirmed,
            stop_polling=self.stop_polling,
            on_timeout=self._handle_timeout,
            tick_interval=self._config.reboot_tick_interval,
            poll_stop_margin=self._config.poll_stop_margin,
        )
        self.state = HandshakeState.IDLE
        self.last_status: DfuStatusCode | None = None
        self.status_message = "Checking status..."
        self._remove_listener = command_link.add_listener(self._on_message)

    @property
    def confirmed(self) -> bool:
        return self.state is HandshakeState.CONFIRMED

    @property
    def polling(self) -> bool:
        return self._poll_timer.running

    @property
    def remaining(self) -> int:
        """Countdown ticks left while awaiting confirmation."""
        return self.sequencer.remaining if self.sequencer.rebooting else 0

    def request_update_mode(self) -> None:
        """Send the enable command and start waiting for confirmation."""
        _LOGGER.info("Sending firmware update mode command")
        self._link.send(CC_DFU_ENABLE, DFU_ENABLE_VALUE)
        self.state = HandshakeState.AWAITING_CONFIRMATION
        self.sequencer.start(self._config.reboot_countdown)
        self.start_polling()

    def start_polling(self) -> None:
        """(Re)start status polling; the first poll is sent immediately."""
        self._poll_timer.cancel()
        if not self._link.has_destination:
            _LOGGER.debug("Cannot start DFU status polling: device not connected")
            return
        self._poll_timer.start()
        self.poll_status()

    def stop_polling(self) -> None:
        self._poll_timer.cancel()

    def poll_status(self) -> None:
        """Send one status request."""
        _LOGGER.debug("Polling device DFU status")
        self._link.send(CC_DFU_STATUS, DFU_POLL_VALUE)

    def handle_status(self, value: int) -> None:
        """Interpret a status reply from the device."""
        status = classify(value)
        self.last_status = status
        self.status_message = status.description(self._config.device_label)

        if status.kind is StatusKind.UNRECOGNIZED:
            _LOGGER.warning("Device returned unexpected DFU status code: %d", value)
        else:
            _LOGGER.debug("DFU status update: %s", self.status_message)

        if not status.is_update_ready or self.confirmed:
            return

        self.stop_polling()
        self.state = HandshakeState.CONFIRMED
        _LOGGER.info("DFU mode confirmed, ready for BLE connection")
        if self._on_confirmed is not None:
            self._on_confirmed()

    def on_device_present(self) -> None:
        """Command link destination appeared."""
        self.start_polling()

    def on_device_lost(self) -> None:
        """Command link destination vanished.

        Polling stops and the handshake returns to IDLE. A running reboot
        countdown keeps going: the device drops off the command link while
        it reboots into DFU mode, and the timeout still starts the transfer
        scan.
        """
        if self.state is not HandshakeState.IDLE:
            _LOGGER.info("Device lost, resetting handshake")
        self.stop_polling()
        self.state = HandshakeState.IDLE

    def reset(self) -> None:
        """Return to IDLE, stopping polling and the countdown."""
        self.stop_polling()
        self.sequencer.cancel()
        self.state = HandshakeState.IDLE

    def attach_transfer_session(self, session: TransferSession) -> None:
        """Listen for the transfer link closing."""
        session.add_link_closed_listener(self.handle_transfer_link_closed)

    def handle_transfer_link_closed(self, update_completed: bool) -> None:
        """Transfer link went down; after a completed update the device reboots."""
        if not update_completed:
            return

        _LOGGER.info(
            "Device disconnected after completing firmware update - resetting DFU mode"
        )
        self.reset()
        self.status_message = "Firmware update completed. Device restarting..."

        if self._restart_presence_check is None:
            return
        if self._restart_handle is not None:
            self._restart_handle.cancel()
        self._restart_handle = asyncio.get_running_loop().call_later(
            self._config.restart_check_delay, self._resume_presence_check
        )

    def close(self) -> None:
        """Cancel every timer owned by the controller."""
        self.reset()
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
        self._remove_listener()

    def _resume_presence_check(self) -> None:
        self._restart_handle = None
        if self._restart_presence_check is not None:
            self._restart_presence_check()

    def _poll_tick(self) -> None:
        if self._link.has_destination:
            self.poll_status()

    def _on_message(self, control_number: int, value: int) -> None:
        if control_number == CC_DFU_STATUS:
            self.handle_status(value)

    def _handle_timeout(self) -> None:
        self.stop_polling()
        self.state = HandshakeState.TIMED_OUT
        if self._on_timeout is not None:
            self._on_timeout()

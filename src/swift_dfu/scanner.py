"""Command-link presence detection."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum

from .const import DEVICE_PORT_NAMES, HARDWARE_CHECK_INTERVAL
from .controller import ModeTransitionController
from .midi import CommandLink, MidiEndpoint
from .timers import PeriodicTask

_LOGGER = logging.getLogger(__name__)


class DevicePresence(Enum):
    """Reachability of the device over the command link."""

    UNKNOWN = "unknown"
    SCANNING = "scanning"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class DeviceScanner:
    """Periodically look for a known device among the MIDI destinations."""

    def __init__(
        self,
        command_link: CommandLink,
        controller: ModeTransitionController,
        device_names: Sequence[str] = DEVICE_PORT_NAMES,
        interval: float = HARDWARE_CHECK_INTERVAL,
    ) -> None:
        self._link = command_link
        self._controller = controller
        self.device_names = tuple(device_names)
        self._timer = PeriodicTask("hardware-check", interval, self.tick)
        self.presence = DevicePresence.UNKNOWN
        self.scan_count = 0

    @property
    def connected(self) -> bool:
        return self.presence is DevicePresence.CONNECTED

    @property
    def status_message(self) -> str:
        if self.presence is DevicePresence.UNKNOWN:
            return "Initializing..."
        if self.presence is DevicePresence.SCANNING:
            return f"Searching for device... (Scan #{self.scan_count})"
        if self.presence is DevicePresence.CONNECTED:
            return f"Connected to {self._link.destination_name} via USB"
        return "Device not found (Retrying...)"

    def start(self) -> None:
        """Check now, then keep checking periodically."""
        self.tick()
        self._timer.start()

    def stop(self) -> None:
        self._timer.cancel()

    def restart(self) -> None:
        """Forget the last presence result and start checking again.

        The next match is treated as a fresh connection, so polling resumes.
        """
        self.stop()
        self.presence = DevicePresence.UNKNOWN
        self.start()

    def find_device(self, destinations: Sequence[MidiEndpoint]) -> MidiEndpoint | None:
        """Return the first destination whose name contains a known device name."""
        for destination in destinations:
            if any(name in destination.name for name in self.device_names):
                return destination
        return None

    def tick(self) -> None:
        """Run one presence check."""
        destinations = self._link.refresh_destinations()
        self.scan_count += 1

        # Device is rebooting into DFU mode on purpose, don't flap
        if self._controller.confirmed:
            return

        was_connected = self.presence is DevicePresence.CONNECTED
        self.presence = DevicePresence.SCANNING

        match = self.find_device(destinations)
        if match is None:
            if was_connected:
                _LOGGER.info("Device %s disconnected", self._link.destination_name)
            else:
                _LOGGER.debug(
                    "No matching port found among %s", [d.name for d in destinations]
                )
            self._link.select(None)
            self.presence = DevicePresence.DISCONNECTED
            self._controller.on_device_lost()
            return

        if was_connected:
            self.presence = DevicePresence.CONNECTED
            return

        _LOGGER.info("Found matching port: %s", match.name)
        self._link.select(match)
        self.presence = DevicePresence.CONNECTED
        self._controller.on_device_present()

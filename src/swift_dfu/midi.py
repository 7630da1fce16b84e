"""MIDI command/status link.

The host MIDI stack (CoreMIDI, ALSA, a USB bridge...) is an external
collaborator described by the ``MidiHost`` protocol. ``CommandLink`` owns the
selected destination, encodes outgoing Control-Change messages and delivers
decoded inbound ones on the asyncio loop.

Wire format: [0xB0 | channel, control_number, value], 3 bytes per message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .const import (
    MIDI_CHANNEL_MASK,
    MIDI_CONTROL_CHANGE,
    MIDI_MESSAGE_LENGTH,
    MIDI_STATUS_TYPE_MASK,
)

_LOGGER = logging.getLogger(__name__)

MessageListener = Callable[[int, int], None]


@dataclass(frozen=True)
class MidiEndpoint:
    """A MIDI destination as enumerated by the host."""

    name: str
    ref: Any = None


class MidiHost(Protocol):
    """Primitives exposed by the host MIDI stack."""

    def destinations(self) -> list[MidiEndpoint]:
        """Return the currently visible destinations."""

    def send(self, endpoint: MidiEndpoint, data: bytes) -> None:
        """Send raw MIDI bytes to a destination."""

    def set_receiver(self, callback: Callable[[bytes], None] | None) -> None:
        """Register the inbound packet callback (may fire on any thread)."""


def encode_control_change(control_number: int, value: int, channel: int = 0) -> bytes:
    """Encode a Control-Change message.

    Args:
        control_number: Controller number.
        value: Controller value.
        channel: Zero-based MIDI channel (0 = channel 1).

    Returns:
        bytes: The 3-byte message.
    """
    # Clamp values to byte range
    control_number = max(0, min(255, control_number))
    value = max(0, min(255, value))
    status = MIDI_CONTROL_CHANGE | (channel & MIDI_CHANNEL_MASK)
    return bytes([status, control_number, value])


def decode_control_changes(data: bytes) -> list[tuple[int, int]]:
    """Decode every Control-Change message in a packet.

    Messages of other kinds are skipped, CC messages are accepted on any
    channel. A trailing partial message is ignored.

    Returns:
        List of (control_number, value) pairs in arrival order.
    """
    messages: list[tuple[int, int]] = []
    for offset in range(0, len(data) - MIDI_MESSAGE_LENGTH + 1, MIDI_MESSAGE_LENGTH):
        status, control_number, value = data[offset : offset + MIDI_MESSAGE_LENGTH]
        if status & MIDI_STATUS_TYPE_MASK != MIDI_CONTROL_CHANGE:
            _LOGGER.debug("Ignoring MIDI message with status 0x%02X", status)
            continue
        messages.append((control_number, value))
    return messages


class CommandLink:
    """Send commands to, and receive status from, the selected destination."""

    def __init__(self, host: MidiHost) -> None:
        self._host = host
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listeners: list[MessageListener] = []
        self._destinations: list[MidiEndpoint] = []
        self._selected: MidiEndpoint | None = None

    @property
    def destinations(self) -> list[MidiEndpoint]:
        """Destinations seen by the last refresh."""
        return list(self._destinations)

    @property
    def selected(self) -> MidiEndpoint | None:
        return self._selected

    @property
    def has_destination(self) -> bool:
        return self._selected is not None

    @property
    def destination_name(self) -> str:
        return self._selected.name if self._selected else ""

    def attach(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start receiving inbound messages on ``loop`` (default: running loop)."""
        self._loop = loop or asyncio.get_running_loop()
        self._host.set_receiver(self._on_packet)

    def close(self) -> None:
        """Stop receiving inbound messages."""
        self._host.set_receiver(None)
        self._loop = None

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        """Register a (control_number, value) listener.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def refresh_destinations(self) -> list[MidiEndpoint]:
        """Enumerate destinations through the host."""
        self._destinations = list(self._host.destinations())
        return self.destinations

    def select(self, endpoint: MidiEndpoint | None) -> None:
        """Select the destination for outgoing messages (None clears it)."""
        if endpoint != self._selected:
            _LOGGER.debug(
                "MIDI destination: %s", endpoint.name if endpoint else "<none>"
            )
        self._selected = endpoint

    def send(self, control_number: int, value: int) -> bool:
        """Send a Control-Change message to the selected destination.

        Never raises. Without a selected destination the message is dropped
        and a NoDestinationSelected warning is logged.

        Returns:
            bool: True if the message was handed to the host.
        """
        if self._selected is None:
            _LOGGER.warning(
                "NoDestinationSelected: dropping CC #%d value %d", control_number, value
            )
            return False

        data = encode_control_change(control_number, value)
        self._host.send(self._selected, data)
        _LOGGER.debug(
            "Sent MIDI CC #%d value %d to %s", control_number, value, self._selected.name
        )
        return True

    def deliver(self, data: bytes) -> None:
        """Decode a packet and notify listeners. Must run on the loop."""
        for control_number, value in decode_control_changes(data):
            _LOGGER.debug("Received MIDI CC #%d with value %d", control_number, value)
            for listener in list(self._listeners):
                listener(control_number, value)

    def _on_packet(self, data: bytes) -> None:
        """Host callback, possibly on a foreign thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            _LOGGER.debug("Dropping MIDI packet received while detached")
            return
        loop.call_soon_threadsafe(self.deliver, bytes(data))

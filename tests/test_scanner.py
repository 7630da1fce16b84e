"""Tests for command-link presence detection."""

from __future__ import annotations

import asyncio

import pytest

from swift_dfu.controller import HandshakeState, ModeTransitionController
from swift_dfu.midi import MidiEndpoint
from swift_dfu.reboot import RebootPhase
from swift_dfu.scanner import DevicePresence, DeviceScanner

from conftest import NEVER

POLL = ("SWIFT Bluetooth", bytes([0xB0, 0x5A, 0x00]))


@pytest.fixture
def controller(command_link, manual_config):
    controller = ModeTransitionController(command_link, manual_config)
    yield controller
    controller.close()


@pytest.fixture
def scanner(command_link, controller):
    scanner = DeviceScanner(command_link, controller, interval=NEVER)
    yield scanner
    scanner.stop()


class TestFindDevice:
    """Tests for port name matching."""

    def test_substring_match(self, scanner) -> None:
        destinations = [MidiEndpoint("IAC Bus 1"), MidiEndpoint("XIAO_ESP32S3 Port 1")]
        assert scanner.find_device(destinations) == destinations[1]

    def test_first_match_wins(self, scanner) -> None:
        destinations = [MidiEndpoint("SWIFT A"), MidiEndpoint("SWIFT B")]
        assert scanner.find_device(destinations).name == "SWIFT A"

    def test_no_match(self, scanner) -> None:
        assert scanner.find_device([MidiEndpoint("IAC Bus 1")]) is None
        assert scanner.find_device([]) is None


class TestTick:
    """Tests for a single presence check."""

    @pytest.mark.asyncio
    async def test_found_selects_and_polls(
        self, scanner, command_link, midi_host, swift_endpoint, controller
    ) -> None:
        """A new match becomes the destination and triggers an immediate poll."""
        midi_host.endpoints = [MidiEndpoint("IAC Bus 1"), swift_endpoint]
        scanner.tick()

        assert scanner.presence is DevicePresence.CONNECTED
        assert scanner.connected is True
        assert command_link.selected == swift_endpoint
        assert controller.polling is True
        assert midi_host.sent == [POLL]
        assert scanner.status_message == "Connected to SWIFT Bluetooth via USB"

    @pytest.mark.asyncio
    async def test_still_present_does_not_repoll(
        self, scanner, midi_host, swift_endpoint
    ) -> None:
        midi_host.endpoints = [swift_endpoint]
        scanner.tick()
        scanner.tick()

        assert scanner.presence is DevicePresence.CONNECTED
        assert midi_host.sent == [POLL]
        assert scanner.scan_count == 2

    @pytest.mark.asyncio
    async def test_lost_resets_handshake_keeps_countdown(
        self, scanner, command_link, midi_host, swift_endpoint, controller
    ) -> None:
        """Losing the port clears the destination and the handshake, not the countdown."""
        midi_host.endpoints = [swift_endpoint]
        scanner.tick()
        controller.request_update_mode()
        assert controller.state is HandshakeState.AWAITING_CONFIRMATION

        midi_host.endpoints = []
        scanner.tick()

        assert scanner.presence is DevicePresence.DISCONNECTED
        assert command_link.has_destination is False
        assert controller.state is HandshakeState.IDLE
        assert controller.polling is False
        assert controller.sequencer.phase is RebootPhase.REBOOTING
        assert scanner.status_message == "Device not found (Retrying...)"

    @pytest.mark.asyncio
    async def test_confirmed_keeps_presence(
        self, scanner, command_link, midi_host, swift_endpoint, controller
    ) -> None:
        """While DFU mode is confirmed the port may vanish without a reset."""
        midi_host.endpoints = [swift_endpoint]
        scanner.tick()
        controller.request_update_mode()
        controller.handle_status(127)

        midi_host.endpoints = []
        scanner.tick()

        assert scanner.presence is DevicePresence.CONNECTED
        assert command_link.selected == swift_endpoint
        assert controller.confirmed is True
        assert scanner.scan_count == 2

    def test_initial_message(self, scanner) -> None:
        assert scanner.presence is DevicePresence.UNKNOWN
        assert scanner.status_message == "Initializing..."

    def test_scanning_message(self, scanner) -> None:
        scanner.presence = DevicePresence.SCANNING
        scanner.scan_count = 4
        assert scanner.status_message == "Searching for device... (Scan #4)"


class TestStartStop:
    """Tests for the periodic check."""

    @pytest.mark.asyncio
    async def test_start_checks_immediately(self, scanner, midi_host, swift_endpoint) -> None:
        midi_host.endpoints = [swift_endpoint]
        scanner.start()
        assert scanner.scan_count == 1
        assert scanner.connected is True

    @pytest.mark.asyncio
    async def test_periodic_checks(self, command_link, controller, midi_host) -> None:
        scanner = DeviceScanner(command_link, controller, interval=0.01)
        scanner.start()
        await asyncio.sleep(0.05)
        scanner.stop()
        count = scanner.scan_count

        assert count >= 3
        await asyncio.sleep(0.03)
        assert scanner.scan_count == count

    @pytest.mark.asyncio
    async def test_restart_repolls_present_device(
        self, scanner, midi_host, swift_endpoint, controller
    ) -> None:
        """After a restart a still-present device is treated as new."""
        midi_host.endpoints = [swift_endpoint]
        scanner.start()
        controller.stop_polling()

        scanner.restart()

        assert scanner.connected is True
        assert controller.polling is True
        assert midi_host.sent == [POLL, POLL]

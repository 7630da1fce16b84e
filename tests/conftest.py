"""Fixtures for SWIFT updater tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from swift_dfu.config import UpdaterConfig
from swift_dfu.errors import LinkWriteFailed
from swift_dfu.firmware import FirmwareSource
from swift_dfu.midi import CommandLink, MidiEndpoint
from swift_dfu.transfer import TransferEndpoint

if TYPE_CHECKING:
    from collections.abc import Generator

# Long enough that no timer fires during a test; ticks are driven by hand
NEVER = 3600.0

FIRMWARE_SIZE = 1000


class FakeMidiHost:
    """In-memory MIDI host."""

    def __init__(self) -> None:
        self.endpoints: list[MidiEndpoint] = []
        self.sent: list[tuple[str, bytes]] = []
        self.receiver: Callable[[bytes], None] | None = None

    def destinations(self) -> list[MidiEndpoint]:
        return list(self.endpoints)

    def send(self, endpoint: MidiEndpoint, data: bytes) -> None:
        self.sent.append((endpoint.name, bytes(data)))

    def set_receiver(self, callback: Callable[[bytes], None] | None) -> None:
        self.receiver = callback


class FakeTransferLink:
    """In-memory transfer link with controllable write completion."""

    def __init__(self) -> None:
        self.endpoint: TransferEndpoint | None = TransferEndpoint(
            name="SWIFT_DFU", address="AA:BB:CC:DD:EE:FF"
        )
        self.max_write_size = 100
        self.connect_error: Exception | None = None
        self.bond_error: Exception | None = None
        self.auto_complete = True
        self.fail_on_write: int | None = None
        self.writes: list[bytes] = []
        self.pending: list[asyncio.Future[None]] = []
        self.max_in_flight = 0
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.forget_calls = 0
        self.callback: Callable[[], None] | None = None

    async def scan(self) -> TransferEndpoint | None:
        return self.endpoint

    async def connect(self, endpoint: TransferEndpoint) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error

    async def bond(self) -> None:
        if self.bond_error is not None:
            raise self.bond_error

    def write(self, data: bytes) -> asyncio.Future[None]:
        index = len(self.writes)
        self.writes.append(data)
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if self.fail_on_write == index:
            future.set_exception(LinkWriteFailed(f"Write {index} failed"))
        elif self.auto_complete:
            future.set_result(None)
        else:
            self.pending.append(future)
            in_flight = sum(1 for f in self.pending if not f.done())
            self.max_in_flight = max(self.max_in_flight, in_flight)
        return future

    def complete_pending(self) -> None:
        for future in self.pending:
            if not future.done():
                future.set_result(None)
        self.pending.clear()

    async def disconnect(self) -> None:
        self.disconnect_calls += 1

    async def forget_bond(self) -> None:
        self.forget_calls += 1

    def set_disconnected_callback(self, callback: Callable[[], None] | None) -> None:
        self.callback = callback

    def drop(self) -> None:
        """Simulate the peer dropping the link."""
        assert self.callback is not None
        self.callback()


async def wait_until(predicate: Callable[[], bool], steps: int = 100) -> None:
    """Yield to the loop until ``predicate`` holds."""
    for _ in range(steps):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def manual_config(tmp_path: Path) -> UpdaterConfig:
    """Config whose timers never fire on their own."""
    return UpdaterConfig(
        hardware_check_interval=NEVER,
        status_poll_interval=NEVER,
        reboot_tick_interval=NEVER,
        restart_check_delay=0.01,
        firmware_dir=tmp_path / "firmware",
        bundled_firmware_dir=tmp_path / "bundled",
    )


@pytest.fixture
def midi_host() -> FakeMidiHost:
    return FakeMidiHost()


@pytest.fixture
def command_link(midi_host: FakeMidiHost) -> CommandLink:
    return CommandLink(midi_host)


@pytest.fixture
def swift_endpoint() -> MidiEndpoint:
    return MidiEndpoint(name="SWIFT Bluetooth", ref=1)


@pytest.fixture
def transfer_link() -> FakeTransferLink:
    return FakeTransferLink()


@pytest.fixture
def firmware_dir(tmp_path: Path) -> Path:
    """Preferred firmware directory holding V8 and V9 images."""
    directory = tmp_path / "firmware"
    directory.mkdir()
    (directory / "V8.bin").write_bytes(bytes(range(256)) * 3 + bytes(FIRMWARE_SIZE - 768))
    (directory / "V9.bin").write_bytes(b"\x09" * FIRMWARE_SIZE)
    return directory


@pytest.fixture
def firmware_source(firmware_dir: Path, tmp_path: Path) -> FirmwareSource:
    return FirmwareSource([firmware_dir, tmp_path / "bundled"])


@pytest.fixture
def mock_bleak_client() -> Generator[MagicMock]:
    """Mock BleakClient for testing without actual Bluetooth hardware."""
    with patch("swift_dfu.ble.BleakClient") as mock_client:
        client_instance = MagicMock()
        client_instance.is_connected = True
        client_instance.mtu_size = 247
        client_instance.connect = AsyncMock(return_value=True)
        client_instance.disconnect = AsyncMock(return_value=True)
        client_instance.start_notify = AsyncMock(return_value=None)
        client_instance.write_gatt_char = AsyncMock(return_value=None)
        client_instance.pair = AsyncMock(return_value=True)
        client_instance.unpair = AsyncMock(return_value=True)
        mock_client.return_value = client_instance
        yield mock_client

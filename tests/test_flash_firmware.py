"""Tests for tools/flash_firmware.py."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from swift_dfu.ble import BleakTransferLink
from swift_dfu.config import UpdaterConfig
from swift_dfu.const import OTA_SERVICE_UUID
from swift_dfu.errors import LinkConnectFailed
from swift_dfu.transfer import TransferSession
from tools.flash_firmware import (
    build_session,
    flash,
    forget_device,
    format_progress,
    main,
    scan_devices,
)

# --- build_session ---


def test_build_session_defaults():
    """Session uses a bleak link and the configured batch size."""
    session = build_session(UpdaterConfig(chunk_batch_size=2))
    assert isinstance(session._link, BleakTransferLink)
    assert session.chunk_batch_size == 2


def test_build_session_batch_override():
    """Explicit batch size wins and is clamped."""
    session = build_session(UpdaterConfig(), batch_size=9)
    assert session.chunk_batch_size == 4


def test_format_progress():
    """Progress line shows percent, rate and time."""
    session = MagicMock()
    session.progress = 42.0
    session.kb_per_second = 12.5
    session.elapsed_time = 3.0
    line = format_progress(session)
    assert "42.0 %" in line
    assert "12.5 kB/s" in line
    assert "3.0 s" in line


# --- scan_devices ---


@pytest.mark.asyncio
async def test_scan_devices_marks_dfu(capsys):
    """Devices advertising the OTA service are marked."""
    dfu_device = MagicMock()
    dfu_device.name = "SWIFT_DFU"
    dfu_device.address = "AA:BB:CC:DD:EE:FF"
    dfu_adv = MagicMock()
    dfu_adv.service_uuids = [OTA_SERVICE_UUID]
    dfu_adv.rssi = -50

    other_device = MagicMock()
    other_device.name = None
    other_device.address = "11:22:33:44:55:66"
    other_adv = MagicMock()
    other_adv.service_uuids = []
    other_adv.rssi = -80

    devices = {
        dfu_device.address: (dfu_device, dfu_adv),
        other_device.address: (other_device, other_adv),
    }
    with patch(
        "tools.flash_firmware.BleakScanner.discover", new=AsyncMock(return_value=devices)
    ):
        await scan_devices()

    output = capsys.readouterr().out
    assert "Found 2 devices" in output
    assert "🛠️ DFU SWIFT_DFU" in output
    assert "Unknown" in output


# --- flash ---


@pytest.mark.asyncio
async def test_flash_success(capsys, transfer_link, firmware_source):
    """Completed transfer returns True and closes the session."""
    session = TransferSession(transfer_link, firmware_source)
    with patch("tools.flash_firmware.build_session", return_value=session):
        assert await flash("V9") is True

    output = capsys.readouterr().out
    assert "Connected to SWIFT_DFU" in output
    assert "Transfer complete" in output
    assert transfer_link.callback is None


@pytest.mark.asyncio
async def test_flash_missing_image(capsys, transfer_link, firmware_source):
    """Unknown version reports the lookup error."""
    session = TransferSession(transfer_link, firmware_source)
    with patch("tools.flash_firmware.build_session", return_value=session):
        assert await flash("V99") is False

    output = capsys.readouterr().out
    assert "Firmware file V99.bin not found" in output


@pytest.mark.asyncio
async def test_flash_connect_failure(capsys, transfer_link, firmware_source):
    """Connection failure stops before sending."""
    transfer_link.connect_error = LinkConnectFailed("Connection refused")
    session = TransferSession(transfer_link, firmware_source)
    with patch("tools.flash_firmware.build_session", return_value=session):
        assert await flash("V9") is False

    output = capsys.readouterr().out
    assert "Connection failed: Connection refused" in output
    assert transfer_link.writes == []


# --- forget_device ---


@pytest.mark.asyncio
async def test_forget_device(capsys, transfer_link, firmware_source):
    """Bond is removed after connecting."""
    session = TransferSession(transfer_link, firmware_source)
    with patch("tools.flash_firmware.build_session", return_value=session):
        await forget_device()

    assert transfer_link.forget_calls == 1
    assert "Forgot SWIFT_DFU" in capsys.readouterr().out


# --- main ---


@pytest.mark.asyncio
async def test_main_without_args(capsys):
    """No command prints usage."""
    with patch("tools.flash_firmware.sys.argv", ["flash_firmware.py"]):
        await main()
    assert "Usage:" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_main_unknown_command(capsys):
    """Unknown command is reported."""
    with patch("tools.flash_firmware.sys.argv", ["flash_firmware.py", "reboot"]):
        await main()
    assert "Unknown command: reboot" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_main_flash_args():
    """flash VERSION BATCH is forwarded."""
    with (
        patch("tools.flash_firmware.sys.argv", ["flash_firmware.py", "flash", "V10", "2"]),
        patch("tools.flash_firmware.flash", new=AsyncMock(return_value=True)) as mock_flash,
    ):
        await main()
    mock_flash.assert_awaited_once_with("V10", 2)


@pytest.mark.asyncio
async def test_main_flash_missing_version(capsys):
    """flash without a version prints its usage."""
    with patch("tools.flash_firmware.sys.argv", ["flash_firmware.py", "flash"]):
        await main()
    assert "Usage: flash VERSION" in capsys.readouterr().out

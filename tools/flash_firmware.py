#!/usr/bin/env python3
"""Flash a SWIFT device that is already in DFU mode over BLE.

Usage:
    # Scan for devices advertising the OTA service
    uv run python tools/flash_firmware.py scan

    # Flash firmware/V9.bin with 4 chunks per flow-control cycle
    uv run python tools/flash_firmware.py flash V9 4

    # Remove the stored bond for the device
    uv run python tools/flash_firmware.py forget

The MIDI handshake (entering DFU mode) is not part of this tool; put the
device into DFU mode first.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from bleak import BleakScanner

from swift_dfu.ble import BleakTransferLink
from swift_dfu.config import UpdaterConfig
from swift_dfu.const import OTA_SERVICE_UUID
from swift_dfu.firmware import FirmwareSource
from swift_dfu.transfer import TransferConfig, TransferSession, TransferState

PROGRESS_INTERVAL = 0.5  # seconds


def build_session(config: UpdaterConfig, batch_size: int | None = None) -> TransferSession:
    """Create a session on a bleak link using the default firmware locations."""
    link = BleakTransferLink(
        device_names=config.device_names,
        scan_timeout=config.scan_timeout,
        connection_timeout=config.connection_timeout,
    )
    source = FirmwareSource(
        [config.firmware_dir, config.bundled_firmware_dir],
        suffix=config.firmware_suffix,
    )
    transfer_config = TransferConfig(
        chunk_batch_size=batch_size if batch_size is not None else config.chunk_batch_size,
        max_chunk_size=config.max_chunk_size,
    )
    return TransferSession(link, source, transfer_config)


def format_progress(session: TransferSession) -> str:
    """One-line progress readout."""
    return (
        f"{session.progress:5.1f} %  "
        f"{session.kb_per_second:6.1f} kB/s  "
        f"{session.elapsed_time:6.1f} s"
    )


async def _report_progress(session: TransferSession) -> None:
    while True:
        await asyncio.sleep(PROGRESS_INTERVAL)
        if session.transfer_ongoing:
            print(f"📤 {format_progress(session)}")


async def scan_devices() -> None:
    """Scan for BLE devices and show the ones in DFU mode."""
    print("🔍 Scanning for BLE devices (10 seconds)...")
    devices = await BleakScanner.discover(timeout=10.0, return_adv=True)

    print(f"\nFound {len(devices)} devices:\n")

    for device, adv_data in devices.values():
        is_dfu = OTA_SERVICE_UUID.lower() in [
            str(u).lower() for u in adv_data.service_uuids
        ]
        marker = "🛠️ DFU" if is_dfu else "  "

        name = device.name or "Unknown"
        print(f"{marker} {name:20} {device.address}  RSSI: {adv_data.rssi}")


async def flash(version: str, batch_size: int | None = None) -> bool:
    """Connect to the DFU device and send ``version``.

    Returns:
        bool: True if the transfer completed.
    """
    config = UpdaterConfig()
    session = build_session(config, batch_size)

    print("🔌 Looking for a device in DFU mode...")
    await session.start_scanning()
    if session.state is not TransferState.READY:
        print(f"❌ Connection failed: {session.error_message}")
        return False
    print(f"✅ Connected to {session.name}")

    print(f"📦 Flashing {version} (batch size {session.chunk_batch_size})")
    reporter = asyncio.create_task(_report_progress(session))
    try:
        await session.send_file(version)
    finally:
        reporter.cancel()

    completed = session.state is TransferState.COMPLETED
    if completed:
        print(f"✅ Transfer complete: {format_progress(session)}")
    else:
        print(f"❌ Transfer failed: {session.error_message}")

    await session.close()
    return completed


async def forget_device() -> None:
    """Connect once and remove the bond."""
    session = build_session(UpdaterConfig())
    await session.start_scanning()
    if session.state is not TransferState.READY:
        print(f"❌ Connection failed: {session.error_message}")
        return
    name = session.name
    await session.disconnect(forget=True)
    print(f"🗑️ Forgot {name}")


async def _cmd_flash() -> None:
    """Handle flash command."""
    if len(sys.argv) < 3:
        print("Usage: flash VERSION [BATCH 1-4]")
        return
    batch = int(sys.argv[3]) if len(sys.argv) > 3 else None
    await flash(sys.argv[2], batch)


async def main() -> None:
    """Main entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        return

    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

    commands = {
        "scan": scan_devices,
        "flash": _cmd_flash,
        "forget": forget_device,
    }

    cmd = sys.argv[1].lower()
    handler = commands.get(cmd)
    if handler:
        await handler()
    else:
        print(f"Unknown command: {cmd}")
        print(__doc__)


if __name__ == "__main__":
    asyncio.run(main())

"""Top-level firmware updater wiring both links together."""

from __future__ import annotations

import asyncio
import logging

from .config import UpdaterConfig
from .controller import ModeTransitionController
from .firmware import FirmwareSource
from .midi import CommandLink, MidiHost
from .scanner import DeviceScanner
from .transfer import TransferConfig, TransferLink, TransferSession

_LOGGER = logging.getLogger(__name__)


class FirmwareUpdater:
    """Own every component of one update session.

    Usage:
        async with FirmwareUpdater(midi_host, BleakTransferLink()) as updater:
            updater.request_update_mode()
            ...  # wait for updater.session.state == TransferState.READY
            await updater.flash("V9")
    """

    def __init__(
        self,
        midi_host: MidiHost,
        transfer_link: TransferLink,
        config: UpdaterConfig | None = None,
        firmware_source: FirmwareSource | None = None,
    ) -> None:
        self.config = config or UpdaterConfig()
        self._scan_tasks: set[asyncio.Task[None]] = set()

        self.command_link = CommandLink(midi_host)
        self.session = TransferSession(
            transfer_link,
            firmware_source
            or FirmwareSource(
                [self.config.firmware_dir, self.config.bundled_firmware_dir],
                suffix=self.config.firmware_suffix,
            ),
            TransferConfig(
                chunk_batch_size=self.config.chunk_batch_size,
                max_chunk_size=self.config.max_chunk_size,
            ),
        )
        self.controller = ModeTransitionController(
            self.command_link,
            self.config,
            on_confirmed=self._start_transfer_scan,
            on_timeout=self._start_transfer_scan,
            restart_presence_check=self._restart_presence_check,
        )
        self.controller.attach_transfer_session(self.session)
        self.scanner = DeviceScanner(
            self.command_link,
            self.controller,
            device_names=self.config.device_names,
            interval=self.config.hardware_check_interval,
        )

    async def __aenter__(self) -> FirmwareUpdater:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def start(self) -> None:
        """Attach to the command link and start presence checks."""
        self.command_link.attach()
        self.scanner.start()

    def request_update_mode(self) -> None:
        self.controller.request_update_mode()

    async def flash(self, version: str) -> None:
        """Send the firmware image for ``version`` over the transfer link."""
        await self.session.send_file(version)

    async def close(self) -> None:
        """Cancel all timers and in-flight work, then release both links."""
        self.scanner.stop()
        self.controller.close()
        for task in list(self._scan_tasks):
            task.cancel()
        if self._scan_tasks:
            await asyncio.wait(list(self._scan_tasks))
        await self.session.close()
        self.command_link.close()

    def _start_transfer_scan(self) -> None:
        """Confirmation or countdown timeout: look for the device over BLE."""
        _LOGGER.debug("Starting transfer link scan")
        task = asyncio.get_running_loop().create_task(self.session.start_scanning())
        self._scan_tasks.add(task)
        task.add_done_callback(self._scan_tasks.discard)

    def _restart_presence_check(self) -> None:
        self.scanner.restart()

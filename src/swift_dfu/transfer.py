"""Bulk firmware transfer over a connection-oriented link.

The session walks IDLE -> SCANNING -> CONNECTING -> BONDING -> READY, then
streams an image in TRANSFERRING until COMPLETED or FAILED. Link primitives
come from a ``TransferLink`` (see ``swift_dfu.ble`` for the bleak adapter).

Flow control: ``chunk_batch_size`` writes are issued together, and the next
batch starts only after every write of the current one reported completion.
At most ``chunk_batch_size`` chunks are ever in flight.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .const import CHUNK_BATCH_MAX, CHUNK_BATCH_MIN, DEFAULT_CHUNK_BATCH, DEFAULT_MAX_CHUNK_SIZE
from .errors import (
    FailureReason,
    ImageNotFound,
    LinkConnectFailed,
    LinkDisconnected,
    LinkError,
)
from .firmware import FirmwareImage, FirmwareSource

_LOGGER = logging.getLogger(__name__)

LinkClosedListener = Callable[[bool], None]


class TransferState(Enum):
    """Connection and transfer lifecycle."""

    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    BONDING = "bonding"
    READY = "ready"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"


def clamp_batch_size(value: int) -> int:
    """Clamp a chunk batch size into the supported range."""
    return max(CHUNK_BATCH_MIN, min(CHUNK_BATCH_MAX, int(value)))


@dataclass
class TransferConfig:
    """Chunk engine settings."""

    chunk_batch_size: int = DEFAULT_CHUNK_BATCH
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE

    def __post_init__(self) -> None:
        self.chunk_batch_size = clamp_batch_size(self.chunk_batch_size)


@dataclass(frozen=True)
class TransferEndpoint:
    """A discovered bulk-transfer peer."""

    name: str
    address: str
    handle: Any = None


class TransferLink(Protocol):
    """Primitives of the bulk-transfer link."""

    @property
    def max_write_size(self) -> int:
        """Largest payload accepted by one write."""

    async def scan(self) -> TransferEndpoint | None:
        """Discover the update-mode device, None if nothing was found."""

    async def connect(self, endpoint: TransferEndpoint) -> None:
        """Connect to the endpoint. Raises LinkConnectFailed."""

    async def bond(self) -> None:
        """Pair with the connected device. Raises LinkConnectFailed."""

    def write(self, data: bytes) -> Awaitable[None]:
        """Issue one write; the awaitable completes on write completion/credit.

        The awaitable raises LinkWriteFailed or LinkDisconnected.
        """

    async def disconnect(self) -> None:
        """Tear down the connection. Never raises."""

    async def forget_bond(self) -> None:
        """Discard persisted bonding for the last peer."""

    def set_disconnected_callback(self, callback: Callable[[], None] | None) -> None:
        """Register the callback fired when the peer drops the link."""


class TransferSession:
    """Own the transfer link lifecycle and stream firmware images."""

    def __init__(
        self,
        link: TransferLink,
        firmware_source: FirmwareSource,
        config: TransferConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._link = link
        self._source = firmware_source
        self.config = config or TransferConfig()
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[LinkClosedListener] = []
        self._started_at = 0.0

        self.state = TransferState.IDLE
        self.failure: FailureReason | None = None
        self.error_message = ""
        self.name = ""
        self.connected = False
        self.version = ""
        self.bytes_sent = 0
        self.bytes_total = 0
        self.progress = 0.0
        self.throughput = 0.0
        self.elapsed_time = 0.0

        link.set_disconnected_callback(self._on_link_lost)

    @property
    def transfer_ongoing(self) -> bool:
        return self.state is TransferState.TRANSFERRING

    @property
    def chunk_batch_size(self) -> int:
        return self.config.chunk_batch_size

    @property
    def kb_per_second(self) -> float:
        return self.throughput / 1000

    def set_chunk_batch_size(self, value: int) -> bool:
        """Set chunks per flow-control cycle, clamped to [1, 4].

        Returns:
            bool: False if rejected because a transfer is running.
        """
        if self.transfer_ongoing:
            _LOGGER.warning("Cannot change chunk batch size during a transfer")
            return False
        self.config.chunk_batch_size = clamp_batch_size(value)
        return True

    def add_link_closed_listener(self, listener: LinkClosedListener) -> Callable[[], None]:
        """Register ``listener(update_completed)`` for link-closed events."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def start_scanning(self) -> None:
        """Discover, connect and bond.

        Runs from IDLE, or from FAILED as a fresh attempt with counters and
        the last error cleared. No-op in any other state.
        """
        if self.state is TransferState.FAILED:
            _LOGGER.debug("Retrying after failure: %s", self.error_message)
            self._reset()
        elif self.state is not TransferState.IDLE:
            _LOGGER.debug("Scan request ignored in state %s", self.state.name)
            return

        self.failure = None
        self.error_message = ""
        self._set_state(TransferState.SCANNING)
        await self._run(self._establish())

    async def send_file(self, version: str) -> None:
        """Stream the image for ``version``. Only valid when READY."""
        if self.state is not TransferState.READY:
            _LOGGER.warning("Cannot send firmware in state %s", self.state.name)
            return

        self.failure = None
        self.error_message = ""
        try:
            image = self._source.load(version)
        except ImageNotFound as err:
            # Connection stays up, a different version can be sent
            self.failure = err.reason
            self.error_message = str(err)
            _LOGGER.error("%s", err)
            return

        self._begin_transfer(image)
        await self._run(self._transfer(image))

    async def disconnect(self, forget: bool = False) -> None:
        """Tear down the link from any state and reset all counters."""
        was_completed = self.state is TransferState.COMPLETED
        await self._cancel_task()

        if forget:
            _LOGGER.info("Forgetting bonded device %s", self.name or "<unknown>")
            await self._link.forget_bond()
        await self._link.disconnect()

        self._reset()
        self._set_state(TransferState.IDLE)
        if was_completed:
            self._notify_link_closed(True)

    async def close(self) -> None:
        """Abandon any operation and release the link."""
        await self.disconnect()
        self._link.set_disconnected_callback(None)

    def _set_state(self, state: TransferState) -> None:
        if state is not self.state:
            _LOGGER.debug("Transfer state %s -> %s", self.state.name, state.name)
        self.state = state

    def _reset(self) -> None:
        self.failure = None
        self.error_message = ""
        self.name = ""
        self.connected = False
        self.version = ""
        self.bytes_sent = 0
        self.bytes_total = 0
        self.progress = 0.0
        self.throughput = 0.0
        self.elapsed_time = 0.0

    async def _run(self, coro: Coroutine[Any, Any, None]) -> None:
        """Run an owned operation so that disconnect() can cancel it."""
        task = asyncio.get_running_loop().create_task(coro)
        self._task = task
        try:
            await asyncio.wait([task])
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None

        if not task.cancelled():
            task.result()

    async def _cancel_task(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait([task])

    async def _establish(self) -> None:
        try:
            endpoint = await self._link.scan()
            if endpoint is None:
                raise LinkConnectFailed("No device in DFU mode found")

            self.name = endpoint.name
            self._set_state(TransferState.CONNECTING)
            _LOGGER.info("Connecting to %s (%s)", endpoint.name, endpoint.address)
            await self._link.connect(endpoint)
            self.connected = True

            self._set_state(TransferState.BONDING)
            await self._link.bond()
        except LinkError as err:
            await self._fail(err)
            return

        self._set_state(TransferState.READY)
        _LOGGER.info("Connected to %s, ready for firmware transfer", self.name)

    def _begin_transfer(self, image: FirmwareImage) -> None:
        self.version = image.version
        self.bytes_sent = 0
        self.bytes_total = image.size
        self.progress = 0.0
        self.throughput = 0.0
        self.elapsed_time = 0.0
        self._started_at = self._clock()
        self._set_state(TransferState.TRANSFERRING)

    async def _transfer(self, image: FirmwareImage) -> None:
        chunk_size = max(1, min(self.config.max_chunk_size, self._link.max_write_size))
        batch_size = self.config.chunk_batch_size
        chunks = list(image.chunks(chunk_size))
        _LOGGER.info(
            "Sending %s: %d bytes in %d chunks of %d (batch %d)",
            image.version,
            image.size,
            len(chunks),
            chunk_size,
            batch_size,
        )

        try:
            for start in range(0, len(chunks), batch_size):
                batch = chunks[start : start + batch_size]
                await self._write_batch(batch)
                self._record_progress(sum(len(chunk) for chunk in batch))
        except LinkError as err:
            if self.state is TransferState.TRANSFERRING:
                await self._fail(err)
            return

        self._set_state(TransferState.COMPLETED)
        _LOGGER.info(
            "Transfer of %s completed in %.1fs (%.1f kB/s)",
            image.version,
            self.elapsed_time,
            self.kb_per_second,
        )

    async def _write_batch(self, batch: list[bytes]) -> None:
        writes = [asyncio.ensure_future(self._link.write(chunk)) for chunk in batch]
        results = await asyncio.gather(*writes, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def _record_progress(self, sent: int) -> None:
        self.bytes_sent = min(self.bytes_total, self.bytes_sent + sent)
        self.elapsed_time = self._clock() - self._started_at
        self.progress = self.bytes_sent / self.bytes_total * 100
        if self.elapsed_time > 0:
            self.throughput = self.bytes_sent / self.elapsed_time
        _LOGGER.debug(
            "Sent %d/%d bytes (%.1f%%)", self.bytes_sent, self.bytes_total, self.progress
        )

    def _mark_failed(self, err: LinkError) -> None:
        self.failure = err.reason
        self.error_message = str(err)
        self._set_state(TransferState.FAILED)
        _LOGGER.error("Firmware transfer failed (%s): %s", err.reason.value, err)

    async def _fail(self, err: LinkError) -> None:
        """Record a terminal failure and drop the link; no retry."""
        self._mark_failed(err)
        self.connected = False
        await self._link.disconnect()

    def _notify_link_closed(self, update_completed: bool) -> None:
        for listener in list(self._listeners):
            listener(update_completed)

    def _on_link_lost(self) -> None:
        """Peer dropped the link. Runs on the loop."""
        state = self.state
        if state in (TransferState.IDLE, TransferState.FAILED):
            return

        self.connected = False
        if state is TransferState.COMPLETED:
            _LOGGER.info("Device disconnected after completing firmware update")
            self._set_state(TransferState.IDLE)
            self._notify_link_closed(True)
            return

        self._mark_failed(LinkDisconnected(f"Link lost while {state.value}"))
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._notify_link_closed(False)

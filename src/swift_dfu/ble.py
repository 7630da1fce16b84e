"""Bleak implementation of the transfer link.

Protocol details (ESP32 NimBLE OTA receiver):
- OTA service 0x4FAFC201..., advertised by the device in DFU mode
- Firmware data: Write Command (no response) to the RX characteristic
- Flow control: the device notifies on the TX characteristic once it has
  consumed the writes sent so far; one notification credits every pending
  write
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .const import (
    ATT_HEADER_SIZE,
    CHAR_OTA_RX_UUID,
    CHAR_OTA_TX_UUID,
    CONNECTION_TIMEOUT,
    DEVICE_PORT_NAMES,
    OTA_SERVICE_UUID,
    SCAN_TIMEOUT,
)
from .errors import LinkConnectFailed, LinkDisconnected, LinkWriteFailed
from .transfer import TransferEndpoint

_LOGGER = logging.getLogger(__name__)

# Default ATT MTU before negotiation
_DEFAULT_MTU = 23


class BleakTransferLink:
    """``TransferLink`` backed by a ``BleakClient``.

    Thread safety: bleak may invoke notification and disconnect callbacks
    outside the event loop, so both are marshalled with
    ``call_soon_threadsafe`` before touching any state.
    """

    def __init__(
        self,
        device_names: Sequence[str] = DEVICE_PORT_NAMES,
        service_uuid: str = OTA_SERVICE_UUID,
        rx_uuid: str = CHAR_OTA_RX_UUID,
        tx_uuid: str = CHAR_OTA_TX_UUID,
        scan_timeout: float = SCAN_TIMEOUT,
        connection_timeout: float = CONNECTION_TIMEOUT,
    ) -> None:
        self.device_names = tuple(device_names)
        self.service_uuid = service_uuid.lower()
        self.rx_uuid = rx_uuid
        self.tx_uuid = tx_uuid
        self.scan_timeout = scan_timeout
        self.connection_timeout = connection_timeout
        self._client: BleakClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._address = ""
        self._credit: asyncio.Future[None] | None = None
        self._disconnected_callback: Callable[[], None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    @property
    def max_write_size(self) -> int:
        mtu = self._client.mtu_size if self._client is not None else _DEFAULT_MTU
        return max(1, mtu - ATT_HEADER_SIZE)

    def set_disconnected_callback(self, callback: Callable[[], None] | None) -> None:
        self._disconnected_callback = callback

    def matches(self, device: BLEDevice, adv: AdvertisementData) -> bool:
        """Return True if the advertisement belongs to a device in DFU mode."""
        if self.service_uuid in [str(u).lower() for u in adv.service_uuids]:
            return True
        name = device.name or adv.local_name or ""
        return any(part in name for part in self.device_names)

    async def scan(self) -> TransferEndpoint | None:
        _LOGGER.debug("Scanning for DFU device (%.0fs)", self.scan_timeout)
        try:
            device = await BleakScanner.find_device_by_filter(
                self.matches, timeout=self.scan_timeout
            )
        except BleakError as err:
            raise LinkConnectFailed(f"Scan failed: {err}") from err

        if device is None:
            return None
        return TransferEndpoint(
            name=device.name or "Unknown", address=device.address, handle=device
        )

    async def connect(self, endpoint: TransferEndpoint) -> None:
        self._loop = asyncio.get_running_loop()
        self._address = endpoint.address
        client = BleakClient(
            endpoint.handle or endpoint.address,
            disconnected_callback=self._on_disconnect,
            timeout=self.connection_timeout,
        )
        self._client = client
        try:
            await client.connect()
            await client.start_notify(self.tx_uuid, self._on_notification)
        except (BleakError, OSError, TimeoutError) as err:
            await self._safe_disconnect()
            raise LinkConnectFailed(f"Failed to connect to {endpoint.name}: {err}") from err

        _LOGGER.debug("Connected to %s, MTU %d", endpoint.address, client.mtu_size)

    async def bond(self) -> None:
        client = self._require_client()
        try:
            paired = await client.pair()
        except NotImplementedError:
            # Some backends pair implicitly on first encrypted access
            _LOGGER.debug("Explicit pairing not supported by this backend")
            return
        except (BleakError, OSError, TimeoutError) as err:
            raise LinkConnectFailed(f"Pairing failed: {err}") from err
        _LOGGER.debug("Pair result: %s", paired)

    def write(self, data: bytes) -> Awaitable[None]:
        return self._write(data)

    async def disconnect(self) -> None:
        self._fail_credit(LinkDisconnected("Disconnected"))
        await self._safe_disconnect()

    async def forget_bond(self) -> None:
        client = self._client
        if client is None:
            if not self._address:
                return
            client = BleakClient(self._address, timeout=self.connection_timeout)
        try:
            await client.unpair()
        except (BleakError, NotImplementedError, OSError, TimeoutError) as err:
            _LOGGER.warning("Could not remove bond for %s: %s", self._address, err)
            return
        _LOGGER.info("Removed bond for %s", self._address)
        self._address = ""

    async def _write(self, data: bytes) -> None:
        client = self._require_client(LinkDisconnected)
        credit = self._pending_credit()
        try:
            await client.write_gatt_char(self.rx_uuid, data, response=False)
        except (BleakError, OSError, TimeoutError) as err:
            error = LinkWriteFailed(f"Write failed: {err}")
            self._fail_credit(error)
            raise error from err
        await credit

    def _pending_credit(self) -> asyncio.Future[None]:
        """Future shared by every write issued since the last notification."""
        if self._credit is None or self._credit.done():
            self._credit = asyncio.get_running_loop().create_future()
        return self._credit

    def _fail_credit(self, error: Exception) -> None:
        credit = self._credit
        self._credit = None
        if credit is not None and not credit.done():
            credit.set_exception(error)

    def _require_client(
        self, error: type[Exception] = LinkConnectFailed
    ) -> BleakClient:
        if self._client is None or not self._client.is_connected:
            raise error("Not connected")
        return self._client

    async def _safe_disconnect(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            if client.is_connected:
                await asyncio.wait_for(client.disconnect(), timeout=self.connection_timeout)
        except (BleakError, OSError, TimeoutError) as err:
            _LOGGER.debug("Disconnect failed (ignored): %s", err)

    def _on_notification(self, sender: Any, data: bytearray) -> None:
        """Called by bleak on the notification thread."""
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._grant_credit, bytes(data))

    def _grant_credit(self, data: bytes) -> None:
        _LOGGER.debug("Credit notification: %s", data.hex())
        credit = self._credit
        self._credit = None
        if credit is not None and not credit.done():
            credit.set_result(None)

    def _on_disconnect(self, client: BleakClient) -> None:
        """Called by bleak when the peer drops the link."""
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._handle_disconnect, client)

    def _handle_disconnect(self, client: BleakClient) -> None:
        if self._client is not None and client is not self._client:
            return
        _LOGGER.info("BLE device %s disconnected", self._address)
        self._client = None
        self._fail_credit(LinkDisconnected("Device disconnected"))
        if self._disconnected_callback is not None:
            self._disconnected_callback()

"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from fluffd.core.errors import TransportConnectError, TransportScanError, TransportSendError
from fluffd.core.model import (
    AdapterState,
    AdapterStateChanged,
    CharacteristicInfo,
    Peripheral,
    PeripheralDisconnected,
    PeripheralDiscovered,
    ServiceInfo,
    TransportEvent,
)
from fluffd.transports.base import TransportListener

LOGGER = logging.getLogger(__name__)


class BLEGATTConnection:
    def __init__(self, device_id: str, *, write_with_response: bool = True) -> None:
        self.device_id = device_id
        self.write_with_response = write_with_response
        self.client: BleakClient | None = None

    @property
    def is_connected(self) -> bool:
        return self.client is not None and self.client.is_connected

    async def write(self, char_uuid: str, payload: bytes) -> None:
        if self.client is None or not self.is_connected:
            raise TransportSendError(f"{self.device_id} is not connected")
        try:
            await self.client.write_gatt_char(char_uuid, payload, response=self.write_with_response)
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportSendError(f"BLE GATT write to {char_uuid} failed: {exc}") from exc

    async def disconnect(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.disconnect()
        except BleakError as exc:
            LOGGER.warning("Disconnect from %s failed: %s", self.device_id, exc)

    def on_notify(self, _: object, data: bytearray) -> None:
        LOGGER.debug("Notification from %s: %s", self.device_id, bytes(data).hex())


class BLEGATTTransport:
    """Scanning and connections through bleak.

    bleak exposes no adapter state stream, so ``open`` reports the adapter as
    powered on and a failed scan start reports it as powered off.
    """

    def __init__(self, *, connect_timeout_s: float = 10.0, write_with_response: bool = True) -> None:
        self.connect_timeout_s = connect_timeout_s
        self.write_with_response = write_with_response
        self._listener: TransportListener | None = None
        self._scanner: BleakScanner | None = None
        self._scanning = False
        # address -> advertised name of peripherals already reported in this scan
        self._seen: dict[str, str | None] = {}

    def set_listener(self, listener: TransportListener) -> None:
        self._listener = listener

    def _emit(self, event: TransportEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        name = advertisement.local_name or device.name
        if device.address in self._seen and self._seen[device.address] == name:
            return
        self._seen[device.address] = name
        self._emit(PeripheralDiscovered(Peripheral(id=device.address, name=name, handle=device)))

    async def open(self) -> None:
        try:
            self._scanner = BleakScanner(detection_callback=self._on_detection)
        except (BleakError, OSError) as exc:
            self._emit(AdapterStateChanged(AdapterState.UNSUPPORTED))
            raise TransportScanError(f"Could not open BLE adapter: {exc}") from exc
        self._emit(AdapterStateChanged(AdapterState.POWERED_ON))

    async def close(self) -> None:
        await self.stop_scanning()
        self._scanner = None

    async def start_scanning(self) -> None:
        if self._scanner is None:
            raise TransportScanError("Transport is not open")
        if self._scanning:
            return
        self._seen.clear()
        try:
            await self._scanner.start()
        except (BleakError, OSError) as exc:
            self._emit(AdapterStateChanged(AdapterState.POWERED_OFF))
            raise TransportScanError(f"Could not start BLE scan: {exc}") from exc
        self._scanning = True

    async def stop_scanning(self) -> None:
        if self._scanner is None or not self._scanning:
            return
        self._scanning = False
        try:
            await self._scanner.stop()
        except (BleakError, OSError) as exc:
            raise TransportScanError(f"Could not stop BLE scan: {exc}") from exc

    async def connect(self, peripheral: Peripheral, *, notify_char_uuid: str | None = None) -> BLEGATTConnection:
        connection = BLEGATTConnection(peripheral.id, write_with_response=self.write_with_response)

        def _on_disconnect(_: BleakClient) -> None:
            self._seen.pop(peripheral.id, None)
            self._emit(PeripheralDisconnected(device_id=peripheral.id, connection=connection))

        client = BleakClient(
            peripheral.handle or peripheral.id,
            disconnected_callback=_on_disconnect,
            timeout=self.connect_timeout_s,
        )
        connection.client = client
        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            self._seen.pop(peripheral.id, None)
            raise TransportConnectError(f"BLE connect failed for {peripheral.id}: {exc}") from exc

        if notify_char_uuid:
            try:
                await client.start_notify(notify_char_uuid, connection.on_notify)
            except BleakError as exc:
                LOGGER.warning("Could not subscribe to %s on %s: %s", notify_char_uuid, peripheral.id, exc)
        return connection

    async def introspect(self, peripheral: Peripheral) -> list[ServiceInfo]:
        try:
            async with BleakClient(peripheral.handle or peripheral.id, timeout=self.connect_timeout_s) as client:
                return [
                    ServiceInfo(
                        uuid=service.uuid,
                        description=service.description,
                        characteristics=tuple(
                            CharacteristicInfo(
                                uuid=char.uuid,
                                description=char.description,
                                properties=tuple(char.properties),
                            )
                            for char in service.characteristics
                        ),
                    )
                    for service in client.services
                ]
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise TransportConnectError(f"BLE introspection failed for {peripheral.id}: {exc}") from exc

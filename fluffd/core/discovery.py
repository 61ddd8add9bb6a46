"""Discovery and connection lifecycle for matching peripherals.

The controller consumes a queue of events. Transport notifications (adapter
state, discovery, disconnect) and the results of its own connect tasks all
arrive through the same queue, so every registry write happens on one flow
of control.

Peripheral states::

    discovered -> connecting -> connected     (session inserted)
                             -> failed        (discarded, no retry)
    connected  -> disconnected               (session removed)

A discovery of an already connected peripheral is a reconnect: the new
session replaces the old one and the old connection is closed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from fluffd.core.errors import TransportError, TransportScanError
from fluffd.core.model import (
    AdapterState,
    AdapterStateChanged,
    Peripheral,
    PeripheralDisconnected,
    PeripheralDiscovered,
)
from fluffd.core.registry import DeviceRegistry
from fluffd.core.session import DeviceSession
from fluffd.transports.base import Connection, PeripheralTransport

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[str, Connection], DeviceSession]


@dataclass(frozen=True)
class ConnectSucceeded:
    peripheral: Peripheral
    connection: Any = field(compare=False)


@dataclass(frozen=True)
class ConnectFailed:
    peripheral: Peripheral
    error: Exception = field(compare=False)


@dataclass(frozen=True)
class _Stop:
    pass


def matches_device_name(peripheral: Peripheral, device_name: str) -> bool:
    return peripheral.name == device_name


async def apply_adapter_state(transport: PeripheralTransport, state: AdapterState) -> None:
    """Scan while the adapter is powered on, stop in every other state."""
    if state is AdapterState.POWERED_ON:
        await transport.start_scanning()
    else:
        await transport.stop_scanning()


class DiscoveryController:
    def __init__(
        self,
        registry: DeviceRegistry,
        transport: PeripheralTransport,
        session_factory: SessionFactory,
        *,
        device_name: str = "Furby",
        notify_char_uuid: str | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.session_factory = session_factory
        self.device_name = device_name
        self.notify_char_uuid = notify_char_uuid
        self.adapter_state = AdapterState.UNKNOWN
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._connecting: set[str] = set()
        self._connected: dict[str, tuple[Connection, DeviceSession]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        transport.set_listener(self.post)

    def post(self, event: Any) -> None:
        self._queue.put_nowait(event)

    def stop(self) -> None:
        self.post(_Stop())

    def is_connecting(self, device_id: str) -> bool:
        return device_id in self._connecting

    async def run(self) -> None:
        try:
            await self.transport.open()
        except TransportError as exc:
            LOGGER.error("Bluetooth transport unavailable: %s", exc)
            self.adapter_state = AdapterState.UNSUPPORTED

        try:
            while True:
                event = await self._queue.get()
                try:
                    if isinstance(event, _Stop):
                        break
                    await self.handle(event)
                finally:
                    self._queue.task_done()
        finally:
            await self._shutdown()

    async def wait_idle(self) -> None:
        """Wait until queued events and in-flight connects are processed."""
        while True:
            await self._queue.join()
            if not self._tasks:
                return
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def rescan(self) -> None:
        """Restart scanning regardless of the current scan state."""
        await self.transport.stop_scanning()
        await self.transport.start_scanning()

    async def handle(self, event: Any) -> None:
        if isinstance(event, AdapterStateChanged):
            await self._on_adapter_state(event.state)
        elif isinstance(event, PeripheralDiscovered):
            self._on_discovered(event.peripheral)
        elif isinstance(event, ConnectSucceeded):
            await self._on_connected(event.peripheral, event.connection)
        elif isinstance(event, ConnectFailed):
            self._connecting.discard(event.peripheral.id)
            LOGGER.warning("Could not connect to %s: %s", event.peripheral.id, event.error)
        elif isinstance(event, PeripheralDisconnected):
            self._on_disconnected(event.device_id, event.connection)
        else:
            LOGGER.debug("Ignoring unknown event %r", event)

    async def _on_adapter_state(self, state: AdapterState) -> None:
        if state is self.adapter_state:
            return
        LOGGER.info("Bluetooth adapter state: %s", state.value)
        self.adapter_state = state
        try:
            await apply_adapter_state(self.transport, state)
        except TransportScanError as exc:
            LOGGER.warning("%s", exc)

    def _on_discovered(self, peripheral: Peripheral) -> None:
        if not matches_device_name(peripheral, self.device_name):
            return
        if peripheral.id in self._connecting:
            return
        if peripheral.id in self.registry:
            LOGGER.info("Rediscovered %s %s, reconnecting", self.device_name, peripheral.id)
        else:
            LOGGER.info("Discovered %s: %s", self.device_name, peripheral.id)

        self._connecting.add(peripheral.id)
        task = asyncio.create_task(self._connect(peripheral))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _connect(self, peripheral: Peripheral) -> None:
        try:
            connection = await self.transport.connect(peripheral, notify_char_uuid=self.notify_char_uuid)
        except TransportError as exc:
            self.post(ConnectFailed(peripheral, exc))
            return
        except Exception as exc:
            LOGGER.exception("Unexpected error connecting to %s", peripheral.id)
            self.post(ConnectFailed(peripheral, exc))
            return
        self.post(ConnectSucceeded(peripheral, connection))

    async def _on_connected(self, peripheral: Peripheral, connection: Connection) -> None:
        self._connecting.discard(peripheral.id)
        if not connection.is_connected:
            LOGGER.warning("Connection to %s dropped before registration", peripheral.id)
            await connection.disconnect()
            return
        session = self.session_factory(peripheral.id, connection)
        previous = self._connected.get(peripheral.id)
        self._connected[peripheral.id] = (connection, session)
        self.registry.insert(peripheral.id, session)
        LOGGER.info("Connected to %s %s", self.device_name, peripheral.id)
        if previous is not None and previous[0] is not connection:
            await previous[0].disconnect()

    def _on_disconnected(self, device_id: str, connection: Connection) -> None:
        record = self._connected.get(device_id)
        if record is None or record[0] is not connection:
            LOGGER.debug("Ignoring disconnect of stale connection to %s", device_id)
            return
        del self._connected[device_id]
        self.registry.remove(device_id, record[1])
        LOGGER.info("Disconnected from %s %s", self.device_name, device_id)

    async def _shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for device_id, (connection, session) in list(self._connected.items()):
            self.registry.remove(device_id, session)
            await connection.disconnect()
        self._connected.clear()
        try:
            await self.transport.close()
        except TransportError as exc:
            LOGGER.warning("Error closing transport: %s", exc)

"""One-shot introspection run mode.

Scans until the first matching peripheral appears, lists its services and
characteristics, and returns without registering anything.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fluffd.core.discovery import apply_adapter_state, matches_device_name
from fluffd.core.model import AdapterStateChanged, Peripheral, PeripheralDiscovered, ServiceInfo
from fluffd.transports.base import PeripheralTransport

LOGGER = logging.getLogger(__name__)


class Introspector:
    def __init__(self, transport: PeripheralTransport, *, device_name: str = "Furby") -> None:
        self.transport = transport
        self.device_name = device_name
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        transport.set_listener(self._queue.put_nowait)

    async def run(self) -> tuple[Peripheral, list[ServiceInfo]]:
        await self.transport.open()
        try:
            while True:
                event = await self._queue.get()
                if isinstance(event, AdapterStateChanged):
                    await apply_adapter_state(self.transport, event.state)
                elif isinstance(event, PeripheralDiscovered) and matches_device_name(
                    event.peripheral, self.device_name
                ):
                    LOGGER.info("Discovered %s: %s", self.device_name, event.peripheral.id)
                    await self.transport.stop_scanning()
                    services = await self.transport.introspect(event.peripheral)
                    return event.peripheral, services
        finally:
            await self.transport.close()


def format_services(peripheral: Peripheral, services: list[ServiceInfo]) -> list[str]:
    lines = [f"{peripheral.id} ({peripheral.name or '<unnamed>'})"]
    for service in services:
        lines.append(f"  service {service.uuid} {service.description}".rstrip())
        for char in service.characteristics:
            props = ",".join(char.properties)
            lines.append(f"    characteristic {char.uuid} {char.description} [{props}]")
    return lines

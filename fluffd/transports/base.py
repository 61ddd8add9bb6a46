"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from fluffd.core.model import Peripheral, ServiceInfo, TransportEvent

TransportListener = Callable[[TransportEvent], None]


class Connection(Protocol):
    device_id: str

    @property
    def is_connected(self) -> bool: ...

    async def write(self, char_uuid: str, payload: bytes) -> None:
        """Write payload to a characteristic of the connected device."""

    async def disconnect(self) -> None:
        """Close the connection."""


class PeripheralTransport(Protocol):
    def set_listener(self, listener: TransportListener) -> None:
        """Route adapter, discovery and disconnect notifications to ``listener``."""

    async def open(self) -> None:
        """Prepare the adapter and report its state through the listener."""

    async def close(self) -> None:
        """Stop scanning and release the adapter."""

    async def start_scanning(self) -> None: ...

    async def stop_scanning(self) -> None: ...

    async def connect(self, peripheral: Peripheral, *, notify_char_uuid: str | None = None) -> Connection:
        """Connect to a discovered peripheral."""

    async def introspect(self, peripheral: Peripheral) -> list[ServiceInfo]:
        """Enumerate services and characteristics exposed by a peripheral."""

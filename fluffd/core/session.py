"""Device sessions: one per connected peripheral."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from fluffd.core.catalog import CommandCatalog
from fluffd.core.errors import ExecutionError, TransportError
from fluffd.transports.base import Connection

LOGGER = logging.getLogger(__name__)


class DeviceSession(Protocol):
    device_id: str

    async def execute(self, name: str, params: Any = None) -> None:
        """Run a command on the device, raising ``ExecutionError`` on failure."""


class FurbySession:
    def __init__(self, device_id: str, connection: Connection, catalog: CommandCatalog) -> None:
        self.device_id = device_id
        self.connection = connection
        self.catalog = catalog

    async def execute(self, name: str, params: Any = None) -> None:
        char_uuid, payload = self.catalog.encode(name, params)
        LOGGER.debug("Writing %s to %s on %s", payload.hex(), char_uuid, self.device_id)
        try:
            await self.connection.write(char_uuid, payload)
        except TransportError as exc:
            raise ExecutionError(f"Command '{name}' failed on {self.device_id}: {exc}") from exc

    def __repr__(self) -> str:
        return f"FurbySession({self.device_id!r})"

"""Service layer wiring the registry, dispatcher, discovery and HTTP gateway."""

from __future__ import annotations

import logging

from aiohttp import web

from fluffd.config import Settings
from fluffd.core.catalog import CommandCatalog, load_catalog
from fluffd.core.discovery import DiscoveryController
from fluffd.core.dispatcher import CommandDispatcher
from fluffd.core.registry import DeviceRegistry
from fluffd.core.session import FurbySession
from fluffd.gateway import create_app
from fluffd.transports.base import Connection, PeripheralTransport
from fluffd.transports.ble_gatt import BLEGATTTransport

LOGGER = logging.getLogger(__name__)


class FluffService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: PeripheralTransport | None = None,
        catalog: CommandCatalog | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.catalog = catalog or load_catalog()
        self.load_warnings = self.catalog.warnings
        self.registry = DeviceRegistry()
        self.dispatcher = CommandDispatcher(self.registry)
        self.transport = transport or BLEGATTTransport(connect_timeout_s=self.settings.connect_timeout_s)
        self.controller = DiscoveryController(
            self.registry,
            self.transport,
            self._new_session,
            device_name=self.settings.device_name,
            notify_char_uuid=self.catalog.notify_char_uuid,
        )

    def _new_session(self, device_id: str, connection: Connection) -> FurbySession:
        return FurbySession(device_id, connection, self.catalog)

    def create_app(self) -> web.Application:
        return create_app(self.dispatcher, self.catalog, rescan=self.controller.rescan)

    async def serve(self) -> None:
        """Serve HTTP and run discovery until ``stop`` is called or the task is cancelled."""
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, self.settings.host, self.settings.port)
            await site.start()
            LOGGER.info("Listening on http://%s:%d", self.settings.host, self.settings.port)
            await self.controller.run()
        finally:
            await self.dispatcher.drain()
            await runner.cleanup()

    def stop(self) -> None:
        self.controller.stop()

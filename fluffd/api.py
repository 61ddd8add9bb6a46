"""Stable public API for embedding fluffd.

This module is the supported integration surface for third-party callers
(other servers, scripts, custom transports). Avoid importing from
private/internal modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from fluffd.config import Settings
from fluffd.core.catalog import CommandCatalog, load_catalog
from fluffd.core.discovery import DiscoveryController
from fluffd.core.dispatcher import CommandDispatcher
from fluffd.core.errors import (
    CatalogLoadError,
    CatalogValidationError,
    CommandResolutionError,
    ConfigError,
    ExecutionError,
    FluffdError,
    MalformedRequestError,
    TargetNotFoundError,
    TransportConnectError,
    TransportError,
    TransportScanError,
    TransportSendError,
)
from fluffd.core.introspect import Introspector
from fluffd.core.model import (
    AdapterState,
    CommandOutcome,
    CommandRequest,
    OutcomeKind,
    Peripheral,
    ServiceInfo,
)
from fluffd.core.registry import DeviceRegistry
from fluffd.core.session import DeviceSession, FurbySession
from fluffd.service import FluffService
from fluffd.transports.base import Connection, PeripheralTransport
from fluffd.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "FluffdError",
    "ConfigError",
    "CatalogLoadError",
    "CatalogValidationError",
    "MalformedRequestError",
    "TargetNotFoundError",
    "ExecutionError",
    "CommandResolutionError",
    "TransportError",
    "TransportConnectError",
    "TransportScanError",
    "TransportSendError",
    "AdapterState",
    "CommandOutcome",
    "CommandRequest",
    "OutcomeKind",
    "Peripheral",
    "ServiceInfo",
    "Settings",
    "CommandCatalog",
    "load_catalog",
    "DeviceRegistry",
    "DeviceSession",
    "FurbySession",
    "CommandDispatcher",
    "DiscoveryController",
    "Introspector",
    "Connection",
    "PeripheralTransport",
    "BLEGATTTransport",
    "FluffService",
]

"""Core data models shared by discovery, dispatch and the gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AdapterState(str, Enum):
    UNKNOWN = "unknown"
    RESETTING = "resetting"
    UNSUPPORTED = "unsupported"
    UNAUTHORIZED = "unauthorized"
    POWERED_OFF = "poweredOff"
    POWERED_ON = "poweredOn"


class OutcomeKind(str, Enum):
    OK = "ok"
    TARGET_NOT_FOUND = "target_not_found"
    EXECUTION_FAILURE = "execution_failure"


@dataclass(frozen=True)
class Peripheral:
    id: str
    name: str | None
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CommandRequest:
    name: str
    params: Any = None
    target: str | None = None

    @property
    def is_broadcast(self) -> bool:
        return self.target is None


@dataclass(frozen=True)
class CommandOutcome:
    command: str
    target: str | None
    kind: OutcomeKind
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK


@dataclass(frozen=True)
class ParamSpec:
    type: str
    required: bool = True
    default: Any = None
    description: str | None = None


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str
    params: dict[str, ParamSpec]
    payload: tuple[bytes | str, ...]
    characteristic: str | None = None


@dataclass(frozen=True)
class CharacteristicInfo:
    uuid: str
    description: str
    properties: tuple[str, ...]


@dataclass(frozen=True)
class ServiceInfo:
    uuid: str
    description: str
    characteristics: tuple[CharacteristicInfo, ...]


@dataclass(frozen=True)
class AdapterStateChanged:
    state: AdapterState


@dataclass(frozen=True)
class PeripheralDiscovered:
    peripheral: Peripheral


@dataclass(frozen=True)
class PeripheralDisconnected:
    device_id: str
    connection: Any = field(compare=False, repr=False)


TransportEvent = AdapterStateChanged | PeripheralDiscovered | PeripheralDisconnected

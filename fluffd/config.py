"""Runtime settings read from the environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from fluffd.core.errors import ConfigError

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3872
DEFAULT_DEVICE_NAME = "Furby"
DEFAULT_CONNECT_TIMEOUT_S = 10.0
DEFAULT_LOG_LEVEL = "debug"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# winston level names, on top of Python's own.
_LEVEL_ALIASES = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
    "silly": logging.DEBUG,
}


def parse_log_level(value: str) -> int:
    lowered = value.strip().lower()
    if lowered in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[lowered]
    level = logging.getLevelName(lowered.upper())
    if isinstance(level, int):
        return level
    raise ConfigError(f"Unknown log level '{value}'")


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise ConfigError(f"FLUFFD_PORT must be an integer, got '{value}'") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"FLUFFD_PORT out of range: {port}")
    return port


def _parse_timeout(value: str) -> float:
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ConfigError(f"FLUFFD_CONNECT_TIMEOUT must be a number, got '{value}'") from exc
    if timeout <= 0:
        raise ConfigError("FLUFFD_CONNECT_TIMEOUT must be positive")
    return timeout


@dataclass(frozen=True)
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    device_name: str = DEFAULT_DEVICE_NAME
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S
    log_level: int = logging.DEBUG

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("FLUFFD_HOST", DEFAULT_HOST),
            port=_parse_port(env.get("FLUFFD_PORT", str(DEFAULT_PORT))),
            device_name=env.get("FLUFFD_DEVICE_NAME", DEFAULT_DEVICE_NAME),
            connect_timeout_s=_parse_timeout(
                env.get("FLUFFD_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT_S))
            ),
            log_level=parse_log_level(env.get("LOG_LEVEL", DEFAULT_LOG_LEVEL)),
        )


def configure_logging(level: int) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)

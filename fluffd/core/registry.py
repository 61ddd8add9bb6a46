"""Registry of connected device sessions keyed by hardware address."""

from __future__ import annotations

import logging
import threading

from fluffd.core.session import DeviceSession

LOGGER = logging.getLogger(__name__)


class DeviceRegistry:
    """Mapping of device id to live session.

    Only the discovery controller inserts, and only disconnect handling
    removes. Every operation holds the same lock so a reader sees either
    the set before a mutation or the set after it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, DeviceSession] = {}

    def insert(self, device_id: str, session: DeviceSession) -> None:
        with self._lock:
            replaced = self._sessions.get(device_id)
            self._sessions[device_id] = session
        if replaced is not None and replaced is not session:
            LOGGER.info("Replaced stale session for %s", device_id)

    def remove(self, device_id: str, session: DeviceSession | None = None) -> bool:
        """Drop ``device_id``; with ``session`` only when it is still the registered one."""
        with self._lock:
            current = self._sessions.get(device_id)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            del self._sessions[device_id]
        return True

    def get(self, device_id: str) -> DeviceSession | None:
        with self._lock:
            return self._sessions.get(device_id)

    def all(self) -> tuple[tuple[str, DeviceSession], ...]:
        with self._lock:
            return tuple(self._sessions.items())

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

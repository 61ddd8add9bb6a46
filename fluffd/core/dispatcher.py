"""Command dispatch: resolve a request to registered sessions and execute it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from fluffd.core.errors import FluffdError, TargetNotFoundError
from fluffd.core.model import CommandOutcome, CommandRequest, OutcomeKind
from fluffd.core.registry import DeviceRegistry
from fluffd.core.session import DeviceSession

LOGGER = logging.getLogger(__name__)


class CommandDispatcher:
    def __init__(self, registry: DeviceRegistry) -> None:
        self.registry = registry
        self._pending: set[asyncio.Task[list[CommandOutcome]]] = set()

    def resolve(self, request: CommandRequest) -> tuple[tuple[str, DeviceSession], ...]:
        """Pick the sessions a request goes to.

        A named target must be registered; there is no broadcast fallback.
        A broadcast takes a registry snapshot, so devices connecting later
        are not included.
        """
        if request.target is None:
            return self.registry.all()
        session = self.registry.get(request.target)
        if session is None:
            raise TargetNotFoundError(request.target)
        return ((request.target, session),)

    async def dispatch(self, request: CommandRequest) -> list[CommandOutcome]:
        try:
            targets = self.resolve(request)
        except TargetNotFoundError as exc:
            LOGGER.warning("could not find target %s", exc.target)
            return [
                CommandOutcome(
                    command=request.name,
                    target=request.target,
                    kind=OutcomeKind.TARGET_NOT_FOUND,
                    reason=str(exc),
                )
            ]
        return await self._execute_all(request, targets)

    def submit(self, request: CommandRequest) -> asyncio.Task[list[CommandOutcome]]:
        """Resolve now, execute in the background and log the outcomes.

        Raises ``TargetNotFoundError`` before anything is scheduled.
        """
        targets = self.resolve(request)
        if request.is_broadcast:
            LOGGER.debug(
                "Sending %s command to all %d devices, params: %r",
                request.name,
                len(targets),
                request.params,
            )
        else:
            LOGGER.debug(
                "Sending %s command to single device %s, params: %r",
                request.name,
                request.target,
                request.params,
            )
        task = asyncio.create_task(self._execute_all(request, targets))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every background dispatch started with ``submit``."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def _execute_all(
        self,
        request: CommandRequest,
        targets: Sequence[tuple[str, DeviceSession]],
    ) -> list[CommandOutcome]:
        if not targets:
            return []
        results = await asyncio.gather(
            *(session.execute(request.name, request.params) for _, session in targets),
            return_exceptions=True,
        )

        outcomes: list[CommandOutcome] = []
        for (device_id, _), result in zip(targets, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, FluffdError):
                    LOGGER.error(
                        "Unexpected error running %s on %s",
                        request.name,
                        device_id,
                        exc_info=result,
                    )
                else:
                    LOGGER.warning("%s failed on %s: %s", request.name, device_id, result)
                outcomes.append(
                    CommandOutcome(
                        command=request.name,
                        target=device_id,
                        kind=OutcomeKind.EXECUTION_FAILURE,
                        reason=str(result) or type(result).__name__,
                    )
                )
                continue
            LOGGER.debug("%s succeeded on %s", request.name, device_id)
            outcomes.append(CommandOutcome(command=request.name, target=device_id, kind=OutcomeKind.OK))
        return outcomes

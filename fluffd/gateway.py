"""HTTP gateway.

Routes::

    POST /cmd/{name}   body {"target"?: str, "params"?: any}
    GET  /list         command catalog as JSON
    GET  /scan         restart BLE scanning

Commands are acknowledged with ``ok`` as soon as they are scheduled; the
per-device outcomes are only logged. Every response allows any origin.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from fluffd.core.catalog import CommandCatalog
from fluffd.core.dispatcher import CommandDispatcher
from fluffd.core.errors import MalformedRequestError, TargetNotFoundError, TransportScanError
from fluffd.core.model import CommandRequest

LOGGER = logging.getLogger(__name__)

DISPATCHER_KEY = web.AppKey("dispatcher", CommandDispatcher)
CATALOG_KEY = web.AppKey("catalog", CommandCatalog)
RESCAN_KEY = web.AppKey("rescan", Callable[[], Awaitable[None]])


def parse_command_request(name: str, body: bytes | str, *, charset: str | None = None) -> CommandRequest:
    try:
        text = body if isinstance(body, str) else body.decode(charset or "utf-8")
        data: Any = json.loads(text)
    except LookupError as exc:
        raise MalformedRequestError(f"unknown charset {charset}") from exc
    except RecursionError as exc:
        raise MalformedRequestError("command body is nested too deeply") from exc
    except ValueError as exc:
        raise MalformedRequestError(str(exc)) from exc
    if not isinstance(data, dict):
        raise MalformedRequestError(f"command body must be a JSON object, got {type(data).__name__}")

    # A null target counts as absent, so the command is broadcast.
    target = data.get("target")
    if target is not None and not isinstance(target, str):
        raise MalformedRequestError("target must be a string")
    return CommandRequest(name=name, params=data.get("params"), target=target)


def _text(body: str = "") -> web.Response:
    return web.Response(text=body, content_type="text/plain")


@web.middleware
async def cors_middleware(request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]) -> web.StreamResponse:
    response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


async def handle_command(request: web.Request) -> web.Response:
    # Preflights and non-POST methods get an empty answer.
    if request.method != "POST":
        return _text()

    name = request.match_info["name"]
    body = await request.read()
    try:
        command = parse_command_request(name, body, charset=request.charset)
        request.app[DISPATCHER_KEY].submit(command)
    except MalformedRequestError as exc:
        LOGGER.warning("Could not parse HTTP command: %s", exc)
        return _text(f"error: {exc}")
    except TargetNotFoundError as exc:
        LOGGER.warning("could not find target %s", exc.target)
        return _text("error: could not find target")
    return _text("ok")


async def handle_list(request: web.Request) -> web.Response:
    return _text(json.dumps(request.app[CATALOG_KEY].list()))


async def handle_scan(request: web.Request) -> web.Response:
    try:
        await request.app[RESCAN_KEY]()
    except TransportScanError as exc:
        LOGGER.warning("Scan restart failed: %s", exc)
        return _text(f"error: {exc}")
    return _text("scanning")


async def handle_fallback(request: web.Request) -> web.Response:
    return _text()


async def _no_rescan() -> None:
    raise TransportScanError("scanning is not available")


def create_app(
    dispatcher: CommandDispatcher,
    catalog: CommandCatalog,
    *,
    rescan: Callable[[], Awaitable[None]] | None = None,
) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[DISPATCHER_KEY] = dispatcher
    app[CATALOG_KEY] = catalog
    app[RESCAN_KEY] = rescan or _no_rescan
    app.router.add_route("*", "/cmd/{name}", handle_command)
    app.router.add_route("*", "/cmd/{name}/{rest:.*}", handle_command)
    app.router.add_get("/list", handle_list)
    app.router.add_get("/scan", handle_scan)
    app.router.add_route("*", "/{tail:.*}", handle_fallback)
    return app

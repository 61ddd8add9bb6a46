from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import test_utils

from fluffd.core.catalog import load_catalog
from fluffd.core.dispatcher import CommandDispatcher
from fluffd.core.errors import MalformedRequestError, TransportScanError
from fluffd.core.registry import DeviceRegistry
from fluffd.gateway import create_app, parse_command_request


class FakeSession:
    def __init__(self, device_id: str) -> None:
        self.device_id = device_id
        self.calls: list[tuple[str, object]] = []

    async def execute(self, name, params=None) -> None:
        self.calls.append((name, params))


def _request(registry: DeviceRegistry, method: str, path: str, body: str | bytes | None = None, *, rescan=None, headers=None):
    dispatcher = CommandDispatcher(registry)
    app = create_app(dispatcher, load_catalog(), rescan=rescan)

    async def scenario():
        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            response = await client.request(method, path, data=body, headers=headers)
            text = await response.text()
            await dispatcher.drain()
            return response.status, text, response.headers

    return asyncio.run(scenario())


def _registry(*sessions: FakeSession) -> DeviceRegistry:
    registry = DeviceRegistry()
    for session in sessions:
        registry.insert(session.device_id, session)
    return registry


def test_broadcast_on_empty_registry_acknowledges() -> None:
    registry = DeviceRegistry()
    status, text, headers = _request(registry, "POST", "/cmd/wiggle", "{}")
    assert status == 200
    assert text == "ok"
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_targeted_command_reaches_only_target() -> None:
    s1, s2 = FakeSession("AA:BB"), FakeSession("CC:DD")
    status, text, _ = _request(_registry(s1, s2), "POST", "/cmd/feed", json.dumps({"target": "AA:BB"}))
    assert text == "ok"
    assert s1.calls == [("feed", None)]
    assert s2.calls == []


def test_broadcast_reaches_every_device_with_params() -> None:
    s1, s2 = FakeSession("AA:BB"), FakeSession("CC:DD")
    body = json.dumps({"params": {"red": 0, "green": 255, "blue": 0}})
    _, text, _ = _request(_registry(s1, s2), "POST", "/cmd/antenna", body)
    assert text == "ok"
    assert s1.calls == [("antenna", {"red": 0, "green": 255, "blue": 0})]
    assert s2.calls == s1.calls


def test_unknown_target_reports_error() -> None:
    s1 = FakeSession("AA:BB")
    _, text, headers = _request(_registry(s1), "POST", "/cmd/feed", json.dumps({"target": "ZZ:ZZ"}))
    assert text == "error: could not find target"
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert s1.calls == []


@pytest.mark.parametrize(
    "body",
    ["{not json", "", "[1, 2]", '"feed"', '{"target": 5}', b"\xff\xfe{", b"[" * 100000],
)
def test_malformed_body_reports_error(body: str | bytes) -> None:
    s1 = FakeSession("AA:BB")
    registry = _registry(s1)
    status, text, headers = _request(registry, "POST", "/cmd/feed", body)
    assert status == 200
    assert text.startswith("error:")
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert s1.calls == []
    assert [device_id for device_id, _ in registry.all()] == ["AA:BB"]


def test_preflight_on_command_route_is_empty() -> None:
    s1 = FakeSession("AA:BB")
    status, text, headers = _request(_registry(s1), "OPTIONS", "/cmd/feed")
    assert status == 200
    assert text == ""
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert s1.calls == []


def test_list_returns_catalog() -> None:
    status, text, headers = _request(DeviceRegistry(), "GET", "/list")
    assert status == 200
    names = [descriptor["name"] for descriptor in json.loads(text)]
    assert "antenna" in names
    assert "lcd" in names
    assert headers["Content-Type"].startswith("text/plain")


def test_scan_triggers_rescan() -> None:
    calls: list[str] = []

    async def rescan() -> None:
        calls.append("rescan")

    _, text, headers = _request(DeviceRegistry(), "GET", "/scan", rescan=rescan)
    assert text == "scanning"
    assert calls == ["rescan"]
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_scan_failure_is_reported() -> None:
    async def rescan() -> None:
        raise TransportScanError("Could not start BLE scan: not ready")

    _, text, _ = _request(DeviceRegistry(), "GET", "/scan", rescan=rescan)
    assert text == "error: Could not start BLE scan: not ready"


def test_unknown_path_is_empty_with_cors() -> None:
    status, text, headers = _request(DeviceRegistry(), "GET", "/favicon.ico")
    assert status == 200
    assert text == ""
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_parse_command_request_fields() -> None:
    request = parse_command_request("lcd", '{"target": "AA:BB", "params": {"on": false}}')
    assert request.name == "lcd"
    assert request.target == "AA:BB"
    assert request.params == {"on": False}
    assert request.is_broadcast is False


def test_parse_command_request_null_target_is_broadcast() -> None:
    assert parse_command_request("debug", '{"target": null}').is_broadcast


def test_parse_command_request_rejects_non_object() -> None:
    with pytest.raises(MalformedRequestError):
        parse_command_request("debug", "42")


def test_unknown_charset_reports_error() -> None:
    s1 = FakeSession("AA:BB")
    status, text, headers = _request(
        _registry(s1),
        "POST",
        "/cmd/feed",
        b"{}",
        headers={"Content-Type": "text/plain; charset=bogus"},
    )
    assert status == 200
    assert text.startswith("error:")
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert s1.calls == []


def test_parse_command_request_decodes_declared_charset() -> None:
    body = '{"target": "AA:BB", "params": {"data": "dé"}}'.encode("latin-1")
    request = parse_command_request("custom", body, charset="latin-1")
    assert request.params == {"data": "dé"}

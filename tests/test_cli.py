from __future__ import annotations

from typer.testing import CliRunner

from fluffd import cli
from fluffd.core.catalog import CommandCatalog
from fluffd.core.errors import CatalogValidationError, TransportScanError
from fluffd.core.model import CharacteristicInfo, CommandSpec, ParamSpec, Peripheral, ServiceInfo

runner = CliRunner()


def _catalog(warnings: tuple[str, ...] = ()) -> CommandCatalog:
    return CommandCatalog(
        commands={
            "antenna": CommandSpec(
                name="antenna",
                description="Set the antenna LED color",
                params={"red": ParamSpec(type="byte"), "blue": ParamSpec(type="byte", required=False)},
                payload=(b"\x14", "red", "blue"),
            )
        },
        write_char_uuid="dab91383-b5a1-e29c-b041-bcd562613bde",
        notify_char_uuid=None,
        warnings=warnings,
    )


def test_commands_lists_catalog(monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_catalog", lambda: _catalog(("User command 'debug' overrides packaged command",)))
    result = runner.invoke(cli.app, ["commands"])
    assert result.exit_code == 0
    assert "antenna: Set the antenna LED color" in result.stdout
    assert "  red: byte" in result.stdout
    assert "  blue: byte (optional)" in result.stdout
    assert "Warning: User command 'debug' overrides packaged command" in result.stderr


def test_commands_error_is_clean(monkeypatch) -> None:
    def broken():
        raise CatalogValidationError("Invalid YAML in extra.yaml")

    monkeypatch.setattr(cli, "load_catalog", broken)
    result = runner.invoke(cli.app, ["commands"])
    assert result.exit_code == 1
    assert "Error: Invalid YAML in extra.yaml" in result.stderr
    assert "Traceback" not in result.stdout


def test_serve_applies_options(monkeypatch) -> None:
    seen = {}

    class FakeService:
        def __init__(self, settings) -> None:
            seen["settings"] = settings
            self.load_warnings = ("User command 'lcd' overrides packaged command",)

        async def serve(self) -> None:
            seen["served"] = True

    monkeypatch.setattr(cli, "FluffService", FakeService)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.delenv("FLUFFD_PORT", raising=False)
    result = runner.invoke(cli.app, ["serve", "--port", "8080", "--device-name", "Furby Boom"])

    assert result.exit_code == 0
    assert seen["served"] is True
    assert seen["settings"].port == 8080
    assert seen["settings"].device_name == "Furby Boom"
    assert "Warning: User command 'lcd' overrides packaged command" in result.stderr



def test_serve_options_override_environment(monkeypatch) -> None:
    seen = {}

    class FakeService:
        def __init__(self, settings) -> None:
            seen["settings"] = settings
            self.load_warnings = ()

        async def serve(self) -> None:
            return None

    monkeypatch.setattr(cli, "FluffService", FakeService)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.setenv("FLUFFD_PORT", "9000")
    monkeypatch.setenv("FLUFFD_DEVICE_NAME", "Furby Boom")
    monkeypatch.setenv("FLUFFD_HOST", "127.0.0.1")
    result = runner.invoke(cli.app, ["serve", "--port", "8080"])

    assert result.exit_code == 0
    assert seen["settings"].port == 8080
    assert seen["settings"].device_name == "Furby Boom"
    assert seen["settings"].host == "127.0.0.1"

def test_serve_bad_log_level(monkeypatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    result = runner.invoke(cli.app, ["serve", "--log-level", "chatty"])
    assert result.exit_code == 1
    assert "Error: Unknown log level 'chatty'" in result.stderr


def test_introspect_prints_services(monkeypatch) -> None:
    class FakeIntrospector:
        def __init__(self, transport, *, device_name) -> None:
            self.device_name = device_name

        async def run(self):
            return Peripheral(id="AA:BB", name=self.device_name), [
                ServiceInfo(
                    uuid="dab90756-b5a1-e29c-b041-bcd562613bde",
                    description="Vendor specific",
                    characteristics=(
                        CharacteristicInfo(uuid="dab91383-b5a1-e29c-b041-bcd562613bde", description="", properties=("write",)),
                    ),
                )
            ]

    monkeypatch.setattr(cli, "BLEGATTTransport", lambda **kwargs: object())
    monkeypatch.setattr(cli, "Introspector", FakeIntrospector)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    monkeypatch.delenv("FLUFFD_DEVICE_NAME", raising=False)
    result = runner.invoke(cli.app, ["introspect"])

    assert result.exit_code == 0
    assert "AA:BB (Furby)" in result.stdout
    assert "service dab90756-b5a1-e29c-b041-bcd562613bde" in result.stdout


def test_introspect_error_is_clean(monkeypatch) -> None:
    class FailingIntrospector:
        def __init__(self, transport, *, device_name) -> None:
            pass

        async def run(self):
            raise TransportScanError("Could not start BLE scan: adapter off")

    monkeypatch.setattr(cli, "BLEGATTTransport", lambda **kwargs: object())
    monkeypatch.setattr(cli, "Introspector", FailingIntrospector)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    result = runner.invoke(cli.app, ["introspect"])
    assert result.exit_code == 1
    assert "Error: Could not start BLE scan: adapter off" in result.stderr

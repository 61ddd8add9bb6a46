"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import dataclasses

import typer

from fluffd.config import Settings, configure_logging, parse_log_level
from fluffd.core.catalog import load_catalog
from fluffd.core.errors import FluffdError
from fluffd.core.introspect import Introspector, format_services
from fluffd.service import FluffService
from fluffd.transports.ble_gatt import BLEGATTTransport

app = typer.Typer(help="Furby Connect Bluetooth LE command server")


def _settings(
    *,
    host: str | None = None,
    port: int | None = None,
    device_name: str | None = None,
    log_level: str | None = None,
) -> Settings:
    settings = Settings.from_env()
    overrides: dict[str, object] = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if device_name is not None:
        overrides["device_name"] = device_name
    if log_level is not None:
        overrides["log_level"] = parse_log_level(log_level)
    return dataclasses.replace(settings, **overrides)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Address to listen on"),
    port: int | None = typer.Option(None, "--port", help="HTTP port (default 3872)"),
    device_name: str | None = typer.Option(None, "--device-name", help="Advertised name to connect to"),
    log_level: str | None = typer.Option(None, "--log-level", help="error, warn, info, verbose or debug"),
) -> None:
    """Connect to every Furby in range and serve HTTP commands."""
    try:
        settings = _settings(host=host, port=port, device_name=device_name, log_level=log_level)
        configure_logging(settings.log_level)
        service = FluffService(settings)
        for warning in service.load_warnings:
            typer.echo(f"Warning: {warning}", err=True)
        asyncio.run(service.serve())
    except FluffdError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        typer.echo("Stopped", err=True)


@app.command("introspect")
def introspect(
    device_name: str | None = typer.Option(None, "--device-name", help="Advertised name to look for"),
    log_level: str | None = typer.Option(None, "--log-level", help="error, warn, info, verbose or debug"),
) -> None:
    """Connect to the first Furby found, print its services and exit."""
    try:
        settings = _settings(device_name=device_name, log_level=log_level)
        configure_logging(settings.log_level)
        transport = BLEGATTTransport(connect_timeout_s=settings.connect_timeout_s)
        introspector = Introspector(transport, device_name=settings.device_name)
        peripheral, services = asyncio.run(introspector.run())
        for line in format_services(peripheral, services):
            typer.echo(line)
    except FluffdError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("commands")
def list_commands() -> None:
    """List the commands accepted under /cmd/."""
    try:
        catalog = load_catalog()
        for warning in catalog.warnings:
            typer.echo(f"Warning: {warning}", err=True)
        for descriptor in catalog.list():
            typer.echo(f"{descriptor['name']}: {descriptor['description']}")
            for param_name, param in descriptor["params"].items():
                optional = "" if param["required"] else " (optional)"
                typer.echo(f"  {param_name}: {param['type']}{optional}")
    except FluffdError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import typer

from blelink.api import Client
from blelink.core.errors import BlelinkError
from blelink.core.model import DiscoveredDevice

app = typer.Typer(help="Scan for and connect to a BLE peripheral")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_client() -> Client:
    client = Client()
    for warning in getattr(client, "config_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return client


def _describe(device: DiscoveredDevice) -> str:
    name = device.name or "<unnamed>"
    rssi = f" rssi={device.rssi}" if device.rssi is not None else ""
    return f"{device.id} {name}{rssi}"


@app.command("targets")
def list_targets() -> None:
    """List the device names that end a scan on sight."""
    try:
        client = _build_client()
        names = client.config.target_names
        if not names:
            typer.echo("No target names configured")
            return
        for name in names:
            typer.echo(name)
    except BlelinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Scan until a target device is found or the timeout passes."""

    async def _run(client: Client) -> DiscoveredDevice | None:
        async with client:
            return await client.scan_for_target(
                timeout,
                on_device=lambda device: typer.echo(f"Device found: {_describe(device)}"),
            )

    try:
        client = _build_client()
        target = asyncio.run(_run(client))
        if target is None:
            typer.echo("No target device found")
            return
        typer.echo(f"Target acquired: {_describe(target)}")
    except BlelinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("connect")
def connect(
    device: str | None = typer.Option(None, "--device", help="Device id (address) to connect to"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Scan, connect to the selected device and list its services."""

    async def _run(client: Client):
        async with client:
            snapshot = await client.connect_to_target(device, timeout)
            await client.disconnect()
            return snapshot

    try:
        client = _build_client()
        snapshot = asyncio.run(_run(client))
        candidate = snapshot.candidate
        typer.echo(f"Connected to device: {_describe(candidate) if candidate else device}")
        catalog = snapshot.catalog
        if catalog is None or not len(catalog):
            typer.echo("No services discovered")
            return
        for service_id, characteristics in catalog.services.items():
            typer.echo(f"  {service_id}: {', '.join(characteristics) or '<none>'}")
    except BlelinkError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()

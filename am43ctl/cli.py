"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import typer

from am43ctl.core.errors import Am43Error
from am43ctl.core.model import Direction
from am43ctl.core.service import Am43Service

app = typer.Typer(help="AM43 motorized blind control over Bluetooth Low Energy")

_state = {"profile": "am43"}


@app.callback()
def main(
    profile: str = typer.Option("am43", "--profile", help="Profile ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["profile"] = profile


def _build_service() -> Am43Service:
    service = Am43Service(profile_id=_state["profile"])
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _fail(exc: Exception) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1) from None


@app.command("profiles")
def list_profiles() -> None:
    """List loaded device profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            protocol = profile.protocol
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(
                f"  service={protocol.service_uuid} characteristic={protocol.characteristic_uuid} "
                f"prefix={protocol.command_prefix.hex()}"
            )
    except Am43Error as exc:
        _fail(exc)


def _move(address: str, action: str) -> None:
    try:
        service = _build_service()
        asyncio.run(service.move(address, action))
        typer.echo(f"Sent {action} to {address}")
    except Am43Error as exc:
        _fail(exc)


@app.command("open")
def open_blind(address: str) -> None:
    """Fully open the blind."""
    _move(address, "open")


@app.command("close")
def close_blind(address: str) -> None:
    """Fully close the blind."""
    _move(address, "close")


@app.command("stop")
def stop_blind(address: str) -> None:
    """Stop any movement."""
    _move(address, "stop")


@app.command("set-position")
def set_position(
    address: str,
    position: int = typer.Argument(..., min=0, max=100, help="Closed percentage, 0 = open"),
    track: bool = typer.Option(True, "--track/--no-track", help="Poll until the blind stops"),
    timeout: float = typer.Option(60.0, "--timeout", help="Seconds to wait while tracking"),
) -> None:
    """Move the blind to a closed percentage."""
    try:
        service = _build_service()
        final = asyncio.run(service.move_to(address, position, track=track, timeout_s=timeout))
        typer.echo(f"Sent position {position} to {address}")
        if track:
            typer.echo(f"position={final if final is not None else 'unknown'}")
    except Am43Error as exc:
        _fail(exc)


@app.command("status")
def status(
    address: str,
    wait: float = typer.Option(3.0, "--wait", help="Seconds to wait for sensor replies"),
) -> None:
    """Read position, battery and light level."""
    try:
        service = _build_service()
        report = asyncio.run(service.read_status(address, wait_s=wait))
        typer.echo(f"Device: {report.identity.description}")
        for label, value in (
            ("position", report.position),
            ("battery", report.battery_percentage),
            ("light", report.light_level),
        ):
            typer.echo(f"  {label}: {value if value is not None else 'unknown'}")
        typer.echo(f"  direction: {Direction(report.direction).name.lower()}")
    except Am43Error as exc:
        _fail(exc)


def run() -> None:
    app()


if __name__ == "__main__":
    run()

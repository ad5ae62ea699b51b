"""Typer CLI entrypoint."""

from __future__ import annotations

import logging

import typer

from btrepl.core.errors import BtreplError
from btrepl.core.repl import ReplCoordinator
from btrepl.core.service import ReplService

app = typer.Typer(help="REPL client for an evaluation service reachable over Bluetooth RFCOMM")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s" if not verbose else "%(levelname)s %(name)s: %(message)s",
    )


def _usage() -> None:
    typer.echo("Usage: btrepl [ADDRESS]", err=True)
    typer.echo("Example: btrepl AA:BB:CC:DD:EE:FF", err=True)
    typer.echo("If no address is provided, will auto-discover.", err=True)


def _build_service(config: str | None) -> ReplService:
    service = ReplService(config_path=config)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.command()
def repl(
    addresses: list[str] | None = typer.Argument(
        None,
        metavar="[ADDRESS]",
        help="Device address (XX:XX:XX:XX:XX:XX). Auto-discovered when omitted.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    config: str | None = typer.Option(None, "--config", help="Path to a YAML config file"),
) -> None:
    """Connect to the evaluation service and start a REPL session."""
    addresses = addresses or []
    if len(addresses) > 1:
        _usage()
        raise typer.Exit(code=1)

    _configure_logging(verbose)
    try:
        service = _build_service(config)
        endpoint = service.resolve_endpoint(addresses[0] if addresses else None)
        session = service.connect(endpoint)
    except BtreplError as exc:
        typer.echo(f"Error: {exc}", err=True)
        _usage()
        raise typer.Exit(code=1) from None

    with session:
        typer.echo("Connected! Starting REPL session.", err=True)
        typer.echo("Press Ctrl-C to interrupt long-running evaluations.", err=True)
        coordinator = ReplCoordinator(
            session,
            prompt=service.settings.prompt,
            receive_buffer=service.settings.receive_buffer,
        )
        code = coordinator.run()
    typer.echo("Connection closed.", err=True)
    if code:
        raise typer.Exit(code=code)


def run() -> None:
    app()


if __name__ == "__main__":
    run()

"""
Syncwire CLI entry point.

Usage:
    syncwire [OPTIONS] COMMAND [ARGS]...
"""

from pathlib import Path

import typer

from syncwire import __version__
from syncwire.cli.common import console, settings, setup_logging
from syncwire.cli.config import config_app
from syncwire.cli.deliveries import deliveries_app
from syncwire.cli.integrations import integrations_app
from syncwire.cli.sync import sync_app
from syncwire.cli.webhooks import webhooks_app

app = typer.Typer(
    name="syncwire",
    help="Syncwire - webhook delivery and external project sync.",
    no_args_is_help=True,
)

app.add_typer(webhooks_app, name="webhooks")
app.add_typer(deliveries_app, name="deliveries")
app.add_typer(sync_app, name="sync")
app.add_typer(integrations_app, name="integrations")
app.add_typer(config_app, name="config")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"syncwire {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: $SYNCWIRE_CONFIG or .syncwire/config.yaml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """Syncwire - webhook delivery and external project sync."""
    settings.config_path = config
    settings.verbose = verbose
    setup_logging(verbose)


def main():
    """Main entry point."""
    app()


__all__ = ["app", "main"]

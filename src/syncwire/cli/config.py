"""
Syncwire CLI - Configuration commands.
"""

import os
from pathlib import Path

import typer
import yaml
from rich.syntax import Syntax

from syncwire.cli.common import console, get_config, settings
from syncwire.core.config import DEFAULT_CONFIG_PATH

config_app = typer.Typer(
    name="config",
    help="Configuration commands",
    no_args_is_help=True,
)


@config_app.command("show")
def config_show():
    """
    Print the effective configuration (file plus environment overrides).
    """
    config = get_config()
    text = yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False)
    console.print(Syntax(text, "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """
    Write a config file with default values.
    """
    path = settings.config_path or Path(os.getenv("SYNCWIRE_CONFIG", str(DEFAULT_CONFIG_PATH)))
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(1)

    get_config().save(path)
    console.print(f"[green]Wrote {path}[/green]")

"""
Shared CLI helpers: console, global options and context lifecycle.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

import typer
from rich.console import Console

from syncwire.core.config import ConfigError, SyncwireConfig, load_config
from syncwire.core.context import AppContext
from syncwire.security import CredentialError

T = TypeVar("T")

console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class CLISettings:
    """Options given to the root command."""

    config_path: Path | None = None
    verbose: bool = False


settings = CLISettings()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )


def get_config() -> SyncwireConfig:
    """Load configuration or exit with a readable error."""
    try:
        return load_config(settings.config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


def open_context() -> AppContext:
    """Create the application context or exit with a readable error."""
    config = get_config()
    try:
        return AppContext.create(config)
    except (ConfigError, CredentialError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def run_with_context(fn: Callable[[AppContext], Awaitable[T]]) -> T:
    """Run ``fn`` inside a fresh context, closing it afterwards."""

    async def _run() -> T:
        context = open_context()
        try:
            return await fn(context)
        finally:
            await context.aclose()

    return asyncio.run(_run())

"""
Syncwire CLI - Integration credential commands.

API keys and webhook secrets go into the encrypted credential store;
they are never written to the YAML config.
"""

import typer
from rich import box
from rich.table import Table

from syncwire.cli.common import console, run_with_context
from syncwire.core.context import AppContext
from syncwire.integrations import SyncAdapter
from syncwire.integrations.base import API_KEY, WEBHOOK_SECRET

integrations_app = typer.Typer(
    name="integrations",
    help="External provider credentials and checks",
    no_args_is_help=True,
)


def _adapter(context: AppContext, provider: str) -> SyncAdapter:
    adapter = context.adapters.get(provider)
    if adapter is None:
        console.print(f"[red]Unknown provider: {provider}[/red]")
        console.print(f"Available: {', '.join(context.adapters.available_providers())}")
        raise typer.Exit(1)
    return adapter


def _store(provider: str, key: str, value: str) -> None:
    async def _set(context: AppContext):
        adapter = _adapter(context, provider)
        return adapter.display_name, context.credentials.set(adapter.namespace, key, value)

    name, stored = run_with_context(_set)
    if not stored:
        console.print("[red]Error: value must not be empty[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Stored {name} {key.replace('_', ' ')}[/green]")


@integrations_app.command("set-key")
def integrations_set_key(
    provider: str = typer.Argument(..., help="Provider name (linear, notion)"),
    api_key: str = typer.Argument(..., help="Provider API key"),
):
    """
    Store a provider API key.
    """
    _store(provider, API_KEY, api_key)


@integrations_app.command("set-secret")
def integrations_set_secret(
    provider: str = typer.Argument(..., help="Provider name (linear, notion)"),
    secret: str = typer.Argument(..., help="Inbound webhook signing secret"),
):
    """
    Store the secret used to verify inbound provider webhooks.

    Without a secret, inbound webhooks are accepted unsigned.
    """
    _store(provider, WEBHOOK_SECRET, secret)


@integrations_app.command("status")
def integrations_status():
    """
    Show which providers are configured.
    """

    async def _status(context: AppContext):
        return [adapter.status() for adapter in context.adapters]

    statuses = run_with_context(_status)

    table = Table(title="Integrations", box=box.ROUNDED)
    table.add_column("Provider", style="cyan")
    table.add_column("API Key")
    table.add_column("Webhook Secret")
    table.add_column("Webhook Path", style="dim")

    for status in statuses:
        table.add_row(
            status["name"],
            "[green]set[/green]" if status["configured"] else "[red]missing[/red]",
            "[green]set[/green]" if status["webhook_secret"] else "[yellow]unsigned[/yellow]",
            f"/integrations/{status['provider']}/webhook",
        )

    console.print(table)


@integrations_app.command("test")
def integrations_test(
    provider: str = typer.Argument(..., help="Provider name (linear, notion)"),
):
    """
    Call the provider API with the stored key.
    """

    async def _test(context: AppContext):
        adapter = _adapter(context, provider)
        return adapter.display_name, await adapter.test_connection()

    with console.status("[bold cyan]Testing connection...[/bold cyan]"):
        name, result = run_with_context(_test)

    if not result.ok:
        console.print(f"[red]{name} connection failed: {result.error.message}[/red]")
        raise typer.Exit(1)

    info = result.value
    who = info.get("name") or info.get("email") or info.get("id") or "unknown"
    console.print(f"[green]{name} connection OK[/green] ({who})")

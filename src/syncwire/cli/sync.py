"""
Syncwire CLI - External sync commands.
"""

import typer
from rich import box
from rich.table import Table

from syncwire.cli.common import console, run_with_context
from syncwire.core.context import AppContext

sync_app = typer.Typer(
    name="sync",
    help="Pull changes from external providers",
    no_args_is_help=True,
)


@sync_app.command("run")
def sync_run(
    provider: str = typer.Option(
        None,
        "--provider",
        "-p",
        help="Only sync this provider (default: every configured provider)",
    ),
):
    """
    Run an incremental pull for configured providers.

    Each provider resumes from its last successful checkpoint.
    """

    async def _run(context: AppContext):
        if provider:
            adapter = context.adapters.get(provider)
            if adapter is None:
                console.print(f"[red]Unknown provider: {provider}[/red]")
                console.print(f"Available: {', '.join(context.adapters.available_providers())}")
                raise typer.Exit(1)
            adapters = [adapter]
        else:
            adapters = context.adapters.configured()

        return [(adapter, await adapter.sync_now()) for adapter in adapters]

    results = run_with_context(_run)

    if not results:
        console.print("[yellow]No provider is configured.[/yellow]")
        console.print("  [dim]syncwire integrations set-key linear <api key>[/dim]")
        return

    failed = False
    for adapter, result in results:
        if not result.ok:
            failed = True
            console.print(f"[red]{adapter.display_name}: {result.error.message}[/red]")
            continue
        report = result.value
        line = (
            f"[cyan]{adapter.display_name}[/cyan]: {report.pulled} pulled, "
            f"{report.created} created, {report.updated} updated"
        )
        if report.errors:
            failed = True
            line += f", [red]{len(report.errors)} errors[/red]"
        console.print(line)
        for error in report.errors:
            console.print(f"  [red]- {error}[/red]")

    if failed:
        raise typer.Exit(1)


@sync_app.command("status")
def sync_status():
    """
    Show checkpoints and link counts per provider.
    """

    async def _status(context: AppContext):
        return [adapter.status() for adapter in context.adapters]

    statuses = run_with_context(_status)

    table = Table(title="Sync Status", box=box.ROUNDED)
    table.add_column("Provider", style="cyan")
    table.add_column("Configured")
    table.add_column("Last Checkpoint")
    table.add_column("Links", justify="right")
    table.add_column("Last Run")

    for status in statuses:
        report = status["last_report"] or {}
        if not report:
            last_run = "[dim]never[/dim]"
        elif report.get("errors"):
            last_run = f"[red]{len(report['errors'])} errors[/red]"
        else:
            last_run = f"[green]ok[/green] ({report.get('pulled', 0)} pulled)"

        table.add_row(
            status["name"],
            "[green]yes[/green]" if status["configured"] else "[dim]no[/dim]",
            status["last_sync"] or "[dim]-[/dim]",
            str(status["links"]),
            last_run,
        )

    console.print(table)

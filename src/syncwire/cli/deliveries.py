"""
Syncwire CLI - Delivery scheduler entry point.

Meant to be run periodically (cron, systemd timer). Only one scheduler
should process deliveries against a given database at a time.
"""

import typer

from syncwire.cli.common import console, run_with_context
from syncwire.core.context import AppContext
from syncwire.webhooks import DeliveryStatus

deliveries_app = typer.Typer(
    name="deliveries",
    help="Webhook delivery queue commands",
    no_args_is_help=True,
)


@deliveries_app.command("process")
def deliveries_process(
    limit: int = typer.Option(
        None,
        "--limit",
        "-l",
        help="Maximum deliveries to attempt (defaults to webhooks.batch_limit)",
    ),
):
    """
    Attempt every due pending delivery once.

    Safe to run with an empty queue and safe to repeat.
    """

    async def _process(context: AppContext):
        report = await context.delivery_engine.process_due_deliveries(limit)
        pending = context.deliveries.count(DeliveryStatus.PENDING)
        return report, pending

    report, pending = run_with_context(_process)

    if report.processed == 0:
        console.print("[dim]No deliveries due.[/dim]")
    else:
        console.print(
            f"Processed {report.processed}: "
            f"[green]{report.succeeded} delivered[/green], "
            f"[yellow]{report.retried} retrying[/yellow], "
            f"[red]{report.failed} failed[/red], "
            f"[dim]{report.abandoned} abandoned[/dim]"
        )
    console.print(f"[dim]{pending} pending in queue[/dim]")

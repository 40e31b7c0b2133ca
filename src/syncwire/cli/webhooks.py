"""
Syncwire CLI - Webhook management commands.

Provides commands for managing webhook subscriptions and their deliveries.
"""

import secrets as secrets_module

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from syncwire.cli.common import console, run_with_context
from syncwire.core.context import AppContext
from syncwire.webhooks import DeliveryStatus, WebhookEvent, WebhookSubscription

# Create webhooks subcommand app
webhooks_app = typer.Typer(
    name="webhooks",
    help="Webhook management commands",
    no_args_is_help=True,
)

EVENT_DESCRIPTIONS = {
    WebhookEvent.CLIENT_CREATED: "A client was created",
    WebhookEvent.CLIENT_UPDATED: "A client was updated",
    WebhookEvent.PROJECT_CREATED: "A project was created",
    WebhookEvent.PROJECT_UPDATED: "A project was updated",
    WebhookEvent.PROJECT_DELETED: "A project was deleted",
    WebhookEvent.SUBSCRIPTION_CREATED: "A subscription was created",
    WebhookEvent.SUBSCRIPTION_UPDATED: "A subscription was updated",
    WebhookEvent.WEBHOOK_DELIVERY_FAILED: "A webhook delivery failed permanently",
    WebhookEvent.ALL: "Subscribe to all events",
}

STATUS_STYLES = {
    DeliveryStatus.PENDING: "[yellow]pending[/yellow]",
    DeliveryStatus.SUCCESS: "[green]success[/green]",
    DeliveryStatus.FAILED: "[red]failed[/red]",
}


def _resolve(context: AppContext, webhook_id: str) -> WebhookSubscription:
    """Find a subscription by full or partial id, or exit."""
    matches = [s for s in context.subscriptions.list() if s.id.startswith(webhook_id)]

    if not matches:
        console.print(f"[red]Webhook not found: {webhook_id}[/red]")
        raise typer.Exit(1)
    if len(matches) > 1:
        console.print(f"[yellow]Multiple webhooks match '{webhook_id}':[/yellow]")
        for sub in matches:
            console.print(f"  {sub.id} - {sub.name or sub.url}")
        console.print("\n[dim]Please provide a more specific ID.[/dim]")
        raise typer.Exit(1)
    return matches[0]


@webhooks_app.command("list")
def webhooks_list(
    active_only: bool = typer.Option(
        False,
        "--active",
        "-a",
        help="Show only active webhooks",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed webhook information",
    ),
):
    """
    List all webhook subscriptions.

    Shows registered webhooks and their delivery stats.
    """

    async def _list(context: AppContext):
        return context.subscriptions.list(active_only=active_only)

    subscriptions = run_with_context(_list)

    if not subscriptions:
        console.print("[yellow]No webhooks registered.[/yellow]")
        console.print("\nTo create a webhook:")
        console.print("  [dim]syncwire webhooks create https://example.com/webhook[/dim]")
        return

    table = Table(
        title="Webhook Subscriptions",
        box=box.ROUNDED,
    )
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Name", style="cyan")
    table.add_column("URL", max_width=40)
    table.add_column("Events", max_width=24)
    table.add_column("Status")
    table.add_column("Deliveries", justify="right")

    if verbose:
        table.add_column("Success Rate", justify="right")
        table.add_column("Last Error", max_width=30)

    for sub in subscriptions:
        status = "[green]Active[/green]" if sub.active else "[dim]Inactive[/dim]"
        events = ", ".join(sub.events[:3])
        if len(sub.events) > 3:
            events += f" +{len(sub.events) - 3}"

        row = [
            sub.id[:8],
            sub.name or "[dim]-[/dim]",
            sub.url[:40] + ("..." if len(sub.url) > 40 else ""),
            events,
            status,
            str(sub.total_deliveries),
        ]

        if verbose:
            success_rate = (
                f"{sub.success_rate * 100:.0f}%" if sub.total_deliveries > 0 else "[dim]-[/dim]"
            )
            row.append(success_rate)
            row.append(sub.last_error[:30] if sub.last_error else "[dim]-[/dim]")

        table.add_row(*row)

    console.print(table)
    console.print(f"\n[dim]{len(subscriptions)} webhook(s) registered[/dim]")


@webhooks_app.command("create")
def webhooks_create(
    url: str = typer.Argument(
        ...,
        help="Webhook endpoint URL",
    ),
    events: list[str] = typer.Option(
        ["*"],
        "--event",
        "-e",
        help="Event types to subscribe to (can specify multiple)",
    ),
    secret: str = typer.Option(
        None,
        "--secret",
        "-s",
        help="Shared secret for HMAC signature (auto-generated if not provided)",
    ),
    name: str = typer.Option(
        None,
        "--name",
        "-n",
        help="Friendly name for the webhook",
    ),
    description: str = typer.Option(
        None,
        "--description",
        "-d",
        help="Description of the webhook purpose",
    ),
):
    """
    Create a new webhook subscription.

    Events can be specified multiple times:
      syncwire webhooks create URL -e project.created -e project.updated

    Run `syncwire webhooks events` for the event catalog.
    """
    if not url.startswith(("http://", "https://")):
        console.print("[red]Error: URL must start with http:// or https://[/red]")
        raise typer.Exit(1)

    if not secret:
        secret = secrets_module.token_urlsafe(32)
        console.print(f"[dim]Generated secret: {secret}[/dim]")

    if len(secret) < 8:
        console.print("[red]Error: Secret must be at least 8 characters[/red]")
        raise typer.Exit(1)

    async def _create(context: AppContext):
        return context.subscriptions.register(
            url=url,
            events=events,
            secret=secret,
            name=name,
            description=description,
        )

    try:
        subscription = run_with_context(_create)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[green]Created webhook:[/green] {subscription.id}")
    console.print(f"  URL: {subscription.url}")
    console.print(f"  Events: {', '.join(subscription.events)}")
    console.print(f"  Secret: {secret}")
    console.print("\n[dim]Use the secret to verify webhook signatures on your server.[/dim]")
    console.print("[dim]Header: X-Signature: sha256=<hmac>[/dim]")


@webhooks_app.command("delete")
def webhooks_delete(
    webhook_id: str = typer.Argument(
        ...,
        help="Webhook ID to delete (can be partial)",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation prompt",
    ),
):
    """
    Delete a webhook subscription.

    The webhook ID can be a partial match (first 8 characters).
    """

    async def _find(context: AppContext):
        return _resolve(context, webhook_id)

    subscription = run_with_context(_find)

    if not force:
        console.print(f"Webhook: [cyan]{subscription.name or subscription.url}[/cyan]")
        console.print(f"ID: {subscription.id}")
        console.print(f"Deliveries: {subscription.total_deliveries}")
        confirm = typer.confirm("\nAre you sure you want to delete this webhook?")
        if not confirm:
            console.print("[dim]Cancelled.[/dim]")
            raise typer.Exit(0)

    async def _delete(context: AppContext):
        return context.subscriptions.unregister(subscription.id)

    if run_with_context(_delete):
        console.print(f"[green]Deleted webhook: {subscription.id}[/green]")
    else:
        console.print("[red]Failed to delete webhook[/red]")
        raise typer.Exit(1)


@webhooks_app.command("test")
def webhooks_test(
    webhook_id: str = typer.Argument(
        ...,
        help="Webhook ID to test (can be partial)",
    ),
    event: str = typer.Option(
        "test",
        "--event",
        "-e",
        help="Event name to put in the test payload",
    ),
):
    """
    Send a test event to a webhook.

    The payload is signed like a real delivery and flagged "test": true.
    Nothing is queued and delivery stats are not touched.
    """

    async def _test(context: AppContext):
        subscription = _resolve(context, webhook_id)
        result = await context.delivery_engine.test_delivery(
            subscription.id,
            event=event,
            data={"message": "This is a test webhook delivery from Syncwire CLI"},
        )
        return subscription, result

    with console.status("[bold cyan]Sending test webhook...[/bold cyan]"):
        subscription, result = run_with_context(_test)

    console.print(f"\nWebhook: [cyan]{subscription.name or subscription.url}[/cyan]")
    console.print(f"URL: {subscription.url}")

    if result.success:
        console.print("\n[green]Test successful![/green]")
        console.print(f"  Status: {result.status_code}")
        console.print(f"  Time: {result.response_time_ms}ms")
    else:
        console.print("\n[red]Test failed![/red]")
        console.print(f"  Error: {result.error}")
        if result.status_code:
            console.print(f"  HTTP Status: {result.status_code}")
        raise typer.Exit(1)


@webhooks_app.command("info")
def webhooks_info(
    webhook_id: str = typer.Argument(
        ...,
        help="Webhook ID to show info for (can be partial)",
    ),
):
    """
    Show detailed information about a webhook.
    """

    async def _info(context: AppContext):
        return _resolve(context, webhook_id)

    subscription = run_with_context(_info)

    status = "[green]Active[/green]" if subscription.active else "[red]Inactive[/red]"

    console.print(Panel(
        f"[bold cyan]{subscription.name or 'Unnamed Webhook'}[/bold cyan]\n"
        f"[dim]{subscription.id}[/dim]",
        title="Webhook Details",
    ))

    console.print(f"\n  URL: {subscription.url}")
    console.print(f"  Status: {status}")

    if subscription.description:
        console.print(f"  Description: {subscription.description}")

    console.print("\n  [bold]Events:[/bold]")
    for name in subscription.events:
        console.print(f"    - {name}")

    console.print("\n  [bold]Statistics:[/bold]")
    console.print(f"    Total deliveries: {subscription.total_deliveries}")
    console.print(f"    Successful: {subscription.successful_deliveries}")
    console.print(f"    Failed: {subscription.failed_deliveries}")

    if subscription.total_deliveries > 0:
        console.print(f"    Success rate: {subscription.success_rate * 100:.1f}%")

    if subscription.last_delivery_at:
        console.print(f"\n    Last delivery: {subscription.last_delivery_at.isoformat()}")

    if subscription.last_error:
        console.print(f"    [red]Last error: {subscription.last_error}[/red]")

    console.print(f"\n  Created: {subscription.created_at.isoformat()}")
    console.print(f"  Updated: {subscription.updated_at.isoformat()}")


@webhooks_app.command("events")
def webhooks_events():
    """
    List available webhook event types.
    """
    table = Table(
        title="Webhook Event Types",
        box=box.ROUNDED,
    )
    table.add_column("Event", style="cyan")
    table.add_column("Description")

    for event in WebhookEvent:
        table.add_row(
            event.value,
            EVENT_DESCRIPTIONS.get(event, "[dim]-[/dim]"),
        )

    console.print(table)


@webhooks_app.command("toggle")
def webhooks_toggle(
    webhook_id: str = typer.Argument(
        ...,
        help="Webhook ID to toggle (can be partial)",
    ),
):
    """
    Toggle a webhook between active and inactive.

    Pending deliveries of an inactive webhook fail on their next attempt.
    """

    async def _toggle(context: AppContext):
        subscription = _resolve(context, webhook_id)
        return context.subscriptions.update(subscription.id, active=not subscription.active)

    subscription = run_with_context(_toggle)

    status = "[green]activated[/green]" if subscription.active else "[yellow]deactivated[/yellow]"
    console.print(f"Webhook {subscription.id[:8]} {status}")


@webhooks_app.command("deliveries")
def webhooks_deliveries(
    webhook_id: str = typer.Argument(
        None,
        help="Only show deliveries of this webhook (can be partial)",
    ),
    status: str = typer.Option(
        None,
        "--status",
        "-s",
        help="Filter by status (pending, success, failed)",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-l",
        help="Maximum number of deliveries to show",
    ),
    offset: int = typer.Option(
        0,
        "--offset",
        help="Number of newest deliveries to skip",
    ),
):
    """
    Show delivery history, newest first.
    """
    if status and status not in {s.value for s in DeliveryStatus}:
        console.print(f"[red]Unknown status: {status}[/red]")
        raise typer.Exit(1)

    async def _logs(context: AppContext):
        subscription_id = _resolve(context, webhook_id).id if webhook_id else None
        return context.delivery_engine.get_delivery_logs(
            subscription_id=subscription_id,
            status=status,
            limit=limit,
            offset=offset,
        )

    deliveries = run_with_context(_logs)

    if not deliveries:
        console.print("[yellow]No deliveries found.[/yellow]")
        return

    table = Table(title="Webhook Deliveries", box=box.ROUNDED)
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Webhook", style="dim", max_width=8)
    table.add_column("Event", style="cyan")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Next Attempt")
    table.add_column("Last Error", max_width=30)

    for delivery in deliveries:
        next_attempt = (
            delivery.next_attempt_at.strftime("%Y-%m-%d %H:%M:%S")
            if delivery.status == DeliveryStatus.PENDING
            else "[dim]-[/dim]"
        )
        table.add_row(
            delivery.id[:8],
            delivery.subscription_id[:8],
            delivery.event,
            STATUS_STYLES[delivery.status],
            str(delivery.attempt),
            next_attempt,
            (delivery.last_error or "")[:30] or "[dim]-[/dim]",
        )

    console.print(table)


@webhooks_app.command("retry")
def webhooks_retry(
    delivery_id: str = typer.Argument(
        ...,
        help="ID of a failed delivery",
    ),
):
    """
    Re-queue a failed delivery with a fresh attempt budget.

    The delivery is sent by the next `syncwire deliveries process` run.
    """

    async def _retry(context: AppContext):
        return context.delivery_engine.retry_delivery(delivery_id)

    delivery = run_with_context(_retry)

    if delivery is None:
        console.print(f"[red]No failed delivery with ID {delivery_id}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Re-queued delivery {delivery.id}[/green]")

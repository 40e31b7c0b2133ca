"""
Syncwire Webhooks - Outbound event notification.

Provides webhook delivery for domain events:
- Subscribe external URLs to specific event names (or "*")
- HMAC-SHA256 signed payloads
- Persistent queue with scheduled retries
- Delivery logging and manual retry

Example:
    from syncwire.core.context import AppContext

    context = AppContext.create(config)
    sub = context.subscriptions.register(
        url="https://example.com/webhook",
        events=["project.updated"],
        secret="my-secret-key",
    )

    # Called by the scheduler
    await context.delivery_engine.process_due_deliveries()
"""

from syncwire.webhooks.models import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookEvent,
    WebhookSubscription,
)
from syncwire.webhooks.registry import WebhookSubscriptionRegistry
from syncwire.webhooks.service import (
    INACTIVE_ERROR,
    ProcessReport,
    SendResult,
    WebhookDeliveryEngine,
)
from syncwire.webhooks.store import DeliveryStore

__all__ = [
    # Models
    "WebhookSubscription",
    "WebhookEvent",
    "WebhookDelivery",
    "DeliveryStatus",
    # Persistence
    "WebhookSubscriptionRegistry",
    "DeliveryStore",
    # Engine
    "WebhookDeliveryEngine",
    "ProcessReport",
    "SendResult",
    "INACTIVE_ERROR",
]

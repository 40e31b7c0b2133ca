"""HTTP surface: inbound provider webhooks."""

from syncwire.api.inbound import WebhookAck, create_app, router

__all__ = ["WebhookAck", "create_app", "router"]

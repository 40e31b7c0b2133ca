"""
Webhook data models.

Provides:
- WebhookEvent: Catalog of event names subscribers can listen to
- DeliveryStatus: Delivery outcome status
- WebhookSubscription: Webhook registration configuration
- WebhookDelivery: Persistent delivery record and its retry state machine
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from syncwire.storage.database import from_db_time, to_db_time


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WebhookEvent(str, Enum):
    """Events that can trigger webhooks."""

    # Clients
    CLIENT_CREATED = "client.created"
    CLIENT_UPDATED = "client.updated"

    # Projects
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"

    # Subscriptions
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"

    # Delivery engine
    WEBHOOK_DELIVERY_FAILED = "webhook.delivery_failed"

    # Wildcard
    ALL = "*"

    @classmethod
    def names(cls) -> list[str]:
        return [e.value for e in cls]


class DeliveryStatus(str, Enum):
    """Status of a webhook delivery."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DeliveryStatus.PENDING


@dataclass
class WebhookSubscription:
    """
    Webhook subscription configuration.

    Stores URL, secret, and event filters for a webhook endpoint.
    """

    id: str
    url: str
    events: list[str]
    secret: str
    name: str | None
    description: str | None
    active: bool
    created_at: datetime
    updated_at: datetime

    # Stats
    total_deliveries: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    last_delivery_at: datetime | None = None
    last_error: str | None = None

    @classmethod
    def create(
        cls,
        url: str,
        events: list[str | WebhookEvent],
        secret: str,
        name: str | None = None,
        description: str | None = None,
    ) -> "WebhookSubscription":
        """Create a new webhook subscription."""
        now = _utc_now()
        parsed_events = sorted(
            {e.value if isinstance(e, WebhookEvent) else str(e).strip() for e in events}
            - {""}
        )

        return cls(
            id=str(uuid4()),
            url=url,
            events=parsed_events,
            secret=secret,
            name=name or f"Webhook {url[:30]}",
            description=description,
            active=True,
            created_at=now,
            updated_at=now,
        )

    def should_deliver(self, event: str | WebhookEvent) -> bool:
        """Check if this subscription should receive an event."""
        if not self.active:
            return False
        name = event.value if isinstance(event, WebhookEvent) else event
        if WebhookEvent.ALL.value in self.events:
            return True
        return name in self.events

    def record_delivery(self, success: bool, error: str | None = None) -> None:
        """Record a resolved delivery attempt."""
        self.total_deliveries += 1
        self.last_delivery_at = _utc_now()
        self.updated_at = self.last_delivery_at

        if success:
            self.successful_deliveries += 1
            self.last_error = None
        else:
            self.failed_deliveries += 1
            self.last_error = error

    @property
    def success_rate(self) -> float:
        if self.total_deliveries == 0:
            return 0.0
        return self.successful_deliveries / self.total_deliveries

    def to_dict(self, include_secret: bool = True) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "url": self.url,
            "events": list(self.events),
            "name": self.name,
            "description": self.description,
            "active": self.active,
            "created_at": to_db_time(self.created_at),
            "updated_at": to_db_time(self.updated_at),
            "stats": {
                "total_deliveries": self.total_deliveries,
                "successful_deliveries": self.successful_deliveries,
                "failed_deliveries": self.failed_deliveries,
                "success_rate": self.success_rate,
                "last_delivery_at": to_db_time(self.last_delivery_at),
                "last_error": self.last_error,
            },
        }
        if include_secret:
            data["secret"] = self.secret
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebhookSubscription":
        """Create from dictionary."""
        stats = data.get("stats", {})
        return cls(
            id=data["id"],
            url=data["url"],
            events=list(data["events"]),
            secret=data["secret"],
            name=data.get("name"),
            description=data.get("description"),
            active=data.get("active", True),
            created_at=from_db_time(data["created_at"]),
            updated_at=from_db_time(data["updated_at"]),
            total_deliveries=stats.get("total_deliveries", 0),
            successful_deliveries=stats.get("successful_deliveries", 0),
            failed_deliveries=stats.get("failed_deliveries", 0),
            last_delivery_at=from_db_time(stats.get("last_delivery_at")),
            last_error=stats.get("last_error"),
        )


@dataclass
class WebhookDelivery:
    """
    One event payload queued for one subscription.

    State machine:
        pending(attempt=0) -> begin_attempt() -> mark_success() -> success
                                              -> mark_failed()  -> pending (retry scheduled)
                                                                -> failed  (budget exhausted)

    ``attempt`` counts attempts already made and never exceeds the
    configured maximum. ``next_attempt_at`` only matters while pending.
    """

    id: str
    subscription_id: str
    event: str
    payload: dict[str, Any]
    status: DeliveryStatus
    attempt: int
    next_attempt_at: datetime
    created_at: datetime
    last_error: str | None = None
    delivered_at: datetime | None = None
    response_status: int | None = None

    @classmethod
    def create(
        cls,
        subscription_id: str,
        event: str,
        data: dict[str, Any],
        now: datetime | None = None,
    ) -> "WebhookDelivery":
        """Create a pending delivery, due immediately."""
        now = now or _utc_now()
        return cls(
            id=str(uuid4()),
            subscription_id=subscription_id,
            event=event,
            payload=build_payload(event, data, subscription_id, now),
            status=DeliveryStatus.PENDING,
            attempt=0,
            next_attempt_at=now,
            created_at=now,
        )

    def begin_attempt(self) -> int:
        """Count a new attempt before it is sent."""
        self.attempt += 1
        return self.attempt

    def mark_success(self, status_code: int | None = None, now: datetime | None = None) -> None:
        """Mark delivery as successful."""
        self.status = DeliveryStatus.SUCCESS
        self.delivered_at = now or _utc_now()
        self.response_status = status_code
        self.last_error = None

    def mark_failed(
        self,
        error: str,
        max_attempts: int,
        retry_delays: list[int],
        status_code: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Record a failed attempt and schedule the next one.

        The delay is ``retry_delays[attempt - 1]``, clamped to the last
        entry when attempts outnumber the table.

        Returns:
            True if the delivery is now terminally failed.
        """
        now = now or _utc_now()
        self.response_status = status_code

        if self.attempt >= max_attempts:
            self.status = DeliveryStatus.FAILED
            self.last_error = f"Max retry attempts exceeded: {error}"
            return True

        index = min(max(self.attempt, 1) - 1, len(retry_delays) - 1)
        self.status = DeliveryStatus.PENDING
        self.next_attempt_at = now + timedelta(seconds=retry_delays[index])
        self.last_error = error
        return False

    def mark_abandoned(self, reason: str) -> None:
        """Terminally fail without consuming an attempt."""
        self.status = DeliveryStatus.FAILED
        self.last_error = reason

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "event": self.event,
            "status": self.status.value,
            "attempt": self.attempt,
            "payload": self.payload,
            "created_at": to_db_time(self.created_at),
            "next_attempt_at": to_db_time(self.next_attempt_at),
            "delivered_at": to_db_time(self.delivered_at),
            "last_error": self.last_error,
            "response_status": self.response_status,
        }


def build_payload(
    event: str,
    data: dict[str, Any],
    subscription_id: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Outbound webhook envelope."""
    now = now or _utc_now()
    return {
        "event": event,
        "timestamp": now.isoformat(),
        "data": data,
        "webhook_id": subscription_id,
    }

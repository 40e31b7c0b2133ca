"""
Webhook subscription registry (SQLite).

Subscriptions live in the ``webhooks`` table. Filterable columns are
kept alongside a full JSON copy that carries delivery stats.
"""

import json
import logging
from typing import Any, List

from syncwire.storage.database import Database, to_db_time, utc_now
from syncwire.webhooks.models import WebhookEvent, WebhookSubscription

logger = logging.getLogger(__name__)


class WebhookSubscriptionRegistry:
    """CRUD for webhook subscriptions."""

    def __init__(self, db: Database):
        self.db = db

    def _save(self, sub: WebhookSubscription) -> None:
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO webhooks (
                    id, url, events, secret, name, description, active,
                    created_at, updated_at, data
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    sub.id,
                    sub.url,
                    json.dumps(sub.events),
                    sub.secret,
                    sub.name,
                    sub.description,
                    1 if sub.active else 0,
                    to_db_time(sub.created_at),
                    to_db_time(sub.updated_at),
                    json.dumps(sub.to_dict()),
                ),
            )

    def register(
        self,
        url: str,
        events: list[str | WebhookEvent],
        secret: str,
        name: str | None = None,
        description: str | None = None,
    ) -> WebhookSubscription:
        """
        Register a new webhook subscription.

        Raises:
            ValueError: if url, events or secret are missing.
        """
        if not url or not url.startswith(("http://", "https://")):
            raise ValueError("Webhook URL must be an http(s) URL")
        if not secret:
            raise ValueError("Webhook secret is required")

        sub = WebhookSubscription.create(
            url=url,
            events=events,
            secret=secret,
            name=name,
            description=description,
        )
        if not sub.events:
            raise ValueError("At least one event is required")

        self._save(sub)
        logger.info(f"Registered webhook {sub.id} for {url}")
        return sub

    def get(self, subscription_id: str) -> WebhookSubscription | None:
        with self.db.cursor() as cursor:
            cursor.execute("SELECT data FROM webhooks WHERE id = ?", (subscription_id,))
            row = cursor.fetchone()
        if row is None:
            return None
        return WebhookSubscription.from_dict(json.loads(row["data"]))

    def list(self, active_only: bool = False) -> List[WebhookSubscription]:
        """List subscriptions, newest first."""
        query = "SELECT data FROM webhooks"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY created_at DESC"
        with self.db.cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
        return [WebhookSubscription.from_dict(json.loads(row["data"])) for row in rows]

    def active_for_event(self, event: str) -> List[WebhookSubscription]:
        """Active subscriptions whose event set contains ``event`` or ``"*"``."""
        return [sub for sub in self.list(active_only=True) if sub.should_deliver(event)]

    def update(
        self,
        subscription_id: str,
        *,
        url: str | None = None,
        events: List[str] | None = None,
        secret: str | None = None,
        active: bool | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> WebhookSubscription | None:
        """Update a webhook subscription."""
        sub = self.get(subscription_id)
        if sub is None:
            return None

        if url is not None:
            sub.url = url
        if events is not None:
            sub.events = sorted({e.strip() for e in events if e.strip()})
        if secret is not None:
            sub.secret = secret
        if active is not None:
            sub.active = active
        if name is not None:
            sub.name = name
        if description is not None:
            sub.description = description

        sub.updated_at = utc_now()
        self._save(sub)
        return sub

    def record_delivery(
        self,
        subscription_id: str,
        success: bool,
        error: str | None = None,
    ) -> None:
        """Update stats once a delivery resolves to success or failed."""
        sub = self.get(subscription_id)
        if sub is None:
            return
        sub.record_delivery(success=success, error=error)
        self._save(sub)

    def unregister(self, subscription_id: str) -> bool:
        with self.db.cursor() as cursor:
            cursor.execute("DELETE FROM webhooks WHERE id = ?", (subscription_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Unregistered webhook {subscription_id}")
        return deleted

    def stats(self) -> dict[str, Any]:
        subs = self.list()
        return {
            "total": len(subs),
            "active": sum(1 for s in subs if s.active),
            "total_deliveries": sum(s.total_deliveries for s in subs),
            "failed_deliveries": sum(s.failed_deliveries for s in subs),
        }

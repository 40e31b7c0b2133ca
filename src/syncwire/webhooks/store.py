"""Persistent webhook delivery queue."""

import json
from datetime import datetime
from typing import Any, List

from syncwire.storage.database import Database, from_db_time, to_db_time
from syncwire.webhooks.models import DeliveryStatus, WebhookDelivery


def _from_row(row: Any) -> WebhookDelivery:
    return WebhookDelivery(
        id=row["id"],
        subscription_id=row["subscription_id"],
        event=row["event"],
        payload=json.loads(row["payload"]),
        status=DeliveryStatus(row["status"]),
        attempt=row["attempt"],
        next_attempt_at=from_db_time(row["next_attempt_at"]),
        created_at=from_db_time(row["created_at"]),
        last_error=row["last_error"],
        delivered_at=from_db_time(row["delivered_at"]),
        response_status=row["response_status"],
    )


class DeliveryStore:
    """
    ``webhook_deliveries`` table.

    Due rows are ``pending`` with ``next_attempt_at <= now``; timestamps
    are stored as UTC ISO strings so lexical order is time order.
    """

    def __init__(self, db: Database):
        self.db = db

    def save(self, delivery: WebhookDelivery) -> None:
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO webhook_deliveries (
                    id, subscription_id, event, payload, status, attempt,
                    next_attempt_at, last_error, response_status,
                    created_at, delivered_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    delivery.id,
                    delivery.subscription_id,
                    delivery.event,
                    json.dumps(delivery.payload, default=str),
                    delivery.status.value,
                    delivery.attempt,
                    to_db_time(delivery.next_attempt_at),
                    delivery.last_error,
                    delivery.response_status,
                    to_db_time(delivery.created_at),
                    to_db_time(delivery.delivered_at),
                ),
            )

    def get(self, delivery_id: str) -> WebhookDelivery | None:
        with self.db.cursor() as cursor:
            cursor.execute("SELECT * FROM webhook_deliveries WHERE id = ?", (delivery_id,))
            row = cursor.fetchone()
            return _from_row(row) if row else None

    def list_due(self, now: datetime, limit: int = 50) -> List[WebhookDelivery]:
        """Pending deliveries due at ``now``, oldest schedule first."""
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                SELECT * FROM webhook_deliveries
                WHERE status = ? AND next_attempt_at <= ?
                ORDER BY next_attempt_at, created_at
                LIMIT ?
            """,
                (DeliveryStatus.PENDING.value, to_db_time(now), limit),
            )
            return [_from_row(row) for row in cursor.fetchall()]

    def list(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[WebhookDelivery]:
        """Delivery history, newest first."""
        query = "SELECT * FROM webhook_deliveries WHERE 1=1"
        params: list[Any] = []
        if subscription_id:
            query += " AND subscription_id = ?"
            params.append(subscription_id)
        if status:
            query += " AND status = ?"
            params.append(DeliveryStatus(status).value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self.db.cursor() as cursor:
            cursor.execute(query, params)
            return [_from_row(row) for row in cursor.fetchall()]

    def count(self, status: DeliveryStatus | str | None = None) -> int:
        query = "SELECT COUNT(*) AS count FROM webhook_deliveries"
        params: list[Any] = []
        if status:
            query += " WHERE status = ?"
            params.append(DeliveryStatus(status).value)
        with self.db.cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return row["count"] if row else 0

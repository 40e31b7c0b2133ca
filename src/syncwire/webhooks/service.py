"""
Webhook Delivery Engine - queueing and signed HTTP delivery.

Provides:
- Event fan-out into persistent pending deliveries
- HMAC-SHA256 signed POST delivery
- Retry scheduling from a fixed delay table
- Terminal failure notification on the domain event bus
- Delivery history and manual retry

Delivery never happens inside ``trigger``. A scheduler calls
``process_due_deliveries`` periodically; every call only touches rows
that are pending and due, so repeated or empty runs are harmless.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import httpx

from syncwire.core.config import WebhooksConfig
from syncwire.events import ALL_EVENTS, DomainEvent, EventBus, EventTypes
from syncwire.security.signature import sign_header
from syncwire.storage.database import utc_now
from syncwire.webhooks.models import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookSubscription,
    build_payload,
)
from syncwire.webhooks.registry import WebhookSubscriptionRegistry
from syncwire.webhooks.store import DeliveryStore

logger = logging.getLogger(__name__)

INACTIVE_ERROR = "Webhook no longer active"

Clock = Callable[[], datetime]

_OUTCOME_BY_STATUS = {
    DeliveryStatus.SUCCESS: "succeeded",
    DeliveryStatus.PENDING: "retried",
    DeliveryStatus.FAILED: "failed",
}


@dataclass
class ProcessReport:
    """Outcome counts of one ``process_due_deliveries`` run."""

    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    abandoned: int = 0
    delivery_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "retried": self.retried,
            "failed": self.failed,
            "abandoned": self.abandoned,
        }


@dataclass
class SendResult:
    """Result of a single HTTP attempt."""

    success: bool
    status_code: int | None = None
    error: str | None = None
    response_time_ms: int | None = None


class WebhookDeliveryEngine:
    """
    Persistent webhook delivery with retries.

    Example:
        engine = WebhookDeliveryEngine(registry, store, bus, config.webhooks)
        engine.attach()

        # Any published domain event now enqueues deliveries
        await projects.update(12, {"title": "Renamed"})

        # Scheduler tick
        report = await engine.process_due_deliveries()

        await engine.aclose()
    """

    def __init__(
        self,
        subscriptions: WebhookSubscriptionRegistry,
        deliveries: DeliveryStore,
        bus: EventBus,
        config: WebhooksConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Clock = utc_now,
    ):
        self.subscriptions = subscriptions
        self.deliveries = deliveries
        self.bus = bus
        self.config = config or WebhooksConfig()
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._bus_subscription_id: str | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                follow_redirects=False,  # Never follow redirects to other hosts
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this engine created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # EVENT BUS
    # =========================================================================

    def attach(self, bus: EventBus | None = None) -> None:
        """Subscribe to every domain event on the bus."""
        if bus is not None:
            self.bus = bus
        if self._bus_subscription_id is not None:
            return
        self._bus_subscription_id = self.bus.subscribe(ALL_EVENTS, self._on_event)
        logger.debug("Webhook engine attached to event bus")

    def detach(self) -> None:
        if self._bus_subscription_id is not None:
            self.bus.unsubscribe(self._bus_subscription_id)
            self._bus_subscription_id = None

    def _on_event(self, event: DomainEvent) -> None:
        self.trigger(event.type, event.webhook_data())

    # =========================================================================
    # ENQUEUE
    # =========================================================================

    def trigger(self, event: str, data: dict[str, Any]) -> list[WebhookDelivery]:
        """
        Queue one pending delivery per active subscription matching ``event``.

        No network I/O happens here.
        """
        matching = self.subscriptions.active_for_event(event)
        if not matching:
            return []

        now = self._clock()
        created = []
        for sub in matching:
            delivery = WebhookDelivery.create(
                subscription_id=sub.id,
                event=event,
                data=data,
                now=now,
            )
            self.deliveries.save(delivery)
            created.append(delivery)

        logger.info(f"Queued {event} for {len(created)} webhooks")
        return created

    # =========================================================================
    # DELIVERY
    # =========================================================================

    async def process_due_deliveries(self, batch_limit: int | None = None) -> ProcessReport:
        """
        Attempt every pending delivery whose ``next_attempt_at`` has passed.

        Deliveries are processed sequentially, oldest schedule first.
        """
        limit = self.config.batch_limit if batch_limit is None else batch_limit
        if limit <= 0:
            return ProcessReport()
        due = self.deliveries.list_due(self._clock(), limit)
        report = ProcessReport()

        for delivery in due:
            report.processed += 1
            report.delivery_ids.append(delivery.id)
            try:
                outcome = await self._process(delivery)
            except Exception:
                # Bookkeeping failed; the saved row stays authoritative
                logger.exception(f"Unexpected error processing delivery {delivery.id}")
                saved = self.deliveries.get(delivery.id) or delivery
                outcome = _OUTCOME_BY_STATUS[saved.status]
            setattr(report, outcome, getattr(report, outcome) + 1)

        if report.processed:
            logger.info(
                f"Processed {report.processed} deliveries "
                f"({report.succeeded} ok, {report.retried} retrying, "
                f"{report.failed} failed, {report.abandoned} abandoned)"
            )
        return report

    async def _process(self, delivery: WebhookDelivery) -> str:
        """Run one attempt. Returns the ProcessReport counter to bump."""
        sub = self.subscriptions.get(delivery.subscription_id)
        if sub is None or not sub.active:
            delivery.mark_abandoned(INACTIVE_ERROR)
            self.deliveries.save(delivery)
            logger.info(f"Delivery {delivery.id} abandoned: {INACTIVE_ERROR}")
            return "abandoned"

        delivery.begin_attempt()
        try:
            result = await self._send(sub, delivery)
        except Exception:
            logger.exception(f"Unexpected error sending delivery {delivery.id}")
            result = SendResult(success=False, error="Internal delivery error")

        if result.success:
            delivery.mark_success(status_code=result.status_code, now=self._clock())
            self.deliveries.save(delivery)
            self.subscriptions.record_delivery(sub.id, success=True)
            logger.info(
                f"Webhook delivered to {sub.url} "
                f"(status={result.status_code}, time={result.response_time_ms}ms)"
            )
            return "succeeded"

        return await self._record_failure(delivery, sub, result)

    async def _record_failure(
        self,
        delivery: WebhookDelivery,
        sub: WebhookSubscription | None,
        result: SendResult,
    ) -> str:
        terminal = delivery.mark_failed(
            error=result.error or "Delivery failed",
            max_attempts=self.config.max_attempts,
            retry_delays=self.config.retry_delays,
            status_code=result.status_code,
            now=self._clock(),
        )
        self.deliveries.save(delivery)

        if not terminal:
            logger.warning(
                f"Webhook delivery {delivery.id} attempt {delivery.attempt} failed: "
                f"{result.error}; next attempt at {delivery.next_attempt_at.isoformat()}"
            )
            return "retried"

        logger.warning(
            f"Webhook delivery {delivery.id} failed permanently after "
            f"{delivery.attempt} attempts: {result.error}"
        )
        if sub is not None:
            self.subscriptions.record_delivery(sub.id, success=False, error=result.error)

        await self.bus.publish(
            DomainEvent(
                type=EventTypes.WEBHOOK_DELIVERY_FAILED,
                entity_type="webhook",
                entity_id=delivery.subscription_id,
                data={
                    "delivery_id": delivery.id,
                    "subscription_id": delivery.subscription_id,
                    "event": delivery.event,
                    "error": delivery.last_error,
                },
            )
        )
        return "failed"

    async def _send(
        self,
        subscription: WebhookSubscription,
        delivery: WebhookDelivery,
    ) -> SendResult:
        """Send a single webhook request."""
        return await self._post(
            subscription,
            delivery.payload,
            event=delivery.event,
            delivery_id=delivery.id,
        )

    async def _post(
        self,
        subscription: WebhookSubscription,
        payload: dict[str, Any],
        event: str,
        delivery_id: str,
    ) -> SendResult:
        body = json.dumps(payload, default=str).encode("utf-8")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.config.user_agent,
            "X-Event": event,
            "X-Webhook-Id": subscription.id,
            "X-Delivery-Id": delivery_id,
            "X-Signature": sign_header(body, subscription.secret),
        }

        start = self._clock()
        try:
            response = await self.client.post(
                subscription.url,
                content=body,
                headers=headers,
            )
        except httpx.TimeoutException:
            logger.warning(f"Webhook timed out: {subscription.url}")
            return SendResult(success=False, error="Request timed out")
        except httpx.HTTPError as e:
            logger.warning(f"Webhook request error: {e}")
            return SendResult(success=False, error=str(e) or type(e).__name__)

        elapsed_ms = int((self._clock() - start).total_seconds() * 1000)
        if 200 <= response.status_code < 300:
            return SendResult(
                success=True,
                status_code=response.status_code,
                response_time_ms=elapsed_ms,
            )
        return SendResult(
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
            response_time_ms=elapsed_ms,
        )

    async def test_delivery(
        self,
        subscription_id: str,
        event: str = "test",
        data: dict[str, Any] | None = None,
    ) -> SendResult | None:
        """
        Send a one-off signed payload flagged ``"test": true``.

        No delivery row is created and subscription stats are untouched.

        Returns:
            Send result, or None if the subscription does not exist.
        """
        sub = self.subscriptions.get(subscription_id)
        if sub is None:
            return None

        payload = build_payload(
            event,
            data or {"message": "Test delivery"},
            sub.id,
            self._clock(),
        )
        payload["test"] = True
        result = await self._post(sub, payload, event=event, delivery_id=f"test-{sub.id}")
        logger.info(f"Test delivery to {sub.url}: success={result.success}")
        return result

    # =========================================================================
    # DELIVERY HISTORY
    # =========================================================================

    def get_delivery_logs(
        self,
        subscription_id: str | None = None,
        status: DeliveryStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[WebhookDelivery]:
        """Get delivery history with optional filters, newest first."""
        return self.deliveries.list(
            subscription_id=subscription_id,
            status=status,
            limit=limit,
            offset=offset,
        )

    def retry_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """
        Re-queue a terminally failed delivery with a fresh attempt budget.

        Returns None when the delivery is missing or not failed.
        """
        delivery = self.deliveries.get(delivery_id)
        if delivery is None:
            return None
        if delivery.status != DeliveryStatus.FAILED:
            logger.warning(f"Cannot retry delivery {delivery_id}: not failed")
            return None

        delivery.status = DeliveryStatus.PENDING
        delivery.attempt = 0
        delivery.next_attempt_at = self._clock()
        self.deliveries.save(delivery)
        logger.info(f"Re-queued delivery {delivery_id}")
        return delivery

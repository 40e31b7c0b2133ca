"""
In-process domain event bus.

Synchronous fan-out: ``publish`` awaits every matching handler in
subscription order before returning, so subscribers run inside the call
that produced the event. The bus is owned by the application context;
there is no module-level instance.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import uuid4

from syncwire.events.models import DomainEvent

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

EventHandler = Callable[[DomainEvent], Awaitable[Any] | Any]


@dataclass(frozen=True)
class _Subscription:
    id: str
    event_type: str
    handler: EventHandler


class EventBus:
    """
    Typed publish/subscribe bus for domain events.

    Handlers may be plain functions or coroutines. A handler that raises
    is logged and skipped; the remaining handlers still run and the
    mutation that published the event is not rolled back.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """
        Register ``handler`` for ``event_type`` (``"*"`` for every event).

        Returns:
            Subscription id usable with ``unsubscribe``.
        """
        sub = _Subscription(id=str(uuid4()), event_type=event_type, handler=handler)
        self._subscriptions.append(sub)
        return sub.id

    def unsubscribe(self, subscription_id: str) -> bool:
        before = len(self._subscriptions)
        self._subscriptions = [s for s in self._subscriptions if s.id != subscription_id]
        return len(self._subscriptions) < before

    def handlers_for(self, event_type: str) -> list[EventHandler]:
        return [
            s.handler
            for s in self._subscriptions
            if s.event_type in (event_type, ALL_EVENTS)
        ]

    async def publish(self, event: DomainEvent) -> int:
        """
        Deliver ``event`` to every matching handler.

        Returns:
            Number of handlers that completed without raising.
        """
        handled = 0
        for handler in self.handlers_for(event.type):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                handled += 1
            except Exception:
                logger.exception(
                    f"Event handler failed for {event.type} "
                    f"(source={event.context.source})"
                )
        return handled

    def clear(self) -> None:
        self._subscriptions.clear()

"""Domain events and the in-process event bus."""

from syncwire.events.bus import ALL_EVENTS, EventBus, EventHandler
from syncwire.events.models import (
    LOCAL_SOURCE,
    DomainEvent,
    EventContext,
    EventTypes,
)

__all__ = [
    "ALL_EVENTS",
    "DomainEvent",
    "EventBus",
    "EventContext",
    "EventHandler",
    "EventTypes",
    "LOCAL_SOURCE",
]

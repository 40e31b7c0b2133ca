"""
Domain event models.

Events are ephemeral: they are created by a mutation, fanned out by the
event bus within the same call, and never persisted.

Every event carries an ``EventContext`` whose ``source`` tag records
where the change originated. ``"local"`` means a change made in this
system; any other value names the external provider whose data was
applied. Adapters only push local changes, which is what keeps a
remote-origin update from being echoed back to its origin.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

LOCAL_SOURCE = "local"


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def _generate_id() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


class EventTypes:
    """Event names emitted inside the system."""

    CLIENT_CREATED = "client.created"
    CLIENT_UPDATED = "client.updated"
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    WEBHOOK_DELIVERY_FAILED = "webhook.delivery_failed"

    @staticmethod
    def for_entity(entity_type: str, action: str) -> str:
        """Build event type string."""
        return f"{entity_type}.{action}"


@dataclass(frozen=True, slots=True)
class EventContext:
    """
    Provenance of a mutation.

    ``attributes`` holds provider-specific keys such as the remote
    issue id that triggered the change.
    """

    source: str = LOCAL_SOURCE
    attributes: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def local(cls) -> "EventContext":
        return cls()

    @classmethod
    def remote(cls, provider: str, **attributes: Any) -> "EventContext":
        """Context for a change applied from ``provider``."""
        return cls(source=provider, attributes=tuple(attributes.items()))

    @property
    def is_local(self) -> bool:
        return self.source == LOCAL_SOURCE

    def get(self, key: str, default: Any = None) -> Any:
        return dict(self.attributes).get(key, default)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"source": self.source}
        result.update(dict(self.attributes))
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EventContext":
        data = dict(data or {})
        source = data.pop("source", LOCAL_SOURCE) or LOCAL_SOURCE
        return cls(source=source, attributes=tuple(data.items()))


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """
    Entity mutation notification.

    Example:
        event = DomainEvent(
            type="project.updated",
            entity_type="project",
            entity_id=12,
            data={"changes": {"title": "New title"}},
            context=EventContext.remote("linear", linear_issue_id="ISSUE-42"),
        )
    """

    type: str
    entity_type: str | None = None
    entity_id: int | str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    context: EventContext = field(default_factory=EventContext)
    event_id: str = field(default_factory=_generate_id)
    timestamp: datetime = field(default_factory=_utc_now)

    @property
    def action(self) -> str:
        """Extract action from event type (e.g., 'updated' from 'project.updated')."""
        parts = self.type.split(".")
        return parts[1] if len(parts) > 1 else ""

    @property
    def changes(self) -> dict[str, Any]:
        """Changed fields for update events, full record otherwise."""
        changes = self.data.get("changes")
        if isinstance(changes, dict):
            return changes
        record = self.data.get("record")
        return record if isinstance(record, dict) else {}

    def webhook_data(self) -> dict[str, Any]:
        """Data block placed inside an outbound webhook payload."""
        data: dict[str, Any] = {}
        if self.entity_type is not None:
            data["entity_type"] = self.entity_type
        if self.entity_id is not None:
            data["entity_id"] = self.entity_id
        data.update(self.data)
        data["source"] = self.context.source
        return data

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_id": self.event_id,
            "type": self.type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "data": self.data,
            "context": self.context.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

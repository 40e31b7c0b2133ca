"""Tests for domain events and the event bus."""

import pytest

from syncwire.events import ALL_EVENTS, DomainEvent, EventBus, EventContext, EventTypes


class TestEventContext:
    """Tests for event provenance."""

    def test_local_by_default(self):
        context = EventContext()
        assert context.is_local
        assert context.source == "local"

    def test_remote_attributes(self):
        context = EventContext.remote("linear", linear_issue_id="ISSUE-1")
        assert not context.is_local
        assert context.get("linear_issue_id") == "ISSUE-1"
        assert context.get("missing", "x") == "x"

    def test_dict_round_trip(self):
        context = EventContext.remote("notion", notion_page_id="page-1")
        restored = EventContext.from_dict(context.to_dict())
        assert restored == context


class TestDomainEvent:
    """Tests for event payload helpers."""

    def test_action(self):
        assert DomainEvent(type="project.updated").action == "updated"
        assert DomainEvent(type="ping").action == ""

    def test_changes_prefers_changes_block(self):
        event = DomainEvent(
            type=EventTypes.PROJECT_UPDATED,
            data={"changes": {"title": "B"}, "previous": {"title": "A"}},
        )
        assert event.changes == {"title": "B"}

    def test_changes_falls_back_to_record(self):
        event = DomainEvent(type=EventTypes.PROJECT_CREATED, data={"record": {"title": "A"}})
        assert event.changes == {"title": "A"}

    def test_webhook_data_includes_source(self):
        event = DomainEvent(
            type=EventTypes.PROJECT_CREATED,
            entity_type="project",
            entity_id=3,
            data={"record": {"title": "A"}},
            context=EventContext.remote("linear"),
        )
        data = event.webhook_data()
        assert data["entity_type"] == "project"
        assert data["entity_id"] == 3
        assert data["record"] == {"title": "A"}
        assert data["source"] == "linear"


class TestEventBus:
    """Tests for publish/subscribe."""

    @pytest.mark.asyncio
    async def test_handlers_run_in_subscription_order(self):
        bus = EventBus()
        calls = []

        async def first(event):
            calls.append("first")

        def second(event):
            calls.append("second")

        bus.subscribe(EventTypes.PROJECT_CREATED, first)
        bus.subscribe(EventTypes.PROJECT_CREATED, second)

        handled = await bus.publish(DomainEvent(type=EventTypes.PROJECT_CREATED))

        assert handled == 2
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventTypes.PROJECT_UPDATED, broken)
        bus.subscribe(EventTypes.PROJECT_UPDATED, lambda e: calls.append(e.type))

        handled = await bus.publish(DomainEvent(type=EventTypes.PROJECT_UPDATED))

        assert handled == 1
        assert calls == [EventTypes.PROJECT_UPDATED]

    @pytest.mark.asyncio
    async def test_wildcard_and_type_filter(self):
        bus = EventBus()
        seen = []
        bus.subscribe(ALL_EVENTS, lambda e: seen.append(("all", e.type)))
        bus.subscribe(EventTypes.CLIENT_CREATED, lambda e: seen.append(("client", e.type)))

        await bus.publish(DomainEvent(type=EventTypes.PROJECT_DELETED))

        assert seen == [("all", EventTypes.PROJECT_DELETED)]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        sub_id = bus.subscribe(ALL_EVENTS, lambda e: seen.append(e))

        assert bus.unsubscribe(sub_id) is True
        assert bus.unsubscribe(sub_id) is False
        assert await bus.publish(DomainEvent(type="x.y")) == 0
        assert seen == []

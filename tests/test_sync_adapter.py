"""Tests for the shared sync adapter behavior (pull, push, loop guard, webhooks)."""

import json
from unittest.mock import AsyncMock

import pytest

from syncwire.events import DomainEvent, EventContext, EventTypes
from syncwire.integrations import ErrorKind, RemoteItem, Result, SyncAdapter
from syncwire.security import CredentialError, sign_header


class FakeAdapter(SyncAdapter):
    """Adapter backed by an in-memory remote."""

    provider = "fake"
    display_name = "Fake"
    pushable_fields = ("title", "status")
    signature_headers = ("X-Fake-Signature",)
    context_attribute = "fake_id"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.remote = {}
        self.pull_calls = []
        self.created = []
        self.updates = []
        self.fail_pull = False

    def _headers(self, api_key):
        return {"Authorization": api_key}

    async def pull(self, since):
        self.pull_calls.append(since)
        if self.fail_pull:
            return Result.failure(ErrorKind.REMOTE_ERROR, "remote down")
        return Result.success([RemoteItem(id=k, data=dict(v)) for k, v in self.remote.items()])

    async def pull_one(self, remote_id):
        if remote_id not in self.remote:
            return Result.failure(ErrorKind.NOT_FOUND, "gone", 404)
        return Result.success(
            RemoteItem(id=remote_id, data=dict(self.remote[remote_id]), url=f"https://fake.test/{remote_id}")
        )

    async def push_create(self, project):
        remote_id = f"R-{len(self.created) + 1}"
        self.created.append(project.id)
        self.remote[remote_id] = {"title": project.title, "status": project.status}
        return Result.success(RemoteItem(id=remote_id, data=dict(self.remote[remote_id])))

    async def push_update(self, remote_id, changes):
        self.updates.append((remote_id, changes))
        return Result.success(True)

    def map_remote_to_local(self, item):
        return {"title": item.data.get("title", ""), "status": item.data.get("status", "pending")}

    def extract_remote_id(self, payload):
        return payload.get("id")

    def link_metadata(self, item):
        return {"status": item.data.get("status")}

    async def test_connection(self):
        return Result.success({"ok": True})


@pytest.fixture
def adapter(projects, links, state, credentials, bus, clock):
    credentials.set("integrations_fake", "api_key", "fake-key")
    adapter = FakeAdapter(projects, links, state, credentials, clock=clock)
    adapter.attach(bus)
    return adapter


@pytest.fixture
def project_events(bus):
    seen = []
    bus.subscribe("*", seen.append)
    return seen


class TestPush:
    """Tests for pushing local changes."""

    @pytest.mark.asyncio
    async def test_local_create_pushes_once_and_links(self, adapter, projects, links):
        project = await projects.create({"title": "Website"})

        assert adapter.created == [project.id]
        link = links.find_by_entity(project.id, "fake")
        assert link.external_id == "R-1"
        assert [e.action for e in projects.list_activity(action="fake_push")] == ["fake_push"]

    @pytest.mark.asyncio
    async def test_local_update_pushes_pushable_changes(self, adapter, projects):
        project = await projects.create({"title": "Website"})

        await projects.update(project.id, {"title": "Website v2", "progress": 50})

        assert adapter.updates == [("R-1", {"title": "Website v2"})]

    @pytest.mark.asyncio
    async def test_non_pushable_change_is_not_pushed(self, adapter, projects):
        project = await projects.create({"title": "Website"})

        await projects.update(project.id, {"progress": 10})

        assert adapter.updates == []

    @pytest.mark.asyncio
    async def test_remote_origin_event_is_ignored(self, adapter, projects, bus):
        project = await projects.create({"title": "Website"})

        await bus.publish(
            DomainEvent(
                type=EventTypes.PROJECT_UPDATED,
                entity_type="project",
                entity_id=project.id,
                data={"changes": {"title": "From elsewhere"}},
                context=EventContext.remote("linear", linear_issue_id="I-1"),
            )
        )

        assert adapter.updates == []

    @pytest.mark.asyncio
    async def test_unconfigured_adapter_does_not_push(self, adapter, projects, credentials):
        credentials.delete("integrations_fake", "api_key")

        await projects.create({"title": "Website"})

        assert adapter.created == []

    @pytest.mark.asyncio
    async def test_push_failure_leaves_no_link(self, adapter, projects, links):
        adapter.push_create = AsyncMock(
            return_value=Result.failure(ErrorKind.REMOTE_ERROR, "remote down")
        )

        project = await projects.create({"title": "Website"})

        adapter.push_create.assert_awaited_once()
        assert links.find_by_entity(project.id, "fake") is None
        assert projects.get(project.id) is not None

    @pytest.mark.asyncio
    async def test_detach(self, adapter, projects, bus):
        adapter.detach(bus)

        await projects.create({"title": "Website"})

        assert adapter.created == []


class TestSyncNow:
    """Tests for pulling remote changes."""

    @pytest.mark.asyncio
    async def test_pull_creates_project_without_echo(self, adapter, projects, links, project_events):
        adapter.remote = {"X-1": {"title": "Remote project", "status": "In Progress"}}

        result = await adapter.sync_now()

        assert result.ok
        assert result.value.created == 1
        [project] = projects.list()
        assert project.title == "Remote project"
        assert project.status == "in_progress"
        assert links.find("fake", "X-1").project_id == project.id
        assert adapter.created == []
        assert adapter.updates == []

        created = [e for e in project_events if e.type == EventTypes.PROJECT_CREATED]
        assert created[0].context.source == "fake"
        assert created[0].context.get("fake_id") == "X-1"

    @pytest.mark.asyncio
    async def test_repull_updates_in_place(self, adapter, projects, links):
        adapter.remote = {"X-1": {"title": "First", "status": "todo"}}
        await adapter.sync_now()

        adapter.remote["X-1"]["title"] = "Renamed"
        result = await adapter.sync_now()

        assert result.value.updated == 1
        assert projects.count() == 1
        assert projects.list()[0].title == "Renamed"
        assert links.count("fake") == 1
        assert adapter.updates == []

    @pytest.mark.asyncio
    async def test_checkpoint_advances_to_pass_start(self, adapter, state, clock):
        adapter.remote = {"X-1": {"title": "First"}}
        first_start = clock()

        await adapter.sync_now()
        clock.advance(600)
        await adapter.sync_now()

        assert adapter.pull_calls == [None, first_start]
        assert state.get("fake_last_sync") == clock().isoformat()

    @pytest.mark.asyncio
    async def test_item_error_keeps_checkpoint(self, adapter, state, projects):
        adapter.remote = {"X-1": {"title": "Good"}, "X-2": {"title": ""}}

        result = await adapter.sync_now()

        assert result.ok
        assert result.value.created == 1
        assert len(result.value.errors) == 1
        assert result.value.errors[0].startswith("X-2:")
        assert state.get("fake_last_sync") is None
        assert state.get("fake_last_report")["errors"] == result.value.errors
        assert projects.count() == 1

    @pytest.mark.asyncio
    async def test_failed_pull(self, adapter, state):
        adapter.fail_pull = True

        result = await adapter.sync_now()

        assert not result.ok
        assert result.error.kind == ErrorKind.REMOTE_ERROR
        assert state.get("fake_last_sync") is None

    @pytest.mark.asyncio
    async def test_not_configured(self, adapter, credentials):
        credentials.delete("integrations_fake", "api_key")

        result = await adapter.sync_now()

        assert result.error.kind == ErrorKind.NOT_CONFIGURED
        assert adapter.pull_calls == []

    @pytest.mark.asyncio
    async def test_soft_deleted_project_is_recreated(self, adapter, projects, links):
        adapter.remote = {"X-1": {"title": "Remote"}}
        await adapter.sync_now()
        old = projects.list()[0]
        await projects.delete(old.id)

        result = await adapter.sync_now()

        assert result.value.created == 1
        [new] = projects.list()
        assert new.id != old.id
        assert links.find("fake", "X-1").project_id == new.id

    @pytest.mark.asyncio
    async def test_empty_remote_title_keeps_local_title(self, adapter, projects):
        adapter.remote = {"X-1": {"title": "Remote", "status": "todo"}}
        await adapter.sync_now()
        adapter.remote["X-1"] = {"title": "", "status": "done"}

        result = await adapter.sync_now()

        assert result.value.updated == 1
        project = projects.list()[0]
        assert project.title == "Remote"
        assert project.status == "done"


class TestHandleWebhook:
    """Tests for inbound provider webhooks."""

    SECRET = "inbound-secret"

    def _signed(self, payload):
        body = json.dumps(payload).encode()
        return body, {"X-Fake-Signature": sign_header(body, self.SECRET)}

    @pytest.fixture
    def secured(self, adapter, credentials):
        credentials.set("integrations_fake", "webhook_secret", self.SECRET)
        return adapter

    @pytest.mark.asyncio
    async def test_invalid_signature(self, secured, projects):
        body = json.dumps({"id": "X-1"}).encode()

        result = await secured.handle_webhook(body, {"X-Fake-Signature": "sha256=00"})

        assert result.error.kind == ErrorKind.INVALID_SIGNATURE
        assert projects.list_activity() == []

    @pytest.mark.asyncio
    async def test_missing_signature(self, secured):
        result = await secured.handle_webhook(b"{}", {})
        assert result.error.kind == ErrorKind.INVALID_SIGNATURE

    @pytest.mark.asyncio
    async def test_applies_remote_item(self, secured, projects):
        secured.remote = {"X-1": {"title": "From webhook", "status": "todo"}}
        body, headers = self._signed({"id": "X-1", "type": "Issue", "action": "update"})

        result = await secured.handle_webhook(body, headers)

        assert result.ok
        outcome = result.value
        assert outcome.action == "applied"
        assert outcome.remote_id == "X-1"
        assert projects.get(outcome.project_id).title == "From webhook"
        [received] = projects.list_activity(action="fake_webhook_received")
        assert received.metadata == {"remote_id": "X-1", "type": "Issue", "action": "update"}
        assert secured.created == []

    @pytest.mark.asyncio
    async def test_unknown_item_is_ignored(self, secured, projects):
        body, headers = self._signed({"id": "missing"})

        result = await secured.handle_webhook(body, headers)

        assert result.value.action == "ignored"
        assert projects.count() == 0

    @pytest.mark.asyncio
    async def test_no_id_requests_full_sync(self, secured):
        body, headers = self._signed({"type": "Project"})

        result = await secured.handle_webhook(body, headers)

        assert result.value.full_sync_requested

    @pytest.mark.asyncio
    async def test_invalid_json(self, secured):
        body = b"not json"
        headers = {"X-Fake-Signature": sign_header(body, self.SECRET)}

        result = await secured.handle_webhook(body, headers)

        assert result.error.kind == ErrorKind.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_non_object_json(self, secured):
        body, headers = self._signed([1, 2, 3])

        result = await secured.handle_webhook(body, headers)

        assert result.error.kind == ErrorKind.INVALID_PAYLOAD

    @pytest.mark.asyncio
    async def test_verification_skipped_without_secret(self, adapter):
        adapter.remote = {"X-1": {"title": "Unsigned"}}

        result = await adapter.handle_webhook(json.dumps({"id": "X-1"}).encode(), {})

        assert result.value.action == "applied"

    @pytest.mark.asyncio
    async def test_not_configured(self, secured, credentials):
        credentials.delete("integrations_fake", "api_key")
        body, headers = self._signed({"id": "X-1"})

        result = await secured.handle_webhook(body, headers)

        assert result.error.kind == ErrorKind.NOT_CONFIGURED

    @pytest.mark.asyncio
    async def test_unreadable_secret_fails_closed(self, secured, projects, monkeypatch):
        def unreadable(namespace, key):
            raise CredentialError("Unable to decrypt credential (wrong master key?)")

        monkeypatch.setattr(secured.credentials, "get", unreadable)
        secured.remote = {"X-1": {"title": "Remote"}}
        body, headers = self._signed({"id": "X-1"})

        assert secured.verify_webhook(body, headers) is False
        result = await secured.handle_webhook(body, headers)

        assert result.error.kind == ErrorKind.NOT_CONFIGURED
        assert projects.list() == []


class TestStatus:
    """Tests for adapter status reporting."""

    @pytest.mark.asyncio
    async def test_status(self, adapter):
        adapter.remote = {"X-1": {"title": "Remote"}}
        await adapter.sync_now()

        status = adapter.status()

        assert status["provider"] == "fake"
        assert status["configured"] is True
        assert status["webhook_secret"] is False
        assert status["links"] == 1
        assert status["last_report"]["created"] == 1

"""Tests for SQLite persistence."""

import pytest

from syncwire.events import EventContext, EventTypes
from syncwire.storage import ProjectValidationError
from syncwire.storage.projects import sanitize_key


class TestProjectRepository:
    """Tests for project CRUD and event publication."""

    @pytest.fixture
    def events(self, bus):
        seen = []
        bus.subscribe("*", seen.append)
        return seen

    @pytest.mark.asyncio
    async def test_create_publishes_event(self, projects, events):
        project = await projects.create({"title": "  Website  ", "progress": 140})

        assert project.id > 0
        assert project.title == "Website"
        assert project.progress == 100
        assert project.status == "pending"
        assert [e.type for e in events] == [EventTypes.PROJECT_CREATED]
        assert events[0].context.is_local
        assert events[0].data["record"]["title"] == "Website"

    @pytest.mark.asyncio
    async def test_create_requires_title(self, projects):
        with pytest.raises(ProjectValidationError):
            await projects.create({"title": "   "})

    @pytest.mark.asyncio
    async def test_update_reports_only_changed_fields(self, projects, events):
        project = await projects.create({"title": "A", "status": "pending"})

        await projects.update(
            project.id,
            {"title": "A", "status": "In Progress"},
            context=EventContext.remote("linear", linear_issue_id="I-1"),
        )

        update = events[-1]
        assert update.type == EventTypes.PROJECT_UPDATED
        assert update.changes == {"status": "in_progress"}
        assert update.data["previous"] == {"status": "pending"}
        assert update.context.source == "linear"
        assert update.context.get("linear_issue_id") == "I-1"

    @pytest.mark.asyncio
    async def test_update_without_changes_publishes_nothing(self, projects, events):
        project = await projects.create({"title": "A"})
        events.clear()

        result = await projects.update(project.id, {"title": "A"})

        assert result.id == project.id
        assert events == []

    @pytest.mark.asyncio
    async def test_update_missing_project(self, projects):
        assert await projects.update(999, {"title": "X"}) is None

    @pytest.mark.asyncio
    async def test_update_rejects_empty_title(self, projects):
        project = await projects.create({"title": "A"})
        with pytest.raises(ProjectValidationError):
            await projects.update(project.id, {"title": ""})

    @pytest.mark.asyncio
    async def test_soft_delete(self, projects, events):
        project = await projects.create({"title": "A"})

        assert await projects.delete(project.id) is True
        assert projects.get(project.id) is None
        assert projects.get(project.id, include_deleted=True).is_deleted
        assert projects.count() == 0
        assert events[-1].type == EventTypes.PROJECT_DELETED
        assert await projects.delete(project.id) is False

    @pytest.mark.asyncio
    async def test_activity_log(self, projects):
        project = await projects.create({"title": "A"})
        projects.log_activity(
            "Linear Sync", "project", project.id, "Synced", {"issue_id": "I-1"}
        )

        entries = projects.list_activity(entity_type="project", entity_id=project.id)

        assert [e.action for e in entries] == ["project_created", "linear_sync"]
        assert entries[1].metadata == {"issue_id": "I-1"}


class TestSanitizeKey:
    """Tests for status/action key normalization."""

    def test_sanitize(self):
        assert sanitize_key("In Progress") == "in_progress"
        assert sanitize_key("Done!") == "done"
        assert sanitize_key("a-b_c") == "a-b_c"


class TestExternalLinkStore:
    """Tests for the external link table."""

    def test_upsert_inserts(self, links):
        link = links.upsert(1, "linear", "ISSUE-1", url="https://linear.app/i/1", metadata={"a": 1})

        assert link.project_id == 1
        assert link.external_url == "https://linear.app/i/1"
        assert link.metadata == {"a": 1}
        assert links.find("linear", "ISSUE-1").id == link.id

    def test_upsert_updates_in_place(self, links):
        first = links.upsert(1, "linear", "ISSUE-1")
        second = links.upsert(2, "linear", "ISSUE-1", metadata={"state": "done"})

        assert second.id == first.id
        assert second.project_id == 2
        assert second.metadata == {"state": "done"}
        assert links.count("linear") == 1

    def test_same_external_id_under_other_provider(self, links):
        links.upsert(1, "linear", "X")
        links.upsert(1, "notion", "X")

        assert links.count() == 2
        assert links.find("notion", "X").provider == "notion"

    def test_find_by_entity(self, links):
        links.upsert(7, "notion", "page-1")

        assert links.find_by_entity(7, "notion").external_id == "page-1"
        assert links.find_by_entity(7, "linear") is None
        assert links.find("notion", "page-2") is None

    def test_find_by_entity_prefers_latest(self, links):
        links.upsert(7, "linear", "OLD")
        links.upsert(7, "linear", "NEW")

        assert links.find_by_entity(7, "linear").external_id == "NEW"

    def test_list_by_provider(self, links):
        links.upsert(1, "linear", "A")
        links.upsert(2, "notion", "B")

        assert [l.external_id for l in links.list("linear")] == ["A"]
        assert len(links.list()) == 2


class TestSyncStateStore:
    """Tests for the sync state table."""

    def test_get_default(self, state):
        assert state.get("missing") is None
        assert state.get("missing", "x") == "x"

    def test_set_and_replace(self, state):
        state.set("linear_last_sync", "2025-01-01T00:00:00+00:00")
        state.set("linear_last_sync", "2025-01-02T00:00:00+00:00")

        assert state.get("linear_last_sync") == "2025-01-02T00:00:00+00:00"

    def test_structured_values(self, state):
        state.set("report", {"pulled": 3, "errors": []})
        assert state.get("report") == {"pulled": 3, "errors": []}

    def test_delete(self, state):
        state.set("k", 1)
        assert state.delete("k") is True
        assert state.delete("k") is False

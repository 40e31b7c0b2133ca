"""Tests for the Notion adapter."""

import json
from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio

from syncwire.core.config import NotionConfig
from syncwire.integrations import ErrorKind, NotionAdapter, RemoteItem


def _page(page_id, title="Row", status=None, progress=None):
    properties = {
        "Name": {"type": "title", "title": [{"plain_text": title}] if title else []},
    }
    if status is not None:
        properties["Status"] = {"type": "select", "select": {"name": status}}
    if progress is not None:
        properties["Progress"] = {"type": "number", "number": progress}
    return {
        "object": "page",
        "id": page_id,
        "url": f"https://www.notion.so/{page_id}",
        "last_edited_time": "2025-01-01T10:00:00.000Z",
        "properties": properties,
    }


class FakeNotion:
    """Scripted REST endpoint."""

    def __init__(self):
        self.requests = []
        self.responses = []

    def queue(self, body, status_code=200):
        self.responses.append((status_code, body))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, body = self.responses.pop(0)
        return httpx.Response(status_code, json=body)

    def sent(self, index=-1):
        return json.loads(self.requests[index].content)


class MinuteStampedDatabase:
    """Database query endpoint honouring last_edited_time filters on minute stamps."""

    def __init__(self):
        self.pages = {}
        self.conditions = []

    def edit(self, page_id, title, at):
        stamp = at.replace(second=0, microsecond=0)
        page = _page(page_id, title=title)
        page["last_edited_time"] = stamp.strftime("%Y-%m-%dT%H:%M:00.000Z")
        self.pages[page_id] = (stamp, page)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        condition = (json.loads(request.content).get("filter") or {}).get("last_edited_time") or {}
        self.conditions.append(condition)
        results = []
        for stamp, page in self.pages.values():
            if "after" in condition and not stamp > datetime.fromisoformat(condition["after"]):
                continue
            if "on_or_after" in condition and not stamp >= datetime.fromisoformat(
                condition["on_or_after"]
            ):
                continue
            results.append(page)
        return httpx.Response(200, json={"results": results, "has_more": False})


@pytest.fixture
def remote():
    return FakeNotion()


@pytest_asyncio.fixture
async def adapter(projects, links, state, credentials, remote, clock):
    credentials.set("integrations_notion", "api_key", "secret_notion")
    client = httpx.AsyncClient(transport=httpx.MockTransport(remote))
    adapter = NotionAdapter(
        projects,
        links,
        state,
        credentials,
        client=client,
        clock=clock,
        config=NotionConfig(projects_database_id="db-1"),
    )
    yield adapter
    await client.aclose()


class TestNotionPull:
    """Tests for querying the projects database."""

    @pytest.mark.asyncio
    async def test_headers_and_pagination(self, adapter, remote):
        remote.queue({"results": [_page("p1"), _page("p2")], "has_more": True, "next_cursor": "cur"})
        remote.queue({"results": [_page("p3")], "has_more": False, "next_cursor": None})

        result = await adapter.pull(None)

        assert [i.id for i in result.value] == ["p1", "p2", "p3"]
        first = remote.requests[0]
        assert first.method == "POST"
        assert str(first.url) == "https://api.notion.com/v1/databases/db-1/query"
        assert first.headers["authorization"] == "Bearer secret_notion"
        assert first.headers["notion-version"] == "2022-06-28"
        assert "start_cursor" not in remote.sent(0)
        assert remote.sent(1)["start_cursor"] == "cur"

    @pytest.mark.asyncio
    async def test_incremental_filter(self, adapter, remote, clock):
        remote.queue({"results": [], "has_more": False})

        await adapter.pull(clock())

        assert remote.sent()["filter"] == {
            "timestamp": "last_edited_time",
            "last_edited_time": {"on_or_after": "2025-01-01T11:59:00+00:00"},
        }

    @pytest.mark.asyncio
    async def test_untitled_rows_skipped(self, adapter, remote):
        remote.queue({"results": [_page("p1", title=""), _page("p2")], "has_more": False})

        result = await adapter.pull(None)

        assert [i.id for i in result.value] == ["p2"]

    @pytest.mark.asyncio
    async def test_requires_database(self, adapter, remote):
        adapter.config.projects_database_id = None

        result = await adapter.pull(None)

        assert result.error.kind == ErrorKind.NOT_CONFIGURED
        assert remote.requests == []

    @pytest.mark.asyncio
    async def test_pull_one_404(self, adapter, remote):
        remote.queue({"object": "error"}, status_code=404)

        result = await adapter.pull_one("missing")

        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_sync_now(self, adapter, remote, projects, links):
        remote.queue(
            {"results": [_page("p1", title="Docs", status="In Progress", progress=40)], "has_more": False}
        )

        result = await adapter.sync_now()

        assert result.value.created == 1
        [project] = projects.list()
        assert (project.title, project.status, project.progress) == ("Docs", "in_progress", 40)
        assert links.find("notion", "p1").metadata["database_id"] == "db-1"

    @pytest.mark.asyncio
    async def test_edit_in_checkpoint_minute_is_pulled(
        self, projects, links, state, credentials, clock
    ):
        credentials.set("integrations_notion", "api_key", "secret_notion")
        database = MinuteStampedDatabase()
        client = httpx.AsyncClient(transport=httpx.MockTransport(database))
        adapter = NotionAdapter(
            projects,
            links,
            state,
            credentials,
            client=client,
            clock=clock,
            config=NotionConfig(projects_database_id="db-1"),
        )
        clock.advance(10)
        database.edit("p1", "First", clock() - timedelta(minutes=1))

        first = await adapter.sync_now()
        assert first.value.created == 1
        assert first.value.checkpoint == "2025-01-01T12:00:10+00:00"

        clock.advance(20)
        database.edit("p1", "Renamed", clock())
        clock.advance(60)

        second = await adapter.sync_now()

        assert second.value.pulled == 1
        assert second.value.updated == 1
        [project] = projects.list()
        assert project.title == "Renamed"
        assert database.conditions[-1] == {"on_or_after": "2025-01-01T11:59:00+00:00"}
        await client.aclose()


@pytest.fixture
def mapper(projects, links, state, credentials):
    return NotionAdapter(projects, links, state, credentials)


class TestNotionMapping:
    """Tests for property extraction."""

    def test_map_all_properties(self, mapper):
        item = RemoteItem(id="p1", data=_page("p1", title="Docs", status="Done", progress=100))

        assert mapper.map_remote_to_local(item) == {
            "title": "Docs",
            "status": "Done",
            "progress": 100,
        }

    def test_map_only_present_properties(self, mapper):
        item = RemoteItem(id="p1", data=_page("p1", title="Docs"))

        assert mapper.map_remote_to_local(item) == {"title": "Docs"}

    def test_title_from_text_content(self):
        page = {"properties": {"Project": {"type": "title", "title": [{"text": {"content": "Alt"}}]}}}
        assert NotionAdapter.page_title(page) == "Alt"

    def test_status_property(self):
        page = {"properties": {"Status": {"type": "status", "status": {"name": "Blocked"}}}}
        assert NotionAdapter.select_value(page, "Status") == "Blocked"

    def test_number_ignores_non_numbers(self):
        page = {"properties": {"Progress": {"number": True}}}
        assert NotionAdapter.number_value(page, "Progress") is None

    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"type": "page.properties_updated", "entity": {"id": "p1", "type": "page"}}, "p1"),
            ({"entity": {"id": "db-1", "type": "database"}}, None),
            ({"page_id": "p2"}, "p2"),
            ({"data": {"id": "p3"}}, "p3"),
            ({"type": "ping"}, None),
        ],
    )
    def test_extract_remote_id(self, mapper, payload, expected):
        assert mapper.extract_remote_id(payload) == expected


class TestNotionPush:
    """Tests for pushing projects to Notion."""

    @pytest.mark.asyncio
    async def test_push_create(self, adapter, remote, projects):
        project = await projects.create({"title": "New", "status": "active", "progress": 5})
        remote.queue(_page("p9", title="New"))

        result = await adapter.push_create(project)

        assert result.value.id == "p9"
        assert str(remote.requests[0].url) == "https://api.notion.com/v1/pages"
        assert remote.sent() == {
            "parent": {"database_id": "db-1"},
            "properties": {
                "Name": {"title": [{"text": {"content": "New"}}]},
                "Status": {"select": {"name": "Active"}},
                "Progress": {"number": 5},
            },
        }

    @pytest.mark.asyncio
    async def test_push_update(self, adapter, remote):
        remote.queue(_page("p1"))

        result = await adapter.push_update("p1", {"progress": 75, "description": "ignored"})

        assert result.value is True
        request = remote.requests[0]
        assert request.method == "PATCH"
        assert str(request.url) == "https://api.notion.com/v1/pages/p1"
        assert remote.sent() == {"properties": {"Progress": {"number": 75}}}

    @pytest.mark.asyncio
    async def test_push_status_uses_linked_option_name(self, adapter, remote, links):
        remote.queue({"results": [_page("p1", status="In Progress")], "has_more": False})
        await adapter.sync_now()
        assert links.find("notion", "p1").metadata["status_name"] == "In Progress"
        remote.queue(_page("p1"))

        await adapter.push_update("p1", {"status": "in_progress"})

        assert remote.sent() == {"properties": {"Status": {"select": {"name": "In Progress"}}}}

    @pytest.mark.asyncio
    async def test_push_status_uses_option_seen_elsewhere(self, adapter, remote):
        remote.queue(
            {
                "results": [_page("p1", status="Not started"), _page("p2", status="On Hold")],
                "has_more": False,
            }
        )
        await adapter.sync_now()
        remote.queue(_page("p1"))
        remote.queue(_page("p1"))

        await adapter.push_update("p1", {"status": "on_hold"})
        assert remote.sent()["properties"]["Status"] == {"select": {"name": "On Hold"}}

        await adapter.push_update("p1", {"status": "needs_review"})
        assert remote.sent()["properties"]["Status"] == {"select": {"name": "Needs Review"}}

    @pytest.mark.asyncio
    async def test_push_update_remote_error(self, adapter, remote):
        remote.queue({"message": "conflict"}, status_code=409)

        result = await adapter.push_update("p1", {"title": "T"})

        assert result.error.kind == ErrorKind.REMOTE_ERROR
        assert result.error.status_code == 409


class TestNotionExtras:
    """Tests for database discovery."""

    @pytest.mark.asyncio
    async def test_search_databases(self, adapter, remote):
        remote.queue(
            {
                "results": [
                    {"id": "db-1", "title": [{"plain_text": "Projects"}], "url": "https://notion.so/db-1"}
                ]
            }
        )

        result = await adapter.search_databases()

        assert result.value == [{"id": "db-1", "title": "Projects", "url": "https://notion.so/db-1"}]
        assert remote.sent()["filter"] == {"property": "object", "value": "database"}

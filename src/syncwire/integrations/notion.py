"""
Notion workspace adapter.

Rows of one configured projects database map onto projects through
three properties: ``Name`` (title), ``Status`` (select) and
``Progress`` (number).
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import quote

from syncwire.core.config import NotionConfig
from syncwire.integrations.base import RemoteItem, SyncAdapter
from syncwire.integrations.results import ErrorKind, Result
from syncwire.storage.database import to_db_time
from syncwire.storage.projects import Project, sanitize_key

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

# Notion stamps last_edited_time to the minute
EDIT_TIME_OVERLAP = timedelta(minutes=1)

STATUS_OPTIONS_KEY = "notion_status_options"


def _title_property(value: str) -> dict[str, Any]:
    return {"title": [{"text": {"content": value}}]}


def edited_since_filter(since: datetime) -> dict[str, Any]:
    """
    Query filter for rows edited at or after ``since``.

    The bound is floored to the minute and moved back by one more minute,
    so an edit later in the checkpoint's own minute is pulled again.
    """
    bound = since.replace(second=0, microsecond=0) - EDIT_TIME_OVERLAP
    return {
        "timestamp": "last_edited_time",
        "last_edited_time": {"on_or_after": to_db_time(bound)},
    }


class NotionAdapter(SyncAdapter):
    """Notion REST adapter for a single projects database."""

    provider = "notion"
    display_name = "Notion"
    pushable_fields = ("title", "status", "progress")
    signature_headers = (
        "Notion-Signature",
        "X-Notion-Signature",
        "Notion-Webhook-Signature",
    )
    context_attribute = "notion_page_id"

    def __init__(self, *args: Any, config: NotionConfig | None = None, **kwargs: Any):
        self.config = config or NotionConfig()
        self.timeout_seconds = self.config.timeout_seconds
        super().__init__(*args, **kwargs)

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Notion-Version": self.config.notion_version,
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.config.api_url.rstrip('/')}/{path.lstrip('/')}"

    @staticmethod
    def _to_item(page: dict[str, Any]) -> RemoteItem:
        return RemoteItem(id=str(page["id"]), data=page, url=page.get("url"))

    # =========================================================================
    # PROPERTY EXTRACTION
    # =========================================================================

    @staticmethod
    def page_title(page: dict[str, Any]) -> str:
        """Plain text of the page's title property (whatever its name)."""
        for prop in (page.get("properties") or {}).values():
            if not isinstance(prop, dict) or prop.get("type", "title") != "title":
                continue
            parts = prop.get("title")
            if not isinstance(parts, list):
                continue
            text = "".join(
                p.get("plain_text") or (p.get("text") or {}).get("content") or ""
                for p in parts
                if isinstance(p, dict)
            )
            return text.strip()
        return ""

    @staticmethod
    def select_value(page: dict[str, Any], name: str) -> str:
        prop = (page.get("properties") or {}).get(name) or {}
        select = prop.get("select") or prop.get("status") or {}
        return str(select.get("name") or "").strip()

    @staticmethod
    def number_value(page: dict[str, Any], name: str) -> int | None:
        prop = (page.get("properties") or {}).get(name) or {}
        number = prop.get("number")
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            return None
        return int(number)

    # =========================================================================
    # ADAPTER OPERATIONS
    # =========================================================================

    async def pull(self, since: datetime | None) -> Result[list[RemoteItem]]:
        """
        Query the projects database. Rows without a title are skipped.
        """
        database_id = self.config.projects_database_id
        if not database_id:
            return Result.failure(ErrorKind.NOT_CONFIGURED, "No Notion projects database set")

        body: dict[str, Any] = {"page_size": PAGE_SIZE}
        if since is not None:
            body["filter"] = edited_since_filter(since)

        items: list[RemoteItem] = []
        while True:
            result = await self._request(
                "POST", self._url(f"databases/{quote(database_id)}/query"), json=body
            )
            if not result.ok:
                return result

            data = result.value if isinstance(result.value, dict) else {}
            pages = data.get("results")
            if not isinstance(pages, list):
                return Result.failure(ErrorKind.INVALID_RESPONSE, "Notion query has no results")

            for page in pages:
                if not isinstance(page, dict) or not page.get("id"):
                    continue
                if not self.page_title(page):
                    continue
                items.append(self._to_item(page))

            cursor = data.get("next_cursor")
            if not data.get("has_more") or not cursor:
                break
            body["start_cursor"] = cursor

        logger.debug(f"Pulled {len(items)} Notion pages since {since}")
        return Result.success(items)

    async def pull_one(self, remote_id: str) -> Result[RemoteItem]:
        result = await self._request("GET", self._url(f"pages/{quote(str(remote_id))}"))
        if not result.ok:
            return result
        page = result.value
        if not isinstance(page, dict) or not page.get("id"):
            return Result.failure(ErrorKind.NOT_FOUND, f"Notion page {remote_id} not found")
        return Result.success(self._to_item(page))

    async def push_create(self, project: Project) -> Result[RemoteItem]:
        database_id = self.config.projects_database_id
        if not database_id:
            return Result.failure(ErrorKind.NOT_CONFIGURED, "No Notion projects database set")

        result = await self._request(
            "POST",
            self._url("pages"),
            json={
                "parent": {"database_id": database_id},
                "properties": {
                    "Name": _title_property(project.title),
                    "Status": {"select": {"name": self.status_option(project.status or "pending")}},
                    "Progress": {"number": int(project.progress or 0)},
                },
            },
        )
        if not result.ok:
            return result
        page = result.value
        if not isinstance(page, dict) or not page.get("id"):
            return Result.failure(ErrorKind.INVALID_RESPONSE, "Notion did not return the new page")
        return Result.success(self._to_item(page))

    async def push_update(self, remote_id: str, changes: dict[str, Any]) -> Result[bool]:
        properties: dict[str, Any] = {}
        if "title" in changes:
            properties["Name"] = _title_property(str(changes["title"]))
        if "status" in changes:
            properties["Status"] = {
                "select": {"name": self.status_option(str(changes["status"]), remote_id)}
            }
        if "progress" in changes:
            properties["Progress"] = {"number": int(changes["progress"] or 0)}
        if not properties:
            return Result.success(True)

        result = await self._request(
            "PATCH",
            self._url(f"pages/{quote(str(remote_id))}"),
            json={"properties": properties},
        )
        if not result.ok:
            return result
        return Result.success(True)

    def map_remote_to_local(self, item: RemoteItem) -> dict[str, Any]:
        """Only properties present on the page are mapped."""
        page = item.data
        mapped: dict[str, Any] = {"title": self.page_title(page)}
        status = self.select_value(page, "Status")
        if status:
            mapped["status"] = status
        progress = self.number_value(page, "Progress")
        if progress is not None:
            mapped["progress"] = progress
        return mapped

    def extract_remote_id(self, payload: dict[str, Any]) -> str | None:
        entity = payload.get("entity")
        if isinstance(entity, dict) and entity.get("id"):
            if entity.get("type", "page") == "page":
                return str(entity["id"])
        if payload.get("page_id"):
            return str(payload["page_id"])
        data = payload.get("data")
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])
        return None

    def link_metadata(self, item: RemoteItem) -> dict[str, Any]:
        status_name = self.select_value(item.data, "Status") or None
        if status_name:
            self.remember_status_option(status_name)
        return {
            "last_edited_time": item.data.get("last_edited_time"),
            "database_id": self.config.projects_database_id,
            "status_name": status_name,
        }

    # =========================================================================
    # STATUS OPTIONS
    # =========================================================================

    def remember_status_option(self, name: str) -> None:
        """Record the select option name behind a local status key."""
        key = sanitize_key(name)
        options = self.state.get(STATUS_OPTIONS_KEY) or {}
        if options.get(key) != name:
            options[key] = name
            self.state.set(STATUS_OPTIONS_KEY, options)

    def status_option(self, status: str, remote_id: str | None = None) -> str:
        """
        Notion select option name for a local status key.

        Lookup order: the linked page's own option, any option seen on
        another page, then the key in title case (``in_progress`` becomes
        ``In Progress``).
        """
        key = sanitize_key(status)
        if remote_id:
            link = self.links.find(self.provider, remote_id)
            name = link.metadata.get("status_name") if link else None
            if name and sanitize_key(name) == key:
                return name
        options = self.state.get(STATUS_OPTIONS_KEY) or {}
        if options.get(key):
            return options[key]
        return key.replace("_", " ").title()

    async def test_connection(self) -> Result[dict[str, Any]]:
        result = await self._request("GET", self._url("users/me"))
        if not result.ok:
            return result
        return Result.success(result.value if isinstance(result.value, dict) else {})

    # =========================================================================
    # EXTRAS
    # =========================================================================

    async def search_databases(self) -> Result[list[dict[str, Any]]]:
        """Databases shared with the integration."""
        result = await self._request(
            "POST",
            self._url("search"),
            json={"page_size": PAGE_SIZE, "filter": {"property": "object", "value": "database"}},
        )
        if not result.ok:
            return result
        data = result.value if isinstance(result.value, dict) else {}
        databases = []
        for db in data.get("results") or []:
            if not isinstance(db, dict):
                continue
            title = "".join(
                t.get("plain_text", "") for t in db.get("title") or [] if isinstance(t, dict)
            )
            databases.append({"id": db.get("id"), "title": title, "url": db.get("url")})
        return Result.success(databases)

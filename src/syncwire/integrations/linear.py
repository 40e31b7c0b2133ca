"""
Linear issue tracker adapter.

Issues map onto projects: title, description, and the workflow state
name (slugified) as the project status. Only title and description are
pushed back; Linear owns workflow state.
"""

import logging
from datetime import datetime
from typing import Any

from syncwire.core.config import LinearConfig
from syncwire.integrations.base import RemoteItem, SyncAdapter
from syncwire.integrations.results import ErrorKind, Result
from syncwire.storage.database import to_db_time
from syncwire.storage.projects import Project, sanitize_key

logger = logging.getLogger(__name__)

PAGE_SIZE = 50

ISSUE_FIELDS = "id title description url updatedAt createdAt state { id name type }"

ISSUES_QUERY = (
    "query($since: DateTimeOrDuration, $after: String) {"
    " issues(first: %d, after: $after, filter: { updatedAt: { gt: $since } }) {"
    " nodes { %s } pageInfo { hasNextPage endCursor } } }" % (PAGE_SIZE, ISSUE_FIELDS)
)

ALL_ISSUES_QUERY = (
    "query($after: String) {"
    " issues(first: %d, after: $after) {"
    " nodes { %s } pageInfo { hasNextPage endCursor } } }" % (PAGE_SIZE, ISSUE_FIELDS)
)

ISSUE_QUERY = (
    "query($id: String!) { issue(id: $id) { %s"
    " comments { nodes { id body createdAt user { id name } } } } }" % ISSUE_FIELDS
)

CREATE_MUTATION = (
    "mutation($input: IssueCreateInput!) {"
    " issueCreate(input: $input) { success issue { %s } } }" % ISSUE_FIELDS
)

UPDATE_MUTATION = (
    "mutation($id: String!, $input: IssueUpdateInput!) {"
    " issueUpdate(id: $id, input: $input) { success issue { id } } }"
)


NOT_FOUND_MESSAGE = "entity not found"


def _graphql_time(value: datetime) -> str:
    return to_db_time(value).replace("+00:00", "Z")


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


class LinearAdapter(SyncAdapter):
    """
    Linear GraphQL adapter.

    Example:
        adapter = LinearAdapter(
            projects, links, state, credentials, config=config.integrations.linear
        )
        result = await adapter.sync_now()
        if result.ok:
            print(result.value.created, result.value.updated)
    """

    provider = "linear"
    display_name = "Linear"
    pushable_fields = ("title", "description")
    signature_headers = (
        "Linear-Signature",
        "X-Linear-Signature",
        "Linear-Webhook-Signature",
        "X-Linear-Webhook-Signature",
    )
    context_attribute = "linear_issue_id"

    def __init__(self, *args: Any, config: LinearConfig | None = None, **kwargs: Any):
        self.config = config or LinearConfig()
        self.timeout_seconds = self.config.timeout_seconds
        super().__init__(*args, **kwargs)

    def _headers(self, api_key: str) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": api_key}

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> Result[dict]:
        """Run a GraphQL operation and return its ``data`` block."""
        response = await self._request(
            "POST",
            self.config.api_url,
            json={"query": query, "variables": variables or {}},
        )
        if not response.ok:
            return response

        body = response.value
        if not isinstance(body, dict):
            return Result.failure(ErrorKind.INVALID_RESPONSE, "Linear returned a non-object body")
        if body.get("errors"):
            errors = body["errors"]
            messages = "; ".join(_error_message(e) for e in errors)
            # Lookups of missing entities fail with an error, not a null
            kind = (
                ErrorKind.NOT_FOUND
                if all(NOT_FOUND_MESSAGE in _error_message(e).lower() for e in errors)
                else ErrorKind.REMOTE_ERROR
            )
            return Result.failure(kind, f"Linear GraphQL error: {messages}")
        data = body.get("data")
        if not isinstance(data, dict):
            return Result.failure(ErrorKind.INVALID_RESPONSE, "Linear response has no data")
        return Result.success(data)

    @staticmethod
    def _to_item(issue: dict[str, Any]) -> RemoteItem:
        return RemoteItem(id=str(issue["id"]), data=issue, url=issue.get("url"))

    # =========================================================================
    # ADAPTER OPERATIONS
    # =========================================================================

    async def pull(self, since: datetime | None) -> Result[list[RemoteItem]]:
        items: list[RemoteItem] = []
        after: str | None = None

        while True:
            if since is not None:
                query = ISSUES_QUERY
                variables = {"since": _graphql_time(since), "after": after}
            else:
                query = ALL_ISSUES_QUERY
                variables = {"after": after}

            result = await self.graphql(query, variables)
            if not result.ok:
                return result

            issues = result.value.get("issues") or {}
            nodes = issues.get("nodes")
            if not isinstance(nodes, list):
                return Result.failure(ErrorKind.INVALID_RESPONSE, "Linear issues missing nodes")
            items.extend(self._to_item(n) for n in nodes if isinstance(n, dict) and n.get("id"))

            page_info = issues.get("pageInfo") or {}
            after = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not after:
                break

        logger.debug(f"Pulled {len(items)} Linear issues since {since}")
        return Result.success(items)

    async def pull_one(self, remote_id: str) -> Result[RemoteItem]:
        result = await self.graphql(ISSUE_QUERY, {"id": str(remote_id)})
        if not result.ok:
            return result
        issue = result.value.get("issue")
        if not isinstance(issue, dict) or not issue.get("id"):
            return Result.failure(ErrorKind.NOT_FOUND, f"Linear issue {remote_id} not found")
        return Result.success(self._to_item(issue))

    async def push_create(self, project: Project) -> Result[RemoteItem]:
        if not self.config.team_id:
            return Result.failure(
                ErrorKind.NOT_CONFIGURED, "A Linear team id is required to create issues"
            )

        result = await self.graphql(
            CREATE_MUTATION,
            {
                "input": {
                    "teamId": self.config.team_id,
                    "title": project.title,
                    "description": project.description or "",
                }
            },
        )
        if not result.ok:
            return result

        issue = (result.value.get("issueCreate") or {}).get("issue")
        if not isinstance(issue, dict) or not issue.get("id"):
            return Result.failure(ErrorKind.INVALID_RESPONSE, "Linear did not return the new issue")
        return Result.success(self._to_item(issue))

    async def push_update(self, remote_id: str, changes: dict[str, Any]) -> Result[bool]:
        data = {}
        if "title" in changes:
            data["title"] = str(changes["title"])
        if "description" in changes:
            data["description"] = str(changes["description"] or "")
        if not data:
            return Result.success(True)

        result = await self.graphql(UPDATE_MUTATION, {"id": str(remote_id), "input": data})
        if not result.ok:
            return result
        return Result.success(bool((result.value.get("issueUpdate") or {}).get("success")))

    def map_remote_to_local(self, item: RemoteItem) -> dict[str, Any]:
        issue = item.data
        state = issue.get("state") or {}
        return {
            "title": str(issue.get("title") or ""),
            "description": str(issue.get("description") or ""),
            "status": sanitize_key(state["name"]) if state.get("name") else "pending",
        }

    def extract_remote_id(self, payload: dict[str, Any]) -> str | None:
        """
        Issue id behind a webhook payload.

        ``data.id`` only names the issue for ``Issue`` payloads; comments,
        attachments and reactions point at their issue through ``issueId``
        or a nested ``issue`` object.
        """
        data = payload.get("data")
        if isinstance(data, dict):
            if data.get("issueId"):
                return str(data["issueId"])
            issue = data.get("issue")
            if isinstance(issue, dict) and issue.get("id"):
                return str(issue["id"])
            if payload.get("type", "Issue") == "Issue" and data.get("id"):
                return str(data["id"])
        if payload.get("issueId"):
            return str(payload["issueId"])
        return None

    def link_metadata(self, item: RemoteItem) -> dict[str, Any]:
        state = item.data.get("state") or {}
        return {
            "state_id": state.get("id"),
            "state_name": state.get("name"),
            "updated_at": item.data.get("updatedAt"),
        }

    async def test_connection(self) -> Result[dict[str, Any]]:
        result = await self.graphql(
            "query { viewer { id name email organization { id name urlKey } } }"
        )
        if not result.ok:
            return result
        return Result.success(result.value.get("viewer") or {})

    # =========================================================================
    # EXTRAS
    # =========================================================================

    async def after_webhook_apply(
        self,
        item: RemoteItem,
        project: Project,
        payload: dict[str, Any],
    ) -> None:
        self.sync_comments(item, project)

    def sync_comments(self, item: RemoteItem, project: Project) -> int:
        """
        Append unseen issue comments to the project's activity log.

        The id of the newest logged comment is kept in sync state; only
        comments after it are logged on the next call.

        Returns:
            Number of comments logged.
        """
        comments = ((item.data.get("comments") or {}).get("nodes")) or []
        comments = sorted(
            (c for c in comments if isinstance(c, dict) and c.get("id")),
            key=lambda c: c.get("createdAt") or "",
        )
        if not comments:
            return 0

        state_key = f"linear_last_comment_{item.id}"
        last_seen = self.state.get(state_key)
        ids = [str(c["id"]) for c in comments]
        if last_seen in ids:
            comments = comments[ids.index(last_seen) + 1:]

        for comment in comments:
            self.projects.log_activity(
                "linear_comment",
                "project",
                project.id,
                "Linear comment",
                {
                    "issue_id": item.id,
                    "comment_id": str(comment["id"]),
                    "body": comment.get("body"),
                    "author": (comment.get("user") or {}).get("name"),
                    "created_at": comment.get("createdAt"),
                },
            )

        if comments:
            self.state.set(state_key, str(comments[-1]["id"]))
        return len(comments)

    async def fetch_teams(self) -> Result[list[dict[str, Any]]]:
        """Teams available to the API key (for choosing ``team_id``)."""
        result = await self.graphql("query { teams { nodes { id name key } } }")
        if not result.ok:
            return result
        return Result.success((result.value.get("teams") or {}).get("nodes") or [])

    async def fetch_workflow_states(self) -> Result[list[dict[str, Any]]]:
        result = await self.graphql("query { workflowStates { nodes { id name type } } }")
        if not result.ok:
            return result
        return Result.success((result.value.get("workflowStates") or {}).get("nodes") or [])

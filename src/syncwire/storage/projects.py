"""
Project repository.

CRUD with soft delete for projects plus the append-only activity log.
Every mutation publishes a domain event carrying the caller's
``EventContext`` so subscribers can tell local edits from changes
applied on behalf of an external provider.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List

from syncwire.events import DomainEvent, EventBus, EventContext, EventTypes
from syncwire.storage.database import (
    Database,
    dump_json,
    from_db_time,
    load_json,
    to_db_time,
    utc_now,
)

logger = logging.getLogger(__name__)

PROJECT_FIELDS = (
    "client_id",
    "title",
    "description",
    "status",
    "progress",
    "start_date",
    "end_date",
)

_KEY_RE = re.compile(r"[^a-z0-9_\-]")


class ProjectValidationError(ValueError):
    """Raised when project data cannot be stored."""


def sanitize_key(value: Any) -> str:
    """Lowercase and strip everything but letters, digits, '_' and '-'."""
    return _KEY_RE.sub("", str(value).strip().lower().replace(" ", "_"))


@dataclass
class Project:
    """Project record."""

    id: int
    title: str
    client_id: int = 0
    description: str | None = None
    status: str = "pending"
    progress: int = 0
    start_date: str | None = None
    end_date: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def field_values(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in PROJECT_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id}
        data.update(self.field_values())
        data["created_at"] = to_db_time(self.created_at)
        data["updated_at"] = to_db_time(self.updated_at)
        return data

    @classmethod
    def from_row(cls, row: Any) -> "Project":
        return cls(
            id=row["id"],
            title=row["title"],
            client_id=row["client_id"],
            description=row["description"],
            status=row["status"],
            progress=row["progress"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
            deleted_at=from_db_time(row["deleted_at"]),
        )


@dataclass
class ActivityEntry:
    """Immutable activity log entry."""

    id: int
    action: str
    entity_type: str | None
    entity_id: int | None
    description: str | None
    metadata: dict[str, Any]
    created_at: datetime | None


def _clean(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize the subset of project fields present in ``data``."""
    clean: dict[str, Any] = {}
    if "client_id" in data:
        clean["client_id"] = int(data["client_id"] or 0)
    if "title" in data:
        clean["title"] = str(data["title"] or "").strip()
    if "description" in data:
        value = data["description"]
        clean["description"] = str(value) if value is not None else None
    if "status" in data:
        clean["status"] = sanitize_key(data["status"] or "pending") or "pending"
    if "progress" in data:
        clean["progress"] = max(0, min(100, int(data["progress"] or 0)))
    for key in ("start_date", "end_date"):
        if key in data:
            clean[key] = str(data[key]) if data[key] else None
    return clean


class ProjectRepository:
    """SQLite-backed project repository that publishes domain events."""

    def __init__(self, db: Database, bus: EventBus):
        self.db = db
        self.bus = bus

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, project_id: int, include_deleted: bool = False) -> Project | None:
        """Get a project by ID (soft-deleted rows hidden by default)."""
        query = "SELECT * FROM projects WHERE id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        with self.db.cursor() as cursor:
            cursor.execute(query, (int(project_id),))
            row = cursor.fetchone()
            return Project.from_row(row) if row else None

    def list(self, status: str | None = None, limit: int = 100, offset: int = 0) -> list[Project]:
        query = "SELECT * FROM projects WHERE deleted_at IS NULL"
        params: list[Any] = []
        if status:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY id LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self.db.cursor() as cursor:
            cursor.execute(query, params)
            return [Project.from_row(row) for row in cursor.fetchall()]

    def count(self) -> int:
        with self.db.cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS count FROM projects WHERE deleted_at IS NULL")
            row = cursor.fetchone()
            return row["count"] if row else 0

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create(
        self,
        data: dict[str, Any],
        context: EventContext | None = None,
    ) -> Project:
        """
        Create a project and publish ``project.created``.

        Raises:
            ProjectValidationError: if the title is empty.
        """
        context = context or EventContext.local()
        values = {
            "client_id": 0,
            "description": None,
            "status": "pending",
            "progress": 0,
            "start_date": None,
            "end_date": None,
        }
        values.update(_clean(data))
        if not values.get("title"):
            raise ProjectValidationError("Project title is required")

        now = to_db_time(utc_now())
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO projects (
                    client_id, title, description, status, progress,
                    start_date, end_date, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    values["client_id"],
                    values["title"],
                    values["description"],
                    values["status"],
                    values["progress"],
                    values["start_date"],
                    values["end_date"],
                    now,
                    now,
                ),
            )
            project_id = cursor.lastrowid

        project = self.get(project_id)
        self.log_activity(
            "project_created",
            "project",
            project.id,
            f"Project created: {project.title}",
            {"data": project.field_values(), "source": context.source},
        )
        logger.debug(f"Created project {project.id} (source={context.source})")

        await self.bus.publish(
            DomainEvent(
                type=EventTypes.PROJECT_CREATED,
                entity_type="project",
                entity_id=project.id,
                data={"record": project.to_dict()},
                context=context,
            )
        )
        return project

    async def update(
        self,
        project_id: int,
        data: dict[str, Any],
        context: EventContext | None = None,
    ) -> Project | None:
        """
        Apply ``data`` to a project.

        Only fields whose value actually changes are written and reported
        in the ``project.updated`` event. Nothing is published when no
        field changes.

        Returns:
            Updated project, or None if it does not exist.
        """
        context = context or EventContext.local()
        existing = self.get(project_id)
        if existing is None:
            return None

        clean = _clean({k: v for k, v in data.items() if k in PROJECT_FIELDS})
        if "title" in clean and not clean["title"]:
            raise ProjectValidationError("Project title cannot be empty")

        current = existing.field_values()
        changes = {k: v for k, v in clean.items() if current.get(k) != v}
        if not changes:
            return existing

        assignments = ", ".join(f"{k} = ?" for k in changes)
        params = list(changes.values()) + [to_db_time(utc_now()), existing.id]
        with self.db.cursor() as cursor:
            cursor.execute(
                f"UPDATE projects SET {assignments}, updated_at = ? WHERE id = ?",
                params,
            )

        updated = self.get(existing.id)
        self.log_activity(
            "project_updated",
            "project",
            existing.id,
            f"Project updated: {existing.title}",
            {"changes": changes, "source": context.source},
        )

        await self.bus.publish(
            DomainEvent(
                type=EventTypes.PROJECT_UPDATED,
                entity_type="project",
                entity_id=existing.id,
                data={
                    "changes": changes,
                    "previous": {k: current.get(k) for k in changes},
                },
                context=context,
            )
        )
        return updated

    async def delete(self, project_id: int, context: EventContext | None = None) -> bool:
        """Soft-delete a project. External links are left untouched."""
        context = context or EventContext.local()
        existing = self.get(project_id)
        if existing is None:
            return False

        with self.db.cursor() as cursor:
            cursor.execute(
                "UPDATE projects SET deleted_at = ? WHERE id = ?",
                (to_db_time(utc_now()), existing.id),
            )

        self.log_activity(
            "project_deleted",
            "project",
            existing.id,
            f"Project deleted: {existing.title}",
            {"source": context.source},
        )
        await self.bus.publish(
            DomainEvent(
                type=EventTypes.PROJECT_DELETED,
                entity_type="project",
                entity_id=existing.id,
                data={"record": existing.to_dict()},
                context=context,
            )
        )
        return True

    # =========================================================================
    # ACTIVITY LOG
    # =========================================================================

    def log_activity(
        self,
        action: str,
        entity_type: str | None = None,
        entity_id: int | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Append an activity entry. Entries are never updated."""
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO activity_logs (
                    action, entity_type, entity_id, description, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """,
                (
                    sanitize_key(action),
                    sanitize_key(entity_type) if entity_type else None,
                    entity_id,
                    description,
                    dump_json(metadata),
                    to_db_time(utc_now()),
                ),
            )
            return cursor.lastrowid

    def list_activity(
        self,
        entity_type: str | None = None,
        entity_id: int | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> List[ActivityEntry]:
        query = "SELECT * FROM activity_logs WHERE 1=1"
        params: list[Any] = []
        if entity_type:
            query += " AND entity_type = ?"
            params.append(entity_type)
        if entity_id is not None:
            query += " AND entity_id = ?"
            params.append(entity_id)
        if action:
            query += " AND action = ?"
            params.append(action)
        query += " ORDER BY id LIMIT ?"
        params.append(limit)

        with self.db.cursor() as cursor:
            cursor.execute(query, params)
            return [
                ActivityEntry(
                    id=row["id"],
                    action=row["action"],
                    entity_type=row["entity_type"],
                    entity_id=row["entity_id"],
                    description=row["description"],
                    metadata=load_json(row["metadata"]),
                    created_at=from_db_time(row["created_at"]),
                )
                for row in cursor.fetchall()
            ]

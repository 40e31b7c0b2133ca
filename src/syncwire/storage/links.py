"""
External link store.

Maps local projects to (provider, external id) pairs. The table enforces
uniqueness of (provider, external_id) only; nothing prevents two external
ids of the same provider from pointing at one project.

Links have no delete operation and outlive soft-deleted projects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List

from syncwire.storage.database import (
    Database,
    dump_json,
    from_db_time,
    load_json,
    to_db_time,
    utc_now,
)


@dataclass
class ExternalLink:
    """Mapping row between a project and a remote item."""

    id: int
    project_id: int
    provider: str
    external_id: str
    external_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "ExternalLink":
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            provider=row["provider"],
            external_id=row["external_id"],
            external_url=row["external_url"],
            metadata=load_json(row["metadata"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "provider": self.provider,
            "external_id": self.external_id,
            "external_url": self.external_url,
            "metadata": self.metadata,
            "created_at": to_db_time(self.created_at),
            "updated_at": to_db_time(self.updated_at),
        }


class ExternalLinkStore:
    """SQLite-backed external link table."""

    def __init__(self, db: Database):
        self.db = db

    def find(self, provider: str, external_id: str) -> ExternalLink | None:
        """Find the link for a remote item."""
        with self.db.cursor() as cursor:
            cursor.execute(
                "SELECT * FROM project_external_links WHERE provider = ? AND external_id = ?",
                (provider, str(external_id)),
            )
            row = cursor.fetchone()
            return ExternalLink.from_row(row) if row else None

    def find_by_entity(self, entity_id: int, provider: str) -> ExternalLink | None:
        """
        Find the link for a local project.

        When several rows exist for the same project and provider, the
        most recently updated one wins.
        """
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                SELECT * FROM project_external_links
                WHERE project_id = ? AND provider = ?
                ORDER BY updated_at DESC, id DESC
                LIMIT 1
            """,
                (int(entity_id), provider),
            )
            row = cursor.fetchone()
            return ExternalLink.from_row(row) if row else None

    def upsert(
        self,
        entity_id: int,
        provider: str,
        external_id: str,
        url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ExternalLink:
        """
        Insert or update the link for (provider, external_id).

        An existing row keeps its id and created_at; project id, url,
        metadata and updated_at are replaced in place.
        """
        external_id = str(external_id)
        now = to_db_time(utc_now())

        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO project_external_links (
                    project_id, provider, external_id, external_url,
                    metadata, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (provider, external_id) DO UPDATE SET
                    project_id = excluded.project_id,
                    external_url = excluded.external_url,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
            """,
                (
                    int(entity_id),
                    provider,
                    external_id,
                    url or None,
                    dump_json(metadata),
                    now,
                    now,
                ),
            )

        return self.find(provider, external_id)

    def list(self, provider: str | None = None, limit: int = 500) -> List[ExternalLink]:
        query = "SELECT * FROM project_external_links"
        params: list[Any] = []
        if provider:
            query += " WHERE provider = ?"
            params.append(provider)
        query += " ORDER BY id LIMIT ?"
        params.append(limit)
        with self.db.cursor() as cursor:
            cursor.execute(query, params)
            return [ExternalLink.from_row(row) for row in cursor.fetchall()]

    def count(self, provider: str | None = None) -> int:
        query = "SELECT COUNT(*) AS count FROM project_external_links"
        params: List[Any] = []
        if provider:
            query += " WHERE provider = ?"
            params.append(provider)
        with self.db.cursor() as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return row["count"] if row else 0

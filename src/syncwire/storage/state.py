"""Key/value sync state (checkpoints, last-seen markers)."""

import json
from typing import Any

from syncwire.storage.database import Database


class SyncStateStore:
    """Small persistent key/value table for non-secret sync state."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str, default: Any = None) -> Any:
        with self.db.cursor() as cursor:
            cursor.execute("SELECT value FROM sync_state WHERE key = ?", (key,))
            row = cursor.fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        with self.db.cursor() as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, json.dumps(value, default=str)),
            )

    def delete(self, key: str) -> bool:
        with self.db.cursor() as cursor:
            cursor.execute("DELETE FROM sync_state WHERE key = ?", (key,))
            return cursor.rowcount > 0

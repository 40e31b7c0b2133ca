"""
SQLite persistence.

Provides:
- Database: shared connection and schema
- ProjectRepository: projects and activity log (publishes domain events)
- ExternalLinkStore: project <-> (provider, external id) mapping
- SyncStateStore: checkpoints and other non-secret sync state
"""

from syncwire.storage.database import Database
from syncwire.storage.links import ExternalLink, ExternalLinkStore
from syncwire.storage.projects import (
    ActivityEntry,
    Project,
    ProjectRepository,
    ProjectValidationError,
)
from syncwire.storage.state import SyncStateStore

__all__ = [
    "ActivityEntry",
    "Database",
    "ExternalLink",
    "ExternalLinkStore",
    "Project",
    "ProjectRepository",
    "ProjectValidationError",
    "SyncStateStore",
]

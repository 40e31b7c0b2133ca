"""
External sync integrations.

Provides:
- SyncAdapter: shared pull/push/webhook pattern
- LinearAdapter: Linear issues <-> projects
- NotionAdapter: Notion database rows <-> projects
- AdapterRegistry / BUILTIN_ADAPTERS: static adapter table
- Result, SyncError, ErrorKind: expected-failure results
"""

from syncwire.integrations.base import (
    AppliedItem,
    RemoteItem,
    SyncAdapter,
    SyncReport,
    WebhookOutcome,
)
from syncwire.integrations.linear import LinearAdapter
from syncwire.integrations.notion import NotionAdapter
from syncwire.integrations.registry import BUILTIN_ADAPTERS, AdapterRegistry
from syncwire.integrations.results import ErrorKind, Result, SyncError

__all__ = [
    "AdapterRegistry",
    "AppliedItem",
    "BUILTIN_ADAPTERS",
    "ErrorKind",
    "LinearAdapter",
    "NotionAdapter",
    "RemoteItem",
    "Result",
    "SyncAdapter",
    "SyncError",
    "SyncReport",
    "WebhookOutcome",
]

"""
Sync adapter registry.

Adapters are listed statically; there is no plugin discovery.
"""

import logging
from typing import Dict, List, Optional, Type

from syncwire.integrations.base import SyncAdapter
from syncwire.integrations.linear import LinearAdapter
from syncwire.integrations.notion import NotionAdapter

logger = logging.getLogger(__name__)

BUILTIN_ADAPTERS: Dict[str, Type[SyncAdapter]] = {
    LinearAdapter.provider: LinearAdapter,
    NotionAdapter.provider: NotionAdapter,
}


class AdapterRegistry:
    """Instantiated adapters for one application context."""

    def __init__(self, adapters: Optional[List[SyncAdapter]] = None):
        self._adapters: Dict[str, SyncAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: SyncAdapter) -> None:
        """Register an adapter instance."""
        self._adapters[adapter.provider.lower()] = adapter
        logger.debug(f"Registered sync adapter: {adapter.provider}")

    def get(self, name: str) -> Optional[SyncAdapter]:
        return self._adapters.get(name.lower())

    def available_providers(self) -> List[str]:
        """List registered providers."""
        return list(self._adapters.keys())

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._adapters

    def configured(self) -> List[SyncAdapter]:
        """Adapters with stored credentials."""
        return [a for a in self._adapters.values() if a.is_configured()]

    def __iter__(self):
        return iter(self._adapters.values())

    def __len__(self) -> int:
        return len(self._adapters)

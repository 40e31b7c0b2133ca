"""
Application context.

Builds and owns every long-lived collaborator: database, event bus,
repositories, credential store, webhook engine and sync adapters.
Nothing is held in module-level globals; callers create a context and
pass it where it is needed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import httpx

from syncwire.core.config import SyncwireConfig, load_config
from syncwire.events import EventBus
from syncwire.integrations import BUILTIN_ADAPTERS, AdapterRegistry
from syncwire.security import CredentialStore, EncryptedCredentialStore
from syncwire.storage import Database, ExternalLinkStore, ProjectRepository, SyncStateStore
from syncwire.storage.database import utc_now
from syncwire.webhooks import DeliveryStore, WebhookDeliveryEngine, WebhookSubscriptionRegistry

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Composition root for one running process."""

    config: SyncwireConfig
    db: Database
    bus: EventBus
    projects: ProjectRepository
    links: ExternalLinkStore
    state: SyncStateStore
    credentials: CredentialStore
    subscriptions: WebhookSubscriptionRegistry
    deliveries: DeliveryStore
    delivery_engine: WebhookDeliveryEngine
    adapters: AdapterRegistry

    @classmethod
    def create(
        cls,
        config: SyncwireConfig | None = None,
        *,
        credentials: CredentialStore | None = None,
        master_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AppContext":
        """
        Wire up a context from configuration.

        Args:
            config: Loaded configuration (``load_config()`` when omitted)
            credentials: Credential store override (tests use an in-memory one)
            master_key: Credential master key (read from the environment when omitted)
            http_client: Shared HTTP client for deliveries and provider APIs
            clock: Time source for scheduling and checkpoints

        Raises:
            ConfigError: if no master key is available.
            CredentialError: if the master key is too short.
        """
        config = config or load_config()
        db = Database(config.storage.path)
        bus = EventBus()

        if credentials is None:
            credentials = EncryptedCredentialStore(
                db,
                master_key or config.security.master_key(),
                iterations=config.security.kdf_iterations,
            )

        projects = ProjectRepository(db, bus)
        links = ExternalLinkStore(db)
        state = SyncStateStore(db)
        subscriptions = WebhookSubscriptionRegistry(db)
        deliveries = DeliveryStore(db)

        engine = WebhookDeliveryEngine(
            subscriptions,
            deliveries,
            bus,
            config.webhooks,
            client=http_client,
            clock=clock,
        )
        engine.attach()

        adapters = AdapterRegistry()
        for name, adapter_class in BUILTIN_ADAPTERS.items():
            adapter_config = getattr(config.integrations, name)
            if not adapter_config.enabled:
                logger.debug(f"Integration {name} disabled in config")
                continue
            adapter = adapter_class(
                projects,
                links,
                state,
                credentials,
                client=http_client,
                clock=clock,
                config=adapter_config,
            )
            adapter.attach(bus)
            adapters.register(adapter)

        logger.debug(
            f"Context ready: db={config.storage.path}, adapters={adapters.available_providers()}"
        )
        return cls(
            config=config,
            db=db,
            bus=bus,
            projects=projects,
            links=links,
            state=state,
            credentials=credentials,
            subscriptions=subscriptions,
            deliveries=deliveries,
            delivery_engine=engine,
            adapters=adapters,
        )

    async def aclose(self) -> None:
        """Release HTTP clients and the database connection."""
        await self.delivery_engine.aclose()
        for adapter in self.adapters:
            await adapter.aclose()
        self.db.close()

    async def __aenter__(self) -> "AppContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

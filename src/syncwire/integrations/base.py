"""
External sync adapter base.

Every adapter mirrors projects between this system and one provider.
Provider specifics (API calls, field mapping, signature headers) live
in subclasses; the shared pattern lives here:

- ``sync_now``: incremental pull since the stored checkpoint
- ``apply_remote_item``: link lookup, then update or create the project
- ``on_project_event``: push local changes outward
- ``handle_webhook``: verify, parse, targeted re-pull

Loop prevention relies only on the ``EventContext.source`` tag. Changes
applied from a provider are published with ``source=<provider>`` and
``on_project_event`` ignores anything that is not ``local``.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import httpx

from syncwire.events import DomainEvent, EventBus, EventContext, EventTypes
from syncwire.integrations.results import ErrorKind, Result
from syncwire.security.credentials import CredentialError, CredentialStore
from syncwire.security.signature import find_signature, verify
from syncwire.storage.database import from_db_time, to_db_time, utc_now
from syncwire.storage.links import ExternalLink, ExternalLinkStore
from syncwire.storage.projects import Project, ProjectRepository, ProjectValidationError
from syncwire.storage.state import SyncStateStore

logger = logging.getLogger(__name__)

API_KEY = "api_key"
WEBHOOK_SECRET = "webhook_secret"


@dataclass
class RemoteItem:
    """A provider record as returned by its API."""

    id: str
    data: dict[str, Any]
    url: str | None = None


@dataclass
class AppliedItem:
    project: Project
    link: ExternalLink
    created: bool


@dataclass
class SyncReport:
    """Summary of one ``sync_now`` pass."""

    provider: str
    started_at: datetime
    pulled: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    checkpoint: str | None = None

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "started_at": to_db_time(self.started_at),
            "pulled": self.pulled,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "checkpoint": self.checkpoint,
        }


@dataclass
class WebhookOutcome:
    """What an accepted inbound webhook did."""

    provider: str
    action: str  # "applied", "ignored" or "full_sync_requested"
    remote_id: str | None = None
    project_id: int | None = None

    @property
    def full_sync_requested(self) -> bool:
        return self.action == "full_sync_requested"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "action": self.action,
            "remote_id": self.remote_id,
            "project_id": self.project_id,
        }


class SyncAdapter(ABC):
    """Abstract base class for provider sync adapters."""

    provider: str
    display_name: str
    # Local project fields this provider accepts on push
    pushable_fields: tuple[str, ...] = ()
    # Header names that may carry the inbound webhook signature
    signature_headers: tuple[str, ...] = ()
    # EventContext attribute naming the remote id of an applied change
    context_attribute: str = "external_id"
    timeout_seconds: float = 20.0

    def __init__(
        self,
        projects: ProjectRepository,
        links: ExternalLinkStore,
        state: SyncStateStore,
        credentials: CredentialStore,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.projects = projects
        self.links = links
        self.state = state
        self.credentials = credentials
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._bus_subscription_ids: list[str] = []

    # =========================================================================
    # CREDENTIALS & HTTP
    # =========================================================================

    @property
    def namespace(self) -> str:
        return f"integrations_{self.provider}"

    @property
    def checkpoint_key(self) -> str:
        return f"{self.provider}_last_sync"

    @property
    def last_report_key(self) -> str:
        return f"{self.provider}_last_report"

    def _credential(self, key: str) -> Result[str | None]:
        """Stored credential, or NOT_CONFIGURED when it cannot be decrypted."""
        try:
            return Result.success(self.credentials.get(self.namespace, key))
        except CredentialError as e:
            logger.error(f"{self.display_name} {key} could not be read: {e}")
            return Result.failure(
                ErrorKind.NOT_CONFIGURED, f"{self.display_name} {key} could not be read: {e}"
            )

    def api_key(self) -> Result[str | None]:
        return self._credential(API_KEY)

    def webhook_secret(self) -> Result[str | None]:
        return self._credential(WEBHOOK_SECRET)

    def is_configured(self) -> bool:
        """True when an API key is stored."""
        return self.credentials.has(self.namespace, API_KEY)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def _headers(self, api_key: str) -> dict[str, str]:
        """Request headers carrying the provider credentials."""
        pass

    async def _request(self, method: str, url: str, **kwargs: Any) -> Result[Any]:
        """Authenticated JSON request. Transport and HTTP errors become results."""
        credential = self.api_key()
        if not credential.ok:
            return Result.from_error(credential.error)
        api_key = credential.value
        if not api_key:
            return Result.failure(
                ErrorKind.NOT_CONFIGURED, f"{self.display_name} API key is not set"
            )

        try:
            response = await self.client.request(
                method, url, headers=self._headers(api_key), **kwargs
            )
        except httpx.HTTPError as e:
            logger.warning(f"{self.display_name} request failed: {e}")
            return Result.failure(ErrorKind.REMOTE_ERROR, str(e) or type(e).__name__)

        if response.status_code == 404:
            return Result.failure(ErrorKind.NOT_FOUND, "Remote item not found", 404)
        if not 200 <= response.status_code < 300:
            return Result.failure(
                ErrorKind.REMOTE_ERROR,
                f"{self.display_name} API returned HTTP {response.status_code}",
                response.status_code,
            )

        try:
            return Result.success(response.json())
        except ValueError:
            return Result.failure(
                ErrorKind.INVALID_RESPONSE, f"{self.display_name} returned invalid JSON"
            )

    # =========================================================================
    # PROVIDER OPERATIONS
    # =========================================================================

    @abstractmethod
    async def pull(self, since: datetime | None) -> Result[list[RemoteItem]]:
        """Fetch every remote item changed after ``since`` (all when None)."""
        pass

    @abstractmethod
    async def pull_one(self, remote_id: str) -> Result[RemoteItem]:
        """Fetch a single remote item."""
        pass

    @abstractmethod
    async def push_create(self, project: Project) -> Result[RemoteItem]:
        """Create the remote counterpart of a local project."""
        pass

    @abstractmethod
    async def push_update(self, remote_id: str, changes: dict[str, Any]) -> Result[bool]:
        """Apply changed pushable fields to a remote item."""
        pass

    @abstractmethod
    def map_remote_to_local(self, item: RemoteItem) -> dict[str, Any]:
        """Project fields derived from a remote item."""
        pass

    @abstractmethod
    def extract_remote_id(self, payload: dict[str, Any]) -> str | None:
        """Remote item id referenced by an inbound webhook payload."""
        pass

    @abstractmethod
    def link_metadata(self, item: RemoteItem) -> dict[str, Any]:
        pass

    @abstractmethod
    async def test_connection(self) -> Result[dict[str, Any]]:
        """Cheap authenticated call proving the credentials work."""
        pass

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """
        Check the inbound signature.

        Verification is skipped when no webhook secret is stored, and
        fails when the stored secret cannot be decrypted.
        """
        stored = self.webhook_secret()
        if not stored.ok:
            return False
        secret = stored.value
        if not secret:
            return True
        provided = find_signature(headers, self.signature_headers)
        return verify(provided, body, secret)

    # =========================================================================
    # PULL
    # =========================================================================

    async def sync_now(self) -> Result[SyncReport]:
        """
        Pull every item changed since the last checkpoint and apply it.

        The checkpoint moves to the time this pass started, and only when
        the whole pass completed without item errors.
        """
        if not self.is_configured():
            return Result.failure(
                ErrorKind.NOT_CONFIGURED, f"{self.display_name} is not configured"
            )

        started = self._clock()
        since = from_db_time(self.state.get(self.checkpoint_key))
        pulled = await self.pull(since)
        if not pulled.ok:
            logger.warning(f"{self.display_name} sync failed: {pulled.error}")
            return Result.from_error(pulled.error)

        report = SyncReport(provider=self.provider, started_at=started, pulled=len(pulled.value))
        for item in pulled.value:
            applied = await self.apply_remote_item(item)
            if not applied.ok:
                report.errors.append(f"{item.id}: {applied.error.message}")
            elif applied.value.created:
                report.created += 1
            else:
                report.updated += 1

        if report.ok:
            report.checkpoint = to_db_time(started)
            self.state.set(self.checkpoint_key, report.checkpoint)
        self.state.set(self.last_report_key, report.to_dict())

        logger.info(
            f"{self.display_name} sync: {report.pulled} pulled, {report.created} created, "
            f"{report.updated} updated, {len(report.errors)} errors"
        )
        return Result.success(report)

    async def apply_remote_item(self, item: RemoteItem) -> Result[AppliedItem]:
        """
        Apply a remote item to its linked project, creating one if needed.

        A link whose project was soft-deleted is re-pointed at a new project.
        """
        mapped = self.map_remote_to_local(item)
        context = EventContext.remote(self.provider, **{self.context_attribute: item.id})

        link = self.links.find(self.provider, item.id)
        project = self.projects.get(link.project_id) if link else None

        try:
            if project is not None:
                if not mapped.get("title"):
                    mapped.pop("title", None)
                project = await self.projects.update(project.id, mapped, context)
                created = False
            else:
                project = await self.projects.create(mapped, context)
                created = True
        except ProjectValidationError as e:
            return Result.failure(ErrorKind.INVALID_RESPONSE, str(e))

        link = self.links.upsert(
            project.id,
            self.provider,
            item.id,
            url=item.url,
            metadata=self.link_metadata(item),
        )
        self.projects.log_activity(
            f"{self.provider}_sync",
            "project",
            project.id,
            f"{'Created' if created else 'Updated'} from {self.display_name}: {project.title}",
            {"external_id": item.id, "created": created},
        )
        return Result.success(AppliedItem(project=project, link=link, created=created))

    # =========================================================================
    # PUSH
    # =========================================================================

    def attach(self, bus: EventBus) -> None:
        """Subscribe to local project mutations."""
        if self._bus_subscription_ids:
            return
        for event_type in (EventTypes.PROJECT_CREATED, EventTypes.PROJECT_UPDATED):
            self._bus_subscription_ids.append(bus.subscribe(event_type, self.on_project_event))

    def detach(self, bus: EventBus) -> None:
        for sub_id in self._bus_subscription_ids:
            bus.unsubscribe(sub_id)
        self._bus_subscription_ids.clear()

    async def on_project_event(self, event: DomainEvent) -> None:
        """Push a local project change to the provider."""
        if not event.context.is_local:
            logger.debug(
                f"{self.display_name}: ignoring {event.type} from {event.context.source}"
            )
            return
        if event.entity_type != "project" or not self.is_configured():
            return

        project = self.projects.get(int(event.entity_id))
        if project is None:
            return

        link = self.links.find_by_entity(project.id, self.provider)
        if link is None:
            result = await self.push_create(project)
            if not result.ok:
                logger.warning(
                    f"{self.display_name}: could not create remote item for "
                    f"project {project.id}: {result.error}"
                )
                return
            item = result.value
            self.links.upsert(
                project.id,
                self.provider,
                item.id,
                url=item.url,
                metadata=self.link_metadata(item),
            )
            self.projects.log_activity(
                f"{self.provider}_push",
                "project",
                project.id,
                f"Created in {self.display_name}: {project.title}",
                {"external_id": item.id},
            )
            logger.info(f"{self.display_name}: created {item.id} for project {project.id}")
            return

        changes = {k: v for k, v in event.changes.items() if k in self.pushable_fields}
        if not changes:
            return

        result = await self.push_update(link.external_id, changes)
        if not result.ok:
            logger.warning(
                f"{self.display_name}: could not update {link.external_id}: {result.error}"
            )
            return
        logger.info(
            f"{self.display_name}: pushed {sorted(changes)} for project {project.id}"
        )

    # =========================================================================
    # INBOUND WEBHOOKS
    # =========================================================================

    async def handle_webhook(
        self,
        body: bytes,
        headers: Mapping[str, str],
    ) -> Result[WebhookOutcome]:
        """
        Process an inbound provider webhook.

        An invalid signature is rejected before anything else happens. A
        payload without a recognizable item id asks the caller to run a
        full sync.
        """
        secret = self.webhook_secret()
        if not secret.ok:
            return Result.from_error(secret.error)
        if not self.verify_webhook(body, headers):
            logger.warning(f"{self.display_name} webhook rejected: invalid signature")
            return Result.failure(ErrorKind.INVALID_SIGNATURE, "Invalid webhook signature")

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            return Result.failure(ErrorKind.INVALID_PAYLOAD, "Webhook body is not valid JSON")
        if not isinstance(payload, dict):
            return Result.failure(ErrorKind.INVALID_PAYLOAD, "Webhook body must be an object")

        if not self.is_configured():
            return Result.failure(
                ErrorKind.NOT_CONFIGURED, f"{self.display_name} is not configured"
            )

        remote_id = self.extract_remote_id(payload)
        self.projects.log_activity(
            f"{self.provider}_webhook_received",
            "integration",
            None,
            f"{self.display_name} webhook received",
            {"remote_id": remote_id, "type": payload.get("type"), "action": payload.get("action")},
        )
        if remote_id is None:
            return Result.success(
                WebhookOutcome(provider=self.provider, action="full_sync_requested")
            )

        pulled = await self.pull_one(remote_id)
        if not pulled.ok:
            if pulled.error.kind == ErrorKind.NOT_FOUND:
                return Result.success(
                    WebhookOutcome(provider=self.provider, action="ignored", remote_id=remote_id)
                )
            return Result.from_error(pulled.error)

        applied = await self.apply_remote_item(pulled.value)
        if not applied.ok:
            return Result.from_error(applied.error)

        await self.after_webhook_apply(pulled.value, applied.value.project, payload)
        return Result.success(
            WebhookOutcome(
                provider=self.provider,
                action="applied",
                remote_id=remote_id,
                project_id=applied.value.project.id,
            )
        )

    async def after_webhook_apply(
        self,
        item: RemoteItem,
        project: Project,
        payload: dict[str, Any],
    ) -> None:
        """Provider extras after a targeted re-pull. No-op by default."""
        return None

    def status(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "name": self.display_name,
            "configured": self.is_configured(),
            "webhook_secret": self.credentials.has(self.namespace, WEBHOOK_SECRET),
            "last_sync": self.state.get(self.checkpoint_key),
            "last_report": self.state.get(self.last_report_key),
            "links": self.links.count(self.provider),
        }

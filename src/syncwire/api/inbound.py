"""
Inbound provider webhook endpoint.

``POST /integrations/{provider}/webhook`` hands the raw body and headers
to the provider's adapter. The signature is checked against the exact
bytes received, so the body is never parsed before the adapter sees it.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from syncwire import __version__
from syncwire.core.context import AppContext
from syncwire.integrations import SyncAdapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


class WebhookAck(BaseModel):
    """Response for an accepted provider webhook."""

    ok: bool = True
    provider: str
    action: str
    remote_id: str | None = None
    project_id: int | None = None
    full_sync_requested: bool = False


# =============================================================================
# DEPENDENCIES
# =============================================================================


async def get_context(request: Request) -> AppContext:
    """Get the application context from app state."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return context


async def _run_full_sync(adapter: SyncAdapter) -> None:
    result = await adapter.sync_now()
    if not result.ok:
        logger.warning(f"Deferred {adapter.display_name} sync failed: {result.error}")


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.post("/integrations/{provider}/webhook", response_model=WebhookAck)
async def receive_provider_webhook(
    provider: str,
    request: Request,
    background_tasks: BackgroundTasks,
    context: AppContext = Depends(get_context),
):
    """Receive a change notification from an external provider.

    A notification naming a specific item triggers a targeted re-pull of
    that item. Anything else schedules a full incremental sync after the
    response is sent.
    """
    adapter = context.adapters.get(provider)
    if adapter is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    body = await request.body()
    result = await adapter.handle_webhook(body, request.headers)
    if not result.ok:
        raise HTTPException(status_code=result.error.kind.http_status, detail=result.error.message)

    outcome = result.value
    if outcome.full_sync_requested:
        background_tasks.add_task(_run_full_sync, adapter)

    return WebhookAck(
        provider=outcome.provider,
        action=outcome.action,
        remote_id=outcome.remote_id,
        project_id=outcome.project_id,
        full_sync_requested=outcome.full_sync_requested,
    )


@router.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


def create_app(context: AppContext) -> FastAPI:
    """Create the FastAPI application bound to ``context``."""
    app = FastAPI(
        title="Syncwire",
        description="Inbound provider webhooks",
        version=__version__,
    )
    app.state.context = context
    app.include_router(router)
    return app

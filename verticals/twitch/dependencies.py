"""Service wiring for the Twitch vertical.

Everything the routes need lives in one TwitchServices container, built
once per process. Tests replace it through ``app.dependency_overrides``
or by passing their own store, clock and HTTP transport to build_services().
"""

import logging
import os
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from fastapi import Depends, Header, HTTPException

from core.events.live_buffer import LiveEventBuffer
from core.integrations.credentials import (
    CredentialStore,
    InMemoryTenantStore,
    TenantCredentials,
    TenantRecordStore,
)
from core.integrations.eventsub import EventSubClient
from core.integrations.forwarder import SinkForwarder
from core.integrations.normalizer import EventNormalizer
from core.integrations.oauth_manager import OAuthConfig, TokenManager
from core.integrations.signature import SignatureVerifier
from core.integrations.webhooks import WebhookProcessor
from verticals.twitch.config import TwitchConfig

logger = logging.getLogger(__name__)


@dataclass
class TwitchServices:
    config: TwitchConfig
    credentials: CredentialStore
    tokens: TokenManager
    eventsub: EventSubClient
    buffer: LiveEventBuffer
    processor: WebhookProcessor


def default_record_store() -> TenantRecordStore:
    """Pick the tenant store from TENANT_STORE (``sql`` or ``memory``)."""
    kind = os.getenv("TENANT_STORE", "sql").lower()
    if kind == "memory":
        return InMemoryTenantStore()
    if kind != "sql":
        raise ValueError(f"Unknown TENANT_STORE: {kind}")

    from verticals.twitch.repository import SqlTenantStore
    return SqlTenantStore()


def build_services(
    config: Optional[TwitchConfig] = None,
    store: Optional[TenantRecordStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.time,
    tracer: Any = None,
) -> TwitchServices:
    config = config or TwitchConfig.from_env()
    credentials = CredentialStore(store if store is not None else default_record_store())

    tokens = TokenManager(
        credentials,
        OAuthConfig(
            token_url=config.token_url,
            authorize_url=config.authorize_url,
            scopes=list(config.oauth_scopes),
            timeout=config.token_timeout_seconds,
        ),
        clock=clock,
        transport=transport,
    )
    buffer = LiveEventBuffer(
        capacity=config.buffer_capacity,
        listener_queue_size=config.listener_queue_size,
        subscription_value=config.subscription_value,
        recent_count=config.stats_recent_count,
    )
    processor = WebhookProcessor(
        credentials=credentials,
        verifier=SignatureVerifier(replay_window_seconds=config.replay_window_seconds, clock=clock),
        normalizer=EventNormalizer(),
        forwarder=SinkForwarder(timeout=config.forward_timeout_seconds, transport=transport),
        buffer=buffer,
        tracer=tracer,
    )
    eventsub = EventSubClient(tokens, credentials, base_url=config.api_base_url, transport=transport)

    if not config.callback_base_url:
        logger.warning("CALLBACK_URL is not set; webhook and OAuth redirect URLs will be relative")

    return TwitchServices(
        config=config,
        credentials=credentials,
        tokens=tokens,
        eventsub=eventsub,
        buffer=buffer,
        processor=processor,
    )


# ---------------------------------------------------------------------------
# Process-wide container
# ---------------------------------------------------------------------------

_services: Optional[TwitchServices] = None


def init_services(tracer: Any = None) -> TwitchServices:
    """Build the container at startup. Called from the app lifespan."""
    global _services
    _services = build_services(tracer=tracer)
    return _services


def get_services() -> TwitchServices:
    """FastAPI dependency returning the process-wide services."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


# ---------------------------------------------------------------------------
# Management auth
# ---------------------------------------------------------------------------

async def require_tenant_api_key(
    tenant_id: str,
    x_api_key: Optional[str] = Header(None),
    services: TwitchServices = Depends(get_services),
) -> TenantCredentials:
    """Resolve the path tenant and check its X-API-Key. Unknown tenants raise 404."""
    tenant = await services.credentials.require(tenant_id)
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), tenant.api_key.encode()):
        logger.warning("Rejected management call for tenant %s: bad API key", tenant_id)
        raise HTTPException(status_code=401, detail="Invalid API key")
    return tenant

"""Twitch API routers.

- webhook_router: the EventSub callback, mounted at the service root
- api_router: tenant onboarding, interactive authorization, subscription
  management and the live feed, mounted under /api

Management routes authenticate with the tenant's X-API-Key. The live feed
and the OAuth callback are open. Errors raised here are translated to
``{"error": message}`` bodies by the app's exception handlers.
"""

import html
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response, StreamingResponse

from core.integrations.credentials import SettingsUpdate, TenantCredentials
from core.integrations.errors import CredentialError
from verticals.twitch.dependencies import TwitchServices, get_services, require_tenant_api_key
from verticals.twitch.models.schemas import (
    AuthorizationStatus,
    SetupRequest,
    SubscriptionCreate,
    TenantCreate,
    TenantProfile,
    TenantRegistered,
    TenantUpdate,
    ValidateCredentialsRequest,
)
from verticals.twitch.streaming import SSE_HEADERS, sse_event_stream

webhook_router = APIRouter()
api_router = APIRouter()


# ============================================================================
# Webhook
# ============================================================================

@webhook_router.post("/webhook/{tenant_id}")
async def eventsub_webhook(
    tenant_id: str,
    request: Request,
    services: TwitchServices = Depends(get_services),
):
    """EventSub callback. Signature is checked against the exact raw bytes."""
    raw_body = await request.body()
    result = await services.processor.handle(tenant_id, request.headers, raw_body)

    if result.status_code == 204:
        return Response(status_code=204)
    if isinstance(result.body, str):
        return PlainTextResponse(result.body, status_code=result.status_code)
    return JSONResponse(result.body or {}, status_code=result.status_code)


# ============================================================================
# Tenants
# ============================================================================

@api_router.post("/tenants", status_code=201, response_model=TenantRegistered)
async def register_tenant(
    request: TenantCreate,
    services: TwitchServices = Depends(get_services),
):
    """Register a streamer; returns the API key and webhook signing secret once."""
    tenant = await services.credentials.register(
        username=request.username,
        client_id=request.client_id,
        client_secret=request.client_secret,
        sink_url=request.sink_url,
    )
    return TenantRegistered(
        tenant_id=tenant.id,
        api_key=tenant.api_key,
        eventsub_secret=tenant.eventsub_secret,
        webhook_url=services.config.webhook_url(tenant.id),
    )


@api_router.get("/tenants/{tenant_id}", response_model=TenantProfile)
async def get_tenant(
    tenant: TenantCredentials = Depends(require_tenant_api_key),
):
    return TenantProfile(**tenant.to_public_dict())


@api_router.patch("/tenants/{tenant_id}", response_model=TenantProfile)
async def update_tenant(
    request: TenantUpdate,
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    """Change the sink address or platform client credentials."""
    update = SettingsUpdate(**request.model_dump(exclude_unset=True))
    if not update.changes():
        raise HTTPException(status_code=400, detail="No valid fields to update")

    updated = await services.credentials.update_settings(tenant.id, update)
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return TenantProfile(**updated.to_public_dict())


@api_router.post("/twitch/validate-credentials")
async def validate_credentials(
    request: ValidateCredentialsRequest,
    services: TwitchServices = Depends(get_services),
):
    """Try a client-credentials exchange for a candidate pair. Nothing is stored."""
    try:
        grant = await services.tokens.validate_client_credentials(request.client_id, request.client_secret)
    except CredentialError as exc:
        if exc.status_code is None:
            raise
        return JSONResponse(
            {"valid": False, "message": "Invalid credentials", "error": str(exc)},
            status_code=401,
        )
    return {"valid": True, "message": "Credentials are valid", **grant}


# ============================================================================
# Interactive authorization
# ============================================================================

def _html_page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    body = (
        "<html><body>"
        f"<h1>{html.escape(title)}</h1>"
        f"<p>{html.escape(message)}</p>"
        "</body></html>"
    )
    return HTMLResponse(body, status_code=status_code)


@api_router.get("/oauth/callback")
async def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    services: TwitchServices = Depends(get_services),
):
    """Redirect target of the platform authorize page."""
    if error:
        return _html_page(
            "Authorization Failed",
            f"Error: {error}. {error_description or 'No description'}",
            status_code=400,
        )
    if not code or not state:
        return _html_page("Authorization Failed", "Missing code or state parameter", status_code=400)

    tenant_id = services.tokens.consume_state(state)
    if tenant_id is None:
        return _html_page("Authorization Failed", "Unknown or expired authorization state", status_code=400)

    try:
        await services.tokens.exchange_authorization_code(tenant_id, code, services.config.redirect_uri)
    except CredentialError as exc:
        return _html_page("Authorization Failed", str(exc), status_code=502)

    return _html_page(
        "Authorization Successful!",
        "You can now close this window and use the setup endpoint.",
    )


@api_router.get("/oauth/{tenant_id}/authorize-url")
async def authorize_url(
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    url = await services.tokens.get_authorize_url(tenant.id, services.config.redirect_uri)
    return {
        "authUrl": url,
        "message": "Visit this URL to authorize the application with your Twitch account",
    }


@api_router.get("/oauth/{tenant_id}/status", response_model=AuthorizationStatus)
async def authorization_status(
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    authorized = services.tokens.is_user_authorized(tenant)
    return AuthorizationStatus(
        authorized=authorized,
        token_expiry=tenant.user_token.expires_at if authorized else None,
    )


@api_router.get("/oauth/{tenant_id}/broadcaster")
async def authorized_broadcaster(
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    """The channel that completed the interactive flow, for use in setup."""
    user = await services.eventsub.get_authorized_broadcaster(tenant.id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "broadcasterId": user.get("id"),
        "username": user.get("login"),
        "displayName": user.get("display_name"),
        "broadcasterType": user.get("broadcaster_type"),
        "profileImageUrl": user.get("profile_image_url"),
    }


# ============================================================================
# Subscriptions
# ============================================================================

@api_router.post("/twitch/{tenant_id}/subscriptions")
async def create_subscription(
    request: SubscriptionCreate,
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    result = await services.eventsub.create_subscription(
        tenant.id,
        request.type,
        request.version,
        request.condition,
        services.config.webhook_url(tenant.id),
    )
    return {"message": "Subscription created successfully", "subscription": result}


@api_router.get("/twitch/{tenant_id}/subscriptions")
async def list_subscriptions(
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    return await services.eventsub.list_subscriptions(tenant.id)


@api_router.delete("/twitch/{tenant_id}/subscriptions/{subscription_id}")
async def delete_subscription(
    subscription_id: str,
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    await services.eventsub.delete_subscription(tenant.id, subscription_id)
    return {"message": "Subscription deleted successfully"}


@api_router.post("/twitch/{tenant_id}/setup")
async def setup_subscriptions(
    request: SetupRequest,
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    """Subscribe all supported event types; each type reports its own outcome."""
    results = await services.eventsub.setup(
        tenant.id,
        request.broadcaster_user_id,
        services.config.webhook_url(tenant.id),
    )
    return {"message": "Setup completed", "results": [r.to_dict() for r in results]}


@api_router.get("/twitch/{tenant_id}/lookup-user")
async def lookup_user(
    login: str = Query(..., min_length=1),
    tenant: TenantCredentials = Depends(require_tenant_api_key),
    services: TwitchServices = Depends(get_services),
):
    user = await services.eventsub.lookup_user(tenant.id, login)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "id": user.get("id"),
        "login": user.get("login"),
        "display_name": user.get("display_name"),
        "broadcaster_type": user.get("broadcaster_type"),
        "profile_image_url": user.get("profile_image_url"),
    }


# ============================================================================
# Live feed
# ============================================================================

@api_router.get("/events/{tenant_id}")
async def recent_events(
    tenant_id: str,
    services: TwitchServices = Depends(get_services),
):
    tenant = await services.credentials.require(tenant_id)
    return {"events": [e.to_dict() for e in services.buffer.snapshot(tenant.id)]}


@api_router.get("/events/{tenant_id}/stats")
async def event_stats(
    tenant_id: str,
    services: TwitchServices = Depends(get_services),
):
    tenant = await services.credentials.require(tenant_id)
    return services.buffer.stats(tenant.id).to_dict()


@api_router.get("/events/{tenant_id}/stream")
async def event_stream(
    tenant_id: str,
    request: Request,
    services: TwitchServices = Depends(get_services),
):
    """Server-Sent Events push of newly buffered events."""
    tenant = await services.credentials.require(tenant_id)
    return StreamingResponse(
        sse_event_stream(
            services.buffer,
            tenant.id,
            is_disconnected=request.is_disconnected,
            keepalive_seconds=services.config.stream_keepalive_seconds,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )

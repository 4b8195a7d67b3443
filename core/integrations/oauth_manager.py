"""
Twitch OAuth2 Token Manager.

Two independent token classes per tenant:
- App-level token (client credentials grant): authorizes management API
  calls such as EventSub subscription create/list/delete.
- User-level token (authorization code grant, then refresh token grant):
  proves the broadcaster authorized the tenant's client id, which some
  event categories require before a subscription can be created.

Expiry is stored as an absolute epoch timestamp computed at acquisition
time (now + expires_in). Concurrent refreshes for one tenant are not
deduplicated; each persists a complete token triple, last writer wins.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
import logging
import secrets
import time

import httpx

from core.integrations.credentials import CredentialStore, TenantCredentials, TokenSet
from core.integrations.errors import AuthorizationRequiredError, CredentialError

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600.0


@dataclass
class OAuthConfig:
    """Platform OAuth2 endpoints and requested scopes."""
    token_url: str = "https://id.twitch.tv/oauth2/token"
    authorize_url: str = "https://id.twitch.tv/oauth2/authorize"
    scopes: list[str] = field(default_factory=lambda: [
        "channel:read:subscriptions",
        "bits:read",
        "moderator:read:followers",
    ])
    timeout: float = 15.0


class TokenManager:
    """Obtains, caches and refreshes app-level and user-level tokens per tenant."""

    def __init__(
        self,
        credentials: CredentialStore,
        config: OAuthConfig | None = None,
        clock: Callable[[], float] = time.time,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = credentials
        self.config = config or OAuthConfig()
        self._clock = clock
        self._transport = transport
        self._states: dict[str, tuple[str, float]] = {}  # CSRF state -> (tenant id, issued at)

    # --- Interactive authorization ---

    async def get_authorize_url(self, tenant_id: str, redirect_uri: str) -> str:
        """Build the authorize URL with a server-side CSRF state."""
        tenant = await self._require_tenant(tenant_id)

        now = self._clock()
        self._purge_states(now)
        state = secrets.token_urlsafe(32)
        self._states[state] = (tenant_id, now)

        params = {
            "client_id": tenant.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "state": state,
        }
        return str(httpx.URL(self.config.authorize_url, params=params))

    def consume_state(self, state: str) -> str | None:
        """Resolve (and forget) an authorization state. None if unknown or expired."""
        now = self._clock()
        entry = self._states.pop(state, None)
        self._purge_states(now)
        if entry is None:
            return None

        tenant_id, issued_at = entry
        if now - issued_at > STATE_TTL_SECONDS:
            logger.warning("Authorization state for tenant %s expired", tenant_id)
            return None
        return tenant_id

    def _purge_states(self, now: float) -> None:
        expired = [s for s, (_, issued_at) in self._states.items() if now - issued_at > STATE_TTL_SECONDS]
        for state in expired:
            del self._states[state]

    async def exchange_authorization_code(
        self, tenant_id: str, code: str, redirect_uri: str
    ) -> TokenSet:
        """One-time code exchange; persists the user-level token triple."""
        tenant = await self._require_tenant(tenant_id)
        data = await self._request_token(tenant_id, {
            "client_id": tenant.client_id,
            "client_secret": tenant.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        })

        tokens = TokenSet.from_grant(data, self._clock())
        await self.credentials.save_user_token(tenant_id, tokens)
        logger.info("Tenant %s authorized (user token obtained)", tenant.username or tenant_id)
        return tokens

    # --- App-level token ---

    async def get_app_token(self, tenant_id: str) -> str:
        """Cached app token if unexpired, otherwise a fresh client-credentials grant."""
        tenant = await self._require_tenant(tenant_id)
        now = self._clock()
        if tenant.app_token.is_valid(now):
            return tenant.app_token.access_token

        data = await self._request_token(tenant_id, {
            "client_id": tenant.client_id,
            "client_secret": tenant.client_secret,
            "grant_type": "client_credentials",
        })
        tokens = TokenSet.from_grant(data, now)
        await self.credentials.save_app_token(tenant_id, tokens)
        logger.info("Obtained app access token for tenant %s", tenant.username or tenant_id)
        return tokens.access_token

    # --- User-level token ---

    async def get_user_token(self, tenant_id: str) -> str:
        """Cached user token, else a refresh-token grant, else AuthorizationRequiredError."""
        tenant = await self._require_tenant(tenant_id)
        now = self._clock()
        if tenant.user_token.is_valid(now):
            return tenant.user_token.access_token

        if tenant.user_token.refresh_token:
            refreshed = await self._refresh_user_token(tenant, now)
            if refreshed is not None:
                return refreshed.access_token

        raise AuthorizationRequiredError(tenant_id)

    def is_user_authorized(self, tenant: TenantCredentials) -> bool:
        """True if a cached user token is present and unexpired."""
        return tenant.user_token.is_valid(self._clock())

    async def _refresh_user_token(self, tenant: TenantCredentials, now: float) -> TokenSet | None:
        try:
            data = await self._request_token(tenant.id, {
                "client_id": tenant.client_id,
                "client_secret": tenant.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": tenant.user_token.refresh_token,
            })
        except CredentialError as exc:
            logger.warning("User token refresh failed for tenant %s: %s", tenant.id, exc)
            return None

        tokens = TokenSet.from_grant(data, now)
        if tokens.refresh_token is None:
            tokens.refresh_token = tenant.user_token.refresh_token
        await self.credentials.save_user_token(tenant.id, tokens)
        logger.info("Refreshed user access token for tenant %s", tenant.username or tenant.id)
        return tokens

    # --- Credential validation ---

    async def validate_client_credentials(self, client_id: str, client_secret: str) -> dict[str, Any]:
        """Try a client-credentials grant for a candidate pair without persisting it."""
        data = await self._request_token("", {
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "client_credentials",
        })
        return {"token_type": data.get("token_type"), "expires_in": data.get("expires_in")}

    # --- Internals ---

    async def _require_tenant(self, tenant_id: str) -> TenantCredentials:
        tenant = await self.credentials.get(tenant_id)
        if tenant is None:
            raise CredentialError(f"Tenant not found: {tenant_id}", tenant_id=tenant_id)
        return tenant

    async def _request_token(self, tenant_id: str, form: dict[str, Any]) -> dict[str, Any]:
        """POST to the token endpoint; any failure becomes CredentialError."""
        grant = form.get("grant_type", "")
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    self.config.token_url,
                    data=form,
                    timeout=self.config.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            message = _platform_message(exc.response)
            logger.error(
                "Token exchange (%s) rejected for tenant %s: HTTP %s %s",
                grant, tenant_id or "-", exc.response.status_code, message,
            )
            raise CredentialError(
                f"Token exchange ({grant}) rejected: {message}",
                tenant_id=tenant_id,
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Token exchange (%s) failed for tenant %s: %s", grant, tenant_id or "-", exc)
            raise CredentialError(f"Token exchange ({grant}) failed: {exc}", tenant_id=tenant_id) from exc

        if "access_token" not in data:
            raise CredentialError(f"Token exchange ({grant}) returned no access_token", tenant_id=tenant_id)
        return data


def _platform_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)

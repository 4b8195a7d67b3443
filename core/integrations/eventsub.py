"""
EventSub Subscription Client.

Pass-through management of platform EventSub subscriptions for a tenant.
Subscription state is owned by the platform; nothing is persisted locally.

Webhook subscriptions are always created with the app-level token. Some
event types additionally require that the broadcaster has authorized the
tenant's client id through the interactive flow, which is checked by
obtaining (or refreshing) a user-level token first.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any
import logging

from core.integrations.adapter_base import AdapterBase, AdapterRequest, AdapterResponse
from core.integrations.credentials import CredentialStore, TokenSet
from core.integrations.errors import BridgeError, PlatformAPIError
from core.integrations.oauth_manager import TokenManager

logger = logging.getLogger(__name__)

# Event types that need prior broadcaster authorization
REQUIRES_PRIOR_AUTH: frozenset[str] = frozenset({
    "channel.subscribe",
    "channel.subscription.gift",
    "channel.subscription.message",
    "channel.cheer",
    "channel.follow",
})


def default_subscriptions(broadcaster_user_id: str) -> list[dict[str, Any]]:
    """The subscriptions created by a one-shot setup for a broadcaster."""
    return [
        {"type": "channel.subscribe", "version": "1",
         "condition": {"broadcaster_user_id": broadcaster_user_id}},
        {"type": "channel.subscription.gift", "version": "1",
         "condition": {"broadcaster_user_id": broadcaster_user_id}},
        {"type": "channel.cheer", "version": "1",
         "condition": {"broadcaster_user_id": broadcaster_user_id}},
        {"type": "channel.raid", "version": "1",
         "condition": {"to_broadcaster_user_id": broadcaster_user_id}},
        {"type": "channel.follow", "version": "2",
         "condition": {"broadcaster_user_id": broadcaster_user_id,
                       "moderator_user_id": broadcaster_user_id}},
    ]


@dataclass
class SetupResult:
    """Per-type outcome of a setup run."""
    event: str
    status: str  # success | failed
    data: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"event": self.event, "status": self.status}
        if self.status == "success":
            result["data"] = self.data
        else:
            result["error"] = self.error
        return result


class EventSubClient(AdapterBase):
    """Twitch Helix adapter for EventSub subscriptions and user lookups."""

    name = "twitch_helix"
    base_url = "https://api.twitch.tv/helix"

    def __init__(
        self,
        tokens: TokenManager,
        credentials: CredentialStore,
        base_url: str | None = None,
        transport=None,
    ):
        super().__init__(transport=transport)
        self.tokens = tokens
        self.credentials = credentials
        if base_url:
            self.base_url = base_url

    # --- Auth ---

    async def get_auth_headers(self, tenant_id: str, auth: str) -> dict[str, str]:
        tenant = await self.credentials.require(tenant_id)
        if auth == "user":
            token = await self.tokens.get_user_token(tenant_id)
        else:
            token = await self.tokens.get_app_token(tenant_id)
        return {"Client-Id": tenant.client_id, "Authorization": f"Bearer {token}"}

    async def on_unauthorized(self, tenant_id: str, auth: str) -> bool:
        # A rejected app token is discarded so the next header build re-acquires it
        if auth != "app":
            return False
        logger.warning("App token rejected for tenant %s; re-acquiring", tenant_id)
        await self.credentials.save_app_token(tenant_id, TokenSet())
        return True

    # --- Subscriptions ---

    async def create_subscription(
        self,
        tenant_id: str,
        subscription_type: str,
        version: str,
        condition: dict[str, Any],
        callback_url: str,
    ) -> Any:
        tenant = await self.credentials.require(tenant_id)

        if subscription_type in REQUIRES_PRIOR_AUTH:
            # Raises AuthorizationRequiredError when no valid or refreshable user token
            await self.tokens.get_user_token(tenant_id)

        resp = await self.request(AdapterRequest(
            method="POST",
            path="/eventsub/subscriptions",
            body={
                "type": subscription_type,
                "version": version,
                "condition": condition,
                "transport": {
                    "method": "webhook",
                    "callback": callback_url,
                    "secret": tenant.eventsub_secret,
                },
            },
        ), tenant_id)
        self._raise_for_status(resp, f"subscribe to {subscription_type}")
        logger.info("Subscribed to %s for tenant %s", subscription_type, tenant.username or tenant_id)
        return resp.data

    async def list_subscriptions(self, tenant_id: str) -> Any:
        resp = await self.request(AdapterRequest(method="GET", path="/eventsub/subscriptions"), tenant_id)
        self._raise_for_status(resp, "list subscriptions")
        return resp.data

    async def delete_subscription(self, tenant_id: str, subscription_id: str) -> None:
        resp = await self.request(AdapterRequest(
            method="DELETE",
            path="/eventsub/subscriptions",
            params={"id": subscription_id},
        ), tenant_id)
        self._raise_for_status(resp, f"delete subscription {subscription_id}")
        logger.info("Deleted subscription %s for tenant %s", subscription_id, tenant_id)

    async def setup(self, tenant_id: str, broadcaster_user_id: str, callback_url: str) -> list[SetupResult]:
        """Subscribe every supported type, collecting per-type results."""
        results: list[SetupResult] = []
        for wanted in default_subscriptions(broadcaster_user_id):
            try:
                data = await self.create_subscription(
                    tenant_id, wanted["type"], wanted["version"], wanted["condition"], callback_url,
                )
                results.append(SetupResult(event=wanted["type"], status="success", data=data))
            except BridgeError as exc:
                logger.warning("Setup of %s failed for tenant %s: %s", wanted["type"], tenant_id, exc)
                results.append(SetupResult(event=wanted["type"], status="failed", error=str(exc)))
        return results

    # --- Users ---

    async def lookup_user(self, tenant_id: str, login: str) -> dict[str, Any] | None:
        """Resolve a login name to a platform user, using the app token."""
        resp = await self.request(AdapterRequest(method="GET", path="/users", params={"login": login}), tenant_id)
        self._raise_for_status(resp, f"look up user {login}")
        return _first_user(resp.data)

    async def get_authorized_broadcaster(self, tenant_id: str) -> dict[str, Any] | None:
        """The broadcaster who authorized the tenant, via the user token."""
        resp = await self.request(AdapterRequest(method="GET", path="/users", auth="user"), tenant_id)
        self._raise_for_status(resp, "get authorized broadcaster")
        return _first_user(resp.data)

    @staticmethod
    def _raise_for_status(resp: AdapterResponse, action: str) -> None:
        if resp.ok:
            return
        message = resp.error
        if isinstance(resp.data, dict):
            message = resp.data.get("message") or message
        logger.error("Failed to %s: HTTP %s %s", action, resp.status_code, message)
        raise PlatformAPIError(
            f"Failed to {action}: {message or 'HTTP ' + str(resp.status_code)}",
            status_code=resp.status_code,
            details=resp.data,
        )


def _first_user(data: Any) -> dict[str, Any] | None:
    if isinstance(data, dict) and data.get("data"):
        return data["data"][0]
    return None

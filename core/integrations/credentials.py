"""
Tenant Credential Store.

Typed accessors over a tenant's persistent record: platform client
credentials, webhook signing secret, downstream sink address and the two
cached token triples (app-level and user-level).

The backing store is any TenantRecordStore exposing get/put/update/delete
by tenant id over flat dict records. Token triples are always written in a
single update() call so concurrent refreshes never leave a torn triple.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
import copy
import logging
import secrets
import threading
import time
import uuid

from core.integrations.errors import UnknownTenant

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Record store interface
# ---------------------------------------------------------------------------

class TenantRecordStore(ABC):
    """Key-value record store for tenant rows, keyed by tenant id."""

    @abstractmethod
    async def get(self, tenant_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def put(self, tenant_id: str, record: dict[str, Any]) -> None:
        """Insert or fully replace a record."""

    @abstractmethod
    async def update(self, tenant_id: str, fields: dict[str, Any]) -> bool:
        """Atomically apply a partial update. Returns False if missing."""

    @abstractmethod
    async def delete(self, tenant_id: str) -> bool:
        ...


class InMemoryTenantStore(TenantRecordStore):
    """Process-local store for tests and local runs."""

    def __init__(self):
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    async def get(self, tenant_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(tenant_id)
            return copy.deepcopy(record) if record is not None else None

    async def put(self, tenant_id: str, record: dict[str, Any]) -> None:
        with self._lock:
            self._records[tenant_id] = {**copy.deepcopy(record), "id": tenant_id}

    async def update(self, tenant_id: str, fields: dict[str, Any]) -> bool:
        with self._lock:
            record = self._records.get(tenant_id)
            if record is None:
                return False
            record.update(fields)
            return True

    async def delete(self, tenant_id: str) -> bool:
        with self._lock:
            return self._records.pop(tenant_id, None) is not None


# ---------------------------------------------------------------------------
# Typed views
# ---------------------------------------------------------------------------

@dataclass
class TokenSet:
    """An access token with its absolute expiry (epoch seconds)."""
    access_token: str | None = None
    expires_at: float | None = None
    refresh_token: str | None = None

    def is_valid(self, now: float) -> bool:
        return bool(self.access_token) and self.expires_at is not None and now < self.expires_at

    @classmethod
    def from_grant(cls, data: dict[str, Any], now: float) -> "TokenSet":
        """Build from a token endpoint response, computing the absolute expiry."""
        return cls(
            access_token=data["access_token"],
            expires_at=now + float(data.get("expires_in", 3600)),
            refresh_token=data.get("refresh_token"),
        )


@dataclass
class TenantCredentials:
    """A tenant's credentials and cached tokens."""
    id: str
    username: str = ""
    api_key: str = ""
    eventsub_secret: str = ""
    client_id: str = ""
    client_secret: str = ""
    sink_url: str = ""
    is_active: bool = True
    created_at: float | None = None
    app_token: TokenSet = field(default_factory=TokenSet)
    user_token: TokenSet = field(default_factory=TokenSet)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "TenantCredentials":
        return cls(
            id=str(record["id"]),
            username=record.get("username") or "",
            api_key=record.get("api_key") or "",
            eventsub_secret=record.get("eventsub_secret") or "",
            client_id=record.get("client_id") or "",
            client_secret=record.get("client_secret") or "",
            sink_url=record.get("sink_url") or "",
            is_active=bool(record.get("is_active", True)),
            created_at=record.get("created_at"),
            app_token=TokenSet(
                access_token=record.get("app_access_token"),
                expires_at=record.get("app_token_expires_at"),
                refresh_token=record.get("app_refresh_token"),
            ),
            user_token=TokenSet(
                access_token=record.get("user_access_token"),
                expires_at=record.get("user_token_expires_at"),
                refresh_token=record.get("user_refresh_token"),
            ),
        )

    def to_public_dict(self, now: float | None = None) -> dict[str, Any]:
        """Profile without secrets or token values."""
        now = time.time() if now is None else now
        return {
            "tenantId": self.id,
            "username": self.username,
            "clientId": self.client_id,
            "sinkUrl": self.sink_url,
            "isActive": self.is_active,
            "appTokenValid": self.app_token.is_valid(now),
            "userAuthorized": self.user_token.is_valid(now),
            "userTokenExpiry": self.user_token.expires_at,
        }


# Settings a tenant may change after registration
UPDATABLE_FIELDS: frozenset[str] = frozenset({"sink_url", "client_id", "client_secret"})


@dataclass
class SettingsUpdate:
    """Typed partial update; None means "leave unchanged"."""
    sink_url: str | None = None
    client_id: str | None = None
    client_secret: str | None = None

    def changes(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in (
                ("sink_url", self.sink_url),
                ("client_id", self.client_id),
                ("client_secret", self.client_secret),
            )
            if value is not None and name in UPDATABLE_FIELDS
        }


# ---------------------------------------------------------------------------
# CredentialStore
# ---------------------------------------------------------------------------

class CredentialStore:
    """Typed access to tenant credentials over a TenantRecordStore."""

    def __init__(self, store: TenantRecordStore):
        self.store = store

    async def get(self, tenant_id: str) -> TenantCredentials | None:
        record = await self.store.get(tenant_id)
        return TenantCredentials.from_record(record) if record else None

    async def require(self, tenant_id: str) -> TenantCredentials:
        """Return an active tenant or raise UnknownTenant."""
        tenant = await self.get(tenant_id)
        if tenant is None or not tenant.is_active:
            raise UnknownTenant(tenant_id)
        return tenant

    async def register(
        self,
        username: str,
        client_id: str,
        client_secret: str,
        sink_url: str,
    ) -> TenantCredentials:
        """Create a tenant with a fresh signing secret and API key."""
        tenant_id = str(uuid.uuid4())
        record = {
            "id": tenant_id,
            "username": username,
            "api_key": secrets.token_hex(32),
            "eventsub_secret": secrets.token_hex(32),
            "client_id": client_id,
            "client_secret": client_secret,
            "sink_url": sink_url,
            "is_active": True,
            "created_at": time.time(),
        }
        await self.store.put(tenant_id, record)
        logger.info("Registered tenant %s (%s)", tenant_id, username)
        return TenantCredentials.from_record(record)

    async def update_settings(
        self, tenant_id: str, update: SettingsUpdate
    ) -> TenantCredentials | None:
        changes = update.changes()
        if changes and not await self.store.update(tenant_id, changes):
            return None
        return await self.get(tenant_id)

    async def save_app_token(self, tenant_id: str, tokens: TokenSet) -> None:
        await self.store.update(tenant_id, {
            "app_access_token": tokens.access_token,
            "app_token_expires_at": tokens.expires_at,
            "app_refresh_token": tokens.refresh_token,
        })

    async def save_user_token(self, tenant_id: str, tokens: TokenSet) -> None:
        await self.store.update(tenant_id, {
            "user_access_token": tokens.access_token,
            "user_token_expires_at": tokens.expires_at,
            "user_refresh_token": tokens.refresh_token,
        })

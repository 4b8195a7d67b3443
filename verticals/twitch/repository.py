"""Tenant repository — async database access for tenant records.

TenantRepository is the session-scoped CRUD layer; SqlTenantStore adapts it
to the TenantRecordStore interface consumed by CredentialStore, opening one
short transaction per call.
"""

import uuid

from core.database import get_session_context
from core.integrations.credentials import TenantRecordStore
from patterns.repository import BaseRepository
from verticals.twitch.models.db_models import Tenant


def _parse_id(tenant_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(tenant_id))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Tenant repository
# ---------------------------------------------------------------------------

class TenantRepository(BaseRepository[Tenant]):
    """Repository for tenant rows."""

    model = Tenant


# ---------------------------------------------------------------------------
# Record store backed by the database
# ---------------------------------------------------------------------------

class SqlTenantStore(TenantRecordStore):
    """TenantRecordStore over PostgreSQL. Ids that are not UUIDs are unknown."""

    async def get(self, tenant_id: str) -> dict | None:
        item_id = _parse_id(tenant_id)
        if item_id is None:
            return None
        async with get_session_context() as session:
            return await TenantRepository(session).get(item_id)

    async def put(self, tenant_id: str, record: dict) -> None:
        item_id = _parse_id(tenant_id)
        if item_id is None:
            raise ValueError(f"Tenant id must be a UUID: {tenant_id}")
        async with get_session_context() as session:
            await TenantRepository(session).put(item_id, record)

    async def update(self, tenant_id: str, fields: dict) -> bool:
        item_id = _parse_id(tenant_id)
        if item_id is None:
            return False
        async with get_session_context() as session:
            return await TenantRepository(session).update(item_id, fields) is not None

    async def delete(self, tenant_id: str) -> bool:
        item_id = _parse_id(tenant_id)
        if item_id is None:
            return False
        async with get_session_context() as session:
            return await TenantRepository(session).delete(item_id)


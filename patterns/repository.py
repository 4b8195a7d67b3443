"""Async repository pattern for database access.

Provides a generic base repository keyed by primary id with get, upsert,
partial update and delete. Rows are exchanged as flat dicts (``to_dict()``)
so callers never hold ORM objects outside the session.

Example: TenantRepository extending BaseRepository.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.base import Base

# ---------------------------------------------------------------------------
# Type variable for model classes
# ---------------------------------------------------------------------------

ModelT = TypeVar("ModelT", bound=Base)

# Columns never written from caller-supplied data
PROTECTED_COLUMNS = ("id", "created_at", "updated_at")


# ---------------------------------------------------------------------------
# Base repository
# ---------------------------------------------------------------------------

class BaseRepository(Generic[ModelT]):
    """Generic async repository over a single-table model.

    Subclass and set `model` to your SQLAlchemy model::

        class TenantRepository(BaseRepository[Tenant]):
            model = Tenant

            async def get_by_api_key(self, api_key: str):
                stmt = select(self.model).where(self.model.api_key == api_key)
                result = await self.session.execute(stmt)
                row = result.scalar_one_or_none()
                return row.to_dict() if row else None
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, item_id: UUID) -> ModelT | None:
        stmt = select(self.model).where(self.model.id == item_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _writable(self, data: dict[str, Any]) -> dict[str, Any]:
        return {
            key: value
            for key, value in data.items()
            if hasattr(self.model, key) and key not in PROTECTED_COLUMNS
        }

    # -- Get by ID --

    async def get(self, item_id: UUID) -> dict | None:
        """Get a single item by ID."""
        row = await self._load(item_id)
        return row.to_dict() if row else None

    # -- Upsert --

    async def put(self, item_id: UUID, data: dict[str, Any]) -> dict:
        """Insert the item, or overwrite every writable column if it exists."""
        item = await self._load(item_id)
        values = self._writable(data)
        if item is None:
            item = self.model(id=item_id, **values)
            self.session.add(item)
        else:
            for key, value in values.items():
                setattr(item, key, value)
        await self.session.flush()
        return item.to_dict()

    # -- Update --

    async def update(self, item_id: UUID, data: dict[str, Any]) -> dict | None:
        """Update an existing item. Returns None if not found."""
        item = await self._load(item_id)
        if not item:
            return None

        for key, value in self._writable(data).items():
            setattr(item, key, value)

        await self.session.flush()
        return item.to_dict()

    # -- Delete --

    async def delete(self, item_id: UUID) -> bool:
        """Delete an item. Returns True if deleted, False if not found."""
        item = await self._load(item_id)
        if not item:
            return False

        await self.session.delete(item)
        await self.session.flush()
        return True

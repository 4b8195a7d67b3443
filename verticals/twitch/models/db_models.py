"""SQLAlchemy models for the Twitch vertical.

One row per tenant holds the platform client credentials, the webhook
signing secret, the game-server sink address and both cached token
triples. Token expiries are stored as epoch seconds.

The to_dict() method returns the flat record shape used by
core.integrations.credentials.
"""

from sqlalchemy import Boolean, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, RecordMixin


class Tenant(RecordMixin, Base):
    """A streamer account bridged to a game server."""

    __tablename__ = "tenants"

    username: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    api_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    eventsub_secret: Mapped[str] = mapped_column(String(100), nullable=False)
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    client_secret: Mapped[str] = mapped_column(String(200), nullable=False)
    sink_url: Mapped[str] = mapped_column(String(500), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    app_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    app_token_expires_at: Mapped[float | None] = mapped_column(Float, nullable=True)
    app_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    user_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_token_expires_at: Mapped[float | None] = mapped_column(Float, nullable=True)
    user_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "username": self.username,
            "api_key": self.api_key,
            "eventsub_secret": self.eventsub_secret,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "sink_url": self.sink_url,
            "is_active": self.is_active,
            "app_access_token": self.app_access_token,
            "app_token_expires_at": self.app_token_expires_at,
            "app_refresh_token": self.app_refresh_token,
            "user_access_token": self.user_access_token,
            "user_token_expires_at": self.user_token_expires_at,
            "user_refresh_token": self.user_refresh_token,
            "created_at": self.created_at.timestamp() if self.created_at else None,
        }

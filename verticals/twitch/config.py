"""Twitch vertical configuration.

Thresholds, endpoints and limits as a frozen dataclass, with defaults that
work out of the box and environment overrides for deployment.
"""

import os
from dataclasses import dataclass, field


DEFAULT_SCOPES = (
    "channel:read:subscriptions",
    "bits:read",
    "moderator:read:followers",
)


@dataclass(frozen=True)
class TwitchConfig:
    """Complete configuration for the Twitch bridge.

    Usage::

        config = TwitchConfig.from_env()
        forwarder = SinkForwarder(timeout=config.forward_timeout_seconds)
    """

    # Platform endpoints
    token_url: str = "https://id.twitch.tv/oauth2/token"
    authorize_url: str = "https://id.twitch.tv/oauth2/authorize"
    api_base_url: str = "https://api.twitch.tv/helix"
    callback_base_url: str = ""
    oauth_scopes: tuple[str, ...] = field(default=DEFAULT_SCOPES)

    # Timeouts (seconds)
    forward_timeout_seconds: float = 5.0
    token_timeout_seconds: float = 15.0
    replay_window_seconds: float = 600.0

    # Live feed
    buffer_capacity: int = 50
    stats_recent_count: int = 10
    subscription_value: int = 5
    listener_queue_size: int = 100
    stream_keepalive_seconds: float = 15.0

    @property
    def redirect_uri(self) -> str:
        return f"{self.callback_base_url.rstrip('/')}/api/oauth/callback"

    def webhook_url(self, tenant_id: str) -> str:
        return f"{self.callback_base_url.rstrip('/')}/webhook/{tenant_id}"

    @classmethod
    def from_env(cls, prefix: str = "TWITCH_") -> "TwitchConfig":
        """Create config from environment variables.

        Example: TWITCH_FORWARD_TIMEOUT_SECONDS=3 CALLBACK_URL=https://bridge.example.com
        """
        overrides: dict = {}

        for name in ("token_url", "authorize_url", "api_base_url"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = value

        callback = os.getenv("CALLBACK_URL") or os.getenv(f"{prefix}CALLBACK_BASE_URL")
        if callback:
            overrides["callback_base_url"] = callback

        scopes = os.getenv(f"{prefix}OAUTH_SCOPES")
        if scopes:
            overrides["oauth_scopes"] = tuple(s for s in scopes.replace(",", " ").split() if s)

        for name in (
            "forward_timeout_seconds",
            "token_timeout_seconds",
            "replay_window_seconds",
            "stream_keepalive_seconds",
        ):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = float(value)

        for name in (
            "buffer_capacity",
            "stats_recent_count",
            "subscription_value",
            "listener_queue_size",
        ):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = int(value)

        return cls(**overrides)



"""
Core Integrations — Twitch EventSub Ingestion & Credential Lifecycle.

- CredentialStore: typed tenant credentials over a record store
- TokenManager: app-level and user-level OAuth2 token lifecycle
- SignatureVerifier: webhook HMAC + replay window checks
- EventNormalizer: EventSub payload → canonical event mapping
- SinkForwarder: canonical event delivery to game servers
- WebhookProcessor: inbound webhook state machine
- EventSubClient: subscription management pass-through
"""
from core.integrations.adapter_base import (
    AdapterBase,
    AdapterRequest,
    AdapterResponse,
    IntegrationHealth,
)
from core.integrations.credentials import (
    CredentialStore,
    InMemoryTenantStore,
    SettingsUpdate,
    TenantCredentials,
    TenantRecordStore,
    TokenSet,
)
from core.integrations.errors import (
    AuthorizationRequiredError,
    BridgeError,
    CredentialError,
    ForwardingFailure,
    PlatformAPIError,
    SignatureInvalid,
    UnknownTenant,
)
from core.integrations.eventsub import EventSubClient, SetupResult
from core.integrations.forwarder import SinkForwarder
from core.integrations.normalizer import (
    CanonicalEvent,
    EventNormalizer,
    EventType,
    FieldMapping,
    SchemaMapping,
)
from core.integrations.oauth_manager import OAuthConfig, TokenManager
from core.integrations.signature import SignatureVerifier, compute_signature
from core.integrations.webhooks import MessageType, WebhookProcessor, WebhookResult

__all__ = [
    # Adapter
    "AdapterBase",
    "AdapterRequest",
    "AdapterResponse",
    "IntegrationHealth",
    # Credentials
    "CredentialStore",
    "InMemoryTenantStore",
    "SettingsUpdate",
    "TenantCredentials",
    "TenantRecordStore",
    "TokenSet",
    # Errors
    "AuthorizationRequiredError",
    "BridgeError",
    "CredentialError",
    "ForwardingFailure",
    "PlatformAPIError",
    "SignatureInvalid",
    "UnknownTenant",
    # EventSub
    "EventSubClient",
    "SetupResult",
    # Forwarding
    "SinkForwarder",
    # Normalizer
    "CanonicalEvent",
    "EventNormalizer",
    "EventType",
    "FieldMapping",
    "SchemaMapping",
    # OAuth
    "OAuthConfig",
    "TokenManager",
    # Signature
    "SignatureVerifier",
    "compute_signature",
    # Webhooks
    "MessageType",
    "WebhookProcessor",
    "WebhookResult",
]

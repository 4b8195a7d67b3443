"""
Bridge error taxonomy.

Every failure the ingestion and credential pipeline surfaces derives from
BridgeError so routers can translate them in one place:
- CredentialError: token exchange rejected by the platform
- AuthorizationRequiredError: no valid or refreshable user token
- SignatureInvalid: inbound webhook failed authenticity checks
- UnknownTenant: no (active) tenant for the given id
- ForwardingFailure: downstream sink unreachable or erroring
- PlatformAPIError: subscription management call failed
"""
from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class CredentialError(BridgeError):
    """A credential exchange was rejected, or the tenant has no credentials."""

    def __init__(self, message: str, tenant_id: str = "", status_code: int | None = None):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.status_code = status_code


class AuthorizationRequiredError(BridgeError):
    """The tenant must complete the interactive OAuth flow first."""

    def __init__(self, tenant_id: str, message: str | None = None):
        super().__init__(
            message
            or "No user access token available. Complete authorization via "
            f"GET /api/oauth/{tenant_id}/authorize-url"
        )
        self.tenant_id = tenant_id


class SignatureInvalid(BridgeError):
    """Webhook signature, headers or timestamp did not verify."""


class UnknownTenant(BridgeError):
    def __init__(self, tenant_id: str):
        super().__init__(f"Tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class ForwardingFailure(BridgeError):
    """Delivery of a canonical event to the tenant's sink failed."""

    def __init__(
        self,
        message: str,
        tenant_id: str,
        event_type: str,
        target: str,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.event_type = event_type
        self.target = target
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "target": self.target,
            "status_code": self.status_code,
            "error": str(self),
        }


class PlatformAPIError(BridgeError):
    """A platform management API call returned an error."""

    def __init__(self, message: str, status_code: int = 502, details: object = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

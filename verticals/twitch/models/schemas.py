"""Pydantic schemas for API request/response validation.

Wire names are camelCase; Python attributes stay snake_case.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class TenantCreate(CamelModel):
    username: str = Field(..., min_length=1, max_length=200)
    client_id: str = Field(..., alias="clientId", min_length=1)
    client_secret: str = Field(..., alias="clientSecret", min_length=1)
    sink_url: str = Field(..., alias="sinkUrl", pattern=r"^https?://")


class TenantUpdate(CamelModel):
    sink_url: Optional[str] = Field(None, alias="sinkUrl", pattern=r"^https?://")
    client_id: Optional[str] = Field(None, alias="clientId", min_length=1)
    client_secret: Optional[str] = Field(None, alias="clientSecret", min_length=1)


class ValidateCredentialsRequest(CamelModel):
    client_id: str = Field(..., alias="clientId", min_length=1)
    client_secret: str = Field(..., alias="clientSecret", min_length=1)


class SubscriptionCreate(CamelModel):
    type: str = Field(..., min_length=1)
    version: str = "1"
    condition: dict[str, Any] = Field(default_factory=dict)


class SetupRequest(CamelModel):
    broadcaster_user_id: str = Field(..., alias="broadcasterUserId", min_length=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class TenantRegistered(CamelModel):
    tenant_id: str = Field(..., alias="tenantId")
    api_key: str = Field(..., alias="apiKey")
    eventsub_secret: str = Field(..., alias="eventSubSecret")
    webhook_url: str = Field(..., alias="webhookUrl")


class TenantProfile(CamelModel):
    tenant_id: str = Field(..., alias="tenantId")
    username: str
    client_id: str = Field(..., alias="clientId")
    sink_url: str = Field(..., alias="sinkUrl")
    is_active: bool = Field(..., alias="isActive")
    app_token_valid: bool = Field(..., alias="appTokenValid")
    user_authorized: bool = Field(..., alias="userAuthorized")
    user_token_expiry: Optional[float] = Field(None, alias="userTokenExpiry")


class AuthorizationStatus(CamelModel):
    authorized: bool
    token_expiry: Optional[float] = Field(None, alias="tokenExpiry")

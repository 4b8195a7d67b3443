"""Test the app-level and user-level token lifecycle."""
import asyncio

import httpx
import pytest

from core.integrations.credentials import TokenSet
from core.integrations.errors import AuthorizationRequiredError, CredentialError
from core.integrations.oauth_manager import STATE_TTL_SECONDS, OAuthConfig, TokenManager

from conftest import T0

TOKEN_URL = "https://id.test/oauth2/token"


class TokenEndpoint:
    """Fake token endpoint recording every grant it sees."""

    def __init__(self, status_code=200, refresh_token="refresh-new"):
        self.status_code = status_code
        self.refresh_token = refresh_token
        self.grants = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = dict(httpx.QueryParams(request.content.decode()))
        self.grants.append(form)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"status": self.status_code, "message": "invalid client"})
        body = {
            "access_token": f"{form['grant_type']}-{len(self.grants)}",
            "expires_in": 3600,
            "token_type": "bearer",
        }
        if form["grant_type"] != "client_credentials" and self.refresh_token:
            body["refresh_token"] = self.refresh_token
        return httpx.Response(200, json=body)


def _manager(credentials, clock, endpoint):
    return TokenManager(
        credentials,
        OAuthConfig(token_url=TOKEN_URL),
        clock=clock,
        transport=httpx.MockTransport(endpoint),
    )


@pytest.mark.asyncio
async def test_app_token_cached_until_expiry(credentials, tenant, clock):
    endpoint = TokenEndpoint()
    tokens = _manager(credentials, clock, endpoint)

    first = await tokens.get_app_token(tenant.id)
    assert len(endpoint.grants) == 1
    assert endpoint.grants[0]["grant_type"] == "client_credentials"
    assert endpoint.grants[0]["client_id"] == "client-123"

    clock.now = T0 + 3599
    assert await tokens.get_app_token(tenant.id) == first
    assert len(endpoint.grants) == 1

    clock.now = T0 + 3601
    second = await tokens.get_app_token(tenant.id)
    assert second != first
    assert len(endpoint.grants) == 2


@pytest.mark.asyncio
async def test_app_token_is_persisted_with_absolute_expiry(credentials, tenant, clock):
    tokens = _manager(credentials, clock, TokenEndpoint())
    token = await tokens.get_app_token(tenant.id)

    stored = await credentials.get(tenant.id)
    assert stored.app_token.access_token == token
    assert stored.app_token.expires_at == T0 + 3600


@pytest.mark.asyncio
async def test_app_token_rejected_raises_credential_error(credentials, tenant, clock):
    tokens = _manager(credentials, clock, TokenEndpoint(status_code=400))
    with pytest.raises(CredentialError) as excinfo:
        await tokens.get_app_token(tenant.id)
    assert excinfo.value.status_code == 400
    assert "invalid client" in str(excinfo.value)


@pytest.mark.asyncio
async def test_unknown_tenant_raises_credential_error(credentials, clock):
    tokens = _manager(credentials, clock, TokenEndpoint())
    with pytest.raises(CredentialError):
        await tokens.get_app_token("missing")


@pytest.mark.asyncio
async def test_user_token_without_authorization(credentials, tenant, clock):
    endpoint = TokenEndpoint()
    tokens = _manager(credentials, clock, endpoint)
    with pytest.raises(AuthorizationRequiredError):
        await tokens.get_user_token(tenant.id)
    assert endpoint.grants == []


@pytest.mark.asyncio
async def test_authorization_code_exchange_then_cached(credentials, tenant, clock):
    endpoint = TokenEndpoint()
    tokens = _manager(credentials, clock, endpoint)

    result = await tokens.exchange_authorization_code(tenant.id, "code-xyz", "http://bridge/api/oauth/callback")
    assert endpoint.grants[0]["grant_type"] == "authorization_code"
    assert endpoint.grants[0]["code"] == "code-xyz"
    assert endpoint.grants[0]["redirect_uri"] == "http://bridge/api/oauth/callback"
    assert result.refresh_token == "refresh-new"

    assert await tokens.get_user_token(tenant.id) == result.access_token
    assert len(endpoint.grants) == 1


@pytest.mark.asyncio
async def test_expired_user_token_is_refreshed(credentials, tenant, clock):
    await credentials.save_user_token(
        tenant.id, TokenSet("old-user", T0 - 1, "refresh-old"),
    )
    endpoint = TokenEndpoint(refresh_token=None)
    tokens = _manager(credentials, clock, endpoint)

    token = await tokens.get_user_token(tenant.id)
    assert endpoint.grants[0]["grant_type"] == "refresh_token"
    assert endpoint.grants[0]["refresh_token"] == "refresh-old"

    stored = await credentials.get(tenant.id)
    assert stored.user_token.access_token == token
    assert stored.user_token.expires_at == T0 + 3600
    # Response had no refresh token, so the previous one is kept
    assert stored.user_token.refresh_token == "refresh-old"


@pytest.mark.asyncio
async def test_failed_refresh_requires_authorization(credentials, tenant, clock):
    await credentials.save_user_token(
        tenant.id, TokenSet("old-user", T0 - 1, "refresh-old"),
    )
    tokens = _manager(credentials, clock, TokenEndpoint(status_code=400))
    with pytest.raises(AuthorizationRequiredError):
        await tokens.get_user_token(tenant.id)


@pytest.mark.asyncio
async def test_is_user_authorized(credentials, tenant, clock):
    tokens = _manager(credentials, clock, TokenEndpoint())
    assert tokens.is_user_authorized(tenant) is False

    await credentials.save_user_token(tenant.id, TokenSet("u", T0 + 10, "r"))
    assert tokens.is_user_authorized(await credentials.get(tenant.id)) is True


@pytest.mark.asyncio
async def test_authorize_url_and_state(credentials, tenant, clock):
    tokens = _manager(credentials, clock, TokenEndpoint())
    url = httpx.URL(await tokens.get_authorize_url(tenant.id, "http://bridge/api/oauth/callback"))

    assert url.params["client_id"] == "client-123"
    assert url.params["response_type"] == "code"
    assert url.params["scope"] == "channel:read:subscriptions bits:read moderator:read:followers"

    state = url.params["state"]
    assert tokens.consume_state(state) == tenant.id
    assert tokens.consume_state(state) is None


@pytest.mark.asyncio
async def test_validate_client_credentials(credentials, clock):
    endpoint = TokenEndpoint()
    tokens = _manager(credentials, clock, endpoint)
    result = await tokens.validate_client_credentials("cid", "csecret")
    assert result == {"token_type": "bearer", "expires_in": 3600}
    assert await credentials.get("cid") is None


@pytest.mark.asyncio
async def test_authorization_state_expires(credentials, tenant, clock):
    tokens = _manager(credentials, clock, TokenEndpoint())
    stale = httpx.URL(await tokens.get_authorize_url(tenant.id, "http://bridge/cb")).params["state"]

    clock.now = T0 + STATE_TTL_SECONDS + 1
    assert tokens.consume_state(stale) is None


@pytest.mark.asyncio
async def test_unused_states_are_purged(credentials, tenant, clock):
    tokens = _manager(credentials, clock, TokenEndpoint())
    for _ in range(20):
        await tokens.get_authorize_url(tenant.id, "http://bridge/cb")
    assert len(tokens._states) == 20

    clock.now = T0 + STATE_TTL_SECONDS + 1
    fresh = httpx.URL(await tokens.get_authorize_url(tenant.id, "http://bridge/cb")).params["state"]
    assert list(tokens._states) == [fresh]
    assert tokens.consume_state(fresh) == tenant.id


@pytest.mark.asyncio
async def test_concurrent_refreshes_leave_a_whole_token_triple(credentials, tenant, clock):
    await credentials.save_user_token(tenant.id, TokenSet("old-user", T0 - 1, "refresh-old"))
    issued = []

    async def endpoint(request: httpx.Request) -> httpx.Response:
        n = len(issued) + 1
        issued.append(n)
        # Later grants answer first so writes land out of order
        await asyncio.sleep(0.001 * (6 - n))
        return httpx.Response(200, json={
            "access_token": f"user-{n}",
            "refresh_token": f"refresh-{n}",
            "expires_in": 3600 + n,
        })

    tokens = _manager(credentials, clock, endpoint)
    results = await asyncio.gather(*(tokens.get_user_token(tenant.id) for _ in range(5)))

    assert sorted(results) == [f"user-{n}" for n in range(1, 6)]
    stored = (await credentials.get(tenant.id)).user_token
    n = int(stored.access_token.split("-")[1])
    assert stored.refresh_token == f"refresh-{n}"
    assert stored.expires_at == T0 + 3600 + n

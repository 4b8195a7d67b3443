"""Test tenant registration, settings updates and token persistence."""
import pytest

from core.integrations.credentials import (
    CredentialStore,
    InMemoryTenantStore,
    SettingsUpdate,
    TenantCredentials,
    TokenSet,
)
from core.integrations.errors import UnknownTenant


@pytest.mark.asyncio
async def test_register_generates_secrets(credentials):
    tenant = await credentials.register("streamer", "cid", "csecret", "http://game:4000")
    assert len(tenant.api_key) == 64
    assert len(tenant.eventsub_secret) == 64
    assert tenant.api_key != tenant.eventsub_secret
    assert tenant.is_active

    loaded = await credentials.require(tenant.id)
    assert loaded.client_secret == "csecret"
    assert loaded.sink_url == "http://game:4000"


@pytest.mark.asyncio
async def test_require_unknown_tenant(credentials):
    with pytest.raises(UnknownTenant, match="Tenant not found"):
        await credentials.require("missing")


@pytest.mark.asyncio
async def test_update_settings_only_changes_allowed_fields(credentials, tenant):
    updated = await credentials.update_settings(
        tenant.id, SettingsUpdate(sink_url="http://new-sink:5000"),
    )
    assert updated.sink_url == "http://new-sink:5000"
    assert updated.client_id == tenant.client_id
    assert updated.api_key == tenant.api_key


@pytest.mark.asyncio
async def test_update_settings_unknown_tenant(credentials):
    assert await credentials.update_settings("missing", SettingsUpdate(client_id="x")) is None


def test_settings_update_changes():
    assert SettingsUpdate().changes() == {}
    assert SettingsUpdate(client_id="a", client_secret="b").changes() == {
        "client_id": "a",
        "client_secret": "b",
    }


@pytest.mark.asyncio
async def test_token_triples_saved_together(credentials, tenant):
    await credentials.save_app_token(tenant.id, TokenSet("app", 100.0, None))
    await credentials.save_user_token(tenant.id, TokenSet("user", 200.0, "refresh"))

    loaded = await credentials.get(tenant.id)
    assert loaded.app_token == TokenSet("app", 100.0, None)
    assert loaded.user_token == TokenSet("user", 200.0, "refresh")

    await credentials.save_app_token(tenant.id, TokenSet())
    assert (await credentials.get(tenant.id)).app_token == TokenSet()


def test_token_set_validity():
    tokens = TokenSet("t", 1000.0, None)
    assert tokens.is_valid(999.9)
    assert not tokens.is_valid(1000.0)
    assert not TokenSet().is_valid(0)

    granted = TokenSet.from_grant({"access_token": "x", "expires_in": 60}, now=10.0)
    assert granted.expires_at == 70.0


def test_public_dict_hides_secrets():
    tenant = TenantCredentials(
        id="t1", username="u", api_key="key", eventsub_secret="sig",
        client_id="cid", client_secret="csecret", sink_url="http://s",
        user_token=TokenSet("user", 500.0, "r"),
    )
    public = tenant.to_public_dict(now=100.0)
    assert public["tenantId"] == "t1"
    assert public["userAuthorized"] is True
    assert public["userTokenExpiry"] == 500.0
    assert public["appTokenValid"] is False
    flat = repr(public)
    for secret in ("key", "sig", "csecret", "'user'", "'r'"):
        assert secret not in flat


@pytest.mark.asyncio
async def test_in_memory_store_returns_copies():
    store = InMemoryTenantStore()
    await store.put("t1", {"username": "u", "nested": {"a": 1}})
    record = await store.get("t1")
    record["nested"]["a"] = 2
    assert (await store.get("t1"))["nested"]["a"] == 1
    assert await store.update("missing", {"x": 1}) is False
    assert await store.delete("t1") is True
    assert await store.get("t1") is None


@pytest.mark.asyncio
async def test_store_wrapped_by_new_credential_store():
    store = InMemoryTenantStore()
    first = CredentialStore(store)
    tenant = await first.register("u", "c", "s", "http://x")
    assert (await CredentialStore(store).get(tenant.id)).username == "u"

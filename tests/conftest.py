"""Shared fixtures: a controllable clock, in-memory tenants, signed webhook headers and a fake platform."""
import os

os.environ.setdefault("TENANT_STORE", "memory")

from datetime import datetime, timezone
import json

import httpx
import pytest
import pytest_asyncio

from core.integrations.credentials import CredentialStore, InMemoryTenantStore
from core.integrations.signature import compute_signature

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def rfc3339(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    return CredentialStore(InMemoryTenantStore())


@pytest_asyncio.fixture
async def tenant(credentials):
    return await credentials.register(
        username="streamer1",
        client_id="client-123",
        client_secret="secret-456",
        sink_url="http://game.local:4000",
    )


@pytest.fixture
def webhook_request(clock):
    """Build (headers, raw_body) for a webhook signed with the given secret."""

    def build(secret, message_type, payload, message_id="msg-1", sent_at=None):
        raw_body = json.dumps(payload).encode("utf-8")
        timestamp = rfc3339(clock.now if sent_at is None else sent_at)
        headers = {
            "Twitch-Eventsub-Message-Id": message_id,
            "Twitch-Eventsub-Message-Timestamp": timestamp,
            "Twitch-Eventsub-Message-Signature": compute_signature(secret, message_id, timestamp, raw_body),
            "Twitch-Eventsub-Message-Type": message_type,
        }
        return headers, raw_body

    return build


class FakeTwitch:
    """httpx handler standing in for the token endpoint, Helix and a game server sink."""

    TOKEN_URL = "https://id.test/oauth2/token"
    API_BASE = "https://api.test/helix"

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.subscriptions: list[dict] = []
        self.token_grants: list[dict] = []
        self.helix_failures: list[int] = []  # statuses returned before succeeding
        self.rejected_types: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url.startswith(self.TOKEN_URL):
            form = dict(httpx.QueryParams(request.content.decode()))
            self.token_grants.append(form)
            if form.get("client_secret") == "bad-secret":
                return httpx.Response(400, json={"status": 400, "message": "invalid client secret"})
            prefix = "app" if form["grant_type"] == "client_credentials" else "user"
            body = {"access_token": f"{prefix}-{len(self.token_grants)}", "expires_in": 3600, "token_type": "bearer"}
            if prefix == "user":
                body["refresh_token"] = "refresh-1"
            return httpx.Response(200, json=body)

        if url.startswith(self.API_BASE):
            if self.helix_failures:
                return httpx.Response(self.helix_failures.pop(0), json={"message": "upstream trouble"})
            return self._helix(request)

        if request.url.path == "/twitch-event":
            return httpx.Response(200, json={"received": True})

        return httpx.Response(404)

    def _helix(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/helix")
        if path == "/users":
            login = request.url.params.get("login")
            if login == "ghost":
                return httpx.Response(200, json={"data": []})
            login = login or "streamer1"
            return httpx.Response(200, json={"data": [{
                "id": "4242", "login": login, "display_name": login.title(),
                "broadcaster_type": "affiliate", "profile_image_url": "https://img.test/a.png",
            }]})

        if path == "/eventsub/subscriptions" and request.method == "POST":
            body = json.loads(request.content)
            if body["type"] in self.rejected_types:
                return httpx.Response(403, json={"message": "subscription missing proper authorization"})
            sub = {"id": f"sub-{len(self.subscriptions) + 1}", "status": "webhook_callback_verification_pending", **body}
            self.subscriptions.append(sub)
            return httpx.Response(202, json={"data": [sub], "total": len(self.subscriptions)})

        if path == "/eventsub/subscriptions" and request.method == "GET":
            return httpx.Response(200, json={"data": self.subscriptions, "total": len(self.subscriptions)})

        if path == "/eventsub/subscriptions" and request.method == "DELETE":
            sub_id = request.url.params.get("id")
            self.subscriptions = [s for s in self.subscriptions if s["id"] != sub_id]
            return httpx.Response(204)

        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def fake_twitch():
    return FakeTwitch()


@pytest.fixture
def services(fake_twitch, clock):
    from verticals.twitch.config import TwitchConfig
    from verticals.twitch.dependencies import build_services

    config = TwitchConfig(
        token_url=FakeTwitch.TOKEN_URL,
        api_base_url=FakeTwitch.API_BASE,
        callback_base_url="https://bridge.test",
    )
    built = build_services(
        config=config,
        store=InMemoryTenantStore(),
        transport=httpx.MockTransport(fake_twitch),
        clock=clock,
    )
    built.eventsub.BACKOFF_BASE = 0.0
    return built

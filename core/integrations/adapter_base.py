"""
Platform API Adapter Base.

Outbound management calls (subscription create/list/delete, user lookup)
go through AdapterBase, which provides:
- Per-tenant auth headers supplied by the subclass
- One re-auth attempt when the platform answers 401
- Retry with exponential backoff on 5xx and transport errors
- Health tracking (latency, errors, auth failures)
- Standardized request/response envelope
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import asyncio
import logging
import time

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / Response envelope
# ---------------------------------------------------------------------------

@dataclass
class AdapterRequest:
    """Standardized outbound request."""
    method: str  # GET, POST, DELETE
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = 15.0
    auth: str = "app"  # "app" | "user"


@dataclass
class AdapterResponse:
    """Standardized inbound response."""
    status_code: int
    data: Any = None
    latency_ms: float = 0.0
    error: str | None = None
    retries: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


# ---------------------------------------------------------------------------
# Health tracking
# ---------------------------------------------------------------------------

@dataclass
class IntegrationHealth:
    """Rolling request health for one adapter, shown on /health."""
    name: str
    requests: int = 0
    failures: int = 0
    auth_failures: int = 0
    last_ok_at: datetime | None = None
    last_failed_at: datetime | None = None
    last_error: str | None = None
    recent_latencies: deque = field(default_factory=lambda: deque(maxlen=500))

    def record(self, latency_ms: float, ok: bool, error: str | None = None) -> None:
        self.requests += 1
        self.recent_latencies.append(latency_ms)
        stamp = datetime.now(timezone.utc)
        if ok:
            self.last_ok_at = stamp
        else:
            self.failures += 1
            self.last_failed_at = stamp
            self.last_error = error

    def to_dict(self) -> dict[str, Any]:
        latencies = self.recent_latencies
        return {
            "name": self.name,
            "requests": self.requests,
            "failures": self.failures,
            "authFailures": self.auth_failures,
            "failureRate": round(self.failures / self.requests, 4) if self.requests else 0.0,
            "avgLatencyMs": round(sum(latencies) / len(latencies), 1) if latencies else 0.0,
            "lastOkAt": self.last_ok_at.isoformat() if self.last_ok_at else None,
            "lastFailedAt": self.last_failed_at.isoformat() if self.last_failed_at else None,
            "lastError": self.last_error,
        }


# ---------------------------------------------------------------------------
# AdapterBase
# ---------------------------------------------------------------------------

class AdapterBase(ABC):
    """
    Base class for platform API adapters.

    Subclasses must set:
        name: str      — adapter identifier
        base_url: str  — API root URL
    and implement get_auth_headers().
    """

    name: str = ""
    base_url: str = ""

    MAX_RETRIES: int = 2
    BACKOFF_BASE: float = 0.5
    BACKOFF_MAX: float = 8.0

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport
        self._health = IntegrationHealth(name=self.name)

    # --- Auth ---

    @abstractmethod
    async def get_auth_headers(self, tenant_id: str, auth: str) -> dict[str, str]:
        """Build auth headers for the given tenant and token class."""

    async def on_unauthorized(self, tenant_id: str, auth: str) -> bool:
        """Called once after a 401. Return True to retry with fresh headers."""
        return False

    # --- Health ---

    def get_health(self) -> IntegrationHealth:
        return self._health

    # --- Core request ---

    async def request(self, req: AdapterRequest, tenant_id: str) -> AdapterResponse:
        """
        Execute a request through the adapter pipeline:
        Auth → Retry w/ Backoff (5xx, transport) → Re-auth on 401 → Health
        """
        headers = {**await self.get_auth_headers(tenant_id, req.auth), **req.headers}
        url = f"{self.base_url.rstrip('/')}/{req.path.lstrip('/')}"

        last_error: str | None = None
        latency = 0.0
        retries = 0
        reauthed = False

        async with httpx.AsyncClient(transport=self._transport) as client:
            attempt = 0
            while attempt <= self.MAX_RETRIES:
                start = time.time()
                try:
                    resp = await client.request(
                        method=req.method,
                        url=url,
                        params=req.params or None,
                        json=req.body,
                        headers=headers,
                        timeout=req.timeout,
                    )
                    latency = (time.time() - start) * 1000

                    if resp.status_code == 401 and not reauthed:
                        reauthed = True
                        self._health.auth_failures += 1
                        if await self.on_unauthorized(tenant_id, req.auth):
                            headers.update(await self.get_auth_headers(tenant_id, req.auth))
                            continue

                    if resp.status_code < 500:
                        self._health.record(latency, resp.status_code < 400)
                        return AdapterResponse(
                            status_code=resp.status_code,
                            data=_decode(resp),
                            latency_ms=latency,
                            retries=retries,
                        )

                    last_error = f"HTTP {resp.status_code}: {resp.text[:200]}"
                except httpx.HTTPError as exc:
                    latency = (time.time() - start) * 1000
                    last_error = str(exc) or type(exc).__name__

                retries += 1
                if attempt < self.MAX_RETRIES:
                    backoff = min(self.BACKOFF_BASE * (2 ** attempt), self.BACKOFF_MAX)
                    logger.warning(
                        "%s %s failed (%s); retrying in %.1fs", req.method, req.path, last_error, backoff,
                    )
                    await asyncio.sleep(backoff)
                attempt += 1

        self._health.record(latency, False, last_error)
        return AdapterResponse(
            status_code=502,
            error=last_error,
            retries=retries,
        )


def _decode(resp: httpx.Response) -> Any:
    if resp.headers.get("content-type", "").startswith("application/json"):
        try:
            return resp.json()
        except ValueError:
            return resp.text
    return resp.text or None

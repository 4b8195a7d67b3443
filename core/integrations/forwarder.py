"""
Downstream sink forwarder.

Delivers canonical events to a tenant's game server at
``{sink_url}/twitch-event`` with body ``{eventType, data}`` and the tenant id
in ``X-User-ID``. One attempt with a bounded timeout: retries, if any, come
from the platform redelivering the webhook.
"""
from __future__ import annotations
from typing import Any
import logging
import time

import httpx

from core.integrations.credentials import TenantCredentials
from core.integrations.errors import ForwardingFailure
from core.integrations.normalizer import CanonicalEvent

logger = logging.getLogger(__name__)

SINK_PATH = "/twitch-event"
DEFAULT_TIMEOUT_SECONDS = 5.0


def sink_target(sink_url: str) -> str:
    return f"{(sink_url or '').rstrip('/')}{SINK_PATH}"


class SinkForwarder:
    """Posts canonical events to tenant sinks; every failure raises ForwardingFailure."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self._transport = transport

    async def forward(self, tenant: TenantCredentials, event: CanonicalEvent) -> Any:
        """POST the event; returns the sink's decoded response body."""
        target = sink_target(tenant.sink_url)
        event_type = event.event_type.value
        logger.info("Forwarding %s to sink at %s", event_type, target)

        start = time.time()
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    target,
                    json=event.sink_payload(),
                    headers={"X-User-ID": tenant.id},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ForwardingFailure(
                f"Sink responded HTTP {exc.response.status_code}",
                tenant_id=tenant.id,
                event_type=event_type,
                target=target,
                status_code=exc.response.status_code,
            ) from exc
        except Exception as exc:
            # Includes payloads that fail to serialize
            raise ForwardingFailure(
                f"{type(exc).__name__}: {exc}",
                tenant_id=tenant.id,
                event_type=event_type,
                target=target,
            ) from exc

        latency = (time.time() - start) * 1000
        logger.info(
            "Sent %s to sink for tenant %s (status %s, %.0fms)",
            event_type, tenant.username or tenant.id, resp.status_code, latency,
        )
        if resp.headers.get("content-type", "").startswith("application/json"):
            try:
                return resp.json()
            except ValueError:
                return resp.text
        return resp.text

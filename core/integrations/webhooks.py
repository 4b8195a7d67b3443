"""
EventSub Webhook Processor — Inbound Event Ingestion.

Handles one inbound webhook message per call:
- Tenant lookup (404) and HMAC signature / replay window check (403)
- Verification challenge echo (200, body is the challenge verbatim)
- Revocation acknowledgment (204)
- Notification: normalize, forward to the tenant's sink, then buffer for
  the live dashboard (204)

The acknowledgment never depends on the downstream sink: a forwarding
failure is logged and the notification is still acknowledged, but the
event is not buffered. The processor is framework-free; the router only
adapts the WebhookResult to an HTTP response.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping
import json
import logging

from core.integrations.credentials import CredentialStore, TenantCredentials
from core.integrations.errors import ForwardingFailure, SignatureInvalid, UnknownTenant
from core.integrations.forwarder import SinkForwarder
from core.integrations.normalizer import CanonicalEvent, EventNormalizer
from core.integrations.signature import SignatureVerifier
from core.observability.otel_setup import create_webhook_span
from core.resilience.idempotency import IdempotencyStore
from patterns.workflow_states import WebhookMessageTrace, WebhookState

if TYPE_CHECKING:
    from core.events.live_buffer import LiveEventBuffer

logger = logging.getLogger(__name__)

HEADER_MESSAGE_ID = "twitch-eventsub-message-id"
HEADER_MESSAGE_TIMESTAMP = "twitch-eventsub-message-timestamp"
HEADER_MESSAGE_SIGNATURE = "twitch-eventsub-message-signature"
HEADER_MESSAGE_TYPE = "twitch-eventsub-message-type"


class MessageType(str, Enum):
    """EventSub webhook message types."""
    VERIFICATION = "webhook_callback_verification"
    NOTIFICATION = "notification"
    REVOCATION = "revocation"


@dataclass
class WebhookResult:
    """Outcome of processing one webhook message."""
    status_code: int
    body: str | dict[str, Any] | None = None
    state: WebhookState = WebhookState.VERIFYING
    event: CanonicalEvent | None = None
    duplicate: bool = False
    history: list[str] = field(default_factory=list)


class WebhookProcessor:
    """Runs the verify → branch → normalize → forward → buffer pipeline."""

    def __init__(
        self,
        credentials: CredentialStore,
        verifier: SignatureVerifier,
        normalizer: EventNormalizer,
        forwarder: SinkForwarder,
        buffer: LiveEventBuffer,
        idempotency: IdempotencyStore | None = None,
        tracer: Any = None,
    ):
        self.credentials = credentials
        self.verifier = verifier
        self.normalizer = normalizer
        self.forwarder = forwarder
        self.buffer = buffer
        self.idempotency = idempotency or IdempotencyStore(
            ttl_seconds=2 * verifier.replay_window_seconds,
            clock=verifier.clock,
        )
        self.tracer = tracer

    async def handle(
        self,
        tenant_id: str,
        headers: Mapping[str, str],
        raw_body: bytes,
    ) -> WebhookResult:
        """Process a webhook. Never raises; unexpected errors become a 500 result."""
        headers = {k.lower(): v for k, v in headers.items()}
        message_id = headers.get(HEADER_MESSAGE_ID) or ""
        message_type = headers.get(HEADER_MESSAGE_TYPE) or ""

        trace = WebhookMessageTrace(message_id=message_id or "-", tenant_id=tenant_id)
        span = create_webhook_span(self.tracer, tenant_id, message_type)
        try:
            result = await self._process(trace, tenant_id, headers, raw_body, message_id, message_type)
        except Exception:
            logger.exception("Webhook error for tenant %s (message %s)", tenant_id, message_id or "-")
            result = WebhookResult(status_code=500, body={"error": "Internal server error"})
        finally:
            if span is not None:
                span.set_attribute("webhook.state", trace.current_state.value)
                span.end()

        result.state = trace.current_state
        result.history = [t.to_state for t in trace.history]
        return result

    async def _process(
        self,
        trace: WebhookMessageTrace,
        tenant_id: str,
        headers: dict[str, str],
        raw_body: bytes,
        message_id: str,
        message_type: str,
    ) -> WebhookResult:
        try:
            tenant = await self.credentials.require(tenant_id)
        except UnknownTenant:
            logger.warning("Webhook received for unknown tenant: %s", tenant_id)
            trace.transition(WebhookState.REJECTED, reason="unknown_tenant")
            return WebhookResult(status_code=404, body={"error": "User not found"})

        try:
            self.verifier.require(
                tenant.eventsub_secret,
                message_id,
                headers.get(HEADER_MESSAGE_TIMESTAMP),
                headers.get(HEADER_MESSAGE_SIGNATURE),
                raw_body,
            )
        except SignatureInvalid:
            logger.warning("Invalid signature for tenant %s", tenant.username or tenant.id)
            trace.transition(WebhookState.REJECTED, reason="invalid_signature")
            return WebhookResult(status_code=403, body={"error": "Invalid signature"})

        if message_type == MessageType.VERIFICATION.value:
            return self._handle_verification(trace, tenant, raw_body)

        if message_type == MessageType.REVOCATION.value:
            payload = _parse_json(raw_body)
            subscription = payload.get("subscription") if isinstance(payload, dict) else None
            logger.warning(
                "Subscription revoked for tenant %s: %s",
                tenant.username or tenant.id, subscription,
            )
            trace.transition(WebhookState.REVOKED, reason="revocation")
            return WebhookResult(status_code=204)

        if message_type == MessageType.NOTIFICATION.value:
            return await self._handle_notification_message(trace, tenant, message_id, raw_body)

        logger.info("Unhandled message type %r for tenant %s", message_type, tenant.id)
        trace.transition(WebhookState.NOTIFYING, reason=f"unhandled_message_type:{message_type}")
        return WebhookResult(status_code=204)

    def _handle_verification(
        self, trace: WebhookMessageTrace, tenant: TenantCredentials, raw_body: bytes
    ) -> WebhookResult:
        payload = _parse_json(raw_body)
        challenge = payload.get("challenge") if isinstance(payload, dict) else None
        if not isinstance(challenge, str) or not challenge:
            logger.warning("Verification message without challenge for tenant %s", tenant.id)
            trace.transition(WebhookState.REJECTED, reason="missing_challenge")
            return WebhookResult(status_code=400, body={"error": "Missing challenge"})

        logger.info("Webhook verification for tenant %s", tenant.username or tenant.id)
        trace.transition(WebhookState.CHALLENGE, reason="verification")
        return WebhookResult(status_code=200, body=challenge)

    async def _handle_notification_message(
        self,
        trace: WebhookMessageTrace,
        tenant: TenantCredentials,
        message_id: str,
        raw_body: bytes,
    ) -> WebhookResult:
        payload = _parse_json(raw_body)
        subscription = payload.get("subscription") if isinstance(payload, dict) else None
        subscription_type = subscription.get("type") if isinstance(subscription, dict) else None
        trace.transition(WebhookState.NOTIFYING, reason=subscription_type or "malformed")

        if not subscription_type:
            logger.warning("Malformed notification for tenant %s (message %s)", tenant.id, message_id)
            return WebhookResult(status_code=204)

        if not self.idempotency.reserve(tenant.id, message_id):
            logger.info("Duplicate delivery of message %s for tenant %s; skipping", message_id, tenant.id)
            return WebhookResult(status_code=204, duplicate=True)

        try:
            event = await self.handle_notification(tenant, subscription_type, payload.get("event") or {})
        except Exception:
            self.idempotency.release(tenant.id, message_id)
            raise
        self.idempotency.complete(tenant.id, message_id)
        return WebhookResult(status_code=204, event=event)

    async def handle_notification(
        self,
        tenant: TenantCredentials,
        subscription_type: str,
        raw_event: dict[str, Any],
    ) -> CanonicalEvent | None:
        """Normalize and forward one notification; buffer it only if forwarding succeeded."""
        event = self.normalizer.normalize(subscription_type, raw_event)
        if event is None:
            logger.info("Unhandled event type: %s", subscription_type)
            return None

        logger.info("Received %s event for tenant %s", subscription_type, tenant.username or tenant.id)
        try:
            await self.forwarder.forward(tenant, event)
        except ForwardingFailure as exc:
            logger.error("Failed to forward event to sink: %s", exc.to_dict())
            return None

        self.buffer.append(tenant.id, event)
        logger.debug("Event %s stored for dashboard (%s)", event.id, event.event_type.value)
        return event


def _parse_json(raw_body: bytes) -> Any:
    try:
        return json.loads(raw_body)
    except ValueError:
        return None

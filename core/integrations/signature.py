"""
EventSub webhook signature verification.

Twitch signs every webhook with HMAC-SHA256 over
``message_id + timestamp + raw_body`` keyed by the subscription secret and
sends it as ``sha256=<hex>``. Verification must run on the exact request
bytes: a parsed and re-serialized body can differ byte-for-byte from what
was signed.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable
import hashlib
import hmac
import logging
import re
import time

from core.integrations.errors import SignatureInvalid

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
DEFAULT_REPLAY_WINDOW_SECONDS = 600.0

_RFC3339 = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|z|[+-]\d{2}:\d{2})?$"
)


def compute_signature(secret: str, message_id: str, timestamp: str, raw_body: bytes) -> str:
    """Return the ``sha256=``-prefixed HMAC for a message."""
    mac = hmac.new(secret.encode("utf-8"), digestmod=hashlib.sha256)
    mac.update(message_id.encode("utf-8"))
    mac.update(timestamp.encode("utf-8"))
    mac.update(raw_body)
    return SIGNATURE_PREFIX + mac.hexdigest()


def parse_timestamp(value: str) -> float | None:
    """Parse an RFC 3339 timestamp (nanosecond fractions allowed) to epoch seconds."""
    match = _RFC3339.match(value.strip())
    if not match:
        return None
    frac = (match.group("frac") or "")[:6]
    tz = match.group("tz")
    iso = match.group("base").replace(" ", "T")
    if frac:
        iso += "." + frac.ljust(6, "0")
    if tz and tz not in ("Z", "z"):
        iso += tz
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class SignatureVerifier:
    """Validates webhook authenticity and the replay window."""

    def __init__(
        self,
        replay_window_seconds: float = DEFAULT_REPLAY_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.replay_window_seconds = replay_window_seconds
        self.clock = clock

    def verify(
        self,
        secret: str,
        message_id: str | None,
        timestamp: str | None,
        signature: str | None,
        raw_body: bytes,
    ) -> bool:
        """True only if headers are present, fresh, and the HMAC matches."""
        if not message_id or not timestamp or not signature:
            logger.warning("Missing signature headers")
            return False

        sent_at = parse_timestamp(timestamp)
        if sent_at is None:
            logger.warning("Unparseable message timestamp: %r", timestamp)
            return False

        # Symmetric: stale and future-dated messages are both rejected
        if abs(self.clock() - sent_at) > self.replay_window_seconds:
            logger.warning("Message timestamp outside replay window: %s", timestamp)
            return False

        expected = compute_signature(secret, message_id, timestamp, raw_body)
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))

    def require(
        self,
        secret: str,
        message_id: str | None,
        timestamp: str | None,
        signature: str | None,
        raw_body: bytes,
    ) -> None:
        """Like verify(), but raises SignatureInvalid on failure."""
        if not self.verify(secret, message_id, timestamp, signature, raw_body):
            raise SignatureInvalid(f"Invalid signature for message {message_id or '-'}")

"""
Webhook Idempotency Store — Suppress Duplicate Deliveries.

The platform redelivers a notification (same message id) when it does not
see a timely acknowledgment. Each (tenant, message id) pair is reserved
once; repeats inside the retention window are recognized and skipped.
Retention covers both sides of the replay window, since a message can be
accepted up to one window early and one window late.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable
import threading
import time


class IdempotencyStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class IdempotencyRecord:
    """Record of one processed webhook message."""
    tenant_id: str
    message_id: str
    status: IdempotencyStatus = IdempotencyStatus.IN_PROGRESS
    created_at: float = field(default_factory=time.time)
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class IdempotencyStore:
    """In-memory idempotency store keyed by tenant + message id."""

    CLEANUP_EVERY = 256

    def __init__(self, ttl_seconds: float = 1200.0, clock: Callable[[], float] = time.time):
        self._records: dict[tuple[str, str], IdempotencyRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._reservations = 0
        self.ttl_seconds = ttl_seconds

    def check(self, tenant_id: str, message_id: str) -> IdempotencyRecord | None:
        """Return the live record for a message, or None."""
        with self._lock:
            return self._live_record((tenant_id, message_id), self._clock())

    def reserve(self, tenant_id: str, message_id: str) -> bool:
        """Mark a message as in progress. False if it was already seen."""
        now = self._clock()
        key = (tenant_id, message_id)
        with self._lock:
            if self._live_record(key, now) is not None:
                return False
            self._records[key] = IdempotencyRecord(
                tenant_id=tenant_id,
                message_id=message_id,
                created_at=now,
                expires_at=now + self.ttl_seconds,
            )
            self._reservations += 1
            if self._reservations % self.CLEANUP_EVERY == 0:
                self._purge(now)
        return True

    def complete(self, tenant_id: str, message_id: str) -> bool:
        with self._lock:
            record = self._records.get((tenant_id, message_id))
            if not record:
                return False
            record.status = IdempotencyStatus.COMPLETED
            return True

    def release(self, tenant_id: str, message_id: str) -> bool:
        """Forget a reservation so a redelivery is processed again."""
        with self._lock:
            return self._records.pop((tenant_id, message_id), None) is not None

    def cleanup_expired(self) -> int:
        """Remove all expired records. Returns count removed."""
        with self._lock:
            return self._purge(self._clock())

    def __len__(self) -> int:
        return len(self._records)

    def _live_record(self, key: tuple[str, str], now: float) -> IdempotencyRecord | None:
        record = self._records.get(key)
        if record is None:
            return None
        if record.is_expired(now):
            del self._records[key]
            return None
        return record

    def _purge(self, now: float) -> int:
        expired = [k for k, v in self._records.items() if v.is_expired(now)]
        for k in expired:
            del self._records[k]
        return len(expired)

"""
Live Event Buffer & Broadcaster.

Per-tenant, newest-first ring buffer of recent canonical events plus
fan-out to live listeners (dashboard push streams).

- Buffers and listener sets are created lazily on first append/subscribe
  and never torn down.
- append() inserts at the head, evicts from the tail past capacity, and
  pushes the event to every listener registered at call time. The whole
  operation runs under the tenant's lock, so concurrent appends for one
  tenant never interleave truncation or listener iteration.
- Delivery is at-most-once per connected listener: a listener whose queue
  is full misses the event, a listener that is not connected never sees it.
"""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import asyncio
import logging
import numbers
import threading
import uuid

from core.integrations.normalizer import CanonicalEvent, EventType

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


@dataclass(eq=False)
class ListenerHandle:
    """A registered live listener. Events arrive on ``queue``."""
    tenant_id: str
    queue: asyncio.Queue
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dropped: int = 0


@dataclass
class EventStats:
    """Aggregate view over a tenant's buffer."""
    total_events: int = 0
    event_types: dict[str, int] = field(default_factory=dict)
    total_value: int = 0
    recent_events: list[CanonicalEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "eventTypes": self.event_types,
            "totalValue": self.total_value,
            "recentEvents": [e.to_dict() for e in self.recent_events],
        }


class LiveEventBuffer:
    """Process-wide registry of per-tenant event buffers and listeners."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        listener_queue_size: int = 100,
        subscription_value: int = 5,
        recent_count: int = 10,
    ):
        self.capacity = capacity
        self.listener_queue_size = listener_queue_size
        self.subscription_value = subscription_value
        self.recent_count = recent_count

        self._buffers: dict[str, deque[CanonicalEvent]] = {}
        self._listeners: dict[str, dict[str, ListenerHandle]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = self._locks[tenant_id] = threading.Lock()
                self._buffers[tenant_id] = deque(maxlen=self.capacity)
                self._listeners[tenant_id] = {}
            return lock

    # --- Buffer ---

    def append(self, tenant_id: str, event: CanonicalEvent) -> int:
        """Insert at head, truncate to capacity, push to listeners. Returns listeners reached."""
        with self._lock_for(tenant_id):
            self._buffers[tenant_id].appendleft(event)

            delivered = 0
            for handle in list(self._listeners[tenant_id].values()):
                try:
                    handle.queue.put_nowait(event)
                    delivered += 1
                except asyncio.QueueFull:
                    handle.dropped += 1
                    logger.warning(
                        "Listener %s for tenant %s is full; dropped event %s",
                        handle.id, tenant_id, event.id,
                    )
            return delivered

    def snapshot(self, tenant_id: str) -> list[CanonicalEvent]:
        """Current buffer, newest first. Does not mutate."""
        with self._lock_for(tenant_id):
            return list(self._buffers[tenant_id])

    def stats(self, tenant_id: str) -> EventStats:
        events = self.snapshot(tenant_id)

        event_types: dict[str, int] = {}
        total_value = 0
        for event in events:
            key = event.event_type.value
            event_types[key] = event_types.get(key, 0) + 1
            total_value += self._event_value(event)

        return EventStats(
            total_events=len(events),
            event_types=event_types,
            total_value=total_value,
            recent_events=events[: self.recent_count],
        )

    def _event_value(self, event: CanonicalEvent) -> int:
        if event.event_type == EventType.CHEER:
            bits = event.data.get("bits")
            return int(bits) if isinstance(bits, numbers.Number) else 0
        if event.event_type in (EventType.SUBSCRIBE, EventType.GIFT_SUBSCRIPTION):
            return self.subscription_value
        return 0

    # --- Listeners ---

    def subscribe(self, tenant_id: str) -> ListenerHandle:
        handle = ListenerHandle(
            tenant_id=tenant_id,
            queue=asyncio.Queue(maxsize=self.listener_queue_size),
        )
        with self._lock_for(tenant_id):
            self._listeners[tenant_id][handle.id] = handle
        logger.info("Live listener %s connected for tenant %s", handle.id, tenant_id)
        return handle

    def unsubscribe(self, handle: ListenerHandle) -> bool:
        """Deregister a listener. Safe to call more than once."""
        with self._lock_for(handle.tenant_id):
            removed = self._listeners[handle.tenant_id].pop(handle.id, None) is not None
        if removed:
            logger.info("Live listener %s disconnected for tenant %s", handle.id, handle.tenant_id)
        return removed

    def listener_count(self, tenant_id: str) -> int:
        with self._lock_for(tenant_id):
            return len(self._listeners[tenant_id])

"""
EventSub Event Normalizer — Platform → Canonical Event Mapping.

Maps Twitch EventSub notification payloads to the canonical event shape
forwarded to game servers and shown on the live dashboard. Each supported
subscription type has a SchemaMapping with a fixed event type tag and a
fixed, type-specific data shape; unsupported types normalize to None.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import itertools
import time


class EventType(str, Enum):
    """Canonical event types understood by downstream sinks."""
    SUBSCRIBE = "subscribe"
    GIFT_SUBSCRIPTION = "gift_subscription"
    CHEER = "cheer"
    RAID = "raid"
    FOLLOW = "follow"


# ---------------------------------------------------------------------------
# Canonical event
# ---------------------------------------------------------------------------

_sequence = itertools.count()


def new_event_id(now: float | None = None) -> str:
    """Millisecond timestamp + process-wide sequence; sorts in generation order."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{millis:013d}{next(_sequence) % 1_000_000:06d}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class CanonicalEvent:
    """Normalized, platform-agnostic representation of a notification."""
    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_event_id)
    timestamp: str = field(default_factory=_utc_now_iso)
    display_name: str = ""

    def __post_init__(self):
        if not self.display_name:
            self.display_name = (
                self.data.get("userName")
                or self.data.get("fromBroadcasterName")
                or "Anonymous"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type.value,
            "timestamp": self.timestamp,
            "data": self.data,
            "displayName": self.display_name,
        }

    def sink_payload(self) -> dict[str, Any]:
        """Body forwarded to the downstream sink."""
        return {"eventType": self.event_type.value, "data": self.data}


# ---------------------------------------------------------------------------
# Field mapping
# ---------------------------------------------------------------------------

@dataclass
class FieldMapping:
    """Maps a platform payload field to a canonical data field."""
    source_field: str       # Dot-notation path, e.g. "user_name"
    target_field: str       # Canonical field name, e.g. "userName"
    default: Any = None     # Default if source is missing


@dataclass
class SchemaMapping:
    """Complete mapping for one EventSub subscription type."""
    subscription_type: str  # e.g. "channel.cheer"
    event_type: EventType
    mappings: list[FieldMapping] = field(default_factory=list)


# ---------------------------------------------------------------------------
# EventNormalizer
# ---------------------------------------------------------------------------

class EventNormalizer:
    """Normalizes EventSub payloads to CanonicalEvents using registered mappings."""

    def __init__(self, mappings: list[SchemaMapping] | None = None):
        self._mappings: dict[str, SchemaMapping] = {}
        for mapping in DEFAULT_MAPPINGS if mappings is None else mappings:
            self.register_mapping(mapping)

    def register_mapping(self, mapping: SchemaMapping) -> None:
        self._mappings[mapping.subscription_type] = mapping

    def supports(self, subscription_type: str) -> bool:
        return subscription_type in self._mappings

    @property
    def subscription_types(self) -> list[str]:
        return list(self._mappings)

    def normalize(self, subscription_type: str, raw_event: dict[str, Any]) -> CanonicalEvent | None:
        """Map a raw notification event. Returns None for unsupported types."""
        mapping = self._mappings.get(subscription_type)
        if not mapping:
            return None

        data: dict[str, Any] = {}
        for fm in mapping.mappings:
            value = self._get_nested(raw_event or {}, fm.source_field)
            data[fm.target_field] = fm.default if value is None else value

        return CanonicalEvent(event_type=mapping.event_type, data=data)

    @staticmethod
    def _get_nested(data: dict[str, Any], path: str) -> Any:
        """Access nested dict values via dot notation."""
        current: Any = data
        for part in path.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None
        return current


# ---------------------------------------------------------------------------
# Twitch EventSub mappings
# ---------------------------------------------------------------------------

SUBSCRIBE_MAPPING = SchemaMapping(
    subscription_type="channel.subscribe",
    event_type=EventType.SUBSCRIBE,
    mappings=[
        FieldMapping("user_name", "userName"),
        FieldMapping("user_id", "userId"),
        FieldMapping("tier", "tier"),
        FieldMapping("is_gift", "isGift"),
    ],
)

GIFT_SUBSCRIPTION_MAPPING = SchemaMapping(
    subscription_type="channel.subscription.gift",
    event_type=EventType.GIFT_SUBSCRIPTION,
    mappings=[
        FieldMapping("user_name", "userName"),
        FieldMapping("user_id", "userId"),
        FieldMapping("total", "total"),
        FieldMapping("tier", "tier"),
        FieldMapping("cumulative_total", "cumulativeTotal"),
    ],
)

CHEER_MAPPING = SchemaMapping(
    subscription_type="channel.cheer",
    event_type=EventType.CHEER,
    mappings=[
        FieldMapping("user_name", "userName"),
        FieldMapping("user_id", "userId"),
        FieldMapping("bits", "bits"),
        FieldMapping("message", "message"),
    ],
)

RAID_MAPPING = SchemaMapping(
    subscription_type="channel.raid",
    event_type=EventType.RAID,
    mappings=[
        FieldMapping("from_broadcaster_user_name", "fromBroadcasterName"),
        FieldMapping("from_broadcaster_user_id", "fromBroadcasterId"),
        FieldMapping("viewers", "viewers"),
    ],
)

FOLLOW_MAPPING = SchemaMapping(
    subscription_type="channel.follow",
    event_type=EventType.FOLLOW,
    mappings=[
        FieldMapping("user_name", "userName"),
        FieldMapping("user_id", "userId"),
        FieldMapping("followed_at", "followedAt"),
    ],
)

DEFAULT_MAPPINGS: list[SchemaMapping] = [
    SUBSCRIBE_MAPPING,
    GIFT_SUBSCRIPTION_MAPPING,
    CHEER_MAPPING,
    RAID_MAPPING,
    FOLLOW_MAPPING,
]

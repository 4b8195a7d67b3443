"""Test EventSub payload normalization."""
from core.integrations.normalizer import CanonicalEvent, EventNormalizer, EventType, new_event_id


def test_cheer_mapping():
    event = EventNormalizer().normalize(
        "channel.cheer",
        {"user_name": "bob", "user_id": "1", "bits": 500, "message": "hi", "is_anonymous": False},
    )
    assert event.event_type == EventType.CHEER
    assert event.data == {"userName": "bob", "userId": "1", "bits": 500, "message": "hi"}
    assert event.display_name == "bob"


def test_subscribe_and_gift_mapping():
    normalizer = EventNormalizer()
    sub = normalizer.normalize("channel.subscribe", {"user_name": "amy", "user_id": "2", "tier": "1000", "is_gift": False})
    assert sub.event_type == EventType.SUBSCRIBE
    assert sub.data == {"userName": "amy", "userId": "2", "tier": "1000", "isGift": False}

    gift = normalizer.normalize(
        "channel.subscription.gift",
        {"user_name": "gus", "user_id": "3", "total": 5, "tier": "1000", "cumulative_total": 20},
    )
    assert gift.event_type == EventType.GIFT_SUBSCRIPTION
    assert gift.data["total"] == 5
    assert gift.data["cumulativeTotal"] == 20


def test_raid_uses_broadcaster_name():
    event = EventNormalizer().normalize(
        "channel.raid",
        {"from_broadcaster_user_name": "raider", "from_broadcaster_user_id": "9", "viewers": 42},
    )
    assert event.data == {"fromBroadcasterName": "raider", "fromBroadcasterId": "9", "viewers": 42}
    assert event.display_name == "raider"


def test_anonymous_cheer():
    event = EventNormalizer().normalize("channel.cheer", {"user_name": None, "bits": 10, "message": ""})
    assert event.display_name == "Anonymous"
    # Every mapped key is present even when the source omits it
    assert set(event.data) == {"userName", "userId", "bits", "message"}
    assert event.data["userId"] is None


def test_unsupported_type_returns_none():
    normalizer = EventNormalizer()
    assert normalizer.normalize("channel.ban", {"user_name": "x"}) is None
    assert not normalizer.supports("channel.ban")
    assert normalizer.supports("channel.follow")
    assert len(normalizer.subscription_types) == 5


def test_event_ids_sort_in_generation_order():
    ids = [new_event_id(1_700_000_000.0) for _ in range(5)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


def test_wire_shapes():
    event = CanonicalEvent(event_type=EventType.FOLLOW, data={"userName": "fan"})
    assert event.sink_payload() == {"eventType": "follow", "data": {"userName": "fan"}}
    as_dict = event.to_dict()
    assert as_dict["eventType"] == "follow"
    assert as_dict["displayName"] == "fan"
    assert as_dict["timestamp"].endswith("Z")
    assert set(as_dict) == {"id", "eventType", "timestamp", "data", "displayName"}

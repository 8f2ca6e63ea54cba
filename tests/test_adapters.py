from datetime import datetime, timedelta, timezone

import pytest

from events.bingo.adapters import adapt_dink_event, parse_time_to_seconds
from events.bingo.enums import EventKind
from events.bingo.errors import ValidationError
from events.bingo.game_event import GameEvent

WHEN = datetime(2024, 6, 1, 12, 0, 0)


@pytest.mark.parametrize("text, seconds", [
    ("45", 45),
    ("1:05", 65),
    ("1:02:03", 3723),
    ("0:59.40", 59.4),
    ("", 0),
])
def test_parse_time_to_seconds(text, seconds):
    assert parse_time_to_seconds(text) == pytest.approx(seconds)


def test_dink_loot():
    event = adapt_dink_event({
        "type": "LOOT",
        "playerName": "Zezima",
        "extra": {"source": "Vorkath", "items": [
            {"id": 11286, "name": "Draconic visage", "quantity": 1, "priceEach": 2_500_000},
            {"id": 536, "name": "Dragon bones", "quantity": 2, "priceEach": 2_000},
        ]},
    }, osrs_account_id=10, team_id=3, timestamp=WHEN)
    assert event.kind == EventKind.LOOT
    assert event.source == "dink"
    assert event.player_name == "Zezima"
    assert event.payload["source"] == "Vorkath"
    assert [item.item_id for item in event.items] == [11286, 536]
    assert event.gp_value == 2_500_000


def test_dink_pet_speedrun_and_gamble():
    pet = adapt_dink_event({"type": "PET", "extra": {"petName": "Vorki"}}, 10, 3, WHEN)
    assert (pet.kind, pet.pet_name) == (EventKind.PET, "Vorki")

    run = adapt_dink_event({"type": "SPEEDRUN", "extra": {"questName": "Inferno", "currentTime": "1:05:00",
                                                           "personalBest": "1:01:00"}}, 10, 3, WHEN)
    assert (run.kind, run.location, run.time_seconds) == (EventKind.SPEEDRUN, "Inferno", 3900)

    best_only = adapt_dink_event({"type": "speedrun", "extra": {"questName": "Inferno",
                                                                "personalBest": "1:01:00"}}, 10, 3, WHEN)
    assert best_only.time_seconds == 3660

    gamble = adapt_dink_event({"type": "BARBARIAN_ASSAULT_GAMBLE", "extra": {"gambleCount": 250}}, 10, 3, WHEN)
    assert (gamble.kind, gamble.gamble_count) == (EventKind.BA_GAMBLE, 250)


def test_unsupported_and_malformed_dink_events():
    assert adapt_dink_event({"type": "LEVEL", "extra": {"levelledSkills": {"Slayer": 99}}}, 10, 3, WHEN) is None
    assert adapt_dink_event({}, 10, 3, WHEN) is None
    with pytest.raises(ValidationError):
        adapt_dink_event({"type": "PET", "extra": {}}, 10, 3, WHEN)
    with pytest.raises(ValidationError):
        adapt_dink_event({"type": "LOOT", "extra": {"items": [{"name": "No id", "quantity": 1}]}}, 10, 3, WHEN)


def test_content_hash_dedup_key():
    payload = {"petName": "Olmlet"}
    first = GameEvent.create(EventKind.PET, 10, 3, payload, timestamp=WHEN)
    same = GameEvent.create(EventKind.PET, 10, 3, dict(payload), timestamp=WHEN)
    later = GameEvent.create(EventKind.PET, 10, 3, payload, timestamp=WHEN + timedelta(seconds=1))
    assert first.dedup_key == same.dedup_key
    assert first.dedup_key != later.dedup_key
    assert GameEvent.create(EventKind.PET, 10, 3, payload, timestamp=WHEN, dedup_key="abc").dedup_key == "abc"


def test_aware_timestamps_become_naive_local_time():
    aware = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    event = GameEvent.create(EventKind.PET, 10, 3, {"petName": "Olmlet"}, timestamp=aware)
    assert event.timestamp.tzinfo is None
    assert event.timestamp == aware.astimezone().replace(tzinfo=None)


def test_from_dict():
    event = GameEvent.from_dict({
        "kind": "experience",
        "osrsAccountId": "10",
        "teamId": 3,
        "timestamp": "2024-06-01T12:00:00",
        "payload": {"skill": "Slayer", "gainedXp": 1500},
        "dedupKey": "xp-1",
    })
    assert event.kind == EventKind.EXPERIENCE
    assert event.osrs_account_id == 10
    assert event.timestamp == WHEN
    assert (event.skill, event.gained_xp, event.dedup_key) == ("Slayer", 1500, "xp-1")


@pytest.mark.parametrize("data, message", [
    ({"kind": "TELEPORT", "osrsAccountId": 1, "teamId": 1}, "Unknown event kind"),
    ({"kind": "PET", "teamId": 1, "payload": {"petName": "Olmlet"}}, "missing osrsAccountId"),
    ({"kind": "PET", "osrsAccountId": 1, "teamId": 1, "timestamp": "yesterday"}, "Invalid timestamp"),
    ({"kind": "SPEEDRUN", "osrsAccountId": 1, "teamId": 1, "payload": {"location": "Inferno",
                                                                       "timeSeconds": "fast"}}, "must be a number"),
    ({"kind": "LOOT", "osrsAccountId": 1, "teamId": 1, "payload": {"items": []}}, "no items"),
    ({"kind": "LOOT", "osrsAccountId": 1, "teamId": 1, "payload": {"items": [{"itemId": "abc"}]}},
     "itemId must be an integer"),
    ({"kind": "LOOT", "osrsAccountId": 1, "teamId": 1, "payload": {"items": ["whip"]}}, "must be an object"),
    ({"kind": "LOOT", "osrsAccountId": 1, "teamId": 1, "payload": {"items": "whip"}}, "must be a list"),
    ({"kind": "CHAT", "osrsAccountId": 1, "teamId": 1, "payload": {"messageType": "GAMEMESSAGE"}}, "missing message"),
    ({"kind": "CHAT", "osrsAccountId": 1, "teamId": 1, "payload": {"message": "hi"}}, "missing messageType"),
])
def test_from_dict_rejects_bad_events(data, message):
    with pytest.raises(ValidationError, match=message):
        GameEvent.from_dict(data)


@pytest.mark.parametrize("text", ["abc", "1:xx", "::"])
def test_parse_time_rejects_garbage(text):
    with pytest.raises(ValidationError, match="Invalid time"):
        parse_time_to_seconds(text)


@pytest.mark.parametrize("payload", [
    {"type": "SPEEDRUN", "extra": {"questName": "Inferno", "currentTime": "abc"}},
    {"type": "LOOT", "extra": {"items": [{"id": "abc", "name": "Whip", "quantity": 1}]}},
    {"type": "LOOT", "extra": {"items": ["Abyssal whip"]}},
    {"type": "LOOT", "extra": {"items": {"id": 4151}}},
    {"type": "PET", "extra": "Olmlet"},
    ["LOOT"],
])
def test_malformed_dink_payloads_raise_validation_errors(payload):
    with pytest.raises(ValidationError):
        adapt_dink_event(payload, 10, 3, WHEN)


def test_dink_chat():
    event = adapt_dink_event({
        "type": "CHAT",
        "playerName": "Zezima",
        "extra": {"type": "GAMEMESSAGE", "message": "You have completed the Hard Clue Scroll.", "source": "Zezima"},
    }, 10, 3, WHEN)
    assert event.kind == EventKind.CHAT
    assert event.message == "You have completed the Hard Clue Scroll."
    assert event.message_type == "GAMEMESSAGE"
    assert event.payload["source"] == "Zezima"

    lower = adapt_dink_event({"type": "CHAT", "extra": {"type": "broadcast", "message": "Zezima received a drop"}},
                             10, 3, WHEN)
    assert lower.message_type == "BROADCAST"

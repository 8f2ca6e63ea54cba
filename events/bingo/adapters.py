"""Converts Dink webhook payloads into GameEvents."""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from events.bingo.enums import EventKind
from events.bingo.errors import ValidationError
from events.bingo.game_event import GameEvent

logger = logging.getLogger("bingo.adapters")


def parse_time_to_seconds(time_str: str) -> float:
    """
    Parse "h:mm:ss", "mm:ss" or "ss" (fractions allowed) into seconds.
    """
    if not time_str:
        return 0
    try:
        parts = [float(part) for part in str(time_str).strip().split(":")]
    except ValueError:
        raise ValidationError(f"Invalid time: {time_str!r}")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + part
    return int(seconds) if seconds.is_integer() else seconds


def _loot_items(extra: Dict[str, Any]):
    raw_items = extra.get("items") or []
    if not isinstance(raw_items, list):
        raise ValidationError("Dink loot items must be a list")
    items = []
    for item in raw_items:
        if not isinstance(item, dict):
            raise ValidationError(f"Dink loot item must be an object, got {item!r}")
        items.append({
            "itemId": item.get("id"),
            "itemName": item.get("name", ""),
            "quantity": item.get("quantity", 1),
            "priceEach": item.get("priceEach") or 0,
        })
    return items


def adapt_dink_event(payload: Dict[str, Any], osrs_account_id: int, team_id: int,
                     timestamp: Optional[datetime] = None) -> Optional[GameEvent]:
    """
    Build a GameEvent from a raw Dink payload.
    Returns None for event types that bingo does not track; raises ValidationError for malformed ones.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Dink payload must be an object")
    event_type = str(payload.get("type", "")).upper()
    extra = payload.get("extra") or {}
    if not isinstance(extra, dict):
        raise ValidationError("Dink extra must be an object")
    player_name = payload.get("playerName")

    if event_type == "LOOT":
        kind = EventKind.LOOT
        data = {"items": _loot_items(extra), "source": extra.get("source")}
    elif event_type == "PET":
        kind = EventKind.PET
        data = {"petName": extra.get("petName")}
    elif event_type == "SPEEDRUN":
        kind = EventKind.SPEEDRUN
        data = {
            # Dink reports speedrun locations as questName
            "location": extra.get("questName"),
            "timeSeconds": parse_time_to_seconds(extra.get("currentTime") or extra.get("personalBest") or "0"),
        }
    elif event_type == "BARBARIAN_ASSAULT_GAMBLE":
        kind = EventKind.BA_GAMBLE
        data = {"gambleCount": extra.get("gambleCount") or 1}
    elif event_type == "CHAT":
        kind = EventKind.CHAT
        data = {"message": extra.get("message"), "messageType": extra.get("type"), "source": extra.get("source")}
    else:
        logger.debug(f"Ignoring unsupported Dink event type {event_type}")
        return None

    return GameEvent.create(
        kind=kind,
        osrs_account_id=osrs_account_id,
        team_id=team_id,
        payload=data,
        timestamp=timestamp,
        player_name=player_name,
        source="dink",
    )

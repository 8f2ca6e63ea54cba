import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from events.bingo.enums import EventKind
from events.bingo.errors import ValidationError


@dataclass(frozen=True)
class LootItem:
    item_id: int
    item_name: str
    quantity: int
    price_each: int = 0

    @property
    def stack_value(self) -> int:
        return self.price_each * self.quantity


@dataclass(frozen=True)
class GameEvent:
    """
    A single gameplay event reported by one of a team's accounts.
    :var kind: Selects which requirement calculators can consume the event
    :var timestamp: When the event happened in game
    :var osrs_account_id: The account that produced the event
    :var team_id: The team the account plays for
    :var dedup_key: Event id or content hash; redeliveries with the same key are ignored
    :var payload: Normalized, kind-specific data
    """
    kind: EventKind
    timestamp: datetime
    osrs_account_id: int
    team_id: int
    dedup_key: str
    payload: Dict[str, Any] = field(default_factory=dict, hash=False)
    player_name: Optional[str] = None
    source: str = "plugin"

    @property
    def items(self) -> List[LootItem]:
        return [
            LootItem(
                item_id=item["itemId"],
                item_name=item.get("itemName", ""),
                quantity=item["quantity"],
                price_each=item.get("priceEach", 0),
            )
            for item in self.payload.get("items", [])
        ]

    @property
    def gp_value(self) -> int:
        """Value of the best single stack in a loot event; stacks are never summed."""
        if self.payload.get("gpValue") is not None:
            return int(self.payload["gpValue"])
        return max((item.stack_value for item in self.items), default=0)

    @property
    def pet_name(self) -> Optional[str]:
        return self.payload.get("petName")

    @property
    def location(self) -> Optional[str]:
        return self.payload.get("location")

    @property
    def time_seconds(self) -> Optional[float]:
        return self.payload.get("timeSeconds")

    @property
    def skill(self) -> Optional[str]:
        return self.payload.get("skill")

    @property
    def gained_xp(self) -> int:
        return self.payload.get("gainedXp", 0)

    @property
    def gamble_count(self) -> int:
        return self.payload.get("gambleCount", 1)

    @property
    def message(self) -> Optional[str]:
        return self.payload.get("message")

    @property
    def message_type(self) -> Optional[str]:
        return self.payload.get("messageType")

    @staticmethod
    def content_hash(kind: EventKind, osrs_account_id: int, team_id: int, timestamp: datetime, payload: Dict[str, Any]) -> str:
        body = json.dumps(
            {
                "kind": kind.value,
                "account": osrs_account_id,
                "team": team_id,
                "timestamp": timestamp.isoformat(),
                "payload": payload,
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(body.encode("utf-8")).hexdigest()

    @classmethod
    def create(
        cls,
        kind: EventKind,
        osrs_account_id: int,
        team_id: int,
        payload: Dict[str, Any],
        timestamp: Optional[datetime] = None,
        dedup_key: Optional[str] = None,
        player_name: Optional[str] = None,
        source: str = "plugin",
    ) -> "GameEvent":
        """Validate the payload for its kind and build the event, hashing its content when no key is given."""
        timestamp = timestamp or datetime.now()
        if timestamp.tzinfo is not None:
            # Stored timestamps are naive local time
            timestamp = timestamp.astimezone().replace(tzinfo=None)
        normalized = normalize_payload(kind, payload)
        if not dedup_key:
            dedup_key = cls.content_hash(kind, osrs_account_id, team_id, timestamp, normalized)
        return cls(
            kind=kind,
            timestamp=timestamp,
            osrs_account_id=osrs_account_id,
            team_id=team_id,
            dedup_key=dedup_key,
            payload=normalized,
            player_name=player_name,
            source=source,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameEvent":
        """Build an event from its inbound JSON representation."""
        if not isinstance(data, dict):
            raise ValidationError("Event must be an object")
        try:
            kind = EventKind(str(data.get("kind", "")).upper())
        except ValueError:
            raise ValidationError(f"Unknown event kind: {data.get('kind')}")
        for key in ("osrsAccountId", "teamId"):
            if data.get(key) is None:
                raise ValidationError(f"Event is missing {key}")
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            try:
                timestamp = datetime.fromisoformat(timestamp)
            except ValueError:
                raise ValidationError(f"Invalid timestamp: {timestamp}")
        try:
            account_id = int(data["osrsAccountId"])
            team_id = int(data["teamId"])
        except (TypeError, ValueError):
            raise ValidationError("osrsAccountId and teamId must be integers")
        return cls.create(
            kind=kind,
            osrs_account_id=account_id,
            team_id=team_id,
            payload=data.get("payload") or {},
            timestamp=timestamp,
            dedup_key=data.get("dedupKey"),
            player_name=data.get("playerName"),
            source=data.get("source", "plugin"),
        )


def _number(value: Any, name: str, minimum: float = 0) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _integer(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got {value!r}")


def normalize_payload(kind: EventKind, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Check the payload of an event of the given kind and return it in canonical form."""
    if not isinstance(payload, dict):
        raise ValidationError("Event payload must be an object")

    match kind:
        case EventKind.LOOT:
            raw_items = payload.get("items") or []
            if not isinstance(raw_items, (list, tuple)):
                raise ValidationError("Loot items must be a list")
            items = []
            for raw in raw_items:
                if not isinstance(raw, dict):
                    raise ValidationError(f"Loot item must be an object, got {raw!r}")
                item_id = raw.get("itemId", raw.get("id"))
                if item_id is None:
                    raise ValidationError("Loot item is missing itemId")
                items.append({
                    "itemId": _integer(item_id, "itemId"),
                    "itemName": raw.get("itemName", raw.get("name", "")),
                    "quantity": int(_number(raw.get("quantity", 1), "quantity", minimum=1)),
                    "priceEach": int(_number(raw.get("priceEach", 0) or 0, "priceEach")),
                })
            if not items and payload.get("gpValue") is None:
                raise ValidationError("Loot event has no items")
            normalized = {"items": items}
            if payload.get("gpValue") is not None:
                normalized["gpValue"] = int(_number(payload["gpValue"], "gpValue"))
            if payload.get("source"):
                normalized["source"] = payload["source"]
            return normalized
        case EventKind.PET:
            if not payload.get("petName"):
                raise ValidationError("Pet event is missing petName")
            return {"petName": str(payload["petName"])}
        case EventKind.SPEEDRUN:
            if not payload.get("location"):
                raise ValidationError("Speedrun event is missing location")
            return {
                "location": str(payload["location"]),
                "timeSeconds": _number(payload.get("timeSeconds"), "timeSeconds"),
            }
        case EventKind.EXPERIENCE:
            if not payload.get("skill"):
                raise ValidationError("Experience event is missing skill")
            return {
                "skill": str(payload["skill"]),
                "gainedXp": int(_number(payload.get("gainedXp", 0), "gainedXp", minimum=float("-inf"))),
            }
        case EventKind.BA_GAMBLE:
            return {"gambleCount": int(_number(payload.get("gambleCount", 1), "gambleCount"))}
        case EventKind.CHAT:
            message = payload.get("message")
            if not message or not isinstance(message, str):
                raise ValidationError("Chat event is missing message")
            message_type = payload.get("messageType")
            if not message_type:
                raise ValidationError("Chat event is missing messageType")
            normalized = {"message": message, "messageType": str(message_type).upper()}
            if payload.get("source"):
                normalized["source"] = str(payload["source"])
            return normalized

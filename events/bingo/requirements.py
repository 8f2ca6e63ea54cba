"""
Requirement model for bingo tiles.

A tile carries a RequirementSet, which is either flat (a list of requirements
combined with ALL/ANY) or tiered (ordered thresholds over one shared metric).
Each requirement is one of a closed set of frozen dataclasses; the calculator
package dispatches on them with a single match statement.

Puzzle requirements wrap a hidden requirement. Their public projection
(``to_dict``) never contains it; only ``admin_dict`` does.
"""
from dataclasses import dataclass, field
from typing import Any, ClassVar, Collection, Dict, List, Optional, Set, Tuple, Union

from events.bingo.enums import MatchType, RequirementType
from events.bingo.errors import ValidationError


@dataclass(frozen=True)
class RequiredItem:
    item_id: int
    item_name: str
    item_amount: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"itemId": self.item_id, "itemName": self.item_name}
        if self.item_amount is not None:
            data["itemAmount"] = self.item_amount
        return data


@dataclass(frozen=True)
class ItemDropRequirement:
    items: Tuple[RequiredItem, ...]
    total_amount: Optional[int] = None
    type: ClassVar[RequirementType] = RequirementType.ITEM_DROP

    @property
    def required_total(self) -> int:
        """The total count needed; defaults to the sum of per-item amounts (at least 1)."""
        if self.total_amount is not None:
            return self.total_amount
        return max(1, sum(item.item_amount or 0 for item in self.items))

    def item_ids(self) -> List[int]:
        return [item.item_id for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type.value, "items": [item.to_dict() for item in self.items]}
        if self.total_amount is not None:
            data["totalAmount"] = self.total_amount
        return data


@dataclass(frozen=True)
class PetRequirement:
    pet_name: str
    amount: int = 1
    type: ClassVar[RequirementType] = RequirementType.PET

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "petName": self.pet_name, "amount": self.amount}


@dataclass(frozen=True)
class ValueDropRequirement:
    value: int
    type: ClassVar[RequirementType] = RequirementType.VALUE_DROP

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.value}


@dataclass(frozen=True)
class SpeedrunRequirement:
    location: str
    goal_seconds: int
    type: ClassVar[RequirementType] = RequirementType.SPEEDRUN

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "location": self.location, "goalSeconds": self.goal_seconds}


@dataclass(frozen=True)
class ExperienceRequirement:
    skill: str
    experience: int
    type: ClassVar[RequirementType] = RequirementType.EXPERIENCE

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "skill": self.skill, "experience": self.experience}


@dataclass(frozen=True)
class BaGamblesRequirement:
    amount: int
    type: ClassVar[RequirementType] = RequirementType.BA_GAMBLES

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "amount": self.amount}


# Chat message types the game itself produces; player-typed chat never counts
CHAT_MESSAGE_TYPES = ("GAMEMESSAGE", "BROADCAST", "CLAN_MESSAGE", "SPAM")


@dataclass(frozen=True)
class ChatRequirement:
    message: str
    count: int = 1
    message_types: Tuple[str, ...] = ()
    type: ClassVar[RequirementType] = RequirementType.CHAT

    def matches(self, message: Optional[str], message_type: Optional[str]) -> bool:
        """Case-insensitive substring match, limited to game-generated message types."""
        allowed = self.message_types or CHAT_MESSAGE_TYPES
        if (message_type or "").upper() not in allowed:
            return False
        return self.message.casefold() in (message or "").casefold()

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type.value, "message": self.message, "count": self.count}
        if self.message_types:
            data["messageTypes"] = list(self.message_types)
        return data


HiddenRequirement = Union[
    ItemDropRequirement,
    PetRequirement,
    ValueDropRequirement,
    SpeedrunRequirement,
    ExperienceRequirement,
    BaGamblesRequirement,
    ChatRequirement,
]


@dataclass(frozen=True)
class PuzzleRequirement:
    """
    A requirement whose real condition is hidden from players.
    :var display_name: Name shown to players
    :var display_description: Riddle or flavour text shown to players
    :var hidden_requirement: The requirement actually evaluated (admin only)
    :var reveal_on_complete: Whether the answer becomes public once solved
    """
    display_name: str
    display_description: str
    hidden_requirement: HiddenRequirement = field(repr=False)
    display_hint: Optional[str] = None
    display_icon: Optional[str] = None
    puzzle_category: Optional[str] = None
    reveal_on_complete: bool = False
    type: ClassVar[RequirementType] = RequirementType.PUZZLE

    def to_dict(self, is_solved: bool = False) -> Dict[str, Any]:
        """Public projection. The hidden requirement is only included once solved and revealable."""
        data = {
            "type": self.type.value,
            "displayName": self.display_name,
            "displayDescription": self.display_description,
            "displayHint": self.display_hint,
            "displayIcon": self.display_icon,
            "puzzleCategory": self.puzzle_category,
            "isSolved": is_solved,
        }
        if is_solved and self.reveal_on_complete:
            data["revealedAnswer"] = self.hidden_requirement.to_dict()
        return data

    def admin_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        del data["isSolved"]
        data["revealOnComplete"] = self.reveal_on_complete
        data["hiddenRequirement"] = self.hidden_requirement.to_dict()
        return data


Requirement = Union[
    ItemDropRequirement,
    PetRequirement,
    ValueDropRequirement,
    SpeedrunRequirement,
    ExperienceRequirement,
    BaGamblesRequirement,
    ChatRequirement,
    PuzzleRequirement,
]


def serialize_requirement(requirement: Requirement, admin: bool = False, is_solved: bool = False) -> Dict[str, Any]:
    """Serialize a requirement for either the public or the admin audience."""
    if isinstance(requirement, PuzzleRequirement):
        return requirement.admin_dict() if admin else requirement.to_dict(is_solved=is_solved)
    return requirement.to_dict()


@dataclass(frozen=True)
class Tier:
    tier: int
    points: int
    requirement: Requirement


@dataclass(frozen=True)
class FlatRequirementSet:
    match_type: MatchType
    requirements: Tuple[Requirement, ...]

    @property
    def total_requirements(self) -> int:
        return len(self.requirements)

    def solved_puzzles(self, metadata: Dict[str, Any]) -> Set[int]:
        """Indices of the puzzle requirements whose own progress is solved."""
        progress = (metadata or {}).get("requirementProgress", {})
        solved = set()
        for index, requirement in enumerate(self.requirements):
            if not isinstance(requirement, PuzzleRequirement):
                continue
            entry = progress.get(str(index)) or {}
            if (entry.get("progressMetadata") or {}).get("isSolved"):
                solved.add(index)
        return solved

    def to_dict(self, admin: bool = False, solved: Collection[int] = ()) -> Dict[str, Any]:
        """Serialize for players or admins. Puzzles at the indices in solved are shown as solved."""
        return {
            "matchType": self.match_type.value,
            "requirements": [
                serialize_requirement(r, admin=admin, is_solved=index in solved)
                for index, r in enumerate(self.requirements)
            ],
        }


@dataclass(frozen=True)
class TieredRequirementSet:
    tiers: Tuple[Tier, ...]

    @property
    def total_requirements(self) -> int:
        return 1

    @property
    def shared_requirement(self) -> Requirement:
        """The requirement whose metric every tier is judged on."""
        return self.tiers[0].requirement

    def get_tier(self, tier_number: int) -> Optional[Tier]:
        for tier in self.tiers:
            if tier.tier == tier_number:
                return tier
        return None

    def solved_puzzles(self, metadata: Dict[str, Any]) -> Set[int]:
        """Tier numbers reached so far; a puzzle tier is solved once its own threshold is reached."""
        return {entry["tier"] for entry in (metadata or {}).get("completedTiers", [])}

    def to_dict(self, admin: bool = False, solved: Collection[int] = ()) -> Dict[str, Any]:
        """Serialize for players or admins. Puzzle tiers listed in solved are shown as solved."""
        return {
            "tiers": [
                {
                    "tier": t.tier,
                    "points": t.points,
                    "requirement": serialize_requirement(t.requirement, admin=admin, is_solved=t.tier in solved),
                }
                for t in self.tiers
            ]
        }


RequirementSet = Union[FlatRequirementSet, TieredRequirementSet]


def _get(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _positive_int(value: Any, name: str, allow_zero: bool = False) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if number < 0 or (number == 0 and not allow_zero):
        raise ValidationError(f"{name} must be positive, got {number}")
    return number


def parse_requirement(data: Dict[str, Any], allow_puzzle: bool = True) -> Requirement:
    """Build a requirement dataclass from its stored JSON form."""
    if not isinstance(data, dict):
        raise ValidationError(f"Requirement must be an object, got {type(data).__name__}")
    raw_type = data.get("type")
    try:
        requirement_type = RequirementType(str(raw_type).upper())
    except ValueError:
        raise ValidationError(f"Unknown requirement type: {raw_type}")

    match requirement_type:
        case RequirementType.ITEM_DROP:
            raw_items = data.get("items") or []
            if not raw_items:
                raise ValidationError("ITEM_DROP requires at least one item")
            items = []
            for raw in raw_items:
                amount = _get(raw, "itemAmount", "item_amount")
                items.append(RequiredItem(
                    item_id=_positive_int(_get(raw, "itemId", "item_id"), "itemId"),
                    item_name=str(_get(raw, "itemName", "item_name", "")),
                    item_amount=_positive_int(amount, "itemAmount") if amount is not None else None,
                ))
            total = _get(data, "totalAmount", "total_amount")
            return ItemDropRequirement(
                items=tuple(items),
                total_amount=_positive_int(total, "totalAmount") if total is not None else None,
            )
        case RequirementType.PET:
            pet_name = _get(data, "petName", "pet_name")
            if not pet_name:
                raise ValidationError("PET requires petName")
            return PetRequirement(pet_name=pet_name, amount=_positive_int(data.get("amount", 1), "amount"))
        case RequirementType.VALUE_DROP:
            return ValueDropRequirement(value=_positive_int(data.get("value"), "value"))
        case RequirementType.SPEEDRUN:
            location = data.get("location")
            if not location:
                raise ValidationError("SPEEDRUN requires location")
            return SpeedrunRequirement(
                location=location,
                goal_seconds=_positive_int(_get(data, "goalSeconds", "goal_seconds"), "goalSeconds"),
            )
        case RequirementType.EXPERIENCE:
            skill = data.get("skill")
            if not skill:
                raise ValidationError("EXPERIENCE requires skill")
            return ExperienceRequirement(skill=skill, experience=_positive_int(data.get("experience"), "experience"))
        case RequirementType.BA_GAMBLES:
            return BaGamblesRequirement(amount=_positive_int(data.get("amount"), "amount"))
        case RequirementType.CHAT:
            message = data.get("message")
            if not message or not isinstance(message, str):
                raise ValidationError("CHAT requires message")
            message_types = tuple(str(t).upper() for t in _get(data, "messageTypes", "message_types") or ())
            unknown = [t for t in message_types if t not in CHAT_MESSAGE_TYPES]
            if unknown:
                raise ValidationError(f"Unsupported chat message types: {', '.join(unknown)}")
            return ChatRequirement(
                message=message,
                count=_positive_int(data.get("count", 1), "count"),
                message_types=message_types,
            )
        case RequirementType.PUZZLE:
            if not allow_puzzle:
                raise ValidationError("A puzzle cannot hide another puzzle")
            hidden = _get(data, "hiddenRequirement", "hidden_requirement")
            if hidden is None:
                raise ValidationError("PUZZLE requires hiddenRequirement")
            return PuzzleRequirement(
                display_name=str(_get(data, "displayName", "display_name", "")),
                display_description=str(_get(data, "displayDescription", "display_description", "")),
                hidden_requirement=parse_requirement(hidden, allow_puzzle=False),
                display_hint=_get(data, "displayHint", "display_hint"),
                display_icon=_get(data, "displayIcon", "display_icon"),
                puzzle_category=_get(data, "puzzleCategory", "puzzle_category"),
                reveal_on_complete=bool(_get(data, "revealOnComplete", "reveal_on_complete", False)),
            )


def parse_requirement_set(data: Dict[str, Any]) -> RequirementSet:
    """
    Parse the JSON stored on a tile into a RequirementSet.

    Accepts either ``{"tiers": [...]}`` or ``{"matchType": "all"|"any", "requirements": [...]}``.
    """
    if not isinstance(data, dict):
        raise ValidationError("Requirement set must be an object")

    raw_tiers = data.get("tiers")
    if raw_tiers:
        tiers = []
        for raw in raw_tiers:
            tiers.append(Tier(
                tier=_positive_int(raw.get("tier"), "tier"),
                points=_positive_int(raw.get("points", 0), "points", allow_zero=True),
                requirement=parse_requirement(raw.get("requirement")),
            ))
        tiers.sort(key=lambda t: t.tier)
        if len({t.tier for t in tiers}) != len(tiers):
            raise ValidationError("Tier numbers must be unique")
        if len({type(t.requirement) for t in tiers}) != 1:
            raise ValidationError("All tiers must share one requirement type")
        return TieredRequirementSet(tiers=tuple(tiers))

    raw_requirements = data.get("requirements") or []
    if not raw_requirements:
        raise ValidationError("Requirement set has neither tiers nor requirements")
    raw_match = _get(data, "matchType", "match_type", MatchType.ALL.value)
    try:
        match_type = MatchType(str(raw_match).lower())
    except ValueError:
        raise ValidationError(f"Unknown matchType: {raw_match}")
    return FlatRequirementSet(
        match_type=match_type,
        requirements=tuple(parse_requirement(r) for r in raw_requirements),
    )

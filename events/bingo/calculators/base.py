from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from events.bingo.game_event import GameEvent


@dataclass
class RequirementProgress:
    """
    Running state of a single requirement.
    :var value: The folded metric (count, xp, best time, best value); None before the first event
    :var metadata: Per-type auxiliary state such as item counts and player contributions
    """
    value: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["RequirementProgress"]:
        if not data:
            return None
        return cls(value=data.get("progressValue"), metadata=deepcopy(data.get("progressMetadata") or {}))

    def to_dict(self, is_completed: bool) -> Dict[str, Any]:
        return {
            "isCompleted": is_completed,
            "progressValue": self.value,
            "progressMetadata": self.metadata,
        }


def copy_metadata(existing: Optional[RequirementProgress]) -> Dict[str, Any]:
    return deepcopy(existing.metadata) if existing else {}


def contribution_for(metadata: Dict[str, Any], event: GameEvent) -> Dict[str, Any]:
    """Return (creating if needed) the contribution entry of the event's account."""
    contributions = metadata.setdefault("playerContributions", {})
    entry = contributions.setdefault(str(event.osrs_account_id), {"osrsAccountId": event.osrs_account_id})
    if event.player_name:
        entry["osrsNickname"] = event.player_name
    return entry


def stamp(metadata: Dict[str, Any], event: GameEvent) -> None:
    metadata["lastUpdateAt"] = event.timestamp.isoformat()

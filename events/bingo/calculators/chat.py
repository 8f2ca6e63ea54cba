from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import ChatRequirement


def fold(requirement: ChatRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    if event.kind != EventKind.CHAT:
        return None
    if not requirement.matches(event.message, event.message_type):
        return None

    metadata = copy_metadata(existing)
    count = ((existing.value or 0) if existing else 0) + 1
    metadata["currentTotalCount"] = count
    metadata["targetCount"] = requirement.count
    entry = contribution_for(metadata, event)
    entry["count"] = entry.get("count", 0) + 1
    entry.setdefault("messages", []).append({
        "message": event.message,
        "messageType": event.message_type,
        "timestamp": event.timestamp.isoformat(),
    })
    stamp(metadata, event)
    return RequirementProgress(value=count, metadata=metadata)


def is_met(requirement: ChatRequirement, progress: Optional[RequirementProgress]) -> bool:
    return progress is not None and (progress.value or 0) >= requirement.count


def target(requirement: ChatRequirement) -> int:
    return requirement.count

from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import PetRequirement


def fold(requirement: PetRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    if event.kind != EventKind.PET:
        return None
    if (event.pet_name or "").casefold() != requirement.pet_name.casefold():
        return None

    metadata = copy_metadata(existing)
    count = ((existing.value or 0) if existing else 0) + 1
    metadata["currentTotalCount"] = count
    entry = contribution_for(metadata, event)
    entry["count"] = entry.get("count", 0) + 1
    entry.setdefault("pets", []).append({"petName": event.pet_name, "timestamp": event.timestamp.isoformat()})
    stamp(metadata, event)
    return RequirementProgress(value=count, metadata=metadata)


def is_met(requirement: PetRequirement, progress: Optional[RequirementProgress]) -> bool:
    return progress is not None and (progress.value or 0) >= requirement.amount


def target(requirement: PetRequirement) -> int:
    return requirement.amount

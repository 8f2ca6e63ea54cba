from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import BaGamblesRequirement


def fold(requirement: BaGamblesRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    if event.kind != EventKind.BA_GAMBLE:
        return None

    metadata = copy_metadata(existing)
    count = event.gamble_count
    total = ((existing.value or 0) if existing else 0) + count
    metadata["currentTotalGambles"] = total
    entry = contribution_for(metadata, event)
    entry["gambleContribution"] = entry.get("gambleContribution", 0) + count
    stamp(metadata, event)
    return RequirementProgress(value=total, metadata=metadata)


def is_met(requirement: BaGamblesRequirement, progress: Optional[RequirementProgress]) -> bool:
    return progress is not None and (progress.value or 0) >= requirement.amount


def target(requirement: BaGamblesRequirement) -> int:
    return requirement.amount

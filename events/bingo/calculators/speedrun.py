from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import SpeedrunRequirement


def fold(requirement: SpeedrunRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    """Keep the fastest time recorded at the requirement's location."""
    if event.kind != EventKind.SPEEDRUN:
        return None
    if (event.location or "").casefold() != requirement.location.casefold():
        return None

    metadata = copy_metadata(existing)
    time_seconds = event.time_seconds
    best = time_seconds if existing is None or existing.value is None else min(existing.value, time_seconds)

    metadata["currentBestTimeSeconds"] = best
    metadata["goalSeconds"] = requirement.goal_seconds
    entry = contribution_for(metadata, event)
    entry["attempts"] = entry.get("attempts", 0) + 1
    previous_best = entry.get("bestTimeSeconds")
    entry["bestTimeSeconds"] = time_seconds if previous_best is None else min(previous_best, time_seconds)
    stamp(metadata, event)
    return RequirementProgress(value=best, metadata=metadata)


def is_met(requirement: SpeedrunRequirement, progress: Optional[RequirementProgress]) -> bool:
    return progress is not None and progress.value is not None and progress.value <= requirement.goal_seconds


def target(requirement: SpeedrunRequirement) -> int:
    return requirement.goal_seconds

from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import ExperienceRequirement


def fold(requirement: ExperienceRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    """Accumulate experience gained in the requirement's skill. Negative gains count as zero."""
    if event.kind != EventKind.EXPERIENCE:
        return None
    if (event.skill or "").casefold() != requirement.skill.casefold():
        return None

    metadata = copy_metadata(existing)
    gained = max(0, event.gained_xp)
    total = ((existing.value or 0) if existing else 0) + gained

    metadata["skill"] = requirement.skill
    metadata["targetXp"] = requirement.experience
    metadata["currentTotalXp"] = total
    entry = contribution_for(metadata, event)
    entry["xpContribution"] = entry.get("xpContribution", 0) + gained
    stamp(metadata, event)
    return RequirementProgress(value=total, metadata=metadata)


def is_met(requirement: ExperienceRequirement, progress: Optional[RequirementProgress]) -> bool:
    return progress is not None and (progress.value or 0) >= requirement.experience


def target(requirement: ExperienceRequirement) -> int:
    return requirement.experience

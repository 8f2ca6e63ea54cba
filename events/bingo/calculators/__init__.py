# Progress calculators package
"""
One calculator per requirement variant. Each module exposes:
- fold(requirement, event, existing): the new RequirementProgress, or None when the event does not concern the requirement
- is_met(requirement, progress): the completion predicate
- target(requirement): the threshold used in progress summaries (not on puzzles)

fold_requirement and requirement_met dispatch on the requirement type with a single match.
"""
from typing import Optional

from events.bingo.calculators import ba_gambles, chat, experience, item_drop, pet, puzzle, speedrun, value_drop
from events.bingo.calculators.base import RequirementProgress
from events.bingo.game_event import GameEvent
from events.bingo.requirements import (
    BaGamblesRequirement,
    ChatRequirement,
    ExperienceRequirement,
    ItemDropRequirement,
    PetRequirement,
    PuzzleRequirement,
    Requirement,
    SpeedrunRequirement,
    ValueDropRequirement,
)


def _module_for(requirement: Requirement):
    match requirement:
        case ItemDropRequirement():
            return item_drop
        case PetRequirement():
            return pet
        case ValueDropRequirement():
            return value_drop
        case SpeedrunRequirement():
            return speedrun
        case ExperienceRequirement():
            return experience
        case BaGamblesRequirement():
            return ba_gambles
        case ChatRequirement():
            return chat
        case PuzzleRequirement():
            return puzzle
        case _:
            raise TypeError(f"Unsupported requirement {type(requirement).__name__}")


def fold_requirement(requirement: Requirement, event: GameEvent,
                     existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    return _module_for(requirement).fold(requirement, event, existing)


def requirement_met(requirement: Requirement, progress: Optional[RequirementProgress]) -> bool:
    return _module_for(requirement).is_met(requirement, progress)


def requirement_target(requirement: Requirement) -> Optional[int]:
    if isinstance(requirement, PuzzleRequirement):
        return None
    return _module_for(requirement).target(requirement)


__all__ = [
    'RequirementProgress',
    'fold_requirement',
    'requirement_met',
    'requirement_target',
]

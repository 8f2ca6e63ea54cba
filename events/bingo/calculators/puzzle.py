"""
Puzzle requirements delegate to the calculator of their hidden requirement and
wrap the hidden state so it is stored apart from the public fields.
"""
from typing import Optional

from events.bingo.calculators.base import RequirementProgress
from events.bingo.game_event import GameEvent
from events.bingo.requirements import PuzzleRequirement


def _unwrap(progress: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    if progress is None or "hiddenProgress" not in progress.metadata:
        return None
    return RequirementProgress(value=progress.value, metadata=progress.metadata["hiddenProgress"])


def fold(requirement: PuzzleRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    # Import here to avoid circular imports
    from events.bingo.calculators import fold_requirement, requirement_met

    hidden = fold_requirement(requirement.hidden_requirement, event, _unwrap(existing))
    if hidden is None:
        return None
    was_solved = bool(existing and existing.metadata.get("isSolved"))
    solved = was_solved or requirement_met(requirement.hidden_requirement, hidden)
    metadata = {
        "hiddenRequirementType": requirement.hidden_requirement.type.value,
        "hiddenProgress": hidden.metadata,
        "isSolved": solved,
        "puzzleCategory": requirement.puzzle_category,
    }
    if solved:
        metadata["solvedAt"] = (existing.metadata.get("solvedAt") if was_solved else None) or event.timestamp.isoformat()
    return RequirementProgress(value=hidden.value, metadata=metadata)


def is_met(requirement: PuzzleRequirement, progress: Optional[RequirementProgress]) -> bool:
    from events.bingo.calculators import requirement_met

    # Judged on the hidden requirement: tiers share one progress but not one threshold
    return requirement_met(requirement.hidden_requirement, _unwrap(progress))


def public_progress(progress: Optional[RequirementProgress]) -> dict:
    """Progress of a puzzle as players may see it: only whether it is solved."""
    solved = bool(progress and progress.metadata.get("isSolved"))
    return {"isSolved": solved, "solvedAt": progress.metadata.get("solvedAt") if solved else None}

from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import ValueDropRequirement


def fold(requirement: ValueDropRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    """Keep the best single-stack value seen so far."""
    if event.kind != EventKind.LOOT:
        return None
    drop_value = event.gp_value
    if drop_value <= 0:
        return None

    metadata = copy_metadata(existing)
    current = existing.value if existing and existing.value is not None else 0
    best = max(current, drop_value)
    metadata["currentBestValue"] = best
    entry = contribution_for(metadata, event)
    entry["bestValue"] = max(entry.get("bestValue", 0), drop_value)
    if drop_value >= requirement.value:
        best_item = max(event.items, key=lambda item: item.stack_value, default=None)
        qualifying = metadata.setdefault("qualifyingDrops", [])
        qualifying.append({
            "osrsAccountId": event.osrs_account_id,
            "itemId": best_item.item_id if best_item else None,
            "itemName": best_item.item_name if best_item else None,
            "value": drop_value,
            "timestamp": event.timestamp.isoformat(),
        })
    stamp(metadata, event)
    return RequirementProgress(value=best, metadata=metadata)


def is_met(requirement: ValueDropRequirement, progress: Optional[RequirementProgress]) -> bool:
    return progress is not None and progress.value is not None and progress.value >= requirement.value


def target(requirement: ValueDropRequirement) -> int:
    return requirement.value

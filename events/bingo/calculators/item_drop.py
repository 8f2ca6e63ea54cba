from typing import Optional

from events.bingo.calculators.base import RequirementProgress, contribution_for, copy_metadata, stamp
from events.bingo.enums import EventKind
from events.bingo.game_event import GameEvent
from events.bingo.requirements import ItemDropRequirement


def fold(requirement: ItemDropRequirement, event: GameEvent,
         existing: Optional[RequirementProgress]) -> Optional[RequirementProgress]:
    """Add the quantities of every configured item found in a loot event."""
    if event.kind != EventKind.LOOT:
        return None
    wanted = set(requirement.item_ids())
    obtained = [item for item in event.items if item.item_id in wanted]
    if not obtained:
        return None

    metadata = copy_metadata(existing)
    counts = metadata.setdefault("itemCounts", {})
    for item in obtained:
        key = str(item.item_id)
        counts[key] = counts.get(key, 0) + item.quantity
    total = sum(counts.values())

    metadata["currentTotalCount"] = total
    metadata["lastItemsObtained"] = [
        {"itemId": item.item_id, "itemName": item.item_name, "quantity": item.quantity}
        for item in obtained
    ]
    entry = contribution_for(metadata, event)
    entry["totalCount"] = entry.get("totalCount", 0) + sum(item.quantity for item in obtained)
    stamp(metadata, event)
    return RequirementProgress(value=total, metadata=metadata)


def is_met(requirement: ItemDropRequirement, progress: Optional[RequirementProgress]) -> bool:
    if progress is None:
        return False
    counts = progress.metadata.get("itemCounts", {})
    for item in requirement.items:
        if item.item_amount and counts.get(str(item.item_id), 0) < item.item_amount:
            return False
    total = sum(counts.get(str(item_id), 0) for item_id in requirement.item_ids())
    return total >= requirement.required_total


def target(requirement: ItemDropRequirement) -> int:
    return requirement.required_total

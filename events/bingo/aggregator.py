"""
Progress Aggregator.

Folds a GameEvent into the stored progress of one board tile. The stored
metadata keeps one entry per requirement index under ``requirementProgress``;
tiered sets keep their shared progress at index 0 and record each qualifying
tier in the append-only ``completedTiers`` list.
"""
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from events.bingo.calculators import RequirementProgress, fold_requirement, requirement_met
from events.bingo.closure import is_closed
from events.bingo.game_event import GameEvent
from events.bingo.requirements import FlatRequirementSet, RequirementSet, TieredRequirementSet


@dataclass
class ProgressUpdate:
    progress_value: Optional[float]
    metadata: Dict[str, Any]
    is_completed: bool
    newly_completed_indices: List[int] = field(default_factory=list)
    newly_completed_tiers: List[int] = field(default_factory=list)

    @property
    def completed_tier(self) -> Optional[int]:
        return self.newly_completed_tiers[0] if self.newly_completed_tiers else None


def empty_metadata(requirement_set: RequirementSet) -> Dict[str, Any]:
    metadata = {
        "totalRequirements": requirement_set.total_requirements,
        "completedRequirementIndices": [],
        "requirementProgress": {},
    }
    if isinstance(requirement_set, TieredRequirementSet):
        metadata["completedTiers"] = []
    return metadata


def completed_tier_numbers(metadata: Dict[str, Any]) -> List[int]:
    return [entry["tier"] for entry in metadata.get("completedTiers", [])]


def requirement_progress(metadata: Dict[str, Any], index: int) -> Optional[RequirementProgress]:
    return RequirementProgress.from_dict(metadata.get("requirementProgress", {}).get(str(index)))


def apply(requirement_set: RequirementSet, event: GameEvent,
          existing: Optional[Dict[str, Any]]) -> Optional[ProgressUpdate]:
    """
    Fold an event into the tile metadata.

    Returns None when no requirement of the set is concerned by the event.
    Completed requirement indices and tiers are never removed.
    """
    metadata = deepcopy(existing) if existing else empty_metadata(requirement_set)
    metadata.setdefault("requirementProgress", {})
    metadata.setdefault("completedRequirementIndices", [])

    if isinstance(requirement_set, TieredRequirementSet):
        return _apply_tiered(requirement_set, event, metadata)
    return _apply_flat(requirement_set, event, metadata)


def _apply_flat(requirement_set: FlatRequirementSet, event: GameEvent,
                metadata: Dict[str, Any]) -> Optional[ProgressUpdate]:
    completed = metadata["completedRequirementIndices"]
    newly_completed = []
    touched = False

    for index, requirement in enumerate(requirement_set.requirements):
        previous = requirement_progress(metadata, index)
        updated = fold_requirement(requirement, event, previous)
        if updated is None:
            continue
        touched = True
        done = index in completed or requirement_met(requirement, updated)
        metadata["requirementProgress"][str(index)] = updated.to_dict(done)
        if done and index not in completed:
            completed.append(index)
            newly_completed.append(index)

    if not touched:
        return None
    completed.sort()

    if requirement_set.total_requirements == 1:
        only = requirement_progress(metadata, 0)
        progress_value = only.value if only else None
    else:
        progress_value = len(completed)

    return ProgressUpdate(
        progress_value=progress_value,
        metadata=metadata,
        is_completed=is_closed(requirement_set, metadata),
        newly_completed_indices=newly_completed,
    )


def _apply_tiered(requirement_set: TieredRequirementSet, event: GameEvent,
                  metadata: Dict[str, Any]) -> Optional[ProgressUpdate]:
    previous = requirement_progress(metadata, 0)
    updated = fold_requirement(requirement_set.shared_requirement, event, previous)
    if updated is None:
        return None

    completed_tiers = metadata.setdefault("completedTiers", [])
    already = set(completed_tier_numbers(metadata))
    newly_completed_tiers = []
    for tier in requirement_set.tiers:
        if tier.tier in already:
            continue
        if requirement_met(tier.requirement, updated):
            completed_tiers.append({
                "tier": tier.tier,
                "completedAt": event.timestamp.isoformat(),
                "completedByOsrsAccountId": event.osrs_account_id,
            })
            newly_completed_tiers.append(tier.tier)

    any_tier = len(completed_tiers) > 0
    if any_tier:
        metadata["currentTier"] = max(completed_tier_numbers(metadata))
    metadata["requirementProgress"]["0"] = updated.to_dict(any_tier)
    newly_completed = []
    if any_tier and 0 not in metadata["completedRequirementIndices"]:
        metadata["completedRequirementIndices"].append(0)
        newly_completed.append(0)

    return ProgressUpdate(
        progress_value=updated.value,
        metadata=metadata,
        is_completed=is_closed(requirement_set, metadata),
        newly_completed_indices=newly_completed,
        newly_completed_tiers=newly_completed_tiers,
    )

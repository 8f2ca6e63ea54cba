"""
Tile Closure Evaluator.

Decides whether a tile is complete from its stored progress, how many points
the evaluation awards, and which rows/columns a completion finishes.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from events.bingo.enums import LineType, MatchType, TierPolicy
from events.bingo.positions import column_letter, row_label
from events.bingo.requirements import FlatRequirementSet, RequirementSet, TieredRequirementSet


@dataclass(frozen=True)
class ClosureDecision:
    is_completed: bool
    points_awarded: int = 0
    newly_closed: bool = False


def is_closed(requirement_set: RequirementSet, metadata: Dict[str, Any]) -> bool:
    """ALL needs every requirement index, ANY needs one, tiered needs one completed tier."""
    if isinstance(requirement_set, TieredRequirementSet):
        return len(metadata.get("completedTiers", [])) > 0
    completed = set(metadata.get("completedRequirementIndices", []))
    indices = range(requirement_set.total_requirements)
    if requirement_set.match_type == MatchType.ALL:
        return all(index in completed for index in indices)
    return any(index in completed for index in indices)


def _completed_tier_points(requirement_set: TieredRequirementSet, metadata: Dict[str, Any]) -> List[int]:
    points = []
    for entry in metadata.get("completedTiers", []):
        tier = requirement_set.get_tier(entry["tier"])
        if tier is not None:
            points.append(tier.points)
    return points


def evaluate(
    requirement_set: RequirementSet,
    base_points: int,
    metadata: Dict[str, Any],
    was_completed: bool,
    newly_completed_tiers: Sequence[int] = (),
    tier_policy: TierPolicy = TierPolicy.FIRST,
) -> ClosureDecision:
    """
    Evaluate closure for a tile whose progress metadata has just been updated.

    Points are only awarded on the first false -> true transition, except that a
    tiered tile using the DELTA policy is topped up when a richer tier qualifies later.
    ``metadata["pointsAwarded"]`` records what the tile has paid out so far.
    """
    if not (was_completed or is_closed(requirement_set, metadata)):
        return ClosureDecision(is_completed=False)

    already_awarded = metadata.get("pointsAwarded", 0)

    if isinstance(requirement_set, TieredRequirementSet):
        qualified = _completed_tier_points(requirement_set, metadata)
        if tier_policy == TierPolicy.DELTA:
            points = max(0, max(qualified, default=0) - already_awarded)
        elif was_completed:
            points = 0
        else:
            first = newly_completed_tiers[0] if newly_completed_tiers else metadata["completedTiers"][0]["tier"]
            points = requirement_set.get_tier(first).points
    else:
        points = 0 if was_completed else base_points

    return ClosureDecision(is_completed=True, points_awarded=points, newly_closed=not was_completed)


def manual_points(requirement_set: RequirementSet, base_points: int) -> int:
    """Points for an admin override: the base points, or the first tier's points on tiered tiles."""
    if isinstance(requirement_set, TieredRequirementSet):
        return requirement_set.tiers[0].points
    return base_points


def row_complete(tiles: Iterable[Any], y: int) -> bool:
    row_tiles = [tile for tile in tiles if tile.position_y == y]
    return bool(row_tiles) and all(tile.is_completed for tile in row_tiles)


def column_complete(tiles: Iterable[Any], x: int) -> bool:
    column_tiles = [tile for tile in tiles if tile.position_x == x]
    return bool(column_tiles) and all(tile.is_completed for tile in column_tiles)


def completed_lines(tiles: Iterable[Any], x: int, y: int) -> List[Tuple[LineType, str]]:
    """
    Return the row and/or column through (x, y) whose tiles are all completed.
    ``tiles`` are objects exposing position_x, position_y and is_completed.
    """
    tiles = list(tiles)
    lines = []
    if row_complete(tiles, y):
        lines.append((LineType.ROW, row_label(y)))
    if column_complete(tiles, x):
        lines.append((LineType.COLUMN, column_letter(x)))
    return lines

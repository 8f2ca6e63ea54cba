"""
Effect Resolution Engine.

Applies effects and walks the grant state machine
``idle -> activated | blocked | reflected | expired`` (all terminal).

Adverse effects (target enemy or all) are resolved against each target team:
an idle reactive shield blocks the action, otherwise an idle reactive reflect
turns it back onto the source team, otherwise it lands on the target.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session as OrmSession

from db.base import Session
from events.bingo.aggregator import empty_metadata
from events.bingo.config import BingoConfig, config as default_config
from events.bingo import enums
from events.bingo.enums import (
    REFLECT,
    SHIELD,
    TILE_LOCK,
    TILE_PROGRESS_RESET,
    TILE_SWAP_SELF,
    TILE_UNLOCK,
    EffectAction,
    EffectTarget,
    EffectTrigger,
    GrantStatus,
    ResolutionResult,
)
from events.bingo.errors import ConcurrencyConflict, InvalidStateError, NotFoundError, ValidationError
from events.bingo.locks import run_with_retry, team_locks
from events.bingo.notifications import NotificationEmitter, NotificationOutbox
from events.bingo.positions import parse_position, position_label
from events.models import (
    BingoBoardModel,
    BingoBoardTile,
    BingoEffect,
    BingoEffectActivation,
    BingoEffectGrant,
    BingoTileProgress,
    EventTeamModel,
)

logger = logging.getLogger("bingo.resolution")

TILE_EFFECTS = (TILE_LOCK, TILE_UNLOCK, TILE_PROGRESS_RESET, TILE_SWAP_SELF)


@dataclass(frozen=True)
class AdverseAction:
    """An offensive effect on its way to a target team."""
    effect_id: int
    event_id: int
    source_team_id: int
    source_grant_id: Optional[int] = None
    positions: Tuple[str, ...] = ()


@dataclass
class Resolution:
    result: ResolutionResult
    target_team_id: int
    affected_team_id: Optional[int]
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.value,
            "targetTeamId": self.target_team_id,
            "affectedTeamId": self.affected_team_id,
            **self.details,
        }


@dataclass
class ActivationResult:
    grant_id: int
    status: GrantStatus
    resolutions: List[Resolution] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def result(self) -> ResolutionResult:
        """Outcome of the first resolution; non-adverse effects always activate."""
        return self.resolutions[0].result if self.resolutions else ResolutionResult.ACTIVATED


class EffectResolutionEngine:

    def __init__(self, session_factory=Session, notifier: Optional[NotificationEmitter] = None,
                 bingo_config: Optional[BingoConfig] = None):
        self.session_factory = session_factory
        self.notifier = notifier or NotificationEmitter()
        self.config = bingo_config or default_config

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def activate(self, grant_id: int, acting_team_id: int, target_team_id: Optional[int] = None,
                 target_positions: Optional[Sequence[str]] = None) -> ActivationResult:
        """
        Activate an idle manual or immediate grant held by acting_team_id.

        Raises:
            NotFoundError: the grant does not exist
            InvalidStateError: the grant is consumed, expired, reactive or not owned by the team
            ValidationError: the effect needs a target team or tile positions that were not given
        """
        with team_locks.hold(acting_team_id):
            return run_with_retry(
                lambda: self._activate_once(grant_id, acting_team_id, target_team_id, target_positions),
                f"activate grant {grant_id}",
                self.config.max_retries,
            )

    def resolve_incoming(self, action: AdverseAction, target_team_id: int) -> Resolution:
        """Resolve an adverse action against a team outside of any grant activation."""
        def _once():
            outbox = NotificationOutbox(self.notifier)
            with self.session_factory() as session:
                resolution = self.resolve_in(session, outbox, action, target_team_id, datetime.now())
                session.commit()
            outbox.flush()
            return resolution

        with team_locks.hold(target_team_id):
            return run_with_retry(_once, f"resolve effect {action.effect_id} against team {target_team_id}",
                                  self.config.max_retries)

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    def _activate_once(self, grant_id, acting_team_id, target_team_id, target_positions) -> ActivationResult:
        outbox = NotificationOutbox(self.notifier)
        now = datetime.now()
        with self.session_factory() as session:
            grant = session.get(BingoEffectGrant, grant_id, with_for_update=True)
            if grant is None:
                raise NotFoundError(f"Effect grant {grant_id} not found")
            if grant.team_id != acting_team_id:
                raise InvalidStateError(f"Effect grant {grant_id} does not belong to team {acting_team_id}")
            if grant.status != GrantStatus.IDLE:
                raise InvalidStateError(f"Effect grant {grant_id} was already {grant.status.value}")
            if grant.is_expired(now):
                raise InvalidStateError(f"Effect grant {grant_id} expired at {grant.expires_at}")
            if grant.trigger == EffectTrigger.REACTIVE:
                raise InvalidStateError(f"Effect grant {grant_id} is reactive and cannot be activated manually")

            effect = grant.effect
            positions = tuple(target_positions or ())
            if effect.effect_type in TILE_EFFECTS and not positions:
                raise ValidationError(f"Effect '{effect.name}' requires target tile positions")
            if effect.effect_type == TILE_SWAP_SELF and len(positions) != 2:
                raise ValidationError("Must specify exactly 2 tiles to swap")
            if effect.target == EffectTarget.ENEMY and target_team_id is None:
                raise ValidationError(f"Effect '{effect.name}' requires a target team")

            result = self.execute_grant(session, outbox, grant, effect, EffectAction.ACTIVATED, now,
                                        target_team_id=target_team_id, positions=positions)
            session.commit()
        outbox.flush()
        logger.info(f"Team {acting_team_id} activated grant {grant_id} ({effect.effect_type})")
        return result

    def execute_grant(self, session: OrmSession, outbox: NotificationOutbox, grant: BingoEffectGrant,
                      effect: BingoEffect, action: EffectAction, now: datetime,
                      target_team_id: Optional[int] = None, positions: Sequence[str] = ()) -> ActivationResult:
        """
        Apply a grant's effect inside the caller's transaction and mark the grant activated.
        Used for manual activation and for immediate grants at grant time.
        """
        event_id = self._event_id(session, grant.board_id)
        if not positions and effect.config:
            positions = effect.config.get("positions", [])
        positions = tuple(positions)

        if effect.is_adverse:
            if target_team_id is not None:
                self._check_opponent(session, event_id, grant.team_id, target_team_id)
                targets = [target_team_id]
            else:
                targets = self._opponents(session, event_id, grant.team_id)
            adverse = AdverseAction(
                effect_id=effect.id,
                event_id=event_id,
                source_team_id=grant.team_id,
                source_grant_id=grant.id,
                positions=positions,
            )
            resolutions = [self.resolve_in(session, outbox, adverse, target, now) for target in targets]
        else:
            details = self.apply_effect(session, effect, grant.team_id, event_id, positions)
            resolutions = [Resolution(ResolutionResult.ACTIVATED, grant.team_id, grant.team_id, details)]

        if len(resolutions) == 1:
            details = resolutions[0].to_dict()
        else:
            details = {"resolutions": [resolution.to_dict() for resolution in resolutions]}

        self.consume_grant(session, grant, GrantStatus.ACTIVATED, details, now)
        self.log_action(session, grant, action, target_team_id=target_team_id,
                        result=resolutions[0].result if len(resolutions) == 1 else None, details=details)
        if action == EffectAction.ACTIVATED:
            outbox.effect_activation(
                source_team_id=grant.team_id,
                target_team_id=target_team_id,
                effect=effect.to_dict(),
                action=action.value,
                result=details,
            )
        return ActivationResult(grant_id=grant.id, status=GrantStatus.ACTIVATED, resolutions=resolutions,
                                details=details)

    def resolve_in(self, session: OrmSession, outbox: NotificationOutbox, action: AdverseAction,
                   target_team_id: int, now: datetime) -> Resolution:
        """Shield first, then reflect, otherwise the action lands on the target."""
        effect = session.get(BingoEffect, action.effect_id)
        if effect is None:
            raise NotFoundError(f"Effect {action.effect_id} not found")

        defenses = session.scalars(
            select(BingoEffectGrant)
            .join(BingoEffect, BingoEffectGrant.effect_id == BingoEffect.id)
            .where(
                BingoEffectGrant.team_id == target_team_id,
                BingoEffectGrant.status == GrantStatus.IDLE,
                BingoEffectGrant.trigger == EffectTrigger.REACTIVE,
                BingoEffect.effect_type.in_((SHIELD, REFLECT)),
            )
            .order_by(BingoEffectGrant.created_at, BingoEffectGrant.id)
            .with_for_update()
        ).all()
        defenses = [grant for grant in defenses if not grant.is_expired(now)]
        shield = next((grant for grant in defenses if grant.effect.effect_type == SHIELD), None)
        reflect = next((grant for grant in defenses if grant.effect.effect_type == REFLECT), None)

        if shield is not None:
            details = {"message": "Effect was blocked by shield!", "blockedEffectId": effect.id,
                       "blockedGrantId": action.source_grant_id}
            self.consume_grant(session, shield, GrantStatus.BLOCKED, details, now)
            self.log_action(session, shield, EffectAction.BLOCKED, target_team_id=action.source_team_id,
                            result=ResolutionResult.BLOCKED, details=details)
            outbox.effect_activation(source_team_id=action.source_team_id, target_team_id=target_team_id,
                                     effect=effect.to_dict(), action=ResolutionResult.BLOCKED.value, result=details)
            logger.info(f"Team {target_team_id} blocked '{effect.name}' from team {action.source_team_id}")
            return Resolution(ResolutionResult.BLOCKED, target_team_id, None, details)

        if reflect is not None:
            applied = self.apply_effect(session, effect, action.source_team_id, action.event_id, action.positions)
            details = {**applied, "message": "Effect was reflected back!", "reflectedEffectId": effect.id,
                       "reflectedGrantId": action.source_grant_id}
            self.consume_grant(session, reflect, GrantStatus.REFLECTED, details, now)
            self.log_action(session, reflect, EffectAction.REFLECTED, target_team_id=action.source_team_id,
                            result=ResolutionResult.REFLECTED, details=details)
            outbox.effect_activation(source_team_id=action.source_team_id, target_team_id=target_team_id,
                                     effect=effect.to_dict(), action=ResolutionResult.REFLECTED.value, result=details)
            logger.info(f"Team {target_team_id} reflected '{effect.name}' back to team {action.source_team_id}")
            return Resolution(ResolutionResult.REFLECTED, target_team_id, action.source_team_id, details)

        details = self.apply_effect(session, effect, target_team_id, action.event_id, action.positions)
        return Resolution(ResolutionResult.ACTIVATED, target_team_id, target_team_id, details)

    # ------------------------------------------------------------------
    # Effect application
    # ------------------------------------------------------------------

    def apply_effect(self, session: OrmSession, effect: BingoEffect, team_id: int, event_id: int,
                     positions: Sequence[str] = ()) -> Dict[str, Any]:
        """Apply an effect's semantics to one team and describe what changed."""
        value = int(effect.effect_value or 0)
        match effect.effect_type:
            case enums.POINT_BONUS | enums.LINE_COMPLETION_BONUS:
                add_points(session, team_id, value)
                return {"pointsChanged": value, "message": f"+{value} points"}
            case enums.POINT_PENALTY:
                add_points(session, team_id, -value)
                return {"pointsChanged": -value, "message": f"-{value} points"}
            case enums.TILE_LOCK:
                tiles = self._tiles_at(session, team_id, event_id, positions)
                for tile in tiles:
                    tile.is_locked = True
                return {"tilesAffected": [tile.position for tile in tiles], "message": "Tile locked"}
            case enums.TILE_UNLOCK:
                tiles = self._tiles_at(session, team_id, event_id, positions)
                for tile in tiles:
                    tile.is_locked = False
                return {"tilesAffected": [tile.position for tile in tiles], "message": "Tile unlocked"}
            case enums.TILE_PROGRESS_RESET:
                tiles = self._tiles_at(session, team_id, event_id, positions)
                reset = [tile.position for tile in tiles if reset_progress(session, tile)]
                return {"tilesAffected": reset, "message": "Tile progress reset"}
            case enums.TILE_SWAP_SELF:
                return self._swap(session, team_id, event_id, positions)
            case _:
                return {"message": "Effect applied"}

    def _swap(self, session: OrmSession, team_id: int, event_id: int, positions: Sequence[str]) -> Dict[str, Any]:
        tiles = self._tiles_at(session, team_id, event_id, positions)
        if len(tiles) != 2:
            return {"tilesAffected": [], "message": "Tiles not found on board"}
        first, second = tiles
        a, b = first.get_position(), second.get_position()
        # Park the first tile off-board so the position constraint holds between flushes
        first.position_x, first.position_y = -1, -1
        session.flush()
        second.position_x, second.position_y = a
        session.flush()
        first.position_x, first.position_y = b
        session.flush()
        return {
            "tilesAffected": [position_label(*a), position_label(*b)],
            "message": f"Swapped tiles at {position_label(*a)} and {position_label(*b)}",
        }

    def _tiles_at(self, session: OrmSession, team_id: int, event_id: int,
                  positions: Sequence[str]) -> List[BingoBoardTile]:
        if not positions:
            return []
        board = session.scalars(
            select(BingoBoardModel).where(BingoBoardModel.event_id == event_id, BingoBoardModel.team_id == team_id)
        ).first()
        if board is None:
            logger.warning(f"Team {team_id} has no board in event {event_id}")
            return []
        tiles = []
        for position in positions:
            x, y = parse_position(position)
            tile = session.scalars(
                select(BingoBoardTile)
                .where(BingoBoardTile.board_id == board.id, BingoBoardTile.position_x == x,
                       BingoBoardTile.position_y == y)
                .with_for_update()
            ).first()
            if tile is not None:
                tiles.append(tile)
        return tiles

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def consume_grant(self, session: OrmSession, grant: BingoEffectGrant, status: GrantStatus,
                 details: Dict[str, Any], now: datetime) -> None:
        """Compare-and-swap an idle grant into a terminal status."""
        outcome = session.execute(
            update(BingoEffectGrant)
            .where(BingoEffectGrant.id == grant.id, BingoEffectGrant.status == GrantStatus.IDLE)
            .values(status=status, consumed_at=now, grant_metadata={**(grant.grant_metadata or {}), **details})
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            raise ConcurrencyConflict(f"Effect grant {grant.id} was consumed concurrently")
        session.refresh(grant)

    def log_action(self, session: OrmSession, grant: BingoEffectGrant, action: EffectAction,
                   target_team_id: Optional[int] = None, result: Optional[ResolutionResult] = None,
                   details: Optional[Dict[str, Any]] = None) -> BingoEffectActivation:
        entry = BingoEffectActivation(
            grant_id=grant.id,
            effect_id=grant.effect_id,
            source_team_id=grant.team_id,
            target_team_id=target_team_id,
            action=action,
            result=result.value if result else None,
            details=details or {},
        )
        session.add(entry)
        return entry

    def _event_id(self, session: OrmSession, board_id: int) -> int:
        board = session.get(BingoBoardModel, board_id)
        if board is None:
            raise NotFoundError(f"Bingo board {board_id} not found")
        return board.event_id

    def _opponents(self, session: OrmSession, event_id: int, team_id: int) -> List[int]:
        return list(session.scalars(
            select(EventTeamModel.id)
            .where(EventTeamModel.event_id == event_id, EventTeamModel.id != team_id)
            .order_by(EventTeamModel.id)
        ).all())

    def _check_opponent(self, session: OrmSession, event_id: int, team_id: int, target_team_id: int) -> None:
        if target_team_id == team_id:
            raise ValidationError("An adverse effect cannot target its own team")
        target = session.get(EventTeamModel, target_team_id)
        if target is None:
            raise NotFoundError(f"Team {target_team_id} not found")
        if target.event_id != event_id:
            raise ValidationError(f"Team {target_team_id} is not part of event {event_id}")


def add_points(session: OrmSession, team_id: int, points: int) -> None:
    """Atomically add points to a team's score."""
    if not points:
        return
    session.execute(
        update(EventTeamModel)
        .where(EventTeamModel.id == team_id)
        .values(score=EventTeamModel.score + points)
        .execution_options(synchronize_session=False)
    )


def reset_progress(session: OrmSession, board_tile: BingoBoardTile) -> bool:
    """Clear the progress of an open tile. Completed tiles are never reverted."""
    if board_tile.is_completed:
        return False
    progress = session.scalars(
        select(BingoTileProgress).where(BingoTileProgress.board_tile_id == board_tile.id).with_for_update()
    ).first()
    if progress is None:
        return False
    progress.progress_value = None
    progress.progress_metadata = empty_metadata(board_tile.tile.requirement_set)
    return True

"""
Effects Ledger.

Grants are scoped to a tile, row or column of a board and unique per
(board, line type, line identifier, effect): granting twice returns the
existing grant without side effects. Immediate grants are resolved as part
of the grant; manual and reactive grants stay idle until used.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session as OrmSession, aliased

from db.base import Session
from events.bingo.config import BingoConfig, config as default_config
from events.bingo.enums import (
    REFLECT,
    SHIELD,
    EffectAction,
    EffectSource,
    EffectTrigger,
    GrantStatus,
    LineType,
)
from events.bingo.errors import NotFoundError
from events.bingo.locks import run_with_retry, team_locks
from events.bingo.notifications import NotificationEmitter, NotificationOutbox
from events.bingo.resolution import EffectResolutionEngine
from events.models import (
    BingoBoardEffect,
    BingoBoardModel,
    BingoEffect,
    BingoEffectActivation,
    BingoEffectGrant,
    EventTeamModel,
)

logger = logging.getLogger("bingo.effects")

LINE_SOURCES = {
    LineType.TILE: EffectSource.TILE_COMPLETION,
    LineType.ROW: EffectSource.ROW_COMPLETION,
    LineType.COLUMN: EffectSource.COLUMN_COMPLETION,
}


class EffectsLedger:

    def __init__(self, session_factory=Session, notifier: Optional[NotificationEmitter] = None,
                 engine: Optional[EffectResolutionEngine] = None, bingo_config: Optional[BingoConfig] = None):
        self.session_factory = session_factory
        self.notifier = notifier or NotificationEmitter()
        self.config = bingo_config or default_config
        self.engine = engine or EffectResolutionEngine(session_factory, self.notifier, self.config)

    def grant(self, board_id: int, line_type: LineType, line_identifier: str, effect_id: int,
              source: EffectSource, board_tile_id: Optional[int] = None,
              applied_by: str = 'system') -> BingoEffectGrant:
        """Grant an effect to the team owning board_id in its own transaction."""
        with self.session_factory() as session:
            board = session.get(BingoBoardModel, board_id)
            if board is None:
                raise NotFoundError(f"Bingo board {board_id} not found")
            team_id = board.team_id

        def _once():
            outbox = NotificationOutbox(self.notifier)
            with self.session_factory() as session:
                board = session.get(BingoBoardModel, board_id)
                grant = self.grant_in(session, outbox, board, line_type, line_identifier, effect_id, source,
                                      board_tile_id=board_tile_id, applied_by=applied_by)
                session.commit()
            outbox.flush()
            return grant

        with team_locks.hold(team_id):
            return run_with_retry(_once, f"grant effect {effect_id} on board {board_id}", self.config.max_retries)

    def admin_grant(self, board_id: int, line_type: LineType, line_identifier: str, effect_id: int,
                    applied_by: str) -> BingoEffectGrant:
        """Grant an effect on behalf of an admin."""
        logger.info(f"{applied_by} granted effect {effect_id} on board {board_id} ({line_type.value} {line_identifier})")
        return self.grant(board_id, line_type, line_identifier, effect_id, EffectSource.ADMIN, applied_by=applied_by)

    def grant_in(self, session: OrmSession, outbox: NotificationOutbox, board: BingoBoardModel,
                 line_type: LineType, line_identifier: str, effect_id: int, source: EffectSource,
                 board_tile_id: Optional[int] = None, applied_by: str = 'system',
                 now: Optional[datetime] = None) -> BingoEffectGrant:
        """
        Grant an effect inside the caller's transaction.
        The caller must hold the team lock of the board's team.
        """
        existing = session.scalars(
            select(BingoEffectGrant).where(
                BingoEffectGrant.board_id == board.id,
                BingoEffectGrant.line_type == line_type,
                BingoEffectGrant.line_identifier == line_identifier,
                BingoEffectGrant.effect_id == effect_id,
            )
        ).first()
        if existing is not None:
            logger.debug(f"Effect {effect_id} already granted for board {board.id} {line_type.value} {line_identifier}")
            return existing

        effect = session.get(BingoEffect, effect_id)
        if effect is None:
            raise NotFoundError(f"Effect {effect_id} not found")

        now = now or datetime.now()
        expires_at = now + timedelta(seconds=effect.duration_seconds) if effect.duration_seconds else None
        grant = BingoEffectGrant(
            team_id=board.team_id,
            board_id=board.id,
            board_tile_id=board_tile_id,
            line_type=line_type,
            line_identifier=line_identifier,
            effect_id=effect.id,
            source=source,
            trigger=effect.trigger,
            applied_by=applied_by,
            expires_at=expires_at,
        )
        session.add(grant)
        session.flush()
        self.engine.log_action(session, grant, EffectAction.EARNED,
                               details={"source": source.value, "lineType": line_type.value,
                                        "lineIdentifier": line_identifier})

        immediate_result = None
        if effect.trigger == EffectTrigger.IMMEDIATE:
            activation = self.engine.execute_grant(session, outbox, grant, effect, EffectAction.AUTO_TRIGGERED, now)
            immediate_result = {"message": activation.details.get("message")}
            if activation.details.get("pointsChanged") and not effect.is_adverse:
                immediate_result["pointsAwarded"] = activation.details["pointsChanged"]
            immediate_result["resolution"] = activation.result.value

        outbox.effect_grant(
            team_id=board.team_id,
            effect=effect.to_dict(),
            source=source.value,
            trigger=effect.trigger.value,
            immediate_result=immediate_result,
        )
        logger.info(f"Granted '{effect.name}' to team {board.team_id} for {line_type.value} {line_identifier}")
        return grant

    def grant_for_line(self, session: OrmSession, outbox: NotificationOutbox, board: BingoBoardModel,
                       line_type: LineType, line_identifier: str, board_tile_id: Optional[int] = None,
                       now: Optional[datetime] = None) -> List[BingoEffectGrant]:
        """Grant every effect configured on the board for a completed tile, row or column."""
        configured = session.scalars(
            select(BingoBoardEffect).where(
                BingoBoardEffect.board_id == board.id,
                BingoBoardEffect.line_type == line_type,
                BingoBoardEffect.line_identifier == line_identifier,
            ).order_by(BingoBoardEffect.id)
        ).all()
        return [
            self.grant_in(session, outbox, board, line_type, line_identifier, entry.effect_id,
                          LINE_SOURCES[line_type], board_tile_id=board_tile_id, now=now)
            for entry in configured
        ]

    def expire_effects(self, now: Optional[datetime] = None) -> int:
        """Move idle grants past their expiry to the expired state. Returns how many expired."""
        now = now or datetime.now()
        with self.session_factory() as session:
            rows = session.execute(
                select(BingoEffectGrant.id, BingoEffectGrant.team_id).where(
                    BingoEffectGrant.status == GrantStatus.IDLE,
                    BingoEffectGrant.expires_at.is_not(None),
                    BingoEffectGrant.expires_at <= now,
                )
            ).all()

        by_team: Dict[int, List[int]] = {}
        for grant_id, team_id in rows:
            by_team.setdefault(team_id, []).append(grant_id)

        expired = 0
        for team_id, grant_ids in by_team.items():
            with team_locks.hold(team_id):
                expired += run_with_retry(
                    lambda: self._expire_once(grant_ids, now),
                    f"expire effects of team {team_id}",
                    self.config.max_retries,
                )
        if expired:
            logger.info(f"Expired {expired} effect grants")
        return expired

    def _expire_once(self, grant_ids: List[int], now: datetime) -> int:
        count = 0
        with self.session_factory() as session:
            grants = session.scalars(
                select(BingoEffectGrant)
                .where(BingoEffectGrant.id.in_(grant_ids), BingoEffectGrant.status == GrantStatus.IDLE)
                .with_for_update()
            ).all()
            for grant in grants:
                details = {"expiredAt": now.isoformat()}
                self.engine.consume_grant(session, grant, GrantStatus.EXPIRED, details, now)
                self.engine.log_action(session, grant, EffectAction.EXPIRED, details=details)
                count += 1
            session.commit()
        return count

    def get_team_effect_state(self, team_id: int, now: Optional[datetime] = None) -> Dict[str, List[Dict[str, Any]]]:
        """
        Usable and recently consumed effects of a team.

        Returns:
            available: idle manual grants
            reactive: idle reactive grants
            activeDefense: the reactive grants that can block or reflect
            recentlyUsed: the last ten consumed grants
        """
        now = now or datetime.now()
        with self.session_factory() as session:
            idle = session.scalars(
                select(BingoEffectGrant)
                .where(BingoEffectGrant.team_id == team_id, BingoEffectGrant.status == GrantStatus.IDLE)
                .order_by(BingoEffectGrant.created_at, BingoEffectGrant.id)
            ).all()
            idle = [grant for grant in idle if not grant.is_expired(now)]
            used = session.scalars(
                select(BingoEffectGrant)
                .where(BingoEffectGrant.team_id == team_id, BingoEffectGrant.status != GrantStatus.IDLE)
                .order_by(BingoEffectGrant.consumed_at.desc(), BingoEffectGrant.id.desc())
                .limit(10)
            ).all()

            def with_effect(grant: BingoEffectGrant) -> Dict[str, Any]:
                return {**grant.to_dict(), "effect": grant.effect.to_dict()}

            reactive = [grant for grant in idle if grant.trigger == EffectTrigger.REACTIVE]
            return {
                "available": [with_effect(grant) for grant in idle if grant.trigger == EffectTrigger.MANUAL],
                "reactive": [with_effect(grant) for grant in reactive],
                "activeDefense": [with_effect(grant) for grant in reactive
                                  if grant.effect.effect_type in (SHIELD, REFLECT)],
                "recentlyUsed": [with_effect(grant) for grant in used],
            }

    def get_effect_history(self, event_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Activation log of an event, newest first, with effect and team names."""
        source_team = aliased(EventTeamModel)
        target_team = aliased(EventTeamModel)
        with self.session_factory() as session:
            rows = session.execute(
                select(BingoEffectActivation, BingoEffect.name, source_team.name, target_team.name)
                .join(BingoEffect, BingoEffectActivation.effect_id == BingoEffect.id)
                .join(source_team, BingoEffectActivation.source_team_id == source_team.id)
                .outerjoin(target_team, BingoEffectActivation.target_team_id == target_team.id)
                .where(source_team.event_id == event_id)
                .order_by(BingoEffectActivation.created_at.desc(), BingoEffectActivation.id.desc())
                .limit(limit)
            ).all()
            return [
                {**entry.to_dict(), "effectName": effect_name, "sourceTeamName": source_name,
                 "targetTeamName": target_name}
                for entry, effect_name, source_name, target_name in rows
            ]

"""
Tile Progress Service.

Entry point for gameplay events. For every open tile of the team's board
that the event concerns, the update runs as one transaction under the tile's
keyed lock, a row lock and the progress version check. Completed tiles then
trigger the tile/row/column cascade under the team lock, and notifications
are released once everything is committed.
"""
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session as OrmSession

from db.base import Session
from events.bingo import aggregator, closure
from events.bingo.config import BingoConfig, config as default_config
from events.bingo.dedup import EventDedupCache
from events.bingo.effects import EffectsLedger
from events.bingo.enums import CompletionType, LineType
from events.bingo.errors import InvalidStateError, NotFoundError, ProcessingFailed, ValidationError
from events.bingo.game_event import GameEvent
from events.bingo.locks import run_with_retry, team_locks, tile_locks
from events.bingo.notifications import NotificationEmitter, NotificationOutbox, summarize_progress
from events.bingo.requirements import RequirementSet, TieredRequirementSet
from events.bingo.resolution import add_points
from events.models import (
    BingoBoardModel,
    BingoBoardTile,
    BingoLineCompletion,
    BingoProcessedEvent,
    BingoTileProgress,
    EventTeamModel,
)
from utils.redis import RedisClient

logger = logging.getLogger("bingo.tile_progress")

PROCESSED = "processed"
DUPLICATE = "duplicate"
DROPPED = "dropped"


@dataclass
class TileOutcome:
    board_tile_id: int
    position: str
    progress_value: Optional[float] = None
    is_completed: bool = False
    newly_completed: bool = False
    points_awarded: int = 0
    newly_completed_tiers: List[int] = field(default_factory=list)
    skipped: bool = False
    duplicate: bool = False


@dataclass
class ProcessingResult:
    dedup_key: str
    status: str
    tiles: List[TileOutcome] = field(default_factory=list)
    lines: List[Tuple[LineType, str]] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def completed_tiles(self) -> List[TileOutcome]:
        return [tile for tile in self.tiles if tile.newly_completed]


def _is_open(requirement_set: RequirementSet, progress: Optional[BingoTileProgress]) -> bool:
    """A tile accepts events until it is completed; tiered tiles until every tier is reached."""
    if progress is None or not progress.is_completed:
        return True
    if isinstance(requirement_set, TieredRequirementSet):
        reached = aggregator.completed_tier_numbers(progress.progress_metadata or {})
        return len(reached) < len(requirement_set.tiers)
    return False


class TileProgressService:

    def __init__(self, session_factory=Session, notifier: Optional[NotificationEmitter] = None,
                 dedup_cache: Optional[EventDedupCache] = None, bingo_config: Optional[BingoConfig] = None,
                 ledger: Optional[EffectsLedger] = None):
        self.session_factory = session_factory
        self.notifier = notifier or NotificationEmitter()
        self.config = bingo_config or default_config
        if dedup_cache is None:
            redis_client = RedisClient() if self.config.use_redis else None
            dedup_cache = EventDedupCache(ttl=self.config.dedup_ttl, redis_client=redis_client)
        self.dedup_cache = dedup_cache
        self.ledger = ledger or EffectsLedger(session_factory, self.notifier, bingo_config=self.config)

    def handle_event(self, event: GameEvent) -> ProcessingResult:
        """
        Process an event on behalf of a transport.
        Invalid or unmatched events are logged and dropped; ProcessingFailed is re-raised
        so the event can be redelivered.
        """
        try:
            return self.process_event(event)
        except (ValidationError, NotFoundError) as e:
            logger.warning(f"Dropped {event.kind.value} event {event.dedup_key} for team {event.team_id}: {e}")
            return ProcessingResult(dedup_key=event.dedup_key, status=DROPPED, reason=str(e))
        except ProcessingFailed as e:
            logger.error(f"Failed to process event {event.dedup_key} after {e.attempts} attempts\n"
                         f"{traceback.format_exc()}")
            raise

    def process_event(self, event: GameEvent) -> ProcessingResult:
        """
        Fold an event into every open tile of the team's board that it concerns.

        Raises:
            NotFoundError: the team or its board does not exist
            ValidationError: the event window is closed or no open requirement matches the event
            ProcessingFailed: a tile kept conflicting past the retry budget
        """
        if self.dedup_cache.seen(event.dedup_key):
            logger.debug(f"Event {event.dedup_key} already processed, skipping")
            return ProcessingResult(dedup_key=event.dedup_key, status=DUPLICATE)

        board_id, candidates = self._match_tiles(event)

        outbox = NotificationOutbox(self.notifier)
        outcomes = []
        for board_tile_id in candidates:
            with tile_locks.hold(board_tile_id):
                outcomes.append(run_with_retry(
                    lambda: self._apply_to_tile(event, board_tile_id, outbox),
                    f"apply event {event.dedup_key} to board tile {board_tile_id}",
                    self.config.max_retries,
                ))

        completed = [outcome for outcome in outcomes if outcome.newly_completed]
        # A redelivered event re-runs the cascade for tiles it already completed
        cascade = [o.board_tile_id for o in outcomes if o.newly_completed or (o.duplicate and o.is_completed)]
        lines = []
        if cascade:
            lines = self._run_cascade(event.team_id, board_id, cascade, outbox)

        outbox.flush()
        applied = [outcome for outcome in outcomes if not outcome.skipped]
        if not applied and not any(outcome.duplicate for outcome in outcomes):
            # Every matched tile closed or locked before the update ran
            logger.info(f"Event {event.dedup_key} for team {event.team_id} found no open tile")
            return ProcessingResult(dedup_key=event.dedup_key, status=DROPPED, tiles=outcomes, lines=lines,
                                    reason="Matched tiles were closed or locked")
        self.dedup_cache.remember(event.dedup_key)
        status = PROCESSED if applied else DUPLICATE
        logger.info(f"Processed {event.kind.value} event {event.dedup_key} for team {event.team_id}: "
                    f"{len(applied)} tile(s) updated, {len(completed)} completed, {len(lines)} line(s) completed")
        return ProcessingResult(dedup_key=event.dedup_key, status=status, tiles=outcomes, lines=lines)

    def _match_tiles(self, event: GameEvent) -> Tuple[int, List[int]]:
        with self.session_factory() as session:
            team = session.get(EventTeamModel, event.team_id)
            if team is None:
                raise NotFoundError(f"Team {event.team_id} not found")
            if not team.event.is_active(event.timestamp):
                raise ValidationError(f"Event {team.event_id} is not accepting progress")
            board = session.scalars(
                select(BingoBoardModel).where(BingoBoardModel.event_id == team.event_id,
                                              BingoBoardModel.team_id == team.id)
            ).first()
            if board is None:
                raise NotFoundError(f"Team {team.id} has no bingo board in event {team.event_id}")

            processed = set(session.scalars(
                select(BingoProcessedEvent.board_tile_id).where(BingoProcessedEvent.dedup_key == event.dedup_key)
            ).all())
            candidates = []
            for board_tile in sorted(board.tiles, key=lambda t: t.id):
                if board_tile.id in processed:
                    candidates.append(board_tile.id)
                    continue
                if board_tile.is_locked:
                    continue
                requirement_set = board_tile.tile.requirement_set
                progress = board_tile.progress
                if not _is_open(requirement_set, progress):
                    continue
                existing = progress.progress_metadata if progress else None
                if aggregator.apply(requirement_set, event, existing) is not None:
                    candidates.append(board_tile.id)

            if not candidates:
                raise ValidationError(f"No open requirement on board {board.id} matches the {event.kind.value} event")
            return board.id, candidates

    def _apply_to_tile(self, event: GameEvent, board_tile_id: int, outbox: NotificationOutbox) -> TileOutcome:
        attempt_outbox = NotificationOutbox(outbox.emitter)
        with self.session_factory() as session:
            board_tile = session.get(BingoBoardTile, board_tile_id, with_for_update=True)
            if board_tile is None:
                raise NotFoundError(f"Board tile {board_tile_id} not found")
            outcome = TileOutcome(board_tile_id=board_tile.id, position=board_tile.position, skipped=True,
                                  is_completed=board_tile.is_completed)

            already = session.scalars(
                select(BingoProcessedEvent).where(BingoProcessedEvent.dedup_key == event.dedup_key,
                                                  BingoProcessedEvent.board_tile_id == board_tile.id)
            ).first()
            if already is not None:
                logger.debug(f"Event {event.dedup_key} was already applied to board tile {board_tile.id}")
                outcome.duplicate = True
                return outcome
            if board_tile.is_locked:
                logger.info(f"Board tile {board_tile.position} is locked, ignoring event {event.dedup_key}")
                return outcome

            progress = self._progress_for(session, board_tile)
            tile = board_tile.tile
            requirement_set = tile.requirement_set
            if not _is_open(requirement_set, progress):
                return outcome
            update = aggregator.apply(requirement_set, event, progress.progress_metadata)
            if update is None:
                return outcome

            was_completed = progress.is_completed
            decision = closure.evaluate(
                requirement_set,
                tile.points,
                update.metadata,
                was_completed,
                update.newly_completed_tiers,
                tile.effective_tier_policy(self.config.default_tier_policy),
            )
            metadata = update.metadata
            if decision.points_awarded:
                metadata["pointsAwarded"] = metadata.get("pointsAwarded", 0) + decision.points_awarded

            progress.progress_value = update.progress_value
            progress.progress_metadata = metadata
            if decision.newly_closed:
                progress.completion_type = CompletionType.AUTO
                progress.completed_at = event.timestamp
                progress.completed_by_osrs_account_id = event.osrs_account_id
                board_tile.mark_completed(event.timestamp)
            add_points(session, event.team_id, decision.points_awarded)
            session.add(BingoProcessedEvent(dedup_key=event.dedup_key, board_tile_id=board_tile.id))

            if not was_completed or update.newly_completed_tiers:
                attempt_outbox.tile_progress(
                    team_id=event.team_id,
                    tile_id=board_tile.id,
                    position=board_tile.position,
                    progress_summary=summarize_progress(requirement_set, metadata, update.progress_value),
                    is_completed=decision.newly_closed,
                    newly_completed_tiers=update.newly_completed_tiers or None,
                    points_awarded=decision.points_awarded or None,
                )
            session.commit()
        outbox.absorb(attempt_outbox)

        if decision.newly_closed:
            logger.info(f"Board tile {outcome.position} completed by account {event.osrs_account_id} "
                        f"(+{decision.points_awarded} points)")
        outcome.skipped = False
        outcome.progress_value = update.progress_value
        outcome.is_completed = decision.is_completed
        outcome.newly_completed = decision.newly_closed
        outcome.points_awarded = decision.points_awarded
        outcome.newly_completed_tiers = update.newly_completed_tiers
        return outcome

    def _progress_for(self, session: OrmSession, board_tile: BingoBoardTile) -> BingoTileProgress:
        progress = session.scalars(
            select(BingoTileProgress).where(BingoTileProgress.board_tile_id == board_tile.id).with_for_update()
        ).first()
        if progress is None:
            progress = BingoTileProgress(
                board_tile_id=board_tile.id,
                progress_metadata=aggregator.empty_metadata(board_tile.tile.requirement_set),
            )
            session.add(progress)
        return progress

    def complete_tile_manually(self, board_tile_id: int, admin: str) -> TileOutcome:
        """
        Force-complete a board tile as an admin. Awards the tile's base points
        (the first tier's points on tiered tiles) and runs the line cascade.

        Raises:
            NotFoundError: the board tile does not exist
            InvalidStateError: the tile is already completed
        """
        outbox = NotificationOutbox(self.notifier)
        with tile_locks.hold(board_tile_id):
            outcome, team_id, board_id = run_with_retry(
                lambda: self._complete_manually_once(board_tile_id, admin, outbox),
                f"manually complete board tile {board_tile_id}",
                self.config.max_retries,
            )
        self._run_cascade(team_id, board_id, [board_tile_id], outbox)
        outbox.flush()
        logger.info(f"{admin} manually completed board tile {outcome.position} (+{outcome.points_awarded} points)")
        return outcome

    def _complete_manually_once(self, board_tile_id: int, admin: str, outbox: NotificationOutbox):
        attempt_outbox = NotificationOutbox(outbox.emitter)
        now = datetime.now()
        with self.session_factory() as session:
            board_tile = session.get(BingoBoardTile, board_tile_id, with_for_update=True)
            if board_tile is None:
                raise NotFoundError(f"Board tile {board_tile_id} not found")
            progress = self._progress_for(session, board_tile)
            if board_tile.is_completed or progress.is_completed:
                raise InvalidStateError(f"Board tile {board_tile.position} is already completed")

            tile = board_tile.tile
            requirement_set = tile.requirement_set
            points = closure.manual_points(requirement_set, tile.points)
            metadata = dict(progress.progress_metadata or aggregator.empty_metadata(requirement_set))
            metadata["pointsAwarded"] = metadata.get("pointsAwarded", 0) + points
            metadata["completedManuallyBy"] = admin

            progress.progress_metadata = metadata
            progress.completion_type = CompletionType.MANUAL_ADMIN
            progress.completed_at = now
            progress.completed_by_osrs_account_id = None
            board_tile.mark_completed(now)
            team_id = board_tile.board.team_id
            board_id = board_tile.board_id
            add_points(session, team_id, points)

            attempt_outbox.tile_progress(
                team_id=team_id,
                tile_id=board_tile.id,
                position=board_tile.position,
                progress_summary="Completed by an admin",
                is_completed=True,
                points_awarded=points or None,
            )
            session.commit()
        outbox.absorb(attempt_outbox)

        outcome = TileOutcome(board_tile_id=board_tile_id, position=board_tile.position,
                              progress_value=progress.progress_value, is_completed=True, newly_completed=True,
                              points_awarded=points)
        return outcome, team_id, board_id

    def _run_cascade(self, team_id: int, board_id: int, board_tile_ids: List[int],
                     outbox: NotificationOutbox) -> List[Tuple[LineType, str]]:
        with team_locks.hold(team_id):
            return run_with_retry(
                lambda: self._cascade_once(board_id, board_tile_ids, outbox),
                f"line check on board {board_id}",
                self.config.max_retries,
            )

    def _cascade_once(self, board_id: int, board_tile_ids: List[int],
                      outbox: NotificationOutbox) -> List[Tuple[LineType, str]]:
        """
        Grant tile effects and record completed rows/columns from committed tile state.
        Notifications are staged on a local outbox so a retried attempt never duplicates them.
        """
        attempt_outbox = NotificationOutbox(outbox.emitter)
        now = datetime.now()
        completed_lines = []
        with self.session_factory() as session:
            board = session.get(BingoBoardModel, board_id)
            if board is None:
                raise NotFoundError(f"Bingo board {board_id} not found")
            tiles = session.scalars(select(BingoBoardTile).where(BingoBoardTile.board_id == board_id)).all()
            by_id = {tile.id: tile for tile in tiles}

            for board_tile_id in board_tile_ids:
                board_tile = by_id.get(board_tile_id)
                if board_tile is None or not board_tile.is_completed:
                    continue
                self.ledger.grant_for_line(session, attempt_outbox, board, LineType.TILE, board_tile.position,
                                           board_tile_id=board_tile.id, now=now)
                for line_type, identifier in closure.completed_lines(tiles, board_tile.position_x,
                                                                     board_tile.position_y):
                    if (line_type, identifier) in completed_lines:
                        continue
                    recorded = session.scalars(
                        select(BingoLineCompletion).where(
                            BingoLineCompletion.board_id == board_id,
                            BingoLineCompletion.line_type == line_type,
                            BingoLineCompletion.line_identifier == identifier,
                        )
                    ).first()
                    if recorded is not None:
                        continue
                    session.add(BingoLineCompletion(board_id=board_id, line_type=line_type,
                                                    line_identifier=identifier, completed_at=now))
                    session.flush()
                    completed_lines.append((line_type, identifier))
                    logger.info(f"Team {board.team_id} completed {line_type.value} {identifier} on board {board_id}")
                    self.ledger.grant_for_line(session, attempt_outbox, board, line_type, identifier, now=now)
            session.commit()

        outbox.absorb(attempt_outbox)
        return completed_lines

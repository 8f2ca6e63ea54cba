from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select

from db.base import Session
from events.bingo.adapters import adapt_dink_event
from events.bingo.aggregator import empty_metadata
from events.bingo.config import BingoConfig, config as default_config
from events.bingo.dedup import EventDedupCache
from events.bingo.effects import EffectsLedger
from events.bingo.enums import LineType
from events.bingo.errors import InvalidStateError, NotFoundError, ValidationError
from events.bingo.game_event import GameEvent
from events.bingo.notifications import DiscordWebhookEmitter, NotificationEmitter
from events.bingo.positions import column_letter, position_label, row_label
from events.bingo.resolution import ActivationResult, EffectResolutionEngine
from events.bingo.tile_progress import ProcessingResult, TileOutcome, TileProgressService
from events.models import (
    BingoBoardEffect,
    BingoBoardModel,
    BingoEffect,
    BingoEffectGrant,
    BingoTile,
    BingoTileProgress,
    EventTeamModel,
)
from utils.logger import EventLogger

logger = EventLogger('bingo')

EffectConfig = Tuple[LineType, str, int]


class BingoManager:
    """
    Entry point of the bingo engine: sets up boards and routes events,
    admin actions and effect activations to the services.
    """

    def __init__(self, session_factory=Session, notifier: Optional[NotificationEmitter] = None,
                 bingo_config: Optional[BingoConfig] = None, dedup_cache: Optional[EventDedupCache] = None):
        self.session_factory = session_factory
        self.config = bingo_config or default_config
        self.notifier = notifier or DiscordWebhookEmitter(session_factory, self.config.notify_timeout)
        self.engine = EffectResolutionEngine(session_factory, self.notifier, self.config)
        self.ledger = EffectsLedger(session_factory, self.notifier, self.engine, self.config)
        self.tile_progress = TileProgressService(session_factory, self.notifier, dedup_cache, self.config,
                                                 self.ledger)

    def initialize_board(self, event_id: int, team_id: int, tile_grid: List[List[int]],
                         effects: Optional[Iterable[EffectConfig]] = None) -> BingoBoardModel:
        """
        Create a team's board from a grid of library tile IDs, with an empty
        progress row per tile and the tile/row/column effect configuration.

        Args:
            event_id: The event the board belongs to
            team_id: The team the board belongs to
            tile_grid: Rows of BingoTile IDs
            effects: (line_type, identifier, effect_id) entries, e.g. (LineType.ROW, "1", 3)

        Raises:
            NotFoundError: the team, a tile or an effect does not exist
            ValidationError: the grid or an effect identifier is invalid
            InvalidStateError: the team already has a board in the event
        """
        with self.session_factory() as session:
            team = session.get(EventTeamModel, team_id)
            if team is None or team.event_id != event_id:
                raise NotFoundError(f"Team {team_id} not found in event {event_id}")
            existing = session.scalars(
                select(BingoBoardModel).where(BingoBoardModel.event_id == event_id, BingoBoardModel.team_id == team_id)
            ).first()
            if existing is not None:
                raise InvalidStateError(f"Team {team_id} already has board {existing.id} in event {event_id}")

            try:
                board = BingoBoardModel.create_with_tiles(event_id, team_id, tile_grid)
            except ValueError as e:
                raise ValidationError(str(e))

            tiles = {}
            for tile_id in {tile_id for row in tile_grid for tile_id in row}:
                tile = session.get(BingoTile, tile_id)
                if tile is None:
                    raise NotFoundError(f"Bingo tile {tile_id} not found")
                tiles[tile_id] = tile

            session.add(board)
            session.flush()
            for board_tile in board.tiles:
                session.add(BingoTileProgress(
                    board_tile_id=board_tile.id,
                    progress_metadata=empty_metadata(tiles[board_tile.tile_id].requirement_set),
                ))

            valid = self._line_identifiers(board)
            for line_type, identifier, effect_id in effects or []:
                line_type = LineType(line_type)
                if identifier not in valid[line_type]:
                    raise ValidationError(f"Invalid {line_type.value} identifier '{identifier}' for a "
                                          f"{board.rows}x{board.columns} board")
                if session.get(BingoEffect, effect_id) is None:
                    raise NotFoundError(f"Effect {effect_id} not found")
                session.add(BingoBoardEffect(board_id=board.id, line_type=line_type, line_identifier=identifier,
                                             effect_id=effect_id))
            session.commit()
            logger.info(f"Initialized {board.rows}x{board.columns} board {board.id} for team {team_id} "
                        f"in event {event_id}")
            return board

    @staticmethod
    def _line_identifiers(board: BingoBoardModel) -> Dict[LineType, set]:
        return {
            LineType.TILE: {position_label(x, y) for x in range(board.columns) for y in range(board.rows)},
            LineType.ROW: {row_label(y) for y in range(board.rows)},
            LineType.COLUMN: {column_letter(x) for x in range(board.columns)},
        }

    def handle_event(self, event: GameEvent) -> ProcessingResult:
        return self.tile_progress.handle_event(event)

    def handle_dink(self, payload: Dict[str, Any], osrs_account_id: int, team_id: int,
                    timestamp: Optional[datetime] = None) -> Optional[ProcessingResult]:
        """Process a raw Dink payload. Returns None for untracked Dink event types."""
        try:
            event = adapt_dink_event(payload, osrs_account_id, team_id, timestamp)
        except ValidationError as e:
            logger.warning(f"Dropped malformed Dink payload from account {osrs_account_id}: {e}")
            return None
        if event is None:
            return None
        return self.handle_event(event)

    def get_board(self, board_id: int, admin: bool = False) -> Dict[str, Any]:
        """
        Board view with tiles, progress and completed lines.
        Puzzles stay hidden unless admin is set.
        """
        with self.session_factory() as session:
            board = session.get(BingoBoardModel, board_id)
            if board is None:
                raise NotFoundError(f"Bingo board {board_id} not found")
            return board.to_dict(admin=admin)

    def complete_tile_manually(self, board_tile_id: int, admin: str) -> TileOutcome:
        return self.tile_progress.complete_tile_manually(board_tile_id, admin)

    def activate_effect(self, grant_id: int, team_id: int, target_team_id: Optional[int] = None,
                        target_positions: Optional[Sequence[str]] = None) -> ActivationResult:
        return self.engine.activate(grant_id, team_id, target_team_id, target_positions)

    def grant_effect(self, board_id: int, line_type: LineType, line_identifier: str, effect_id: int,
                     admin: str) -> BingoEffectGrant:
        return self.ledger.admin_grant(board_id, line_type, line_identifier, effect_id, admin)

    def expire_effects(self, now: Optional[datetime] = None) -> int:
        return self.ledger.expire_effects(now)

    def get_team_effect_state(self, team_id: int) -> Dict[str, List[Dict[str, Any]]]:
        return self.ledger.get_team_effect_state(team_id)

    def get_effect_history(self, event_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return self.ledger.get_effect_history(event_id, limit)

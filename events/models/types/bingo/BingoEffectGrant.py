from sqlalchemy import Integer, String, ForeignKey, DateTime, JSON, Enum, UniqueConstraint, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import Any, Dict, Optional, TYPE_CHECKING
from datetime import datetime
from db.base import Base
from events.bingo.enums import EffectSource, EffectTrigger, GrantStatus, LineType

# Import types only for type checking to avoid circular imports
if TYPE_CHECKING:
    from ...EventTeamModel import EventTeamModel
    from .BingoEffect import BingoEffect


class BingoEffectGrant(Base):
    """
    An effect granted to a team, scoped to a tile, row or column of its board.
    :var id: The ID of the grant
    :var team_id: The team holding the grant
    :var board_id: The board whose tile/line earned the grant
    :var board_tile_id: The board tile for tile-scoped grants
    :var line_type: tile, row or column
    :var line_identifier: Tile position label, row number or column letter
    :var effect_id: The granted effect
    :var source: tile_completion, row_completion, column_completion or admin
    :var trigger: Copied from the effect when granted
    :var status: idle until consumed; activated, blocked, reflected and expired are terminal
    :var applied_by: Who applied the grant ('system' or an admin identifier)
    :var expires_at: When an idle grant stops being usable
    :var grant_metadata: Outcome details recorded when the grant is consumed
    :var consumed_at: When the grant left the idle state
    """
    __tablename__ = 'bingo_effect_grants'
    __table_args__ = (
        UniqueConstraint('board_id', 'line_type', 'line_identifier', 'effect_id', name='uq_bingo_effect_grant_scope'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(Integer, ForeignKey('event_teams.id', ondelete='CASCADE'))
    board_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_boards.id'))
    board_tile_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey('bingo_board_tiles.id'), nullable=True)
    line_type: Mapped[LineType] = mapped_column(Enum(LineType))
    line_identifier: Mapped[str] = mapped_column(String(16))
    effect_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_effects.id'))
    source: Mapped[EffectSource] = mapped_column(Enum(EffectSource))
    trigger: Mapped[EffectTrigger] = mapped_column(Enum(EffectTrigger))
    status: Mapped[GrantStatus] = mapped_column(Enum(GrantStatus), default=GrantStatus.IDLE)
    applied_by: Mapped[str] = mapped_column(String(64), default='system')
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    grant_metadata: Mapped[Dict[str, Any]] = mapped_column('metadata', JSON, default=dict)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __init__(
        self,
        *,
        team_id: int,
        board_id: int,
        line_type: LineType,
        line_identifier: str,
        effect_id: int,
        source: EffectSource,
        trigger: EffectTrigger,
        board_tile_id: Optional[int] = None,
        applied_by: str = 'system',
        expires_at: Optional[datetime] = None,
        grant_metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        """
        Create a new BingoEffectGrant instance in the idle state.

        Args:
            team_id: The team receiving the effect
            board_id: The board the scope belongs to
            line_type: tile, row or column
            line_identifier: Identifier of the tile/line within the board
            effect_id: The effect being granted
            source: Why the effect was granted
            trigger: When the effect takes effect
            board_tile_id: Optional board tile for tile-scoped grants
            applied_by: Who applied the grant (default: 'system')
            expires_at: Optional expiry of the grant
            grant_metadata: Optional additional data
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        super().__init__(
            team_id=team_id,
            board_id=board_id,
            line_type=line_type,
            line_identifier=line_identifier,
            effect_id=effect_id,
            source=source,
            trigger=trigger,
            board_tile_id=board_tile_id,
            applied_by=applied_by,
            expires_at=expires_at,
            grant_metadata=grant_metadata or {},
            status=GrantStatus.IDLE,
            **kwargs
        )

    # Relationship with proper type hints
    team: Mapped["EventTeamModel"] = relationship("EventTeamModel", back_populates="effect_grants")
    effect: Mapped["BingoEffect"] = relationship("BingoEffect")

    @property
    def is_active(self) -> bool:
        return self.status == GrantStatus.IDLE

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.status == GrantStatus.EXPIRED:
            return True
        return self.expires_at is not None and (now or datetime.now()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "teamId": self.team_id,
            "boardId": self.board_id,
            "lineType": self.line_type.value,
            "lineIdentifier": self.line_identifier,
            "effectId": self.effect_id,
            "source": self.source.value,
            "trigger": self.trigger.value,
            "status": self.status.value,
            "isActive": self.is_active,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "consumedAt": self.consumed_at.isoformat() if self.consumed_at else None,
            "metadata": self.grant_metadata,
        }

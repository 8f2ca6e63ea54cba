from sqlalchemy import Integer, Boolean, ForeignKey, DateTime, JSON, UniqueConstraint, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import Any, Dict, Optional, TYPE_CHECKING
from datetime import datetime
from db.base import Base
from events.bingo.positions import position_label

# Import types only for type checking to avoid circular imports
if TYPE_CHECKING:
    from .BingoBoard import BingoBoardModel
    from .BingoTile import BingoTile
    from .BingoTileProgress import BingoTileProgress


class BingoBoardTile(Base):
    """
    Represents a single tile on a team's bingo board.
    :var id: The ID of the board tile
    :var board_id: The ID of the associated bingo board
    :var tile_id: The ID of the library tile placed here
    :var position_x: Column index on the board (0-based, shown as a letter)
    :var position_y: Row index on the board (0-based, shown as a number)
    :var is_completed: Whether the tile is complete; never reverts once set
    :var completed_at: When the tile was completed
    :var is_locked: Locked tiles ignore incoming events until unlocked
    :var meta: Free-form tile metadata (stored as the 'metadata' column)
    """
    __tablename__ = 'bingo_board_tiles'
    __table_args__ = (UniqueConstraint('board_id', 'position_x', 'position_y', name='uq_bingo_board_tile_position'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    board_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_boards.id'))
    tile_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_tiles.id'))
    position_x: Mapped[int] = mapped_column(Integer)
    position_y: Mapped[int] = mapped_column(Integer)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    meta: Mapped[Dict[str, Any]] = mapped_column('metadata', JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __init__(
        self,
        *,
        tile_id: int,
        position_x: int,
        position_y: int,
        board_id: Optional[int] = None,
        is_completed: bool = False,
        is_locked: bool = False,
        meta: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        """
        Create a new BingoBoardTile instance.

        Args:
            tile_id: The ID of the library tile
            position_x: Column index on the board
            position_y: Row index on the board
            board_id: The ID of the bingo board (set by the relationship when omitted)
            is_completed: Initial completion state (default: False)
            is_locked: Initial lock state (default: False)
            meta: Optional free-form metadata
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        super().__init__(
            board_id=board_id,
            tile_id=tile_id,
            position_x=position_x,
            position_y=position_y,
            is_completed=is_completed,
            is_locked=is_locked,
            meta=meta or {},
            **kwargs
        )

    # Relationships with proper type hints
    board: Mapped["BingoBoardModel"] = relationship("BingoBoardModel", back_populates="tiles")
    tile: Mapped["BingoTile"] = relationship("BingoTile")
    progress: Mapped[Optional["BingoTileProgress"]] = relationship("BingoTileProgress", back_populates="board_tile", uselist=False)

    def mark_completed(self, when: Optional[datetime] = None) -> None:
        """Mark this tile as completed."""
        self.is_completed = True
        self.completed_at = when or datetime.now()

    def get_position(self) -> tuple[int, int]:
        """Get the position of this tile as a tuple (x, y)."""
        return (self.position_x, self.position_y)

    @property
    def position(self) -> str:
        """The board label of this tile, e.g. "B3"."""
        return position_label(self.position_x, self.position_y)

    def to_dict(self, admin: bool = False) -> Dict[str, Any]:
        requirement_set = self.tile.requirement_set
        return {
            "id": self.id,
            "boardId": self.board_id,
            "position": self.position,
            "isCompleted": self.is_completed,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "isLocked": self.is_locked,
            "tile": self.tile.to_dict(admin=admin,
                                      progress_metadata=self.progress.progress_metadata if self.progress else None),
            "progress": self.progress.to_dict(requirement_set, admin=admin) if self.progress else None,
        }

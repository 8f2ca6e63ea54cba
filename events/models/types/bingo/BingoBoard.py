from sqlalchemy import Integer, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import TYPE_CHECKING, Any, Dict, List, Tuple
from datetime import datetime
from db.base import Base
from events.bingo.closure import column_complete, row_complete
from events.bingo.enums import LineType
from events.bingo.positions import column_letter, row_label

# Import types only for type checking to avoid circular imports
if TYPE_CHECKING:
    from ...EventModel import EventModel
    from .BingoBoardTile import BingoBoardTile
    from .BingoBoardEffect import BingoBoardEffect
    from ...EventTeamModel import EventTeamModel


class BingoBoardModel(Base):
    """
    Represents a team's bingo board in the database.
    :var id: The ID of the bingo board
    :var event_id: The ID of the associated event
    :var team_id: The ID of the team this board belongs to
    :var rows: Number of rows on the board
    :var columns: Number of columns on the board
    """
    __tablename__ = 'bingo_boards'
    __table_args__ = (UniqueConstraint('event_id', 'team_id', name='uq_bingo_board_event_team'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey('events.id'))
    team_id: Mapped[int] = mapped_column(Integer, ForeignKey('event_teams.id'))
    rows: Mapped[int] = mapped_column(Integer, default=5)
    columns: Mapped[int] = mapped_column(Integer, default=5)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    def __init__(self, *, event_id: int, team_id: int, rows: int = 5, columns: int = 5, **kwargs) -> None:
        """
        Create a new BingoBoardModel instance.

        Args:
            event_id: The ID of the event this bingo board belongs to
            team_id: The ID of the team this board belongs to
            rows: Number of rows (default: 5)
            columns: Number of columns (default: 5)
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        super().__init__(
            event_id=event_id,
            team_id=team_id,
            rows=rows,
            columns=columns,
            **kwargs
        )

    # Relationships with proper type hints
    event: Mapped["EventModel"] = relationship("EventModel", back_populates="bingo_boards")
    tiles: Mapped[List["BingoBoardTile"]] = relationship("BingoBoardTile", back_populates="board", cascade="all, delete-orphan")
    team: Mapped["EventTeamModel"] = relationship("EventTeamModel", back_populates="bingo_boards")
    effects: Mapped[List["BingoBoardEffect"]] = relationship("BingoBoardEffect", back_populates="board", cascade="all, delete-orphan")

    def check_bingo_conditions(self) -> List[Tuple[LineType, str]]:
        """Check every row and column and return the completed ones."""
        completed_conditions = []
        for row in range(self.rows):
            if row_complete(self.tiles, row):
                completed_conditions.append((LineType.ROW, row_label(row)))
        for col in range(self.columns):
            if column_complete(self.tiles, col):
                completed_conditions.append((LineType.COLUMN, column_letter(col)))
        return completed_conditions

    @classmethod
    def create_with_tiles(cls, event_id: int, team_id: int, tile_grid: List[List[int]]) -> "BingoBoardModel":
        """
        Create a new bingo board from a grid of library tile IDs.

        Args:
            event_id: The ID of the event
            team_id: The ID of the team the board belongs to
            tile_grid: Rows of BingoTile IDs; every row must have the same length

        Returns:
            BingoBoardModel: The created board with all tiles

        Raises:
            ValueError: If the grid is empty or not rectangular
        """
        if not tile_grid or not tile_grid[0]:
            raise ValueError("Bingo board requires at least one tile")
        columns = len(tile_grid[0])
        if any(len(row) != columns for row in tile_grid):
            raise ValueError("Bingo board rows must all have the same length")

        # Import here to avoid circular imports
        from .BingoBoardTile import BingoBoardTile

        board = cls(event_id=event_id, team_id=team_id, rows=len(tile_grid), columns=columns)
        for y, row in enumerate(tile_grid):
            for x, tile_id in enumerate(row):
                board.tiles.append(BingoBoardTile(tile_id=tile_id, position_x=x, position_y=y))
        return board

    def to_dict(self, admin: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "teamId": self.team_id,
            "rows": self.rows,
            "columns": self.columns,
            "tiles": [tile.to_dict(admin=admin) for tile in sorted(self.tiles, key=lambda t: (t.position_y, t.position_x))],
            "completedLines": [
                {"lineType": line_type.value, "lineIdentifier": identifier}
                for line_type, identifier in self.check_bingo_conditions()
            ],
        }

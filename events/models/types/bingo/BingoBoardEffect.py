from sqlalchemy import Integer, String, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import TYPE_CHECKING
from db.base import Base
from events.bingo.enums import LineType

if TYPE_CHECKING:
    from .BingoBoard import BingoBoardModel
    from .BingoEffect import BingoEffect


class BingoBoardEffect(Base):
    """
    Configures which effect a team earns when a tile, row or column of its board completes.
    :var board_id: The board the reward is configured on
    :var line_type: tile, row or column
    :var line_identifier: Tile position label ("B3"), row number ("3") or column letter ("B")
    :var effect_id: The effect that is granted
    """
    __tablename__ = 'bingo_board_effects'
    __table_args__ = (
        UniqueConstraint('board_id', 'line_type', 'line_identifier', 'effect_id', name='uq_bingo_board_effect'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_boards.id'))
    line_type: Mapped[LineType] = mapped_column(Enum(LineType))
    line_identifier: Mapped[str] = mapped_column(String(16))
    effect_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_effects.id'))

    board: Mapped["BingoBoardModel"] = relationship("BingoBoardModel", back_populates="effects")
    effect: Mapped["BingoEffect"] = relationship("BingoEffect")

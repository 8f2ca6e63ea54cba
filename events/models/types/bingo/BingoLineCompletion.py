from sqlalchemy import Integer, String, ForeignKey, DateTime, Enum, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from db.base import Base
from events.bingo.enums import LineType


class BingoLineCompletion(Base):
    """
    Records that a row or column of a board was completed. One row per line, ever.
    """
    __tablename__ = 'bingo_line_completions'
    __table_args__ = (
        UniqueConstraint('board_id', 'line_type', 'line_identifier', name='uq_bingo_line_completion'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_boards.id'))
    line_type: Mapped[LineType] = mapped_column(Enum(LineType))
    line_identifier: Mapped[str] = mapped_column(String(16))
    completed_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

from sqlalchemy import Integer, String, ForeignKey, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from db.base import Base


class BingoProcessedEvent(Base):
    """
    Marks a game event as applied to a board tile. Written in the same
    transaction as the tile update, so a redelivered event is never applied twice.
    """
    __tablename__ = 'bingo_processed_events'
    __table_args__ = (
        UniqueConstraint('dedup_key', 'board_tile_id', name='uq_bingo_processed_event'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dedup_key: Mapped[str] = mapped_column(String(128), index=True)
    board_tile_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_board_tiles.id'))
    processed_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

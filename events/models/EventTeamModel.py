from sqlalchemy import Integer, String, ForeignKey, DateTime, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from db.base import Base

# Import types only for type checking to avoid circular imports
if TYPE_CHECKING:
    from .EventModel import EventModel
    from .types.bingo import BingoBoardModel, BingoEffectGrant


class EventTeamModel(Base):
    """
    Represents a team in an event in the database.
    :var id: The ID of the team
    :var event_id: The ID of the event
    :var name: The name of the team
    :var score: The team's points, only changed by point awards and effect resolutions
    :var discord_webhook_url: Webhook that receives the team's bingo notifications
    :var created_at: The date and time the team was created
    :var updated_at: The date and time the team was last updated
    """
    __tablename__ = 'event_teams'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey('events.id'))
    name: Mapped[str] = mapped_column(String(255))
    score: Mapped[int] = mapped_column(Integer, default=0)
    discord_webhook_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __init__(
        self,
        *,
        event_id: int,
        name: str,
        score: int = 0,
        discord_webhook_url: Optional[str] = None,
        **kwargs
    ) -> None:
        """
        Create a new EventTeamModel instance.

        Args:
            event_id: The ID of the event this team belongs to
            name: The name of the team
            score: The team's starting points (default: 0)
            discord_webhook_url: Optional webhook for the team's notifications
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        super().__init__(
            event_id=event_id,
            name=name,
            score=score,
            discord_webhook_url=discord_webhook_url,
            **kwargs
        )

    # Relationships with proper type hints
    event: Mapped["EventModel"] = relationship("EventModel", back_populates="teams")
    bingo_boards: Mapped[List["BingoBoardModel"]] = relationship("BingoBoardModel", back_populates="team")
    effect_grants: Mapped[List["BingoEffectGrant"]] = relationship("BingoEffectGrant", back_populates="team")

from sqlalchemy import Integer, String, Text, DateTime, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from db.base import Base

# Import types only for type checking to avoid circular imports
if TYPE_CHECKING:
    from .EventTeamModel import EventTeamModel
    from .types.bingo import BingoBoardModel


class EventModel(Base):
    """
    Represents a bingo event in the database.
    :var id: The ID of the event
    :var name: The name of the event
    :var description: The description of the event
    :var status: The status of the event ('draft', 'active', 'ended')
    :var start_date: When the event starts accepting progress
    :var end_date: When the event stops accepting progress
    :var created_at: When the event was created
    :var updated_at: When the event was last updated
    """
    __tablename__ = 'events'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default='active')
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __init__(
        self,
        *,
        name: str,
        description: Optional[str] = None,
        status: str = 'active',
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        **kwargs
    ) -> None:
        """
        Create a new EventModel instance.

        Args:
            name: The name of the event
            description: Optional description of the event
            status: The status of the event (default: 'active')
            start_date: Optional start of the event window
            end_date: Optional end of the event window
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        super().__init__(
            name=name,
            description=description,
            status=status,
            start_date=start_date,
            end_date=end_date,
            **kwargs
        )

    # Relationships with proper type hints
    teams: Mapped[List["EventTeamModel"]] = relationship("EventTeamModel", back_populates="event")
    bingo_boards: Mapped[List["BingoBoardModel"]] = relationship("BingoBoardModel", back_populates="event")

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Check whether the event currently accepts progress."""
        if self.status != 'active':
            return False
        now = now or datetime.now()
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        return True

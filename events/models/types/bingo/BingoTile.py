from sqlalchemy import Integer, String, Text, DateTime, JSON, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
from typing import Any, Dict, Optional
from datetime import datetime
from db.base import Base
from events.bingo.enums import TileCategory, TileDifficulty, TierPolicy
from events.bingo.requirements import RequirementSet, parse_requirement_set


class BingoTile(Base):
    """
    A tile in the bingo tile library. Board tiles reference it once published.
    :var id: The ID of the tile
    :var task: The short task text shown on the board
    :var description: Optional longer description
    :var category: Tile category (slayer, pvm, raids, ...)
    :var difficulty: Tile difficulty (easy, medium, hard, extreme)
    :var points: Points awarded when a flat tile completes
    :var requirements: The stored RequirementSet JSON
    :var tier_policy: How later tiers are paid on tiered tiles; None uses the configured default
    """
    __tablename__ = 'bingo_tiles'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[TileCategory]] = mapped_column(Enum(TileCategory), nullable=True)
    difficulty: Mapped[Optional[TileDifficulty]] = mapped_column(Enum(TileDifficulty), nullable=True)
    points: Mapped[int] = mapped_column(Integer, default=0)
    requirements: Mapped[Dict[str, Any]] = mapped_column(JSON)
    tier_policy: Mapped[Optional[TierPolicy]] = mapped_column(Enum(TierPolicy), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __init__(
        self,
        *,
        task: str,
        requirements: Dict[str, Any],
        points: int = 0,
        description: Optional[str] = None,
        category: Optional[TileCategory] = None,
        difficulty: Optional[TileDifficulty] = None,
        tier_policy: Optional[TierPolicy] = None,
        **kwargs
    ) -> None:
        """
        Create a new BingoTile instance. The requirement JSON is validated up front.

        Args:
            task: The task text
            requirements: The RequirementSet JSON
            points: Points for completing a flat tile
            description: Optional description
            category: Optional category
            difficulty: Optional difficulty
            tier_policy: Optional tier policy override
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        parse_requirement_set(requirements)
        super().__init__(
            task=task,
            requirements=requirements,
            points=points,
            description=description,
            category=category,
            difficulty=difficulty,
            tier_policy=tier_policy,
            **kwargs
        )

    @property
    def requirement_set(self) -> RequirementSet:
        return parse_requirement_set(self.requirements)

    def effective_tier_policy(self, default: TierPolicy) -> TierPolicy:
        return self.tier_policy or default

    def to_dict(self, admin: bool = False, progress_metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Serialize the tile; hidden puzzle answers are only present for admins.
        Puzzles count as solved from their own entry in progress_metadata.
        """
        requirement_set = self.requirement_set
        return {
            "id": self.id,
            "task": self.task,
            "description": self.description,
            "category": self.category.value if self.category else None,
            "difficulty": self.difficulty.value if self.difficulty else None,
            "points": self.points,
            "requirements": requirement_set.to_dict(admin=admin, solved=requirement_set.solved_puzzles(progress_metadata)),
        }

from sqlalchemy import BigInteger, Integer, Float, ForeignKey, DateTime, JSON, Enum, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from typing import Any, Dict, Optional, TYPE_CHECKING
from datetime import datetime
from copy import deepcopy
from db.base import Base
from events.bingo.calculators.base import RequirementProgress
from events.bingo.calculators.puzzle import public_progress
from events.bingo.enums import CompletionType
from events.bingo.requirements import FlatRequirementSet, PuzzleRequirement, RequirementSet

# Import types only for type checking to avoid circular imports
if TYPE_CHECKING:
    from .BingoBoardTile import BingoBoardTile


class BingoTileProgress(Base):
    """
    Team-scoped running progress of one board tile.
    :var id: The ID of the progress row
    :var board_tile_id: The board tile this progress belongs to (one row per tile)
    :var progress_value: The folded metric of the tile
    :var progress_metadata: Per-requirement progress, completed tiers and points paid
    :var completion_type: 'auto' or 'manual_admin' once completed
    :var completed_at: When the tile was completed
    :var completed_by_osrs_account_id: Account whose event completed the tile; None for admin overrides
    :var version: Optimistic concurrency counter, bumped on every update
    """
    __tablename__ = 'bingo_tile_progress'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_tile_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_board_tiles.id'), unique=True)
    progress_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    progress_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    completion_type: Mapped[Optional[CompletionType]] = mapped_column(Enum(CompletionType), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_by_osrs_account_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    def __init__(
        self,
        *,
        board_tile_id: int,
        progress_value: Optional[float] = None,
        progress_metadata: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        """
        Create a new BingoTileProgress instance.

        Args:
            board_tile_id: The board tile this progress tracks
            progress_value: Optional starting value
            progress_metadata: Optional starting metadata
            **kwargs: Additional keyword arguments passed to SQLAlchemy
        """
        super().__init__(
            board_tile_id=board_tile_id,
            progress_value=progress_value,
            progress_metadata=progress_metadata or {},
            **kwargs
        )

    board_tile: Mapped["BingoBoardTile"] = relationship("BingoBoardTile", back_populates="progress")

    @property
    def is_completed(self) -> bool:
        return self.completion_type is not None

    def to_dict(self, requirement_set: RequirementSet, admin: bool = False) -> Dict[str, Any]:
        """
        Serialize the progress. For non-admin audiences the state of puzzle
        requirements is reduced to whether they are solved.
        """
        metadata = deepcopy(self.progress_metadata or {})
        progress_value = self.progress_value
        if not admin:
            hides_value = False
            requirements = requirement_set.requirements if isinstance(requirement_set, FlatRequirementSet) \
                else [tier.requirement for tier in requirement_set.tiers]
            for index, requirement in enumerate(requirements):
                if not isinstance(requirement, PuzzleRequirement):
                    continue
                hides_value = True
                # Tiered sets share index 0 across tiers
                key = str(index) if isinstance(requirement_set, FlatRequirementSet) else "0"
                entry = metadata.get("requirementProgress", {}).get(key)
                if entry:
                    metadata["requirementProgress"][key] = {
                        "isCompleted": entry.get("isCompleted", False),
                        "progressMetadata": public_progress(RequirementProgress.from_dict(entry)),
                    }
            if hides_value:
                progress_value = None
        return {
            "progressValue": progress_value,
            "progressMetadata": metadata,
            "completionType": self.completion_type.value if self.completion_type else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "completedByOsrsAccountId": self.completed_by_osrs_account_id,
        }

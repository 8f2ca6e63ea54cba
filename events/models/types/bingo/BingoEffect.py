from sqlalchemy import Integer, String, Text, Float, DateTime, JSON, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
from typing import Any, Dict, Optional
from datetime import datetime
from db.base import Base
from events.bingo.enums import EffectCategory, EffectKind, EffectTarget, EffectTrigger


class BingoEffect(Base):
    """
    A buff or debuff in the effect library.
    :var id: The ID of the effect
    :var name: Display name of the effect
    :var description: What the effect does
    :var kind: buff or debuff
    :var effect_type: Semantic tag interpreted by the resolution engine (point_bonus, shield, reflect, tile_lock, ...)
    :var effect_value: Magnitude of the effect (points for point effects)
    :var category: points, defense, offense, board_manipulation or passive
    :var trigger: immediate, manual or reactive
    :var target: self, enemy or all
    :var duration_seconds: Lifetime of a grant of this effect; None never expires
    :var config: Extra effect configuration
    """
    __tablename__ = 'bingo_effects'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    kind: Mapped[EffectKind] = mapped_column(Enum(EffectKind), default=EffectKind.BUFF)
    effect_type: Mapped[str] = mapped_column(String(64))
    effect_value: Mapped[float] = mapped_column(Float, default=0)
    category: Mapped[EffectCategory] = mapped_column(Enum(EffectCategory))
    trigger: Mapped[EffectTrigger] = mapped_column(Enum(EffectTrigger))
    target: Mapped[EffectTarget] = mapped_column(Enum(EffectTarget), default=EffectTarget.SELF)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    def __init__(
        self,
        *,
        name: str,
        effect_type: str,
        category: EffectCategory,
        trigger: EffectTrigger,
        kind: EffectKind = EffectKind.BUFF,
        target: EffectTarget = EffectTarget.SELF,
        effect_value: float = 0,
        description: Optional[str] = None,
        duration_seconds: Optional[int] = None,
        config: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> None:
        super().__init__(
            name=name,
            effect_type=effect_type,
            category=category,
            trigger=trigger,
            kind=kind,
            target=target,
            effect_value=effect_value,
            description=description,
            duration_seconds=duration_seconds,
            config=config or {},
            **kwargs
        )

    @property
    def is_adverse(self) -> bool:
        """Adverse effects act on other teams and can be blocked or reflected."""
        return self.target in (EffectTarget.ENEMY, EffectTarget.ALL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.kind.value,
            "effectType": self.effect_type,
            "effectValue": self.effect_value,
            "category": self.category.value,
            "trigger": self.trigger.value,
            "target": self.target.value,
        }

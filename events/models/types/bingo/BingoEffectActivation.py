from sqlalchemy import Integer, String, ForeignKey, DateTime, JSON, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
from typing import Any, Dict, Optional
from datetime import datetime
from db.base import Base
from events.bingo.enums import EffectAction


class BingoEffectActivation(Base):
    """
    Audit log of everything that happens to effect grants.
    :var grant_id: The grant acted upon
    :var effect_id: The effect of that grant
    :var source_team_id: The team that owns the grant
    :var target_team_id: The other team involved, if any
    :var action: earned, activated, auto_triggered, reflected, blocked or expired
    :var result: Resolution outcome for adverse actions (activated, blocked, reflected)
    :var details: Free-form outcome details
    """
    __tablename__ = 'bingo_effect_activations'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_effect_grants.id'))
    effect_id: Mapped[int] = mapped_column(Integer, ForeignKey('bingo_effects.id'))
    source_team_id: Mapped[int] = mapped_column(Integer, ForeignKey('event_teams.id'))
    target_team_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey('event_teams.id'), nullable=True)
    action: Mapped[EffectAction] = mapped_column(Enum(EffectAction))
    result: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "grantId": self.grant_id,
            "effectId": self.effect_id,
            "sourceTeamId": self.source_team_id,
            "targetTeamId": self.target_team_id,
            "action": self.action.value,
            "result": self.result,
            "details": self.details,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

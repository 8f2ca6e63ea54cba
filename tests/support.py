"""Factories and fakes shared by the bingo tests."""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from db.base import Session
from events.bingo.enums import (
    EffectCategory,
    EffectKind,
    EffectTarget,
    EffectTrigger,
    EventKind,
    TierPolicy,
)
from events.bingo.game_event import GameEvent
from events.bingo.notifications import NotificationEmitter
from events.manager import BingoManager
from events.models import (
    BingoBoardTile,
    BingoEffect,
    BingoEffectGrant,
    BingoTile,
    BingoTileProgress,
    EventModel,
    EventTeamModel,
)

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0)


class RecordingEmitter(NotificationEmitter):
    """Keeps every notification it receives."""

    def __init__(self):
        self.tile_progress: List[Dict[str, Any]] = []
        self.effect_grants: List[Dict[str, Any]] = []
        self.effect_activations: List[Dict[str, Any]] = []

    def notify_tile_progress(self, team_id, tile_id, position, progress_summary, is_completed,
                             newly_completed_tiers=None, points_awarded=None):
        self.tile_progress.append({
            "team_id": team_id,
            "tile_id": tile_id,
            "position": position,
            "progress_summary": progress_summary,
            "is_completed": is_completed,
            "newly_completed_tiers": newly_completed_tiers,
            "points_awarded": points_awarded,
        })

    def notify_effect_grant(self, team_id, effect, source, trigger, immediate_result=None):
        self.effect_grants.append({
            "team_id": team_id,
            "effect": effect,
            "source": source,
            "trigger": trigger,
            "immediate_result": immediate_result,
        })

    def notify_effect_activation(self, source_team_id, target_team_id, effect, action, result):
        self.effect_activations.append({
            "source_team_id": source_team_id,
            "target_team_id": target_team_id,
            "effect": effect,
            "action": action,
            "result": result,
        })

    @property
    def completions(self) -> List[Dict[str, Any]]:
        return [call for call in self.tile_progress if call["is_completed"]]


class Seeder:
    """Creates events, teams, tiles, effects and boards for a test."""

    def __init__(self, manager: BingoManager):
        self.manager = manager

    def event(self, name: str = "Summer Bingo", **kwargs) -> EventModel:
        with Session() as session:
            event = EventModel(name=name, **kwargs)
            session.add(event)
            session.commit()
            return event

    def team(self, event: EventModel, name: str, webhook: Optional[str] = None) -> EventTeamModel:
        with Session() as session:
            team = EventTeamModel(event_id=event.id, name=name, discord_webhook_url=webhook)
            session.add(team)
            session.commit()
            return team

    def tile(self, requirements: Dict[str, Any], points: int = 10, task: str = "Tile",
             tier_policy: Optional[TierPolicy] = None) -> BingoTile:
        with Session() as session:
            tile = BingoTile(task=task, requirements=requirements, points=points, tier_policy=tier_policy)
            session.add(tile)
            session.commit()
            return tile

    def effect(self, name: str, effect_type: str, trigger: EffectTrigger, value: float = 0,
               target: EffectTarget = EffectTarget.SELF, category: EffectCategory = EffectCategory.POINTS,
               kind: EffectKind = EffectKind.BUFF, duration_seconds: Optional[int] = None,
               config: Optional[Dict[str, Any]] = None) -> BingoEffect:
        with Session() as session:
            effect = BingoEffect(
                name=name,
                effect_type=effect_type,
                category=category,
                trigger=trigger,
                kind=kind,
                target=target,
                effect_value=value,
                duration_seconds=duration_seconds,
                config=config,
            )
            session.add(effect)
            session.commit()
            return effect

    def board(self, event: EventModel, team: EventTeamModel, grid: List[List[int]], effects=None):
        return self.manager.initialize_board(event.id, team.id, grid, effects)

    def filler_grid(self, rows: int, columns: int) -> List[List[int]]:
        """A grid of distinct pet tiles nobody will complete by accident."""
        return [
            [self.tile(pet_requirements(f"Pet {y}-{x}"), points=1).id for x in range(columns)]
            for y in range(rows)
        ]


def item_requirements(item_id: int = 1, name: str = "X", amount: int = 3, total: Optional[int] = 3):
    requirement = {"type": "ITEM_DROP", "items": [{"itemId": item_id, "itemName": name, "itemAmount": amount}]}
    if total is not None:
        requirement["totalAmount"] = total
    return {"matchType": "all", "requirements": [requirement]}


def pet_requirements(pet_name: str, amount: int = 1):
    return {"matchType": "all", "requirements": [{"type": "PET", "petName": pet_name, "amount": amount}]}


def loot(team_id: int, account_id: int, item_id: int, quantity: int, offset: int = 0,
         price_each: int = 0, name: str = "X") -> GameEvent:
    return GameEvent.create(
        kind=EventKind.LOOT,
        osrs_account_id=account_id,
        team_id=team_id,
        payload={"items": [{"itemId": item_id, "itemName": name, "quantity": quantity, "priceEach": price_each}]},
        timestamp=BASE_TIME + timedelta(minutes=offset),
    )


def pet(team_id: int, account_id: int, pet_name: str, offset: int = 0) -> GameEvent:
    return GameEvent.create(
        kind=EventKind.PET,
        osrs_account_id=account_id,
        team_id=team_id,
        payload={"petName": pet_name},
        timestamp=BASE_TIME + timedelta(minutes=offset),
    )


def speedrun(team_id: int, account_id: int, location: str, seconds: float, offset: int = 0) -> GameEvent:
    return GameEvent.create(
        kind=EventKind.SPEEDRUN,
        osrs_account_id=account_id,
        team_id=team_id,
        payload={"location": location, "timeSeconds": seconds},
        timestamp=BASE_TIME + timedelta(minutes=offset),
    )


def team_score(team_id: int) -> int:
    with Session() as session:
        return session.get(EventTeamModel, team_id).score


def board_tile_at(board_id: int, x: int, y: int) -> BingoBoardTile:
    with Session() as session:
        return session.scalars(
            select(BingoBoardTile).where(BingoBoardTile.board_id == board_id, BingoBoardTile.position_x == x,
                                         BingoBoardTile.position_y == y)
        ).one()


def progress_of(board_tile_id: int) -> BingoTileProgress:
    with Session() as session:
        return session.scalars(
            select(BingoTileProgress).where(BingoTileProgress.board_tile_id == board_tile_id)
        ).one()


def grants_of(team_id: int) -> List[BingoEffectGrant]:
    with Session() as session:
        return list(session.scalars(
            select(BingoEffectGrant).where(BingoEffectGrant.team_id == team_id).order_by(BingoEffectGrant.id)
        ).all())



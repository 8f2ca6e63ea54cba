from datetime import datetime, timedelta

import pytest

from db.base import Session
from events.bingo.enums import (
    EffectAction,
    EffectCategory,
    EffectKind,
    EffectTarget,
    EffectTrigger,
    GrantStatus,
    LineType,
)
from events.bingo.errors import InvalidStateError, NotFoundError
from events.models import BingoEffectActivation, BingoEffectGrant
from tests.support import item_requirements, team_score


@pytest.fixture
def duel(seed):
    event = seed.event()
    tile = seed.tile(item_requirements(), points=10)
    red = seed.team(event, "Red")
    blue = seed.team(event, "Blue")
    red_board = seed.board(event, red, [[tile.id, tile.id], [tile.id, tile.id]])
    blue_board = seed.board(event, blue, [[tile.id, tile.id], [tile.id, tile.id]])
    return event, red, blue, red_board, blue_board


def actions_for(grant_id):
    with Session() as session:
        return [entry.action for entry in session.query(BingoEffectActivation)
                .filter(BingoEffectActivation.grant_id == grant_id)
                .order_by(BingoEffectActivation.id)]


def test_grant_is_idempotent(manager, emitter, seed, duel):
    _, red, _, red_board, _ = duel
    drain = seed.effect("Drain", "point_penalty", EffectTrigger.MANUAL, value=2, target=EffectTarget.ENEMY)

    first = manager.grant_effect(red_board.id, LineType.ROW, "1", drain.id, "admin")
    second = manager.grant_effect(red_board.id, LineType.ROW, "1", drain.id, "admin")
    assert first.id == second.id
    assert first.team_id == red.id
    assert first.status == GrantStatus.IDLE
    assert actions_for(first.id) == [EffectAction.EARNED]
    assert len(emitter.effect_grants) == 1
    assert emitter.effect_grants[0]["source"] == "admin"

    # The same effect on another line is a separate grant
    other = manager.grant_effect(red_board.id, LineType.COLUMN, "A", drain.id, "admin")
    assert other.id != first.id


def test_grant_rejects_unknown_board_and_effect(manager, seed, duel):
    _, _, _, red_board, _ = duel
    drain = seed.effect("Drain", "point_penalty", EffectTrigger.MANUAL, value=2, target=EffectTarget.ENEMY)
    with pytest.raises(NotFoundError):
        manager.grant_effect(red_board.id + 100, LineType.ROW, "1", drain.id, "admin")
    with pytest.raises(NotFoundError):
        manager.grant_effect(red_board.id, LineType.ROW, "1", drain.id + 100, "admin")


def test_immediate_grant_is_resolved_at_grant_time(manager, emitter, seed, duel):
    _, red, blue, red_board, _ = duel
    bonus = seed.effect("Windfall", "point_bonus", EffectTrigger.IMMEDIATE, value=15)
    curse = seed.effect("Curse", "point_penalty", EffectTrigger.IMMEDIATE, value=4, target=EffectTarget.ENEMY,
                        kind=EffectKind.DEBUFF, category=EffectCategory.OFFENSE)

    grant = manager.grant_effect(red_board.id, LineType.TILE, "A1", bonus.id, "admin")
    assert grant.status == GrantStatus.ACTIVATED
    assert team_score(red.id) == 15
    assert actions_for(grant.id) == [EffectAction.EARNED, EffectAction.AUTO_TRIGGERED]
    assert emitter.effect_grants[0]["immediate_result"]["pointsAwarded"] == 15

    # Adverse immediate effects hit every opponent and never count as points for the holder
    cursed = manager.grant_effect(red_board.id, LineType.TILE, "B1", curse.id, "admin")
    assert cursed.status == GrantStatus.ACTIVATED
    assert team_score(blue.id) == -4
    assert team_score(red.id) == 15
    assert "pointsAwarded" not in emitter.effect_grants[1]["immediate_result"]
    assert emitter.effect_grants[1]["immediate_result"]["resolution"] == "activated"


def test_expire_effects(manager, seed, duel):
    _, red, blue, red_board, _ = duel
    timed = seed.effect("Fleeting", "point_bonus", EffectTrigger.MANUAL, value=3, duration_seconds=60)
    lasting = seed.effect("Lasting", "point_bonus", EffectTrigger.MANUAL, value=3)

    fleeting = manager.grant_effect(red_board.id, LineType.TILE, "A1", timed.id, "admin")
    forever = manager.grant_effect(red_board.id, LineType.TILE, "B1", lasting.id, "admin")
    assert fleeting.expires_at is not None
    assert forever.expires_at is None

    assert manager.expire_effects(datetime.now()) == 0
    later = datetime.now() + timedelta(minutes=2)
    assert manager.expire_effects(later) == 1
    assert manager.expire_effects(later) == 0

    with Session() as session:
        assert session.get(BingoEffectGrant, fleeting.id).status == GrantStatus.EXPIRED
        assert session.get(BingoEffectGrant, forever.id).status == GrantStatus.IDLE
    assert actions_for(fleeting.id) == [EffectAction.EARNED, EffectAction.EXPIRED]

    with pytest.raises(InvalidStateError, match="already expired"):
        manager.activate_effect(fleeting.id, red.id)


def test_team_effect_state(manager, seed, duel):
    _, red, blue, red_board, _ = duel
    boost = seed.effect("Boost", "point_bonus", EffectTrigger.MANUAL, value=5)
    shield = seed.effect("Shield", "shield", EffectTrigger.REACTIVE, category=EffectCategory.DEFENSE)
    watch = seed.effect("Watch", "scout", EffectTrigger.REACTIVE, category=EffectCategory.PASSIVE)
    spent = seed.effect("Spent", "point_bonus", EffectTrigger.MANUAL, value=1)

    boost_grant = manager.grant_effect(red_board.id, LineType.TILE, "A1", boost.id, "admin")
    shield_grant = manager.grant_effect(red_board.id, LineType.TILE, "B1", shield.id, "admin")
    watch_grant = manager.grant_effect(red_board.id, LineType.TILE, "A2", watch.id, "admin")
    spent_grant = manager.grant_effect(red_board.id, LineType.TILE, "B2", spent.id, "admin")
    manager.activate_effect(spent_grant.id, red.id)

    state = manager.get_team_effect_state(red.id)
    assert [grant["id"] for grant in state["available"]] == [boost_grant.id]
    assert [grant["id"] for grant in state["reactive"]] == [shield_grant.id, watch_grant.id]
    assert [grant["id"] for grant in state["activeDefense"]] == [shield_grant.id]
    assert [grant["id"] for grant in state["recentlyUsed"]] == [spent_grant.id]
    assert state["available"][0]["effect"]["name"] == "Boost"
    assert state["recentlyUsed"][0]["status"] == "activated"

    assert manager.get_team_effect_state(blue.id) == {
        "available": [], "reactive": [], "activeDefense": [], "recentlyUsed": [],
    }


def test_effect_history(manager, seed, duel):
    event, red, blue, red_board, blue_board = duel
    drain = seed.effect("Drain", "point_penalty", EffectTrigger.MANUAL, value=2, target=EffectTarget.ENEMY,
                        kind=EffectKind.DEBUFF, category=EffectCategory.OFFENSE)
    shield = seed.effect("Shield", "shield", EffectTrigger.REACTIVE, category=EffectCategory.DEFENSE)

    attack = manager.grant_effect(red_board.id, LineType.ROW, "1", drain.id, "admin")
    manager.grant_effect(blue_board.id, LineType.ROW, "1", shield.id, "admin")
    manager.activate_effect(attack.id, red.id, target_team_id=blue.id)

    history = manager.get_effect_history(event.id)
    assert [entry["action"] for entry in history] == ["activated", "blocked", "earned", "earned"]
    activated = history[0]
    assert activated["effectName"] == "Drain"
    assert activated["sourceTeamName"] == "Red"
    assert activated["targetTeamName"] == "Blue"
    blocked = history[1]
    assert blocked["effectName"] == "Shield"
    assert blocked["sourceTeamName"] == "Blue"
    assert blocked["result"] == "blocked"
    assert history[-1]["targetTeamName"] is None

    assert len(manager.get_effect_history(event.id, limit=2)) == 2
    assert manager.get_effect_history(event.id + 1) == []

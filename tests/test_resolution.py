import threading
import time
from datetime import datetime, timedelta

import pytest

from db.base import Session
from events.bingo.enums import (
    EffectCategory,
    EffectKind,
    EffectTarget,
    EffectTrigger,
    GrantStatus,
    LineType,
    ResolutionResult,
)
from events.bingo.errors import InvalidStateError, NotFoundError, ValidationError
from events.bingo.locks import team_locks
from events.bingo.resolution import AdverseAction
from events.bingo.tile_progress import DROPPED
from events.models import BingoEffectGrant
from tests.support import board_tile_at, grants_of, item_requirements, loot, progress_of, team_score


@pytest.fixture
def arena(seed):
    """Three teams of one event, each with a 2x2 board whose A1 tile needs 3 of item 1."""
    event = seed.event()
    tile = seed.tile(item_requirements(item_id=1, amount=3, total=3), points=10)
    teams, boards = [], []
    for name in ("Attackers", "Defenders", "Bystanders"):
        team = seed.team(event, name)
        grid = seed.filler_grid(2, 2)
        grid[0][0] = tile.id
        teams.append(team)
        boards.append(seed.board(event, team, grid))
    return event, teams, boards


@pytest.fixture
def effects(seed):
    def make(name, effect_type, trigger, target=EffectTarget.SELF, value=0, kind=EffectKind.BUFF,
             category=EffectCategory.OFFENSE, **kwargs):
        return seed.effect(name, effect_type, trigger, value=value, target=target, kind=kind, category=category,
                           **kwargs)
    return make


def penalty(effects, target=EffectTarget.ENEMY, value=3):
    return effects("Point Drain", "point_penalty", EffectTrigger.MANUAL, target=target, value=value,
                   kind=EffectKind.DEBUFF)


def give(manager, board, effect, identifier="A1"):
    return manager.grant_effect(board.id, LineType.TILE, identifier, effect.id, "admin")


def status_of(grant_id):
    with Session() as session:
        return session.get(BingoEffectGrant, grant_id).status


def test_adverse_effect_lands_without_defenses(manager, emitter, arena, effects):
    _, (attackers, defenders, _), (board_a, _, _) = arena
    grant = give(manager, board_a, penalty(effects))

    result = manager.activate_effect(grant.id, attackers.id, target_team_id=defenders.id)
    assert result.result == ResolutionResult.ACTIVATED
    assert result.status == GrantStatus.ACTIVATED
    assert result.details["pointsChanged"] == -3
    assert team_score(defenders.id) == -3
    assert team_score(attackers.id) == 0
    assert status_of(grant.id) == GrantStatus.ACTIVATED
    assert emitter.effect_activations[-1]["action"] == "activated"
    assert emitter.effect_activations[-1]["target_team_id"] == defenders.id


def test_shield_blocks_adverse_effect(manager, emitter, arena, effects):
    _, (attackers, defenders, _), (board_a, board_d, _) = arena
    attack = give(manager, board_a, penalty(effects))
    shield = give(manager, board_d, effects("Shield", "shield", EffectTrigger.REACTIVE,
                                            category=EffectCategory.DEFENSE))
    reflect = give(manager, board_d, effects("Mirror", "reflect", EffectTrigger.REACTIVE,
                                             category=EffectCategory.DEFENSE), identifier="B1")

    result = manager.activate_effect(attack.id, attackers.id, target_team_id=defenders.id)
    assert result.result == ResolutionResult.BLOCKED
    assert result.details["message"] == "Effect was blocked by shield!"
    assert team_score(defenders.id) == 0
    assert team_score(attackers.id) == 0

    # The shield is used before the reflect, and the attacking grant is spent either way
    assert status_of(shield.id) == GrantStatus.BLOCKED
    assert status_of(reflect.id) == GrantStatus.IDLE
    assert status_of(attack.id) == GrantStatus.ACTIVATED
    assert "blocked" in [call["action"] for call in emitter.effect_activations]


def test_reflect_turns_effect_on_source(manager, arena, effects):
    _, (attackers, defenders, _), (board_a, board_d, _) = arena
    attack = give(manager, board_a, penalty(effects, value=4))
    reflect = give(manager, board_d, effects("Mirror", "reflect", EffectTrigger.REACTIVE,
                                             category=EffectCategory.DEFENSE))

    result = manager.activate_effect(attack.id, attackers.id, target_team_id=defenders.id)
    assert result.result == ResolutionResult.REFLECTED
    assert result.details["message"] == "Effect was reflected back!"
    assert result.resolutions[0].affected_team_id == attackers.id
    assert team_score(attackers.id) == -4
    assert team_score(defenders.id) == 0
    assert status_of(reflect.id) == GrantStatus.REFLECTED


def test_expired_shield_does_not_protect(manager, arena, effects):
    _, (attackers, defenders, _), (board_a, board_d, _) = arena
    attack = give(manager, board_a, penalty(effects))
    shield = give(manager, board_d, effects("Shield", "shield", EffectTrigger.REACTIVE,
                                            category=EffectCategory.DEFENSE))
    with Session() as session:
        session.get(BingoEffectGrant, shield.id).expires_at = datetime.now() - timedelta(minutes=1)
        session.commit()

    result = manager.activate_effect(attack.id, attackers.id, target_team_id=defenders.id)
    assert result.result == ResolutionResult.ACTIVATED
    assert team_score(defenders.id) == -3
    assert status_of(shield.id) == GrantStatus.IDLE


def test_effect_on_all_teams_resolves_each_opponent(manager, arena, effects):
    _, (attackers, defenders, bystanders), (board_a, board_d, _) = arena
    attack = give(manager, board_a, penalty(effects, target=EffectTarget.ALL, value=2))
    give(manager, board_d, effects("Shield", "shield", EffectTrigger.REACTIVE, category=EffectCategory.DEFENSE))

    result = manager.activate_effect(attack.id, attackers.id)
    assert [resolution.result for resolution in result.resolutions] == [ResolutionResult.BLOCKED,
                                                                       ResolutionResult.ACTIVATED]
    assert len(result.details["resolutions"]) == 2
    assert team_score(defenders.id) == 0
    assert team_score(bystanders.id) == -2
    assert team_score(attackers.id) == 0


def test_consumed_grant_cannot_be_activated_again(manager, arena, effects):
    _, (attackers, defenders, _), (board_a, _, _) = arena
    grant = give(manager, board_a, penalty(effects))
    manager.activate_effect(grant.id, attackers.id, target_team_id=defenders.id)

    with pytest.raises(InvalidStateError, match="already activated"):
        manager.activate_effect(grant.id, attackers.id, target_team_id=defenders.id)
    assert team_score(defenders.id) == -3


def test_activation_guards(manager, arena, effects):
    _, (attackers, defenders, _), (board_a, board_d, _) = arena
    drain = give(manager, board_a, penalty(effects))
    shield = give(manager, board_a, effects("Shield", "shield", EffectTrigger.REACTIVE,
                                            category=EffectCategory.DEFENSE), identifier="B1")
    lock = give(manager, board_a, effects("Lock", "tile_lock", EffectTrigger.MANUAL, target=EffectTarget.ENEMY,
                                          kind=EffectKind.DEBUFF), identifier="A2")

    with pytest.raises(NotFoundError):
        manager.activate_effect(drain.id + 1000, attackers.id, target_team_id=defenders.id)
    with pytest.raises(InvalidStateError, match="does not belong"):
        manager.activate_effect(drain.id, defenders.id, target_team_id=attackers.id)
    with pytest.raises(ValidationError, match="requires a target team"):
        manager.activate_effect(drain.id, attackers.id)
    with pytest.raises(ValidationError, match="cannot target its own team"):
        manager.activate_effect(drain.id, attackers.id, target_team_id=attackers.id)
    with pytest.raises(InvalidStateError, match="reactive"):
        manager.activate_effect(shield.id, attackers.id)
    with pytest.raises(ValidationError, match="target tile positions"):
        manager.activate_effect(lock.id, attackers.id, target_team_id=defenders.id)

    with Session() as session:
        session.get(BingoEffectGrant, drain.id).expires_at = datetime.now() - timedelta(seconds=1)
        session.commit()
    with pytest.raises(InvalidStateError, match="expired"):
        manager.activate_effect(drain.id, attackers.id, target_team_id=defenders.id)

    # Nothing was consumed by the rejected attempts
    assert [grant.status for grant in grants_of(attackers.id)] == [GrantStatus.IDLE] * 3
    assert team_score(defenders.id) == 0


def test_tile_lock_blocks_progress_until_unlocked(manager, arena, effects):
    _, (attackers, defenders, _), (board_a, board_d, _) = arena
    lock = give(manager, board_a, effects("Lock", "tile_lock", EffectTrigger.MANUAL, target=EffectTarget.ENEMY,
                                          kind=EffectKind.DEBUFF))
    unlock = give(manager, board_d, effects("Key", "tile_unlock", EffectTrigger.MANUAL))

    result = manager.activate_effect(lock.id, attackers.id, target_team_id=defenders.id, target_positions=["A1"])
    assert result.details["tilesAffected"] == ["A1"]
    assert board_tile_at(board_d.id, 0, 0).is_locked
    assert manager.handle_event(loot(defenders.id, 20, item_id=1, quantity=3)).status == DROPPED

    manager.activate_effect(unlock.id, defenders.id, target_positions=["A1"])
    assert not board_tile_at(board_d.id, 0, 0).is_locked
    manager.handle_event(loot(defenders.id, 20, item_id=1, quantity=3, offset=1))
    assert team_score(defenders.id) == 10


def test_progress_reset_spares_completed_tiles(manager, arena, effects):
    _, (attackers, defenders, _), (board_a, board_d, _) = arena
    reset = effects("Wipe", "tile_progress_reset", EffectTrigger.MANUAL, target=EffectTarget.ENEMY,
                    kind=EffectKind.DEBUFF)
    first = give(manager, board_a, reset)
    second = give(manager, board_a, reset, identifier="B1")

    manager.handle_event(loot(defenders.id, 20, item_id=1, quantity=2))
    result = manager.activate_effect(first.id, attackers.id, target_team_id=defenders.id, target_positions=["A1"])
    assert result.details["tilesAffected"] == ["A1"]
    progress = progress_of(board_tile_at(board_d.id, 0, 0).id)
    assert progress.progress_value is None
    assert progress.progress_metadata["requirementProgress"] == {}

    manager.handle_event(loot(defenders.id, 20, item_id=1, quantity=3, offset=1))
    result = manager.activate_effect(second.id, attackers.id, target_team_id=defenders.id, target_positions=["A1"])
    assert result.details["tilesAffected"] == []
    assert progress_of(board_tile_at(board_d.id, 0, 0).id).progress_value == 3


def test_swap_exchanges_two_tiles(manager, arena, effects):
    _, (attackers, _, _), (board_a, _, _) = arena
    swap = give(manager, board_a, effects("Shuffle", "tile_swap_self", EffectTrigger.MANUAL,
                                          category=EffectCategory.BOARD_MANIPULATION))
    a1, b2 = board_tile_at(board_a.id, 0, 0), board_tile_at(board_a.id, 1, 1)

    with pytest.raises(ValidationError, match="exactly 2"):
        manager.activate_effect(swap.id, attackers.id, target_positions=["A1"])

    result = manager.activate_effect(swap.id, attackers.id, target_positions=["A1", "B2"])
    assert result.details["tilesAffected"] == ["A1", "B2"]
    assert board_tile_at(board_a.id, 1, 1).id == a1.id
    assert board_tile_at(board_a.id, 0, 0).id == b2.id


def test_unknown_effect_type_is_recorded_as_applied(manager, arena, effects):
    _, (attackers, _, _), (board_a, _, _) = arena
    grant = give(manager, board_a, effects("Flavour", "confetti", EffectTrigger.MANUAL))
    result = manager.activate_effect(grant.id, attackers.id)
    assert result.details["message"] == "Effect applied"
    assert status_of(grant.id) == GrantStatus.ACTIVATED


def test_resolve_incoming_action(manager, arena, effects):
    event, (attackers, defenders, _), _ = arena
    drain = penalty(effects, value=7)
    action = AdverseAction(effect_id=drain.id, event_id=event.id, source_team_id=attackers.id)
    resolution = manager.engine.resolve_incoming(action, defenders.id)
    assert resolution.result == ResolutionResult.ACTIVATED
    assert resolution.to_dict()["targetTeamId"] == defenders.id
    assert team_score(defenders.id) == -7


def test_resolve_incoming_waits_for_the_target_team(manager, arena, effects):
    event, (attackers, defenders, _), _ = arena
    drain = penalty(effects, value=4)
    action = AdverseAction(effect_id=drain.id, event_id=event.id, source_team_id=attackers.id)
    results = []

    def resolve():
        results.append(manager.engine.resolve_incoming(action, defenders.id))

    with team_locks.hold(defenders.id):
        worker = threading.Thread(target=resolve)
        worker.start()
        time.sleep(0.1)
        assert results == []
    worker.join(timeout=5)

    assert results[0].result == ResolutionResult.ACTIVATED
    assert team_score(defenders.id) == -4

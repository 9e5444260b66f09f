"""Tests for the tactical AI."""
import pytest

from skirmish.core.combat_system.models import (
    AIAction, ActionType, AllyCombatant, AmmoPool, AttackKind, CombatSession, EnemyCombatant,
    PlayerCombatant, Stance, TargetArea,
)
from skirmish.core.combat_system.tables import CombatTables
from skirmish.core.combat_system.resolver import ActionResolver
from skirmish.core.combat_system.ai import TacticalAI


def _ai(rng):
    resolver = ActionResolver(CombatTables(), rng)
    return TacticalAI(resolver, rng=rng)


def _player(**kw):
    data = dict(id="player", name="Hero", health=100, max_health=100)
    data.update(kw)
    return PlayerCombatant(**data)


def _enemy(**kw):
    data = dict(id="e1", name="Bandit", health=100, max_health=100, distance=1,
                preferred_distance=1, attacks=[AttackKind.STRIKE])
    data.update(kw)
    return EnemyCombatant(**data)


def _weights(ai, unit, opponent):
    return {k: round(v, 6) for k, v in ai.action_weights(unit, opponent).items()}


def test_ally_targets_weakest_living_enemy(scripted):
    enemies = [_enemy(id="e1", health=30), _enemy(id="e2", health=10), _enemy(id="e3", health=0)]
    s = CombatSession(player=_player(), enemies=enemies)
    assert _ai(scripted()).choose_ally_target(s) == 1


def test_enemy_targets_player_without_allies(scripted):
    rng = scripted()
    s = CombatSession(player=_player(), enemies=[_enemy()])
    assert _ai(rng).choose_enemy_target(s) is s.player
    assert rng.calls == 0


def test_enemy_target_weighting_with_ally(scripted):
    ally = AllyCombatant(id="a1", name="Squire", health=40, max_health=40)
    s = CombatSession(player=_player(), enemies=[_enemy()], allies=[ally])
    assert _ai(scripted([0.7])).choose_enemy_target(s) is s.player
    assert _ai(scripted([0.8])).choose_enemy_target(s) is ally


def test_base_weights(scripted):
    w = _weights(_ai(scripted()), _enemy(), _player())
    assert w == {ActionType.DISTANCE: 0.2, ActionType.STANCE: 0.2, ActionType.ATTACK: 0.6}


def test_far_from_preferred_distance_favours_moving(scripted):
    w = _weights(_ai(scripted()), _enemy(distance=3), _player())
    # nessun attacco in portata: il peso dell'attacco passa al movimento
    assert w == {ActionType.DISTANCE: 0.8, ActionType.STANCE: 0.2, ActionType.ATTACK: 0.0}


def test_counter_stance_weights(scripted):
    w = _weights(_ai(scripted()), _enemy(), _player(stance=Stance.AGGRESSIVE))
    assert w == {ActionType.DISTANCE: 0.2, ActionType.STANCE: 0.5, ActionType.ATTACK: 0.3}
    w = _weights(_ai(scripted()), _enemy(stance=Stance.DEFENSIVE), _player(stance=Stance.AGGRESSIVE))
    assert w[ActionType.ATTACK] == 0.6


def test_javelin_in_range_boosts_attack(scripted):
    unit = _enemy(distance=2, preferred_distance=2, attacks=[AttackKind.JAVELIN, AttackKind.STRIKE],
                  ammunition={"javelin": AmmoPool(current=3)})
    w = _weights(_ai(scripted()), unit, _player())
    assert w[ActionType.ATTACK] == pytest.approx(1.2)


def test_health_thresholds(scripted):
    ai = _ai(scripted())
    w = _weights(ai, _enemy(health=10), _player())
    assert w[ActionType.STANCE] == 0.5
    w = _weights(ai, _enemy(), _player(health=10))
    assert w[ActionType.ATTACK] == 0.9


def test_combo_follow_up_bonus(scripted):
    unit = _enemy(last_action="attack:javelin", combos={"attack:javelin": "distance:advance"})
    ai = _ai(scripted())
    assert ai.combo_follow_up(unit) == "distance:advance"
    assert _weights(ai, unit, _player())[ActionType.DISTANCE] == 0.7


def test_grappling_at_preferred_distance_never_moves(scripted):
    w = _weights(_ai(scripted()), _enemy(distance=0, preferred_distance=0), _player())
    assert w[ActionType.DISTANCE] == 0.0
    assert w[ActionType.STANCE] == 0.4


def test_melee_combo_needs_momentum(scripted):
    unit = _enemy(attacks=[AttackKind.STRIKE, AttackKind.CLEAVE], last_action="distance:advance",
                  combos={"distance:advance": "attack:cleave"}, momentum=-1)
    assert _ai(scripted()).combo_follow_up(unit) is None
    unit.momentum = 0
    assert _ai(scripted()).combo_follow_up(unit) == "attack:cleave"


def test_ranged_combo_needs_ammo(scripted):
    unit = _enemy(last_action="distance:retreat", combos={"distance:retreat": "attack:javelin"})
    assert _ai(scripted()).combo_follow_up(unit) is None


def test_decide_moves_when_out_of_reach(scripted):
    rng = scripted([0.0])
    action = _ai(rng).decide(_enemy(distance=3), _player())
    assert action.type == ActionType.DISTANCE
    assert action.value == -1
    assert action.target_id == "player"


def test_decide_attack_draws_kind_and_area(scripted):
    rng = scripted([0.9, 0.0, 0.0])
    action = _ai(rng).decide(_enemy(), _player())
    assert action.type == ActionType.ATTACK
    assert action.attack_kind == AttackKind.STRIKE
    assert action.target_area == TargetArea.BODY
    assert rng.calls == 3

    action = _ai(scripted([0.9, 0.0, 0.7])).decide(_enemy(), _player())
    assert action.target_area == TargetArea.HEAD


def test_combo_kind_is_weighted_up(scripted):
    unit = _enemy(attacks=[AttackKind.STRIKE, AttackKind.CLEAVE], last_action="distance:advance",
                  combos={"distance:advance": "attack:cleave"})
    assert _ai(scripted([0.5])).choose_attack_kind(unit, 1) == AttackKind.CLEAVE
    assert _ai(scripted([0.1])).choose_attack_kind(unit, 1) == AttackKind.STRIKE


def test_distance_delta(scripted):
    ai = _ai(scripted())
    assert ai.choose_distance_delta(_enemy(distance=1, preferred_distance=2), 1) == 1
    assert ai.choose_distance_delta(_enemy(), 1) == 0
    retreating = _enemy(last_action="attack:strike", combos={"attack:strike": "distance:retreat"})
    assert ai.choose_distance_delta(retreating, 1) == 1


def test_choose_stance(scripted):
    ai = _ai(scripted())
    assert ai.choose_stance(_enemy(), _player(stance=Stance.AGGRESSIVE)) == Stance.DEFENSIVE
    assert ai.choose_stance(_enemy(health=10), _player()) == Stance.DEFENSIVE
    assert ai.choose_stance(_enemy(), _player(health=10)) == Stance.AGGRESSIVE
    # già nella contro-posizione: torna alla posizione preferita
    unit = _enemy(stance=Stance.DEFENSIVE)
    assert ai.choose_stance(unit, _player(stance=Stance.AGGRESSIVE)) == Stance.NEUTRAL


def test_counter_kind_is_always_melee(scripted):
    ai = _ai(scripted())
    unit = _enemy(attacks=[AttackKind.JAVELIN, AttackKind.SHIELD_SHOVE, AttackKind.CLEAVE])
    assert ai.choose_counter_kind(unit) == AttackKind.CLEAVE
    assert ai.choose_counter_kind(_enemy(attacks=[AttackKind.JAVELIN])) == AttackKind.STRIKE


def test_remember_stores_action_key(scripted):
    unit = _enemy()
    _ai(scripted()).remember(unit, AIAction(ActionType.ATTACK, attack_kind=AttackKind.CLEAVE))
    assert unit.last_action == "attack:cleave"

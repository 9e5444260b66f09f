from skirmish.core.combat_system.models import (
    AIAction, ActionType, AllyCombatant, AmmoPool, AttackKind, CombatSession, CounterState,
    EnemyCombatant, PlayerCombatant, Side, Stance, engaged_unit, engagement_distance,
)


def _enemy(**kw):
    data = dict(id="e1", name="Bandit", health=30, max_health=30)
    data.update(kw)
    return EnemyCombatant(**data)


def test_health_clamped_at_construction():
    e = _enemy(health=150, max_health=100)
    assert e.health == 100
    e = _enemy(health=-5)
    assert e.health == 0
    assert not e.is_alive


def test_take_damage_never_goes_negative():
    """Overkill damage leaves the unit at 0 and reports what was actually taken."""
    e = _enemy(health=5)
    taken = e.take_damage(12)
    assert e.health == 0
    assert taken == 5
    assert not e.is_alive


def test_distance_is_clamped_to_buckets():
    e = _enemy(distance=7)
    assert e.distance == 3
    assert e.shift_distance(-10) == 0
    assert e.distance_label == "Grappling"
    assert e.shift_distance(1) == 1


def test_ammo_consumption():
    e = _enemy(ammunition={"javelin": AmmoPool(current=1)})
    assert e.has_ammo("javelin")
    assert e.consume_ammo("javelin")
    assert not e.has_ammo("javelin")
    assert not e.consume_ammo("javelin")
    assert not e.consume_ammo("arrow")
    assert e.ammunition["javelin"].max == 1


def test_momentum_is_bounded():
    e = _enemy()
    for _ in range(10):
        e.add_momentum(1)
    assert e.momentum == 5
    for _ in range(20):
        e.add_momentum(-1)
    assert e.momentum == -5


def test_sides():
    p = PlayerCombatant(id="player", name="Hero", health=100, max_health=100)
    a = AllyCombatant(id="a1", name="Squire", health=40, max_health=40)
    assert p.side == Side.PLAYER
    assert a.side == Side.PLAYER
    assert _enemy().side == Side.ENEMY


def test_engaged_unit_prefers_ally_then_enemy():
    p = PlayerCombatant(id="player", name="Hero", health=100, max_health=100, distance=0)
    a = AllyCombatant(id="a1", name="Squire", health=40, max_health=40, distance=1)
    e = _enemy(distance=3)
    assert engaged_unit(p, e) is e
    assert engaged_unit(e, p) is e
    assert engaged_unit(e, a) is a
    assert engagement_distance(a, e) == 1
    assert engagement_distance(p, e) == 3


def test_action_keys():
    assert AIAction(ActionType.ATTACK, attack_kind=AttackKind.JAVELIN).key == "attack:javelin"
    assert AIAction(ActionType.DISTANCE, value=-1).key == "distance:advance"
    assert AIAction(ActionType.DISTANCE, value=1).key == "distance:retreat"
    assert AIAction(ActionType.STANCE, value=Stance.DEFENSIVE).key == "stance:defensive"


def test_counter_state_alternates_and_closes():
    state = CounterState(open=True, last_actor=Side.PLAYER)
    assert state.next_side == Side.ENEMY
    state.last_actor = Side.ENEMY
    assert state.next_side == Side.PLAYER
    state.chain = 3
    state.close()
    assert not state.open
    assert state.chain == 0
    assert state.next_side is None


def test_session_roster_helpers():
    p = PlayerCombatant(id="player", name="Hero", health=100, max_health=100)
    e1 = _enemy(id="e1", health=0)
    e2 = _enemy(id="e2")
    s = CombatSession(player=p, enemies=[e1, e2], active_enemy_index=1)
    assert s.target_enemy() is e2
    assert s.living_enemies() == [e2]
    assert s.first_living_enemy_index() == 1
    assert not s.all_enemies_defeated()
    assert s.find("e2") is e2
    assert s.find("nope") is None
    s.player_stance = Stance.AGGRESSIVE
    assert p.stance == Stance.AGGRESSIVE

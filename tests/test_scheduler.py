"""Tests for the phase state machine, the deferred queue and outcome evaluation."""
import pytest

from skirmish.core.combat_system.models import (
    CombatError, CombatSession, EnemyCombatant, Outcome, Phase, PlayerCombatant,
)
from skirmish.core.combat_system.scheduler import ALLOWED_TRANSITIONS, TaskQueue, evaluate_outcome


def _session(**kw):
    player = PlayerCombatant(id="player", name="Hero", health=100, max_health=100)
    enemy = EnemyCombatant(id="e1", name="Bandit", health=30, max_health=30)
    return CombatSession(player=player, enemies=[enemy], **kw)


def _walk_is_legal(history):
    return all(b in ALLOWED_TRANSITIONS[a] for a, b in zip(history, history[1:]))


# ---------------------------------------------------------------------------
# TaskQueue
# ---------------------------------------------------------------------------

def test_task_queue_runs_in_due_order():
    q = TaskQueue()
    ran = []
    q.schedule(200, lambda: ran.append("b"), "b")
    q.schedule(100, lambda: ran.append("a"), "a")
    q.schedule(100, lambda: ran.append("a2"), "a2")
    assert q.pending == ["a", "a2", "b"]
    assert q.advance(150) == 2
    assert ran == ["a", "a2"]
    assert q.now == 150
    assert q.run_until_idle() == 1
    assert ran == ["a", "a2", "b"]
    assert len(q) == 0


def test_task_queue_callbacks_can_schedule_more():
    q = TaskQueue()
    ran = []

    def first():
        ran.append(1)
        q.schedule(0, lambda: ran.append(2))

    q.schedule(10, first)
    q.run_until_idle()
    assert ran == [1, 2]


# ---------------------------------------------------------------------------
# outcome evaluation
# ---------------------------------------------------------------------------

def test_outcome_none_while_fighting():
    assert evaluate_outcome(_session(turn=1)) is None


def test_victory_checked_before_defeat():
    s = _session(turn=1)
    s.enemies[0].health = 0
    s.player.health = 0
    assert evaluate_outcome(s) == Outcome.VICTORY


def test_defeat():
    s = _session(turn=1)
    s.player.health = 0
    assert evaluate_outcome(s) == Outcome.DEFEAT


def test_turn_limit_draw_only_without_require_defeat():
    s = _session(turn=30, max_turns=30)
    assert evaluate_outcome(s) == Outcome.DRAW
    s = _session(turn=99, max_turns=30, require_defeat=True)
    assert evaluate_outcome(s) is None


def test_pending_waves_postpone_victory():
    s = _session(turn=1, pending_waves=[["BRUTE"]])
    s.enemies[0].health = 0
    assert evaluate_outcome(s) is None


def test_outcome_is_idempotent():
    s = _session(turn=1)
    s.enemies[0].health = 0
    assert evaluate_outcome(s) == evaluate_outcome(s) == Outcome.VICTORY
    s.outcome = Outcome.RETREAT
    assert evaluate_outcome(s) == Outcome.RETREAT


# ---------------------------------------------------------------------------
# phase walk through the engine
# ---------------------------------------------------------------------------

def _alternate_stances(engine, rounds):
    """End each player turn with a stance change; the enemy answers with its own stance change."""
    stances = ["defensive", "aggressive"]
    for i in range(rounds):
        assert engine.handle_player_action("change_stance", {"stance": stances[i % 2]})
        engine.run_pending()


def test_phase_walk_is_legal(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    assert engine.phase == Phase.INITIAL
    engine.run_pending()
    assert engine.phase == Phase.PLAYER
    _alternate_stances(engine, 3)
    history = engine.session.phase_history
    assert history[:5] == [Phase.INITIAL, Phase.PLAYER, Phase.ENEMY, Phase.RESOLUTION, Phase.PLAYER]
    assert _walk_is_legal(history)
    assert engine.session.turn == 4


def test_ally_phase_precedes_enemy_phase(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], ["SQUIRE"], {"start_distance": 1})
    engine.run_pending()
    _alternate_stances(engine, 1)
    history = engine.session.phase_history
    assert history[:5] == [Phase.INITIAL, Phase.PLAYER, Phase.ALLY, Phase.ENEMY, Phase.RESOLUTION]
    assert _walk_is_legal(history)


def test_require_defeat_ignores_turn_limit(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1, "max_turns": 1, "require_defeat": True})
    engine.run_pending()
    _alternate_stances(engine, 3)
    s = engine.session
    assert s.active
    assert s.outcome is None
    assert s.turn == 4
    assert engine.phase == Phase.PLAYER


def test_turn_limit_ends_in_draw(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1, "max_turns": 2})
    engine.run_pending()
    _alternate_stances(engine, 2)
    s = engine.session
    assert s.outcome == Outcome.DRAW
    assert not s.active
    assert s.rewards == {"outcome": "draw", "experience": 0, "loot": []}
    assert engine.check_outcome() == Outcome.DRAW


def test_scheduler_drains_the_engine_queue(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    assert engine._scheduler.queue is engine.queue
    assert engine.queue.pending
    engine.run_pending()
    assert engine.phase == Phase.PLAYER


def test_stunned_enemy_loses_its_turn(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    engine.run_pending()
    s = engine.session
    s.enemies[0].status.stunned = True
    _alternate_stances(engine, 1)
    assert "Brute è stordito e perde il turno." in s.log
    assert s.player.health == 100
    assert not s.enemies[0].status.stunned
    assert s.turn == 2
    assert engine.phase == Phase.PLAYER


def test_knocked_down_player_spends_the_turn_getting_up(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    s = engine.session
    s.player.status.knocked_down = True
    s.enemies[0].status.stunned = True
    engine.run_pending()
    assert "Hero si rialza da terra." in s.log
    assert not s.player.status.knocked_down
    assert s.phase_history == [Phase.INITIAL, Phase.PLAYER, Phase.ENEMY, Phase.RESOLUTION, Phase.PLAYER]
    assert s.turn == 2
    assert not s.busy


def test_illegal_transition_raises(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    with pytest.raises(CombatError):
        engine._scheduler._set_phase(Phase.ENEMY)


def test_stale_callback_is_ignored(make_engine, caplog):
    """Ending the battle while the intro is queued turns the intro into a no-op."""
    engine = make_engine()
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    engine.end_combat(Outcome.RETREAT)
    engine.run_pending()
    assert engine.phase == Phase.INITIAL
    assert engine.session.outcome == Outcome.RETREAT
    assert "Stale combat callback" in caplog.text


def test_real_delays_pace_the_intro(make_engine):
    engine = make_engine(delays={"intro": 1000, "action": 1000, "resolution": 1500})
    engine.initiate_combat(["BRUTE"], [], {"start_distance": 1})
    engine.advance(999)
    assert engine.phase == Phase.INITIAL
    engine.advance(1)
    assert engine.phase == Phase.PLAYER


def test_player_target_restored_after_enemy_phase(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE", "BRUTE"], [], {"start_distance": 1})
    engine.run_pending()
    assert engine.handle_player_action("select_enemy", {"index": 0})
    _alternate_stances(engine, 1)
    assert engine.session.active_enemy_index == 0
    assert engine.session.saved_target_index is None


def test_dead_saved_target_falls_back_to_first_living(make_engine):
    engine = make_engine()
    engine.initiate_combat(["BRUTE", "BRUTE"], [], {"start_distance": 1})
    s = engine.session
    s.saved_target_index = 0
    s.enemies[0].health = 0
    engine._scheduler._restore_player_target()
    assert s.active_enemy_index == 1

"""Phase scheduler: the combat state machine and its deferred task queue.

Le pause narrative tra i passi di un turno sono callback differite su una
coda a tempo simulato (millisecondi): nessun thread, nessuno sleep. I test
scaricano la coda con ``run_until_idle()`` o la fanno avanzare con
``advance(ms)``.

Ogni callback differita è legata alla ``generation`` della sessione e alla
fase in cui è stata programmata: se nel frattempo la sessione è terminata o
la fase è cambiata diventa un no-op (con un warning nel log).
"""
from __future__ import annotations
import heapq
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .models import (
    AIAction, AIControlled, ActionType, AttackKind, AttackOutcome, CombatError,
    CombatSession, Combatant, CombatantKind, EnemyCombatant, Outcome, Phase, ResumePoint,
    Stance, TargetArea, engaged_unit,
)
from .resolver import ActionResolver
from .ai import TacticalAI
from .counter import CounterExchange, CounterResult
from .effects import StatusEffectSystem, TurnForfeit
from .interfaces import NarrativeSink, RewardResolver, UIRefreshHook

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[Phase, frozenset] = {
    Phase.INITIAL: frozenset({Phase.PLAYER}),
    Phase.PLAYER: frozenset({Phase.ALLY, Phase.ENEMY, Phase.RESOLUTION}),
    Phase.ALLY: frozenset({Phase.ENEMY, Phase.RESOLUTION}),
    Phase.ENEMY: frozenset({Phase.RESOLUTION}),
    Phase.RESOLUTION: frozenset({Phase.PLAYER}),
}

DEFAULT_DELAYS = {"intro": 1000, "action": 1000, "resolution": 1500}


def evaluate_outcome(session: CombatSession) -> Optional[Outcome]:
    """Terminal outcome for the current state, or None if combat continues.

    Pure: calling it twice without mutating the session gives the same answer.
    Victory is checked before defeat; the turn limit only applies when
    ``require_defeat`` is False. Pending reinforcement waves postpone victory.
    """
    if session.outcome is not None:
        return session.outcome
    if session.enemies and session.all_enemies_defeated() and not session.pending_waves:
        return Outcome.VICTORY
    if not session.player.is_alive:
        return Outcome.DEFEAT
    if not session.require_defeat and session.turn >= session.max_turns:
        return Outcome.DRAW
    return None


# ---------------------------------------------------------------------------
# Deferred task queue
# ---------------------------------------------------------------------------

@dataclass(order=True)
class Task:
    due: int
    seq: int
    callback: Callable[[], Any] = field(compare=False)
    label: str = field(default="", compare=False)


class TaskQueue:
    """Single-threaded queue of callbacks keyed on simulated milliseconds."""

    def __init__(self):
        self._heap: List[Task] = []
        self._seq = 0
        self.now = 0

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def pending(self) -> List[str]:
        return [t.label for t in sorted(self._heap)]

    def schedule(self, delay_ms: int, callback: Callable[[], Any], label: str = "") -> Task:
        self._seq += 1
        task = Task(due=self.now + max(0, int(delay_ms)), seq=self._seq, callback=callback, label=label)
        heapq.heappush(self._heap, task)
        return task

    def advance(self, ms: int) -> int:
        """Run every task due within ``ms`` from now. Returns how many ran."""
        target = self.now + max(0, int(ms))
        ran = 0
        while self._heap and self._heap[0].due <= target:
            task = heapq.heappop(self._heap)
            self.now = max(self.now, task.due)
            task.callback()
            ran += 1
        self.now = target
        return ran

    def run_until_idle(self, limit: int = 10_000) -> int:
        """Run tasks in due order, jumping the clock, until the queue is empty."""
        ran = 0
        while self._heap and ran < limit:
            task = heapq.heappop(self._heap)
            self.now = max(self.now, task.due)
            task.callback()
            ran += 1
        return ran

    def clear(self):
        self._heap.clear()


# ---------------------------------------------------------------------------
# Phase scheduler
# ---------------------------------------------------------------------------

class PhaseScheduler:
    """Drives one CombatSession through player / ally / enemy / resolution.

    All session mutation during a battle goes through this class. The
    player's inputs arrive through the ``player_*`` methods (validated by the
    engine facade); everything else is scheduled on the TaskQueue.
    """

    def __init__(self, session: CombatSession, resolver: ActionResolver, ai: TacticalAI,
                 counter: CounterExchange, sink: NarrativeSink, ui: Optional[UIRefreshHook] = None,
                 rewards: Optional[RewardResolver] = None, queue: Optional[TaskQueue] = None,
                 delays: Optional[Dict[str, int]] = None,
                 wave_factory: Optional[Callable[[List[str]], List[EnemyCombatant]]] = None):
        self.session = session
        self.resolver = resolver
        self.ai = ai
        self.counter = counter
        self.effects: StatusEffectSystem = resolver.effects
        self.sink = sink
        self.ui = ui
        self.rewards = rewards
        self.queue = queue if queue is not None else TaskQueue()
        self.delays = dict(DEFAULT_DELAYS)
        if delays:
            self.delays.update(delays)
        self.wave_factory = wave_factory

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    def narrate(self, *lines: str):
        for line in lines:
            if line:
                self.session.log.append(line)
                self.sink.emit(line)

    def _changed(self):
        if self.ui is not None:
            self.ui.notify_state_changed()

    def defer(self, delay_key_or_ms, callback: Callable[[], Any], label: str = ""):
        """Schedule ``callback`` bound to the current generation and phase."""
        delay = self.delays.get(delay_key_or_ms, 0) if isinstance(delay_key_or_ms, str) else delay_key_or_ms
        generation = self.session.generation
        phase = self.session.phase

        def guarded():
            s = self.session
            if not s.active or s.generation != generation or s.phase != phase:
                logger.warning("Stale combat callback '%s' ignored (active=%s, phase=%s)",
                               label, s.active, s.phase.value)
                return
            callback()

        return self.queue.schedule(delay, guarded, label)

    def _set_phase(self, phase: Phase):
        current = self.session.phase
        if phase not in ALLOWED_TRANSITIONS[current]:
            raise CombatError(f"Illegal phase transition {current.value} -> {phase.value}")
        logger.debug("phase %s -> %s (turn %d)", current.value, phase.value, self.session.turn)
        self.session.phase = phase
        self.session.phase_history.append(phase)
        self._changed()

    def battle_decided(self) -> bool:
        return not self.session.player.is_alive or self.session.all_enemies_defeated()

    def command_bonus(self, unit: Combatant) -> int:
        if unit.kind == CombatantKind.ALLY:
            return self.session.player.skill("command")
        return 0

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self):
        s = self.session
        s.phase_history.append(s.phase)
        names = ", ".join(e.name for e in s.enemies)
        self.narrate(f"Il combattimento ha inizio! Di fronte a te: {names}.")
        if s.allies:
            self.narrate("Al tuo fianco: " + ", ".join(a.name for a in s.allies) + ".")
        s.busy = True
        self.defer("intro", self._enter_player_phase, "intro")
        self._changed()

    def end_combat(self, outcome: Outcome):
        s = self.session
        if not s.active:
            return
        s.outcome = outcome
        s.active = False
        s.generation += 1
        s.busy = False
        s.awaiting_counter = False
        s.counter.close()
        messages = {
            Outcome.VICTORY: "Vittoria! Tutti i nemici sono stati sconfitti.",
            Outcome.DEFEAT: "Sei stato sconfitto...",
            Outcome.DRAW: "Il combattimento si trascina troppo a lungo: entrambi gli schieramenti si ritirano.",
            Outcome.RETREAT: "Riesci a sganciarti e fuggire dal combattimento.",
        }
        self.narrate(messages[outcome])
        logger.info("Combat ended: %s after %d turns", outcome.value, s.turn)
        if self.rewards is not None and s.rewards is None:
            s.rewards = self.rewards.resolve(s, outcome)
        self._changed()

    # ------------------------------------------------------------------
    # player phase
    # ------------------------------------------------------------------
    def _enter_player_phase(self):
        s = self.session
        self._set_phase(Phase.PLAYER)
        forfeit = self.effects.consume_turn(s.player)
        if forfeit is not None:
            self.narrate(self._forfeit_text(s.player, forfeit))
            s.busy = True
            self.defer("action", self._end_player_turn, "player_forfeit")
            return
        s.busy = False
        self._changed()

    def _end_player_turn(self):
        s = self.session
        if self.battle_decided():
            self._enter_resolution()
        elif s.living_allies():
            self._enter_ally_phase()
        else:
            self._enter_enemy_phase()

    def player_move(self, delta: int):
        s = self.session
        target = s.target_enemy()
        s.busy = True
        before = target.distance
        after = target.shift_distance(delta)
        if after == before:
            self.narrate("Non puoi spostarti oltre.")
        elif delta < 0:
            self.narrate(f"Avanzi verso {target.name}: distanza {target.distance_label}.")
        else:
            self.narrate(f"Arretri da {target.name}: distanza {target.distance_label}.")
        self._changed()
        self.defer("action", self._end_player_turn, "player_move")

    def player_stance(self, stance: Stance):
        s = self.session
        s.busy = True
        s.player_stance = stance
        self.narrate(f"Assumi una posizione {stance.value}.")
        self._changed()
        self.defer("action", self._end_player_turn, "player_stance")

    def player_attack(self, kind: AttackKind):
        s = self.session
        target = s.target_enemy()
        s.busy = True
        self.narrate(f"Attacchi {target.name} ({kind.value})...")
        target_id = target.id
        self.defer("action", lambda: self._apply_player_attack(target_id, kind), "player_attack")

    def _apply_player_attack(self, target_id: str, kind: AttackKind):
        s = self.session
        target = s.find(target_id)
        if target is None or not target.is_alive:
            logger.warning("Player attack on %s dropped: target no longer valid", target_id)
            self._end_player_turn()
            return
        outcome = self.resolver.resolve_attack(s.player, target, kind, s.target_area)
        self._report(outcome)
        self._after_attack(s.player, target, outcome, ResumePoint(Phase.PLAYER))

    def player_flee(self):
        s = self.session
        target = s.target_enemy()
        s.busy = True
        distance = target.distance if target is not None else 3
        if self.resolver.attempt_flee(s.player, distance):
            self.end_combat(Outcome.RETREAT)
            return
        self.narrate("Tenti la fuga, ma vieni raggiunto!")
        if target is None or not target.is_alive:
            self.defer("action", self._end_player_turn, "flee_failed")
            return
        kind = self.ai.choose_counter_kind(target)
        target_id = target.id

        def free_attack():
            enemy = s.find(target_id)
            if enemy is None or not enemy.is_alive:
                self._end_player_turn()
                return
            outcome = self.resolver.resolve_attack(enemy, s.player, kind)
            self._report(outcome)
            self._after_attack(enemy, s.player, outcome, ResumePoint(Phase.PLAYER))

        self.defer("action", free_attack, "flee_free_attack")

    def player_counter(self, kind: AttackKind):
        s = self.session
        s.awaiting_counter = False
        s.busy = True
        pair = self.counter.participants(s)
        if pair is not None:
            self.narrate(f"Contrattacchi {pair[1].name}!")
        self.defer("action", lambda: self._apply_counter(kind, s.target_area, 0), "player_counter")

    # ------------------------------------------------------------------
    # ally phase
    # ------------------------------------------------------------------
    def _enter_ally_phase(self):
        self._set_phase(Phase.ALLY)
        self._ally_step(0)

    def _ally_step(self, index: int):
        s = self.session
        if self.battle_decided():
            self._enter_resolution()
            return
        while index < len(s.allies) and not s.allies[index].is_alive:
            index += 1
        if index >= len(s.allies):
            self._enter_enemy_phase()
            return
        ally = s.allies[index]
        s.acting_index = index
        resume = ResumePoint(Phase.ALLY, index + 1)
        if self._forfeits(ally, resume):
            return
        target_index = self.ai.choose_ally_target(s)
        if target_index is None:
            self._enter_resolution()
            return
        ally.target_index = target_index
        enemy = s.enemies[target_index]
        action = self.ai.decide(ally, enemy)
        self._announce(ally, enemy, action)
        self.defer("action", lambda: self._apply_ai_action(ally.id, enemy.id, action, resume),
                   f"ally_{ally.id}")

    # ------------------------------------------------------------------
    # enemy phase
    # ------------------------------------------------------------------
    def _enter_enemy_phase(self):
        s = self.session
        self._set_phase(Phase.ENEMY)
        s.saved_target_index = s.active_enemy_index
        self._enemy_step(0)

    def _enemy_step(self, index: int):
        s = self.session
        if self.battle_decided():
            self._enter_resolution()
            return
        while index < len(s.enemies) and not s.enemies[index].is_alive:
            index += 1
        if index >= len(s.enemies):
            self._enter_resolution()
            return
        enemy = s.enemies[index]
        s.active_enemy_index = index
        s.acting_index = index
        resume = ResumePoint(Phase.ENEMY, index + 1)
        if self._forfeits(enemy, resume):
            return
        target = self.ai.choose_enemy_target(s)
        action = self.ai.decide(enemy, target)
        self._announce(enemy, target, action)
        self.defer("action", lambda: self._apply_ai_action(enemy.id, target.id, action, resume),
                   f"enemy_{enemy.id}")

    def _restore_player_target(self):
        s = self.session
        if s.saved_target_index is None:
            return
        idx = s.saved_target_index
        s.saved_target_index = None
        if 0 <= idx < len(s.enemies) and s.enemies[idx].is_alive:
            s.active_enemy_index = idx
        else:
            s.active_enemy_index = s.first_living_enemy_index()

    # ------------------------------------------------------------------
    # AI actions
    # ------------------------------------------------------------------
    def _forfeits(self, unit: Combatant, resume: ResumePoint) -> bool:
        forfeit = self.effects.consume_turn(unit)
        if forfeit is None:
            return False
        self.narrate(self._forfeit_text(unit, forfeit))
        self.defer("action", lambda: self._resume(resume), f"forfeit_{unit.id}")
        return True

    def _forfeit_text(self, unit: Combatant, forfeit: TurnForfeit) -> str:
        if forfeit == TurnForfeit.GET_UP:
            return f"{unit.name} si rialza da terra."
        return f"{unit.name} è stordito e perde il turno."

    def _announce(self, unit: AIControlled, target: Combatant, action: AIAction):
        if action.type == ActionType.ATTACK:
            self.narrate(f"{unit.name} si prepara a colpire {target.name}...")
        elif action.type == ActionType.DISTANCE:
            verb = "avanza verso" if action.value < 0 else "arretra da"
            self.narrate(f"{unit.name} {verb} {target.name}.")
        else:
            self.narrate(f"{unit.name} cambia posizione.")

    def _apply_ai_action(self, unit_id: str, target_id: str, action: AIAction, resume: ResumePoint):
        s = self.session
        unit = s.find(unit_id)
        target = s.find(target_id)
        if unit is None or target is None or not unit.is_alive or not target.is_alive:
            logger.warning("AI action of %s on %s dropped: combatant no longer valid", unit_id, target_id)
            self._resume(resume)
            return
        self.ai.remember(unit, action)
        if action.type == ActionType.DISTANCE:
            engaged = engaged_unit(unit, target)
            engaged.shift_distance(int(action.value))
            self.narrate(f"Distanza tra {unit.name} e {target.name}: {engaged.distance_label}.")
            self._changed()
            self._resume(resume)
        elif action.type == ActionType.STANCE:
            unit.stance = action.value
            self.narrate(f"{unit.name} assume una posizione {unit.stance.value}.")
            self._changed()
            self._resume(resume)
        else:
            outcome = self.resolver.resolve_attack(unit, target, action.attack_kind, action.target_area,
                                                   command=self.command_bonus(unit))
            self._report(outcome)
            self._after_attack(unit, target, outcome, resume)

    def _report(self, outcome: AttackOutcome):
        self.narrate(*outcome.description)
        self._changed()

    # ------------------------------------------------------------------
    # counters
    # ------------------------------------------------------------------
    def _after_attack(self, attacker: Combatant, defender: Combatant, outcome: AttackOutcome,
                      resume: ResumePoint):
        s = self.session
        if outcome.counter_opened and attacker.is_alive and defender.is_alive:
            self.counter.open(s, attacker, defender)
            s.resume = resume
            self.narrate(f"{defender.name} trova un'apertura per contrattaccare!")
            self._continue_counter()
            return
        self._resume(resume)

    def _continue_counter(self):
        s = self.session
        pair = self.counter.participants(s)
        if pair is None:
            self.counter.close(s)
            self._resume(s.resume)
            return
        actor, target = pair
        if actor is s.player:
            s.awaiting_counter = True
            s.busy = False
            self.narrate(f"Puoi contrattaccare {target.name}!")
            self._changed()
            return
        kind = self.ai.choose_counter_kind(actor)
        self.defer("action", lambda: self._apply_counter(kind, TargetArea.BODY, self.command_bonus(actor)),
                   f"counter_{actor.id}")

    def _apply_counter(self, kind: AttackKind, area: TargetArea, command: int):
        s = self.session
        result = self.counter.attempt(s, kind, area, command)
        if result.outcome is not None:
            self._report(result.outcome)
        self._after_counter(result)

    def _after_counter(self, result: CounterResult):
        s = self.session
        if result.exhausted:
            self.narrate("Dopo lo scambio di colpi i contendenti si separano.")
            s.resume = None
            self._enter_resolution()
            return
        if result.closed or result.aborted:
            resume, s.resume = s.resume, None
            self._resume(resume)
            return
        if self.battle_decided():
            self.counter.close(s)
            s.resume = None
            self._enter_resolution()
            return
        self._continue_counter()

    def _resume(self, point: Optional[ResumePoint]):
        if point is None or self.battle_decided():
            if self.session.phase == Phase.RESOLUTION:
                return
            self._schedule_resolution()
            return
        if point.phase == Phase.PLAYER:
            self._end_player_turn()
        elif point.phase == Phase.ALLY:
            self._ally_step(point.index)
        elif point.phase == Phase.ENEMY:
            self._enemy_step(point.index)
        else:
            self._schedule_resolution()

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------
    def _schedule_resolution(self):
        self.session.busy = True
        self.defer("resolution", self._enter_resolution, "resolution")

    def _enter_resolution(self):
        s = self.session
        if s.phase == Phase.RESOLUTION:
            return
        self._restore_player_target()
        self._set_phase(Phase.RESOLUTION)
        s.counter.close()
        s.awaiting_counter = False

        if s.enemies and s.all_enemies_defeated() and s.pending_waves and s.player.is_alive:
            self._spawn_wave()

        outcome = evaluate_outcome(s)
        if outcome is not None:
            self.end_combat(outcome)
            return
        s.turn += 1
        self.narrate(f"--- Turno {s.turn} ---")
        self.defer(0, self._enter_player_phase, "next_turn")

    def _spawn_wave(self):
        s = self.session
        ids = s.pending_waves.pop(0)
        if self.wave_factory is None:
            logger.warning("Reinforcement wave %s dropped: no factory configured", ids)
            return
        newcomers = self.wave_factory(ids)
        s.enemies.extend(newcomers)
        s.active_enemy_index = s.first_living_enemy_index()
        self.narrate("Arrivano rinforzi: " + ", ".join(e.name for e in newcomers) + "!")
        logger.info("Wave spawned: %s", [e.id for e in newcomers])
        self._changed()

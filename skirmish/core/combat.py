"""Turn-based tactical combat engine (public facade).

Public API:
- CombatEngine(registry, tables, rng, sink, ui, rewards, equipment, delays)
- engine.initiate_combat(enemy_ids, ally_ids, options) -> CombatSession
- engine.handle_player_action(action, params) -> bool
- engine.advance(ms) / engine.run_pending() to drive the deferred queue
- engine.phase / roster() / distances() / snapshot() / check_outcome()

Fasi:
    - 'initial'    : introduzione, poi il turno del giocatore
    - 'player'     : il giocatore sceglie un'azione
    - 'ally'       : ogni alleato vivo agisce (AI)
    - 'enemy'      : ogni nemico vivo agisce (AI)
    - 'resolution' : controllo vittoria/sconfitta/pareggio, rinforzi, turno++

Un attacco mancato può aprire una finestra di contrattacco: i due contendenti
si scambiano risposte finché uno colpisce, un colpo viene parato o la catena
raggiunge il massimo (poi si passa direttamente a 'resolution').

Errori:
- azioni non valide nel gioco (bersaglio morto, fuori portata, non è il tuo
  turno) -> handle_player_action restituisce False e narra il motivo
- uso scorretto dell'API (sessione inattiva, azione sconosciuta, valori enum
  non validi) -> CombatError

Determinismo testabile: iniettare un RandomSource o usare set_seed(seed).
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from config import (
    INTRO_DELAY_MS, ACTION_DELAY_MS, RESOLUTION_DELAY_MS,
    MAX_COUNTER_CHAIN, DEFAULT_MAX_TURNS, DEFAULT_START_DISTANCE,
    get_combat_seed,
)
from .registry import TemplateRegistry
from .combat_system.models import (
    AttackKind, CombatError, CombatSession, Combatant, MAX_DISTANCE, MIN_DISTANCE,
    Outcome, Phase, Stance, TargetArea,
)
from .combat_system.tables import CombatTables
from .combat_system.resolver import AREA_LABELS, ActionResolver
from .combat_system.ai import TacticalAI
from .combat_system.counter import CounterExchange
from .combat_system.effects import StatusEffectSystem
from .combat_system.scheduler import PhaseScheduler, TaskQueue, evaluate_outcome
from .combat_system.interfaces import (
    BufferedNarrativeSink, EquipmentProvider, ExperienceRewardResolver, LoadoutEquipmentProvider,
    NarrativeSink, NullUIHook, RandomSource, RewardResolver, SeededRandom, UIRefreshHook,
)

logger = logging.getLogger(__name__)

PLAYER_ACTIONS = (
    "change_distance", "change_stance", "change_target", "select_enemy",
    "attack", "counter", "flee",
)


def _parse_waves(raw: Any) -> List[List[str]]:
    """Accepts [{"type": id | [ids], "waves": n}, ...] or [[ids], ...]."""
    waves: List[List[str]] = []
    for entry in raw or []:
        if isinstance(entry, dict):
            ids = entry.get("type")
            group = [ids] if isinstance(ids, str) else list(ids or [])
            for _ in range(int(entry.get("waves", 1))):
                waves.append(list(group))
        elif isinstance(entry, str):
            waves.append([entry])
        else:
            waves.append(list(entry))
    return [w for w in waves if w]


class CombatEngine:
    """One engine drives one battle at a time; a finished battle can be followed by a new one."""

    def __init__(self, registry: Optional[TemplateRegistry] = None, tables: Optional[CombatTables] = None,
                 rng: Optional[RandomSource] = None, sink: Optional[NarrativeSink] = None,
                 ui: Optional[UIRefreshHook] = None, rewards: Optional[RewardResolver] = None,
                 equipment: Optional[EquipmentProvider] = None, delays: Optional[Dict[str, int]] = None):
        self.registry = registry or TemplateRegistry.from_assets()
        self.tables = tables or CombatTables()
        self.rng = rng or SeededRandom(get_combat_seed())
        self.sink = sink or BufferedNarrativeSink()
        self.ui = ui or NullUIHook()
        self.rewards = rewards or ExperienceRewardResolver(self.rng)
        self._owns_equipment = equipment is None
        self.equipment = equipment or LoadoutEquipmentProvider()
        self.delays = {"intro": INTRO_DELAY_MS, "action": ACTION_DELAY_MS, "resolution": RESOLUTION_DELAY_MS}
        if delays:
            self.delays.update(delays)

        self.effects = StatusEffectSystem()
        self.resolver = ActionResolver(self.tables, self.rng, self.equipment, self.effects)
        self.ai = TacticalAI(self.resolver, self.tables, self.rng)
        self.counter = CounterExchange(self.resolver, MAX_COUNTER_CHAIN)
        self.queue = TaskQueue()
        self._scheduler: Optional[PhaseScheduler] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], bool]] = {
            "change_distance": self._act_change_distance,
            "change_stance": self._act_change_stance,
            "change_target": self._act_change_target,
            "select_enemy": self._act_select_enemy,
            "attack": self._act_attack,
            "counter": self._act_counter,
            "flee": self._act_flee,
        }

    def set_seed(self, seed: int):
        """Imposta il seed per RNG deterministico (propaga a resolver, AI e ricompense)."""
        self.rng = SeededRandom(seed)
        self.resolver.set_rng(self.rng)
        self.ai.set_rng(self.rng)
        if isinstance(self.rewards, ExperienceRewardResolver):
            self.rewards.rng = self.rng

    # ------------------------------------------------------------------
    # session lifecycle
    # ------------------------------------------------------------------
    def initiate_combat(self, enemy_ids: Iterable[str], ally_ids: Iterable[str] = (),
                        options: Optional[Dict[str, Any]] = None) -> CombatSession:
        if self._scheduler is not None and self._scheduler.session.active:
            raise CombatError("A combat is already in progress")
        enemy_ids = list(enemy_ids)
        ally_ids = list(ally_ids)
        if not enemy_ids:
            raise CombatError("initiate_combat needs at least one enemy")
        opts = dict(options or {})
        start = max(MIN_DISTANCE, min(MAX_DISTANCE, int(opts.get("start_distance", DEFAULT_START_DISTANCE))))

        self.registry.reset_ids()
        player = self.registry.create_player(opts.get("player"))
        if self._owns_equipment:
            self.equipment = LoadoutEquipmentProvider()
            self.resolver.equipment = self.equipment
            for item in self.registry.player_equipment(opts.get("player")):
                self.equipment.equip(player.id, item)

        session = CombatSession(
            player=player,
            enemies=self.registry.create_enemies(enemy_ids, start),
            allies=[self.registry.create_ally(aid, start) for aid in ally_ids],
            turn=1,
            max_turns=int(opts.get("max_turns", DEFAULT_MAX_TURNS)),
            require_defeat=bool(opts.get("require_defeat", False)),
            pending_waves=_parse_waves(opts.get("waves")),
        )
        session.counter.max_chain = MAX_COUNTER_CHAIN
        self.queue = TaskQueue()
        self._scheduler = PhaseScheduler(
            session, self.resolver, self.ai, self.counter, self.sink, self.ui, self.rewards,
            self.queue, self.delays,
            wave_factory=lambda ids: self.registry.create_enemies(ids, start),
        )
        logger.info("Combat started: enemies=%s allies=%s require_defeat=%s max_turns=%d",
                    enemy_ids, ally_ids, session.require_defeat, session.max_turns)
        self._scheduler.start()
        return session

    def end_combat(self, outcome: Outcome):
        """Force a terminal outcome (mission scripts, aborts)."""
        self._require_scheduler().end_combat(outcome)

    def advance(self, ms: int) -> int:
        return self.queue.advance(ms)

    def run_pending(self, limit: int = 10_000) -> int:
        """Drain the deferred queue; stops when the player must act or combat ended."""
        return self.queue.run_until_idle(limit)

    # ------------------------------------------------------------------
    # read accessors
    # ------------------------------------------------------------------
    def _require_scheduler(self) -> PhaseScheduler:
        if self._scheduler is None:
            raise CombatError("No combat session: call initiate_combat first")
        return self._scheduler

    @property
    def session(self) -> Optional[CombatSession]:
        return self._scheduler.session if self._scheduler else None

    @property
    def phase(self) -> Optional[Phase]:
        return self.session.phase if self.session else None

    def check_outcome(self) -> Optional[Outcome]:
        return evaluate_outcome(self._require_scheduler().session)

    def distances(self) -> Dict[str, int]:
        s = self._require_scheduler().session
        return {c.id: c.distance for c in [*s.enemies, *s.allies]}

    def _unit_view(self, c: Combatant) -> Dict[str, Any]:
        return {
            'id': c.id,
            'name': c.name,
            'health': c.health,
            'max_health': c.max_health,
            'distance': c.distance,
            'distance_label': c.distance_label,
            'stance': c.stance.value,
            'stunned': c.status.stunned,
            'knocked_down': c.status.knocked_down,
            'momentum': c.momentum,
            'ammunition': {k: p.current for k, p in c.ammunition.items()},
            'alive': c.is_alive,
        }

    def roster(self) -> Dict[str, Any]:
        s = self._require_scheduler().session
        return {
            'player': self._unit_view(s.player),
            'allies': [self._unit_view(a) for a in s.allies],
            'enemies': [self._unit_view(e) for e in s.enemies],
        }

    def snapshot(self) -> Dict[str, Any]:
        s = self._require_scheduler().session
        return {
            'active': s.active,
            'turn': s.turn,
            'max_turns': s.max_turns,
            'require_defeat': s.require_defeat,
            'phase': s.phase.value,
            'player_stance': s.player_stance.value,
            'target_area': s.target_area.value,
            'active_enemy_index': s.active_enemy_index,
            'counter': {
                'open': s.counter.open,
                'chain': s.counter.chain,
                'max_chain': s.counter.max_chain,
                'last_actor': s.counter.last_actor.value if s.counter.last_actor else None,
            },
            'awaiting_counter': s.awaiting_counter,
            'pending_waves': len(s.pending_waves),
            'outcome': s.outcome.value if s.outcome else None,
            'roster': self.roster(),
            'available_attacks': [k.value for k in self.available_attacks()] if s.active else [],
        }

    def available_attacks(self) -> List[AttackKind]:
        """Attack menu for the player against the current target."""
        s = self._require_scheduler().session
        player = s.player
        weapon = self.resolver.weapon_of(player)
        if weapon is None:
            kinds = [AttackKind.PUNCH]
        else:
            kinds = list(self.tables.weapon_attacks.get(weapon.weapon_type or "", (AttackKind.STRIKE,)))
            kinds = [k for k in kinds if self.resolver.can_use(player, k)] or [AttackKind.STRIKE]
        target = s.target_enemy()
        if target is not None and not self._two_handed(player) \
                and self.resolver.can_use(player, AttackKind.JAVELIN) \
                and self.resolver.in_range(player, AttackKind.JAVELIN, target.distance):
            kinds.append(AttackKind.JAVELIN)
        if self.resolver.has_shield(player):
            kinds.extend([AttackKind.SHIELD_BASH, AttackKind.SHIELD_SHOVE])
        return kinds

    def _two_handed(self, player) -> bool:
        weapon = self.resolver.weapon_of(player)
        return weapon is not None and weapon.hands >= 2

    # ------------------------------------------------------------------
    # player actions
    # ------------------------------------------------------------------
    def handle_player_action(self, action: str, params: Optional[Dict[str, Any]] = None) -> bool:
        """Apply a player action. False (with a narrated reason) on a soft failure."""
        scheduler = self._require_scheduler()
        if not scheduler.session.active:
            raise CombatError("Combat session is no longer active")
        handler = self._handlers.get(action)
        if handler is None:
            raise CombatError(f"Unknown combat action '{action}'")
        return handler(params or {})

    def _soft_fail(self, message: str) -> bool:
        self._scheduler.narrate(message)
        self.ui.notify_state_changed()
        return False

    def _turn_check(self) -> Optional[str]:
        s = self._scheduler.session
        if s.awaiting_counter:
            return "Devi prima decidere il contrattacco."
        if s.phase != Phase.PLAYER or s.busy:
            return "Non è il tuo turno."
        return None

    def _living_target(self) -> Optional[Combatant]:
        target = self._scheduler.session.target_enemy()
        if target is None or not target.is_alive:
            return None
        return target

    def _act_change_distance(self, params: Dict[str, Any]) -> bool:
        problem = self._turn_check()
        if problem:
            return self._soft_fail(problem)
        change = int(params.get("change", 0))
        if change not in (-1, 1):
            raise CombatError(f"change_distance expects change=-1 or +1, got {change}")
        target = self._living_target()
        if target is None:
            return self._soft_fail("Nessun bersaglio valido.")
        if not MIN_DISTANCE <= target.distance + change <= MAX_DISTANCE:
            return self._soft_fail("Non puoi spostarti oltre.")
        self._scheduler.player_move(change)
        return True

    def _act_change_stance(self, params: Dict[str, Any]) -> bool:
        problem = self._turn_check()
        if problem:
            return self._soft_fail(problem)
        try:
            stance = Stance(params.get("stance"))
        except ValueError as exc:
            raise CombatError(f"Invalid stance {params.get('stance')!r}") from exc
        if stance == self._scheduler.session.player_stance:
            return self._soft_fail(f"Sei già in posizione {stance.value}.")
        self._scheduler.player_stance(stance)
        return True

    def _act_change_target(self, params: Dict[str, Any]) -> bool:
        try:
            area = TargetArea(params.get("target"))
        except ValueError as exc:
            raise CombatError(f"Invalid target area {params.get('target')!r}") from exc
        s = self._scheduler.session
        s.target_area = area
        self._scheduler.narrate(f"Miri {AREA_LABELS[area]}.")
        self.ui.notify_state_changed()
        return True

    def _act_select_enemy(self, params: Dict[str, Any]) -> bool:
        s = self._scheduler.session
        try:
            index = int(params.get("index"))
        except (TypeError, ValueError) as exc:
            raise CombatError(f"select_enemy expects an integer index, got {params.get('index')!r}") from exc
        if not 0 <= index < len(s.enemies) or not s.enemies[index].is_alive:
            return self._soft_fail("Quel nemico non è un bersaglio valido.")
        if s.phase == Phase.ENEMY:
            # durante la fase nemica l'indice è in uso: si aggiorna il bersaglio salvato
            s.saved_target_index = index
        else:
            s.active_enemy_index = index
        self._scheduler.narrate(f"Bersaglio: {s.enemies[index].name}.")
        self.ui.notify_state_changed()
        return True

    def _parse_kind(self, params: Dict[str, Any], default: AttackKind) -> AttackKind:
        raw = params.get("attack_kind")
        if raw is None:
            return default
        try:
            return AttackKind(raw)
        except ValueError as exc:
            raise CombatError(f"Invalid attack kind {raw!r}") from exc

    def _act_attack(self, params: Dict[str, Any]) -> bool:
        problem = self._turn_check()
        if problem:
            return self._soft_fail(problem)
        target = self._living_target()
        if target is None:
            return self._soft_fail("Il bersaglio selezionato non può essere attaccato.")
        player = self._scheduler.session.player
        menu = self.available_attacks()
        kind = self._parse_kind(params, menu[0])
        ammo = self.resolver.ammo_type_for(player, kind)
        out_of_ammo = ammo is not None and not player.has_ammo(ammo)
        if out_of_ammo:
            kind = self.resolver.default_melee(player)
        elif kind not in menu and kind != AttackKind.JAVELIN:
            return self._soft_fail(f"Non puoi eseguire '{kind.value}' con l'equipaggiamento attuale.")
        if kind == AttackKind.JAVELIN and self._two_handed(player):
            return self._soft_fail("Con un'arma a due mani non puoi lanciare giavellotti.")
        if not self.resolver.in_range(player, kind, target.distance):
            if out_of_ammo:
                return self._soft_fail(f"Munizioni esaurite e {target.name} è fuori portata ({target.distance_label}).")
            return self._soft_fail(f"{target.name} è fuori portata ({target.distance_label}).")
        if out_of_ammo:
            self._scheduler.narrate("Munizioni esaurite: ripieghi su un attacco in mischia.")
        self._scheduler.player_attack(kind)
        return True

    def _act_counter(self, params: Dict[str, Any]) -> bool:
        s = self._scheduler.session
        if not s.awaiting_counter:
            return self._soft_fail("Non c'è nessun contrattacco da eseguire.")
        player = s.player
        kind = self._parse_kind(params, self.resolver.default_melee(player))
        if kind.is_ranged or kind == AttackKind.SHIELD_SHOVE or not self.resolver.can_use(player, kind):
            return self._soft_fail("Per contrattaccare serve un attacco in mischia.")
        self._scheduler.player_counter(kind)
        return True

    def _act_flee(self, params: Dict[str, Any]) -> bool:
        problem = self._turn_check()
        if problem:
            return self._soft_fail(problem)
        self._scheduler.player_flee()
        return True


__all__ = ["CombatEngine", "CombatError", "PLAYER_ACTIONS"]

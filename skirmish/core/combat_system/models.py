"""Core combat data models and enums."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, Any, Optional


class Phase(Enum):
    """Phases of the combat state machine."""
    INITIAL = "initial"
    PLAYER = "player"
    ALLY = "ally"
    ENEMY = "enemy"
    RESOLUTION = "resolution"


class Stance(Enum):
    """Tactical posture of a combatant."""
    NEUTRAL = "neutral"
    AGGRESSIVE = "aggressive"
    DEFENSIVE = "defensive"
    EVASIVE = "evasive"


class TargetArea(Enum):
    HEAD = "head"
    BODY = "body"
    LEGS = "legs"


class Distance(IntEnum):
    """Distance buckets between two combatants."""
    GRAPPLING = 0
    CLOSE = 1
    MEDIUM = 2
    FAR = 3


DISTANCE_LABELS = {
    Distance.GRAPPLING: "Grappling",
    Distance.CLOSE: "Close",
    Distance.MEDIUM: "Medium",
    Distance.FAR: "Far",
}


class AttackKind(Enum):
    """Attack kinds with their own damage/accuracy multipliers."""
    STRIKE = "strike"
    PUNCH = "punch"
    SLASH = "slash"
    STAB = "stab"
    CLEAVE = "cleave"
    SWEEP = "sweep"
    HOOK = "hook"
    BASH = "bash"
    SHOOT = "shoot"
    AIMED_SHOT = "aimed_shot"
    JAVELIN = "javelin"
    SHIELD_BASH = "shield_bash"
    SHIELD_SHOVE = "shield_shove"

    @property
    def is_ranged(self) -> bool:
        return self in (AttackKind.SHOOT, AttackKind.AIMED_SHOT, AttackKind.JAVELIN)

    @property
    def needs_shield(self) -> bool:
        return self in (AttackKind.SHIELD_BASH, AttackKind.SHIELD_SHOVE)


class Outcome(Enum):
    VICTORY = "victory"
    DEFEAT = "defeat"
    DRAW = "draw"
    RETREAT = "retreat"


class Side(Enum):
    """Sides of a counter exchange. Allies fight on the player side."""
    PLAYER = "player"
    ENEMY = "enemy"


class CombatantKind(Enum):
    PLAYER = "player"
    ALLY = "ally"
    ENEMY = "enemy"


class ActionType(Enum):
    DISTANCE = "distance"
    STANCE = "stance"
    ATTACK = "attack"


class CombatError(Exception):
    """Programmer error: misuse of the combat API, never a gameplay failure."""


MIN_DISTANCE = int(Distance.GRAPPLING)
MAX_DISTANCE = int(Distance.FAR)
MOMENTUM_LIMIT = 5


@dataclass
class StatusEffects:
    """Transient conditions that replace a combatant's next action."""
    stunned: bool = False
    knocked_down: bool = False

    def any(self) -> bool:
        return self.stunned or self.knocked_down

    def clear(self):
        self.stunned = False
        self.knocked_down = False


@dataclass
class AmmoPool:
    """Ammunition carried for one ammo type (javelin, arrow, bolt...)."""
    current: int
    max: int = 0
    name: str = ""
    damage_bonus: int = 0

    def __post_init__(self):
        if self.max < self.current:
            self.max = self.current


@dataclass
class Combatant:
    """Common shape of every unit in a battle.

    ``distance`` is the range bucket between this unit and the opposing line:
    for enemies it is their distance from the player, for allies the distance
    from the enemy they engage. The player's own field is unused by the rules,
    every player attack reads the distance stored on the targeted enemy.
    """
    id: str
    name: str
    health: int
    max_health: int
    kind: CombatantKind = CombatantKind.ENEMY
    template_id: Optional[str] = None
    distance: int = int(Distance.MEDIUM)
    stance: Stance = Stance.NEUTRAL
    status: StatusEffects = field(default_factory=StatusEffects)
    ammunition: Dict[str, AmmoPool] = field(default_factory=dict)
    power: int = 5
    defense: int = 5
    accuracy: int = 0
    counter_skill: int = 0
    armor_penetration: int = 0
    has_shield: bool = False
    block_chance: int = 0
    weapon_range: int = 1
    momentum: int = 0

    def __post_init__(self):
        if self.max_health <= 0:
            self.max_health = 1
        self.health = max(0, min(self.max_health, self.health))
        self.distance = max(MIN_DISTANCE, min(MAX_DISTANCE, self.distance))

    # --- vita ---
    @property
    def is_alive(self) -> bool:
        return self.health > 0

    def take_damage(self, amount: int) -> int:
        """Apply damage clamping health at 0. Returns damage actually taken."""
        amount = max(0, int(amount))
        before = self.health
        self.health = max(0, self.health - amount)
        return before - self.health

    def health_ratio(self) -> float:
        return self.health / self.max_health if self.max_health > 0 else 0.0

    # --- distanza ---
    def set_distance(self, value: int) -> int:
        self.distance = max(MIN_DISTANCE, min(MAX_DISTANCE, int(value)))
        return self.distance

    def shift_distance(self, delta: int) -> int:
        return self.set_distance(self.distance + delta)

    @property
    def distance_label(self) -> str:
        return DISTANCE_LABELS[Distance(self.distance)]

    # --- munizioni ---
    def ammo_count(self, ammo_type: str) -> int:
        pool = self.ammunition.get(ammo_type)
        return pool.current if pool else 0

    def has_ammo(self, ammo_type: str) -> bool:
        return self.ammo_count(ammo_type) > 0

    def consume_ammo(self, ammo_type: str, amount: int = 1) -> bool:
        pool = self.ammunition.get(ammo_type)
        if pool is None or pool.current < amount:
            return False
        pool.current -= amount
        return True

    # --- momentum ---
    def add_momentum(self, delta: int) -> int:
        self.momentum = max(-MOMENTUM_LIMIT, min(MOMENTUM_LIMIT, self.momentum + delta))
        return self.momentum

    @property
    def side(self) -> Side:
        return Side.ENEMY if self.kind == CombatantKind.ENEMY else Side.PLAYER


@dataclass
class PlayerCombatant(Combatant):
    """The human-controlled combatant. Skills drive hit chance."""
    kind: CombatantKind = CombatantKind.PLAYER
    skills: Dict[str, int] = field(default_factory=dict)

    def skill(self, name: str) -> int:
        return int(self.skills.get(name, 0))


@dataclass
class AIControlled(Combatant):
    """Shared extension for allies and enemies driven by the AI."""
    preferred_distance: int = int(Distance.CLOSE)
    preferred_stance: Stance = Stance.NEUTRAL
    attacks: List[AttackKind] = field(default_factory=lambda: [AttackKind.STRIKE, AttackKind.SLASH, AttackKind.STAB])
    combos: Dict[str, str] = field(default_factory=dict)  # action key -> follow-up key
    last_action: Optional[str] = None
    description: str = ""


@dataclass
class AllyCombatant(AIControlled):
    kind: CombatantKind = CombatantKind.ALLY
    target_index: Optional[int] = None


@dataclass
class EnemyCombatant(AIControlled):
    kind: CombatantKind = CombatantKind.ENEMY
    experience_value: int = 10
    loot_table: List[str] = field(default_factory=list)
    loot_chance: float = 0.5


@dataclass
class CounterState:
    """Counter window bookkeeping.

    ``player_side_id``/``enemy_side_id`` are the two combatants trading
    ripostes. ``last_actor`` is the side that acted last; the other side
    gets the next attempt.
    """
    open: bool = False
    chain: int = 0
    max_chain: int = 4
    last_actor: Optional[Side] = None
    player_side_id: Optional[str] = None
    enemy_side_id: Optional[str] = None

    def close(self):
        self.open = False
        self.chain = 0
        self.last_actor = None
        self.player_side_id = None
        self.enemy_side_id = None

    @property
    def next_side(self) -> Optional[Side]:
        if not self.open or self.last_actor is None:
            return None
        return Side.ENEMY if self.last_actor == Side.PLAYER else Side.PLAYER


@dataclass
class ResumePoint:
    """Where the phase loop continues once a counter window closes."""
    phase: Phase
    index: int = 0


@dataclass
class AIAction:
    """One decision produced by the AI for an ally or enemy turn."""
    type: ActionType
    value: Any = None  # distance delta or Stance
    attack_kind: Optional[AttackKind] = None
    target_area: TargetArea = TargetArea.BODY
    target_id: Optional[str] = None

    @property
    def key(self) -> str:
        """Memory key used by combo follow-ups (e.g. 'attack:javelin')."""
        if self.type == ActionType.ATTACK and self.attack_kind is not None:
            return f"attack:{self.attack_kind.value}"
        if self.type == ActionType.DISTANCE:
            return "distance:advance" if (self.value or 0) < 0 else "distance:retreat"
        if self.type == ActionType.STANCE and isinstance(self.value, Stance):
            return f"stance:{self.value.value}"
        return self.type.value


@dataclass
class AttackOutcome:
    """Result of one resolved attack (normal, special or counter)."""
    attacker_id: str
    defender_id: str
    attack_kind: AttackKind
    hit: bool = False
    blocked: bool = False
    damage: int = 0
    hit_chance: float = 0.0
    stunned: bool = False
    knocked_down: bool = False
    pushed_back: bool = False
    counter_opened: bool = False
    weapon_broke: bool = False
    defender_defeated: bool = False
    description: List[str] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)  # for telemetry


@dataclass
class CombatSession:
    """Single mutable aggregate root for one battle.

    ``active_enemy_index`` is the player's target; during the enemy phase the
    scheduler reuses it to track whose turn it is and restores it afterwards
    from ``saved_target_index``.
    """
    player: PlayerCombatant
    enemies: List[EnemyCombatant] = field(default_factory=list)
    allies: List[AllyCombatant] = field(default_factory=list)
    active: bool = True
    turn: int = 0
    max_turns: int = 30
    require_defeat: bool = False
    phase: Phase = Phase.INITIAL
    target_area: TargetArea = TargetArea.BODY
    active_enemy_index: int = 0
    counter: CounterState = field(default_factory=CounterState)
    outcome: Optional[Outcome] = None
    # scheduling
    busy: bool = False
    generation: int = 0
    acting_index: int = 0
    saved_target_index: Optional[int] = None
    resume: Optional[ResumePoint] = None
    awaiting_counter: bool = False
    pending_waves: List[List[str]] = field(default_factory=list)
    phase_history: List[Phase] = field(default_factory=list)
    log: List[str] = field(default_factory=list)
    rewards: Optional[Dict[str, Any]] = None

    @property
    def player_stance(self) -> Stance:
        return self.player.stance

    @player_stance.setter
    def player_stance(self, value: Stance):
        self.player.stance = value

    # --- roster accessors ---
    def living_enemies(self) -> List[EnemyCombatant]:
        return [e for e in self.enemies if e.is_alive]

    def living_allies(self) -> List[AllyCombatant]:
        return [a for a in self.allies if a.is_alive]

    def all_enemies_defeated(self) -> bool:
        return all(not e.is_alive for e in self.enemies)

    def target_enemy(self) -> Optional[EnemyCombatant]:
        if 0 <= self.active_enemy_index < len(self.enemies):
            return self.enemies[self.active_enemy_index]
        return None

    def first_living_enemy_index(self) -> int:
        for idx, e in enumerate(self.enemies):
            if e.is_alive:
                return idx
        return 0

    def combatants(self) -> List[Combatant]:
        return [self.player, *self.allies, *self.enemies]

    def find(self, combatant_id: Optional[str]) -> Optional[Combatant]:
        if combatant_id is None:
            return None
        for c in self.combatants():
            if c.id == combatant_id:
                return c
        return None


def engaged_unit(a: Combatant, b: Combatant) -> Combatant:
    """Unit whose ``distance`` field measures the range between ``a`` and ``b``.

    Player vs enemy: the enemy. Anything involving an ally: the ally.
    """
    for unit in (a, b):
        if unit.kind == CombatantKind.ALLY:
            return unit
    for unit in (a, b):
        if unit.kind == CombatantKind.ENEMY:
            return unit
    return a


def engagement_distance(a: Combatant, b: Combatant) -> int:
    return engaged_unit(a, b).distance

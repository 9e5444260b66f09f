"""Collaborators consumed by the combat core, with simple default implementations.

The core only talks to these through the small protocols below:
- RandomSource: uniform() -> float in [0, 1)
- NarrativeSink: emit(message)
- UIRefreshHook: notify_state_changed()
- EquipmentProvider: weapon/shield/armor lookup + durability wear
- RewardResolver: called once at terminal resolution
"""
from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from .models import CombatSession, Combatant, Outcome, TargetArea

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------- RNG ----------------

class RandomSource(Protocol):
    def uniform(self) -> float:
        ...


class SeededRandom:
    """Default RNG: wraps random.Random so a seed gives deterministic battles."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def uniform(self) -> float:
        return self._rng.random()


def roll_int(rng: RandomSource, low: int, high: int) -> int:
    """Uniform integer in [low, high] drawn from a single uniform() call."""
    if high <= low:
        return low
    return low + min(high - low, int(rng.uniform() * (high - low + 1)))


def pick(rng: RandomSource, items: Sequence[T]) -> T:
    return items[min(len(items) - 1, int(rng.uniform() * len(items)))]


def weighted_pick(rng: RandomSource, weighted: Iterable[Tuple[T, float]]) -> T:
    """Single weighted draw. Entries with weight <= 0 are never picked."""
    entries = [(item, w) for item, w in weighted if w > 0]
    if not entries:
        raise ValueError("weighted_pick needs at least one positive weight")
    total = sum(w for _, w in entries)
    roll = rng.uniform() * total
    acc = 0.0
    for item, w in entries:
        acc += w
        if roll < acc:
            return item
    return entries[-1][0]


# ---------------- Narrative / UI ----------------

class NarrativeSink(Protocol):
    def emit(self, message: str) -> None:
        ...


class BufferedNarrativeSink:
    """Keeps emitted lines in memory; front-ends drain() them after each step."""

    def __init__(self):
        self.lines: List[str] = []
        self._cursor = 0

    def emit(self, message: str) -> None:
        self.lines.append(message)

    def drain(self) -> List[str]:
        new = self.lines[self._cursor:]
        self._cursor = len(self.lines)
        return new


class UIRefreshHook(Protocol):
    def notify_state_changed(self) -> None:
        ...


class NullUIHook:
    def __init__(self):
        self.notifications = 0

    def notify_state_changed(self) -> None:
        self.notifications += 1


# ---------------- Equipment ----------------

@dataclass
class EquipmentItem:
    """Equipment template + current durability, as handed out by a provider."""
    id: str
    name: str
    slot: str  # weapon | shield | head | body
    weapon_type: Optional[str] = None
    damage: int = 0
    armor_penetration: int = 0
    defense: int = 0
    block_chance: float = 0.0
    range: int = 1
    hands: int = 1
    ammo_type: Optional[str] = None
    durability: Optional[int] = None
    max_durability: Optional[int] = None

    @property
    def broken(self) -> bool:
        return self.durability is not None and self.durability <= 0

    def durability_ratio(self) -> float:
        if self.durability is None or not self.max_durability:
            return 1.0
        return max(0.0, self.durability / self.max_durability)


class EquipmentProvider(Protocol):
    def weapon(self, combatant: Combatant) -> Optional[EquipmentItem]:
        ...

    def shield(self, combatant: Combatant) -> Optional[EquipmentItem]:
        ...

    def armor(self, combatant: Combatant, area: TargetArea) -> Optional[EquipmentItem]:
        ...

    def wear(self, item: EquipmentItem, amount: int) -> int:
        ...


class LoadoutEquipmentProvider:
    """In-memory provider keyed by combatant id -> slot -> item.

    Broken weapons and shields are not handed out any more; broken armor still
    is (it keeps a fraction of its protection).
    """

    def __init__(self, loadouts: Optional[Dict[str, Dict[str, EquipmentItem]]] = None):
        self._loadouts: Dict[str, Dict[str, EquipmentItem]] = loadouts or {}

    def equip(self, combatant_id: str, item: EquipmentItem):
        """Put ``item`` in its slot. A two-handed weapon and a shield exclude each other."""
        current = self._loadouts.get(combatant_id, {})
        if item.slot == "weapon" and item.hands >= 2:
            self.unequip(combatant_id, "shield")
        elif item.slot == "shield" and current.get("weapon") is not None and current["weapon"].hands >= 2:
            self.unequip(combatant_id, "weapon")
        self._loadouts.setdefault(combatant_id, {})[item.slot] = item

    def unequip(self, combatant_id: str, slot: str):
        self._loadouts.get(combatant_id, {}).pop(slot, None)

    def loadout(self, combatant_id: str) -> Dict[str, EquipmentItem]:
        return dict(self._loadouts.get(combatant_id, {}))

    def weapon(self, combatant: Combatant) -> Optional[EquipmentItem]:
        item = self._loadouts.get(combatant.id, {}).get("weapon")
        if item is None or item.broken:
            return None
        return item

    def shield(self, combatant: Combatant) -> Optional[EquipmentItem]:
        item = self._loadouts.get(combatant.id, {}).get("shield")
        if item is None or item.broken:
            return None
        return item

    def armor(self, combatant: Combatant, area: TargetArea) -> Optional[EquipmentItem]:
        slot = "head" if area == TargetArea.HEAD else "body"
        return self._loadouts.get(combatant.id, {}).get(slot)

    def wear(self, item: EquipmentItem, amount: int) -> int:
        if item.durability is None:
            return -1
        item.durability = max(0, item.durability - max(0, amount))
        return item.durability


def item_from_dict(data: Dict[str, Any]) -> EquipmentItem:
    """Build an EquipmentItem from a template-like dict (player loadouts)."""
    durability = data.get("durability")
    max_durability = data.get("max_durability", durability)
    return EquipmentItem(
        id=data.get("id", data.get("name", "item")),
        name=data.get("name", data.get("id", "item")),
        slot=data["slot"],
        weapon_type=data.get("weapon_type"),
        damage=int(data.get("damage", 0)),
        armor_penetration=int(data.get("armor_penetration", 0)),
        defense=int(data.get("defense", 0)),
        block_chance=float(data.get("block_chance", 0)),
        range=int(data.get("range", 1)),
        hands=int(data.get("hands", 1)),
        ammo_type=data.get("ammo_type"),
        durability=durability,
        max_durability=max_durability,
    )


# ---------------- Rewards ----------------

class RewardResolver(Protocol):
    def resolve(self, session: CombatSession, outcome: Outcome) -> Dict[str, Any]:
        ...


class ExperienceRewardResolver:
    """Default hand-off: experience of defeated enemies plus one loot roll each."""

    def __init__(self, rng: RandomSource):
        self.rng = rng
        self.calls: List[Dict[str, Any]] = []

    def resolve(self, session: CombatSession, outcome: Outcome) -> Dict[str, Any]:
        defeated = [e for e in session.enemies if not e.is_alive]
        reward: Dict[str, Any] = {"outcome": outcome.value, "experience": 0, "loot": []}
        if outcome == Outcome.VICTORY:
            reward["experience"] = sum(e.experience_value for e in defeated)
            for enemy in defeated:
                if enemy.loot_table and self.rng.uniform() < enemy.loot_chance:
                    reward["loot"].append(pick(self.rng, enemy.loot_table))
        self.calls.append(reward)
        logger.info("Rewards resolved: %s", reward)
        return reward

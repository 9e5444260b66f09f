"""Runtime registry of combatant templates.

Acts as the in-memory index of loaded templates and the factory that turns
them into Combatant instances. Every instance is built from a deep copy of
its template, so ammunition pools and lists never alias template data.
"""
from __future__ import annotations
import copy
import logging
from typing import Any, Dict, Iterable, List, Optional

from config import DEFAULT_START_DISTANCE
from .combat_system.models import (
    AllyCombatant, AmmoPool, AttackKind, EnemyCombatant, PlayerCombatant, Stance,
)
from .combat_system.interfaces import EquipmentItem, item_from_dict
from .loader.content_loader import load_combat_content

logger = logging.getLogger(__name__)

DEFAULT_ENEMY_TEMPLATE: Dict[str, Any] = {
    "id": "UNKNOWN",
    "name": "Unknown Enemy",
    "health": 50,
    "max_health": 50,
    "power": 5,
    "defense": 5,
    "attacks": ["strike"],
}

DEFAULT_ALLY_TEMPLATE: Dict[str, Any] = dict(DEFAULT_ENEMY_TEMPLATE, name="Unknown Ally")

DEFAULT_PLAYER_TEMPLATE: Dict[str, Any] = {
    "id": "player",
    "name": "Avventuriero",
    "health": 100,
    "max_health": 100,
    "power": 5,
    "defense": 0,
    "skills": {"melee": 1},
}


def _ammunition(raw: Dict[str, Any]) -> Dict[str, AmmoPool]:
    pools = {}
    for ammo_type, data in (raw or {}).items():
        pools[ammo_type] = AmmoPool(
            current=int(data.get("current", 0)),
            max=int(data.get("max", data.get("current", 0))),
            name=data.get("name", ammo_type),
            damage_bonus=int(data.get("damage_bonus", 0)),
        )
    return pools


def _stats(tpl: Dict[str, Any]) -> Dict[str, Any]:
    return dict(
        name=tpl.get("name", tpl.get("id", "?")),
        health=int(tpl.get("health", tpl.get("max_health", 50))),
        max_health=int(tpl.get("max_health", tpl.get("health", 50))),
        template_id=tpl.get("id"),
        power=int(tpl.get("power", 5)),
        defense=int(tpl.get("defense", 5)),
        accuracy=int(tpl.get("accuracy", 0)),
        counter_skill=int(tpl.get("counter_skill", 0)),
        armor_penetration=int(tpl.get("armor_penetration", 0)),
        has_shield=bool(tpl.get("has_shield", False)),
        block_chance=tpl.get("block_chance", 0),
        weapon_range=int(tpl.get("weapon_range", 1)),
        ammunition=_ammunition(tpl.get("ammunition", {})),
    )


def _ai_stats(tpl: Dict[str, Any], start_distance: int) -> Dict[str, Any]:
    stats = _stats(tpl)
    stats.update(
        distance=start_distance,
        preferred_distance=int(tpl.get("preferred_distance", 1)),
        preferred_stance=Stance(tpl.get("preferred_stance", "neutral")),
        stance=Stance(tpl.get("preferred_stance", "neutral")),
        combos=dict(tpl.get("combos", {})),
        description=tpl.get("description", ""),
    )
    if tpl.get("attacks"):
        stats["attacks"] = [AttackKind(a) for a in tpl["attacks"]]
    return stats


class TemplateRegistry:
    """Enemy / ally / player templates plus the factories that instantiate them."""

    def __init__(self, enemies: Optional[Dict[str, dict]] = None, allies: Optional[Dict[str, dict]] = None,
                 player: Optional[dict] = None):
        self.enemies: Dict[str, dict] = dict(enemies or {})
        self.allies: Dict[str, dict] = dict(allies or {})
        self.player_template: dict = player or dict(DEFAULT_PLAYER_TEMPLATE)
        self._counters: Dict[str, int] = {}

    @classmethod
    def from_assets(cls, assets_dir: Optional[str] = None) -> "TemplateRegistry":
        enemies, allies, player = load_combat_content(assets_dir)
        return cls(enemies, allies, player)

    def register_enemy(self, template: dict):
        self.enemies[template["id"]] = template

    def register_ally(self, template: dict):
        self.allies[template["id"]] = template

    def has_enemy(self, template_id: str) -> bool:
        return template_id in self.enemies

    def has_ally(self, template_id: str) -> bool:
        return template_id in self.allies

    def reset_ids(self):
        self._counters.clear()

    def _next_id(self, prefix: str) -> str:
        n = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = n
        return f"{prefix.lower()}_{n}"

    def _template(self, index: Dict[str, dict], template_id: str, role: str) -> dict:
        tpl = index.get(template_id)
        if tpl is None:
            logger.warning("Unknown %s template '%s': using default combatant", role, template_id)
            default = DEFAULT_ALLY_TEMPLATE if role == "ally" else DEFAULT_ENEMY_TEMPLATE
            tpl = dict(default, id=template_id)
        return copy.deepcopy(tpl)

    # --- factories ---
    def create_enemy(self, template_id: str, start_distance: int = DEFAULT_START_DISTANCE) -> EnemyCombatant:
        tpl = self._template(self.enemies, template_id, "enemy")
        stats = _ai_stats(tpl, start_distance)
        return EnemyCombatant(
            id=self._next_id(template_id),
            experience_value=int(tpl.get("experience_value", 10)),
            loot_table=list(tpl.get("loot_table", [])),
            loot_chance=float(tpl.get("loot_chance", 0.5)),
            **stats,
        )

    def create_enemies(self, template_ids: Iterable[str],
                       start_distance: int = DEFAULT_START_DISTANCE) -> List[EnemyCombatant]:
        return [self.create_enemy(tid, start_distance) for tid in template_ids]

    def create_ally(self, template_id: str, start_distance: int = DEFAULT_START_DISTANCE) -> AllyCombatant:
        tpl = self._template(self.allies, template_id, "ally")
        return AllyCombatant(id=self._next_id(template_id), **_ai_stats(tpl, start_distance))

    def create_player(self, overrides: Optional[Dict[str, Any]] = None) -> PlayerCombatant:
        tpl = copy.deepcopy(self.player_template)
        if overrides:
            tpl.update(copy.deepcopy(overrides))
        stats = _stats(tpl)
        stats["template_id"] = tpl.get("id", "player")
        return PlayerCombatant(id=tpl.get("id", "player"), skills=dict(tpl.get("skills", {})), **stats)

    def player_equipment(self, overrides: Optional[Dict[str, Any]] = None) -> List[EquipmentItem]:
        """Fresh equipment items for the player (template list or override)."""
        items = (overrides or {}).get("equipment", self.player_template.get("equipment", []))
        return [item_from_dict(copy.deepcopy(i)) for i in items]

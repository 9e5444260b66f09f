"""Core combat resolution: hit chance, damage, blocks and special attacks.

Tutte le formule leggono le costanti da ``CombatTables``; lo stato casuale
arriva da un RandomSource iniettato, quindi con uno ScriptedRandom i test
possono forzare blocchi, colpi e mancati.
"""
from __future__ import annotations
import logging
from typing import Optional, Tuple

from .models import (
    AttackKind, AttackOutcome, Combatant, PlayerCombatant, Stance, TargetArea,
    engaged_unit, engagement_distance,
)
from .tables import CombatTables
from .effects import StatusEffect, StatusEffectSystem
from .interfaces import EquipmentItem, EquipmentProvider, RandomSource, SeededRandom, roll_int

logger = logging.getLogger(__name__)

AREA_LABELS = {TargetArea.HEAD: "alla testa", TargetArea.BODY: "al corpo", TargetArea.LEGS: "alle gambe"}


class ActionResolver:
    """Core combat resolution coordinator.

    Pure with respect to the session: it reads and mutates only the two
    combatants (and their gear through the equipment provider) handed to it.
    """

    def __init__(self, tables: Optional[CombatTables] = None, rng: Optional[RandomSource] = None,
                 equipment: Optional[EquipmentProvider] = None,
                 effects: Optional[StatusEffectSystem] = None):
        self.tables = tables or CombatTables()
        self._rng = rng or SeededRandom()
        self.equipment = equipment
        self.effects = effects or StatusEffectSystem()

    def set_rng(self, rng: RandomSource):
        self._rng = rng

    # ------------------------------------------------------------------
    # Equipment lookups
    # ------------------------------------------------------------------
    def weapon_of(self, combatant: Combatant) -> Optional[EquipmentItem]:
        return self.equipment.weapon(combatant) if self.equipment else None

    def shield_of(self, combatant: Combatant) -> Optional[EquipmentItem]:
        return self.equipment.shield(combatant) if self.equipment else None

    def armor_of(self, combatant: Combatant, area: TargetArea) -> Optional[EquipmentItem]:
        return self.equipment.armor(combatant, area) if self.equipment else None

    def has_shield(self, combatant: Combatant) -> bool:
        return combatant.has_shield or self.shield_of(combatant) is not None

    def reach_of(self, combatant: Combatant) -> int:
        weapon = self.weapon_of(combatant)
        if weapon is not None and weapon.weapon_type not in ("bow", "crossbow"):
            return max(1, weapon.range)
        return max(1, combatant.weapon_range)

    def ammo_type_for(self, combatant: Combatant, kind: AttackKind) -> Optional[str]:
        if kind == AttackKind.JAVELIN:
            return "javelin"
        if kind in (AttackKind.SHOOT, AttackKind.AIMED_SHOT):
            weapon = self.weapon_of(combatant)
            return (weapon.ammo_type if weapon and weapon.ammo_type else "arrow")
        return None

    def in_range(self, attacker: Combatant, kind: AttackKind, distance: int) -> bool:
        """Whether ``kind`` can be used at ``distance`` by ``attacker``."""
        t = self.tables
        if kind == AttackKind.JAVELIN:
            return t.javelin_min_distance <= distance <= t.javelin_max_distance
        if kind in (AttackKind.SHOOT, AttackKind.AIMED_SHOT):
            return distance >= 1
        if kind.needs_shield:
            return distance <= 1
        return distance <= self.reach_of(attacker)

    def can_use(self, attacker: Combatant, kind: AttackKind) -> bool:
        """Gear/ammo availability, independent of range."""
        if kind.needs_shield and not self.has_shield(attacker):
            return False
        ammo = self.ammo_type_for(attacker, kind)
        if ammo is not None and not attacker.has_ammo(ammo):
            return False
        return True

    def default_melee(self, attacker: Combatant) -> AttackKind:
        """Fallback attack when a declared ranged option has no ammunition."""
        weapon = self.weapon_of(attacker)
        if weapon is not None and weapon.weapon_type in self.tables.weapon_attacks:
            for kind in self.tables.weapon_attacks[weapon.weapon_type]:
                if not kind.is_ranged:
                    return kind
        if isinstance(attacker, PlayerCombatant):
            return AttackKind.PUNCH if weapon is None else AttackKind.STRIKE
        return AttackKind.STRIKE

    # ------------------------------------------------------------------
    # Hit chance
    # ------------------------------------------------------------------
    def _skill_term(self, attacker: Combatant, kind: AttackKind, command: int = 0) -> float:
        t = self.tables
        if isinstance(attacker, PlayerCombatant):
            skill = attacker.skill("marksmanship" if kind.is_ranged else "melee")
            return skill * t.player_skill_coefficient
        return attacker.accuracy * t.ai_skill_coefficient + command * t.command_hit_coefficient

    def raw_hit_chance(self, attacker: Combatant, defender: Combatant, kind: AttackKind, distance: int,
                       target_area: TargetArea = TargetArea.BODY, hit_bonus: float = 0.0,
                       command: int = 0) -> float:
        """Hit chance on a 0-100 scale, before clamping."""
        t = self.tables
        chance = t.base_hit_chance + self._skill_term(attacker, kind, command)
        chance -= defender.defense * t.defense_hit_coefficient
        chance *= t.accuracy_multiplier(kind)
        if kind.is_ranged:
            chance += t.ranged_distance_hit.get(distance, 0.0)
        else:
            chance += t.melee_distance_hit.get(distance, 0.0)
        chance += t.attacker_stance_hit.get(attacker.stance, 0.0)
        chance += t.defender_stance_hit.get(defender.stance, 0.0)
        chance += t.target_area_hit.get(target_area, 0.0)
        if self.effects.is_vulnerable(defender):
            chance += t.vulnerable_hit_bonus
        if attacker.momentum > 0:
            chance += attacker.momentum * t.momentum_hit_per_point
        if kind == AttackKind.JAVELIN:
            chance += t.javelin_hit_bonus
        chance += hit_bonus
        return chance

    def hit_chance(self, attacker: Combatant, defender: Combatant, kind: AttackKind, distance: int,
                   target_area: TargetArea = TargetArea.BODY, hit_bonus: float = 0.0,
                   command: int = 0) -> float:
        raw = self.raw_hit_chance(attacker, defender, kind, distance, target_area, hit_bonus, command)
        return max(self.tables.min_hit_chance, min(self.tables.max_hit_chance, raw))

    def roll_hit(self, chance: float) -> bool:
        roll = self._rng.uniform() * 100.0
        logger.debug("hit roll %.1f vs %.1f", roll, chance)
        return roll < chance

    def resolve_hit(self, attacker: Combatant, defender: Combatant, kind: AttackKind, distance: int,
                    target_area: TargetArea = TargetArea.BODY, hit_bonus: float = 0.0,
                    command: int = 0) -> bool:
        return self.roll_hit(self.hit_chance(attacker, defender, kind, distance, target_area, hit_bonus, command))

    # ------------------------------------------------------------------
    # Blocks and counters
    # ------------------------------------------------------------------
    def block_chance(self, defender: Combatant) -> float:
        t = self.tables
        shield = self.shield_of(defender)
        if shield is not None and shield.block_chance:
            chance = shield.block_chance
        else:
            chance = defender.block_chance or t.default_block_chance
        if defender.stance == Stance.DEFENSIVE:
            chance += t.defensive_block_bonus
        return chance

    def check_shield_block(self, defender: Combatant) -> bool:
        if not self.has_shield(defender) or self.effects.is_vulnerable(defender):
            return False
        chance = self.block_chance(defender)
        roll = self._rng.uniform() * 100.0
        logger.debug("block roll %s: %.1f vs %.1f", defender.id, roll, chance)
        return roll < chance

    def counter_chance(self, defender: Combatant) -> float:
        t = self.tables
        chance = t.counter_base_chance + defender.counter_skill * t.counter_skill_rate
        if defender.stance == Stance.DEFENSIVE:
            chance += t.counter_defensive_bonus
        return chance

    def should_counter(self, defender: Combatant) -> bool:
        if not defender.is_alive or self.effects.is_vulnerable(defender):
            return False
        return self._rng.uniform() < self.counter_chance(defender)

    # ------------------------------------------------------------------
    # Damage
    # ------------------------------------------------------------------
    def _worn_factor(self, item: Optional[EquipmentItem]) -> float:
        """1.0 above the worn threshold, sliding down to worn_min_factor at 0."""
        if item is None:
            return 1.0
        t = self.tables
        ratio = item.durability_ratio()
        if ratio >= t.worn_threshold:
            return 1.0
        return 1.0 - (1.0 - ratio / t.worn_threshold) * (1.0 - t.worn_min_factor)

    def _base_damage(self, attacker: Combatant, kind: AttackKind, weapon: Optional[EquipmentItem]) -> float:
        t = self.tables
        if kind == AttackKind.JAVELIN:
            pool = attacker.ammunition.get("javelin")
            return t.javelin_damage + (pool.damage_bonus if pool else 0)
        if kind.needs_shield:
            base = float(attacker.power)
        elif weapon is not None:
            base = float(weapon.damage)
        elif isinstance(attacker, PlayerCombatant):
            base = float(t.unarmed_damage)
        else:
            base = float(attacker.power)
        if kind in (AttackKind.SHOOT, AttackKind.AIMED_SHOT):
            pool = attacker.ammunition.get(self.ammo_type_for(attacker, kind) or "")
            base += pool.damage_bonus if pool else 0
        return base

    def armor_penetration(self, attacker: Combatant, kind: AttackKind,
                          weapon: Optional[EquipmentItem] = None) -> int:
        pen = attacker.armor_penetration
        if weapon is not None and not kind.needs_shield:
            pen += weapon.armor_penetration
        if kind == AttackKind.JAVELIN:
            pen += self.tables.javelin_armor_penetration
        return pen

    def effective_defense(self, defender: Combatant, area: TargetArea, penetration: int = 0) -> float:
        armor = self.armor_of(defender, area)
        armor_def = armor.defense * self._worn_factor(armor) if armor is not None else 0.0
        return max(0.0, defender.defense + armor_def - penetration)

    def compute_damage(self, attacker: Combatant, defender: Combatant, kind: AttackKind,
                       target_area: TargetArea = TargetArea.BODY, weapon: Optional[EquipmentItem] = None,
                       damage_multiplier: float = 1.0) -> int:
        """Damage of a landed hit. Stances are read from the two combatants."""
        t = self.tables
        damage = self._base_damage(attacker, kind, weapon)
        if t.damage_variance:
            damage *= 1.0 + (self._rng.uniform() * 2.0 - 1.0) * t.damage_variance
        if isinstance(attacker, PlayerCombatant) and not kind.needs_shield:
            damage += attacker.skill("marksmanship" if kind.is_ranged else "melee")
        damage *= t.damage_multiplier(kind)
        damage *= t.attacker_stance_damage.get(attacker.stance, 1.0)
        damage *= t.target_area_damage.get(target_area, 1.0)
        if weapon is not None and not kind.needs_shield and kind != AttackKind.JAVELIN:
            damage *= self._worn_factor(weapon)
        if attacker.momentum > 0:
            damage += attacker.momentum * t.momentum_damage_per_point
        damage *= damage_multiplier
        effective = self.effective_defense(defender, target_area, self.armor_penetration(attacker, kind, weapon))
        damage = max(1.0, damage - effective * t.defense_damage_rate)
        damage *= t.defender_stance_damage.get(defender.stance, 1.0)
        return max(1, int(round(damage)))

    # ------------------------------------------------------------------
    # Flee
    # ------------------------------------------------------------------
    def flee_chance(self, player: PlayerCombatant, distance: int) -> float:
        t = self.tables
        chance = t.flee_base_chance
        if distance >= 2:
            chance += t.flee_far_bonus
        elif distance == 0:
            chance -= t.flee_grapple_penalty
        chance += player.skill("survival") * t.flee_survival_rate
        return max(0.0, min(1.0, chance))

    def attempt_flee(self, player: PlayerCombatant, distance: int) -> bool:
        return self._rng.uniform() < self.flee_chance(player, distance)

    # ------------------------------------------------------------------
    # Full attack
    # ------------------------------------------------------------------
    def _wear_gear(self, item: Optional[EquipmentItem], amount: Optional[int] = None) -> bool:
        """Consume durability (1-2 when not given). Returns True when this wear broke the item."""
        if item is None or self.equipment is None or item.durability is None:
            return False
        if amount is None:
            amount = roll_int(self._rng, self.tables.durability_loss_min, self.tables.durability_loss_max)
        was_intact = item.durability > 0
        remaining = self.equipment.wear(item, amount)
        return was_intact and remaining == 0

    def _wear_armor(self, defender: Combatant, area: TargetArea, amount: int, result: AttackOutcome):
        armor = self.armor_of(defender, area)
        if armor is None or armor.durability is None or self.equipment is None:
            return
        before = armor.durability_ratio()
        remaining = self.equipment.wear(armor, amount)
        if remaining == 0 and before > 0:
            result.description.append(f"{armor.name} di {defender.name} è distrutta!")
        elif armor.durability_ratio() < self.tables.worn_threshold <= before:
            result.description.append(f"{armor.name} di {defender.name} è in condizioni critiche.")

    def resolve_attack(self, attacker: Combatant, defender: Combatant, kind: AttackKind,
                       target_area: TargetArea = TargetArea.BODY, hit_bonus: float = 0.0,
                       damage_multiplier: float = 1.0, is_counter: bool = False,
                       allow_counter: bool = True, command: int = 0) -> AttackOutcome:
        """Main resolution entry point for any attack, counters included."""
        result = AttackOutcome(attacker_id=attacker.id, defender_id=defender.id, attack_kind=kind)
        if not attacker.is_alive or not defender.is_alive:
            result.description.append("Bersaglio non valido.")
            result.events.append({'type': 'attack_invalid', 'attacker': attacker.id, 'defender': defender.id})
            return result

        ammo_type = self.ammo_type_for(attacker, kind)
        if ammo_type is not None and not attacker.has_ammo(ammo_type):
            fallback = self.default_melee(attacker)
            logger.warning("%s has no %s left, falling back to %s", attacker.id, ammo_type, fallback.value)
            result.description.append(f"{attacker.name} non ha più munizioni e ripiega su un attacco in mischia.")
            kind = fallback
            result.attack_kind = kind
            ammo_type = None
        if ammo_type is not None:
            attacker.consume_ammo(ammo_type)

        if kind == AttackKind.SHIELD_SHOVE:
            return self._resolve_shove(attacker, defender, result)

        weapon = None if kind.needs_shield or kind == AttackKind.JAVELIN else self.weapon_of(attacker)
        worn_item = self.shield_of(attacker) if kind.needs_shield else weapon
        if self._wear_gear(worn_item):
            result.weapon_broke = True
            result.description.append(f"{worn_item.name} di {attacker.name} si spezza!")

        if self.check_shield_block(defender):
            result.blocked = True
            result.description.append(f"{defender.name} para il colpo con lo scudo!")
            result.events.append({'type': 'attack_blocked', 'attacker': attacker.id, 'defender': defender.id})
            return result

        distance = engagement_distance(attacker, defender)
        chance = self.hit_chance(attacker, defender, kind, distance, target_area, hit_bonus, command)
        result.hit_chance = chance
        if not self.roll_hit(chance):
            result.description.append(f"{attacker.name} manca {defender.name}.")
            if allow_counter and not is_counter and kind != AttackKind.JAVELIN:
                result.counter_opened = self.should_counter(defender)
            result.events.append({
                'type': 'attack_missed', 'attacker': attacker.id, 'defender': defender.id,
                'kind': kind.value, 'hit_chance': chance, 'counter': result.counter_opened,
            })
            return result

        result.hit = True
        damage = self.compute_damage(attacker, defender, kind, target_area, weapon, damage_multiplier)
        result.damage = defender.take_damage(damage)
        attacker.add_momentum(1)
        defender.add_momentum(-1)
        self._wear_armor(defender, target_area,
                         self.tables.armor_wear_on_counter if is_counter else self.tables.armor_wear_on_hit,
                         result)
        label = "Contrattacco" if is_counter else "Colpo"
        result.description.insert(0, f"{label} di {attacker.name} {AREA_LABELS[target_area]} "
                                     f"di {defender.name}: {result.damage} danni.")

        if kind == AttackKind.SHIELD_BASH and defender.is_alive \
                and self._rng.uniform() < self.tables.shield_bash_stun_chance:
            self.effects.apply_effect(defender, StatusEffect.STUNNED)
            result.stunned = True
            result.description.append(f"{defender.name} è stordito!")

        result.defender_defeated = not defender.is_alive
        if result.defender_defeated:
            result.description.append(f"{defender.name} cade a terra, sconfitto.")
        result.events.append({
            'type': 'attack_resolved', 'attacker': attacker.id, 'defender': defender.id,
            'kind': kind.value, 'area': target_area.value, 'damage': result.damage,
            'hit_chance': chance, 'counter': is_counter,
        })
        return result

    def shove_scores(self, attacker: Combatant, defender: Combatant) -> Tuple[float, float]:
        spread = self.tables.shove_roll_range
        att = attacker.power + self._combat_skill(attacker) + self._rng.uniform() * spread
        dfn = defender.power + defender.counter_skill + self._rng.uniform() * spread
        return att, dfn

    def _combat_skill(self, combatant: Combatant) -> int:
        if isinstance(combatant, PlayerCombatant):
            return combatant.skill("melee")
        return combatant.counter_skill

    def _resolve_shove(self, attacker: Combatant, defender: Combatant, result: AttackOutcome) -> AttackOutcome:
        """Opposed strength check: push back one step, knock down on a wide margin."""
        self._wear_gear(self.shield_of(attacker), 1)
        att, dfn = self.shove_scores(attacker, defender)
        margin = att - dfn
        result.events.append({'type': 'shield_shove', 'attacker': attacker.id, 'defender': defender.id,
                              'margin': round(margin, 2)})
        if margin <= 0:
            result.description.append(f"{defender.name} regge la spinta di {attacker.name}.")
            return result
        result.hit = True
        result.pushed_back = True
        engaged_unit(attacker, defender).shift_distance(1)
        result.description.append(f"{attacker.name} respinge {defender.name} con lo scudo!")
        if margin >= self.tables.shove_knockdown_margin:
            self.effects.apply_effect(defender, StatusEffect.KNOCKED_DOWN)
            result.knocked_down = True
            result.description.append(f"{defender.name} finisce a terra!")
        return result

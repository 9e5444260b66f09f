"""Numeric rule tables for combat resolution and AI.

All tuning constants live here so the resolver and the AI stay pure
functions of (state, tables, rng). Percent values are on a 0-100 scale,
multipliers are plain factors.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .models import AttackKind, Stance, TargetArea


def _attack_multipliers() -> Dict[AttackKind, Tuple[float, float]]:
    # (damage, accuracy)
    return {
        AttackKind.STRIKE: (1.0, 1.0),
        AttackKind.PUNCH: (0.5, 1.0),
        AttackKind.SLASH: (1.0, 1.0),
        AttackKind.STAB: (1.2, 0.9),
        AttackKind.CLEAVE: (1.5, 0.8),
        AttackKind.SWEEP: (0.8, 1.1),
        AttackKind.HOOK: (1.1, 0.85),
        AttackKind.BASH: (0.7, 0.9),
        AttackKind.SHOOT: (1.3, 0.8),
        AttackKind.AIMED_SHOT: (1.8, 0.6),
        AttackKind.JAVELIN: (1.0, 1.0),
        AttackKind.SHIELD_BASH: (0.6, 0.9),
        AttackKind.SHIELD_SHOVE: (0.0, 0.9),
    }


def _weapon_attacks() -> Dict[str, Tuple[AttackKind, ...]]:
    return {
        "sword": (AttackKind.SLASH, AttackKind.STAB),
        "greatsword": (AttackKind.SLASH, AttackKind.CLEAVE),
        "spear": (AttackKind.STAB, AttackKind.SWEEP),
        "axe": (AttackKind.CLEAVE, AttackKind.HOOK),
        "battle_axe": (AttackKind.CLEAVE, AttackKind.HOOK),
        "dagger": (AttackKind.STAB, AttackKind.SLASH),
        "bow": (AttackKind.SHOOT, AttackKind.AIMED_SHOT),
        "crossbow": (AttackKind.SHOOT, AttackKind.AIMED_SHOT),
        "shield": (AttackKind.BASH,),
    }


@dataclass
class CombatTables:
    """Single configuration structure for every rule constant."""

    # --- hit chance ---
    base_hit_chance: float = 50.0
    player_skill_coefficient: float = 5.0
    ai_skill_coefficient: float = 1.0
    defense_hit_coefficient: float = 1.0
    command_hit_coefficient: float = 2.0
    min_hit_chance: float = 5.0
    max_hit_chance: float = 95.0
    melee_distance_hit: Dict[int, float] = field(default_factory=lambda: {0: 20.0, 1: 0.0, 2: -10.0, 3: -20.0})
    ranged_distance_hit: Dict[int, float] = field(default_factory=lambda: {0: -20.0, 1: -5.0, 2: 5.0, 3: 0.0})
    attacker_stance_hit: Dict[Stance, float] = field(default_factory=lambda: {
        Stance.NEUTRAL: 0.0, Stance.AGGRESSIVE: 10.0, Stance.DEFENSIVE: -10.0, Stance.EVASIVE: -5.0,
    })
    defender_stance_hit: Dict[Stance, float] = field(default_factory=lambda: {
        Stance.NEUTRAL: 0.0, Stance.AGGRESSIVE: 5.0, Stance.DEFENSIVE: -15.0, Stance.EVASIVE: -10.0,
    })
    target_area_hit: Dict[TargetArea, float] = field(default_factory=lambda: {
        TargetArea.HEAD: -20.0, TargetArea.BODY: 0.0, TargetArea.LEGS: -10.0,
    })
    vulnerable_hit_bonus: float = 15.0  # stunned or knocked-down defender
    momentum_hit_per_point: float = 5.0

    # --- damage ---
    attack_multipliers: Dict[AttackKind, Tuple[float, float]] = field(default_factory=_attack_multipliers)
    attacker_stance_damage: Dict[Stance, float] = field(default_factory=lambda: {
        Stance.NEUTRAL: 1.0, Stance.AGGRESSIVE: 1.3, Stance.DEFENSIVE: 0.7, Stance.EVASIVE: 0.85,
    })
    defender_stance_damage: Dict[Stance, float] = field(default_factory=lambda: {
        Stance.NEUTRAL: 1.0, Stance.AGGRESSIVE: 1.0, Stance.DEFENSIVE: 0.7, Stance.EVASIVE: 1.0,
    })
    target_area_damage: Dict[TargetArea, float] = field(default_factory=lambda: {
        TargetArea.HEAD: 1.5, TargetArea.BODY: 1.0, TargetArea.LEGS: 0.8,
    })
    damage_variance: float = 0.2
    defense_damage_rate: float = 0.3
    unarmed_damage: int = 3
    momentum_damage_per_point: int = 1
    worn_threshold: float = 0.25  # durability ratio under which gear degrades
    worn_min_factor: float = 0.7
    durability_loss_min: int = 1
    durability_loss_max: int = 2
    armor_wear_on_hit: int = 1
    armor_wear_on_counter: int = 2

    # --- shield ---
    default_block_chance: float = 15.0
    defensive_block_bonus: float = 15.0
    shield_bash_stun_chance: float = 0.5
    shove_roll_range: float = 10.0
    shove_knockdown_margin: float = 5.0

    # --- javelin ---
    javelin_damage: int = 12
    javelin_hit_bonus: float = 10.0
    javelin_armor_penetration: int = 5
    javelin_min_distance: int = 2
    javelin_max_distance: int = 3

    # --- counters ---
    counter_base_chance: float = 0.3
    counter_skill_rate: float = 0.05
    counter_defensive_bonus: float = 0.2
    counter_hit_bonus: float = 20.0
    counter_damage_multiplier: float = 1.5

    # --- flee ---
    flee_base_chance: float = 0.3
    flee_far_bonus: float = 0.3
    flee_grapple_penalty: float = 0.2
    flee_survival_rate: float = 0.05

    # --- AI ---
    ai_base_weights: Dict[str, float] = field(default_factory=lambda: {"distance": 0.2, "stance": 0.2, "attack": 0.6})
    ai_counter_stance: Dict[Stance, Stance] = field(default_factory=lambda: {
        Stance.AGGRESSIVE: Stance.DEFENSIVE,
        Stance.DEFENSIVE: Stance.EVASIVE,
        Stance.EVASIVE: Stance.AGGRESSIVE,
    })
    ai_low_health: float = 0.3
    ai_ranged_attack_bonus: float = 0.6
    ai_combo_bonus: float = 0.5
    ai_combo_kind_weight: float = 5.0
    ai_javelin_kind_weight: float = 3.0
    ai_enemy_player_weight: float = 3.0
    ai_enemy_ally_weight: float = 1.0

    # --- weapon data ---
    weapon_attacks: Dict[str, Tuple[AttackKind, ...]] = field(default_factory=_weapon_attacks)

    def damage_multiplier(self, kind: AttackKind) -> float:
        return self.attack_multipliers.get(kind, (1.0, 1.0))[0]

    def accuracy_multiplier(self, kind: AttackKind) -> float:
        return self.attack_multipliers.get(kind, (1.0, 1.0))[1]


"""Tactical AI for allies and enemies.

Ogni unità AI produce una sola azione per turno (distanza, posizione o
attacco). La scelta parte da una ripartizione base e viene spostata da:
distanza preferita, contro-posizione rispetto all'avversario, arma a
distanza disponibile, soglie di salute e combo registrate nel template.
"""
from __future__ import annotations
import logging
from typing import Dict, List, Optional, Tuple

from .models import (
    AIAction, AIControlled, ActionType, AttackKind, CombatSession, Combatant,
    Stance, TargetArea, engagement_distance, MIN_DISTANCE, MAX_DISTANCE,
)
from .resolver import ActionResolver
from .tables import CombatTables
from .interfaces import RandomSource, SeededRandom, pick, weighted_pick

logger = logging.getLogger(__name__)

AREA_WEIGHTS: List[Tuple[TargetArea, float]] = [
    (TargetArea.BODY, 0.6), (TargetArea.HEAD, 0.2), (TargetArea.LEGS, 0.2),
]


def parse_action_key(key: str) -> Tuple[str, str]:
    """'attack:javelin' -> ('attack', 'javelin'); 'distance' -> ('distance', '')."""
    head, _, tail = key.partition(":")
    return head, tail


class TacticalAI:
    """AI system that chooses actions based on the tactical situation."""

    def __init__(self, resolver: ActionResolver, tables: Optional[CombatTables] = None,
                 rng: Optional[RandomSource] = None):
        self.resolver = resolver
        self.tables = tables or resolver.tables
        self._rng = rng or SeededRandom()

    def set_rng(self, rng: RandomSource):
        self._rng = rng

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------
    def choose_ally_target(self, session: CombatSession) -> Optional[int]:
        """Index of the living enemy with the lowest current health."""
        best: Optional[int] = None
        for idx, enemy in enumerate(session.enemies):
            if not enemy.is_alive:
                continue
            if best is None or enemy.health < session.enemies[best].health:
                best = idx
        return best

    def choose_enemy_target(self, session: CombatSession) -> Combatant:
        """Player or a living ally, weighted player 3 : 1 per ally."""
        allies = session.living_allies()
        if not allies:
            return session.player
        weighted = [(session.player, self.tables.ai_enemy_player_weight)]
        weighted += [(a, self.tables.ai_enemy_ally_weight) for a in allies]
        return weighted_pick(self._rng, weighted)

    # ------------------------------------------------------------------
    # Combos
    # ------------------------------------------------------------------
    def combo_follow_up(self, unit: AIControlled) -> Optional[str]:
        """Follow-up key declared for the unit's last action, if still usable."""
        if not unit.last_action:
            return None
        follow = unit.combos.get(unit.last_action)
        if not follow:
            return None
        kind_name, detail = parse_action_key(follow)
        if kind_name == ActionType.ATTACK.value:
            try:
                kind = AttackKind(detail)
            except ValueError:
                logger.warning("Unknown combo attack '%s' on %s", follow, unit.id)
                return None
            if not self.resolver.can_use(unit, kind):
                return None
            if not kind.is_ranged and unit.momentum < 0:
                return None
        return follow

    def remember(self, unit: AIControlled, action: AIAction):
        unit.last_action = action.key

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------
    def usable_attacks(self, unit: AIControlled, distance: int) -> List[AttackKind]:
        return [k for k in unit.attacks
                if self.resolver.can_use(unit, k) and self.resolver.in_range(unit, k, distance)]

    def action_weights(self, unit: AIControlled, opponent: Combatant) -> Dict[ActionType, float]:
        t = self.tables
        distance = engagement_distance(unit, opponent)
        weights = {
            ActionType.DISTANCE: t.ai_base_weights.get("distance", 0.2),
            ActionType.STANCE: t.ai_base_weights.get("stance", 0.2),
            ActionType.ATTACK: t.ai_base_weights.get("attack", 0.6),
        }
        if abs(distance - unit.preferred_distance) > 1:
            weights = {ActionType.DISTANCE: 0.6, ActionType.STANCE: 0.2, ActionType.ATTACK: 0.2}
        else:
            counter_stance = t.ai_counter_stance.get(opponent.stance)
            if counter_stance is not None and unit.stance != counter_stance:
                weights = {ActionType.DISTANCE: 0.2, ActionType.STANCE: 0.5, ActionType.ATTACK: 0.3}

        if AttackKind.JAVELIN in unit.attacks and self.resolver.can_use(unit, AttackKind.JAVELIN) \
                and self.resolver.in_range(unit, AttackKind.JAVELIN, distance):
            weights[ActionType.ATTACK] += t.ai_ranged_attack_bonus

        if unit.health_ratio() < t.ai_low_health and unit.stance != Stance.DEFENSIVE:
            weights[ActionType.STANCE] += 0.3
        if opponent.health_ratio() < t.ai_low_health:
            weights[ActionType.ATTACK] += 0.3

        follow = self.combo_follow_up(unit)
        if follow:
            follow_type = ActionType(parse_action_key(follow)[0])
            weights[follow_type] += t.ai_combo_bonus

        if not self.usable_attacks(unit, distance):
            # nessun attacco possibile da qui: il peso va sul movimento
            weights[ActionType.DISTANCE] += weights[ActionType.ATTACK]
            weights[ActionType.ATTACK] = 0.0
        if distance <= MIN_DISTANCE and distance >= unit.preferred_distance and \
                weights[ActionType.ATTACK] > 0:
            # già al corpo a corpo e dove vuole stare: niente da aggiustare
            weights[ActionType.STANCE] += weights[ActionType.DISTANCE]
            weights[ActionType.DISTANCE] = 0.0
        return weights

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    def decide(self, unit: AIControlled, opponent: Combatant) -> AIAction:
        """Produce the unit's action against ``opponent`` for this turn."""
        weights = self.action_weights(unit, opponent)
        logger.debug("AI weights %s: %s", unit.id,
                     {k.value: round(v, 2) for k, v in weights.items()})
        action_type = weighted_pick(self._rng, list(weights.items()))
        distance = engagement_distance(unit, opponent)

        if action_type == ActionType.ATTACK:
            kind = self.choose_attack_kind(unit, distance)
            if kind is not None:
                return AIAction(type=ActionType.ATTACK, attack_kind=kind,
                                target_area=weighted_pick(self._rng, AREA_WEIGHTS),
                                target_id=opponent.id)
            action_type = ActionType.DISTANCE

        if action_type == ActionType.DISTANCE:
            delta = self.choose_distance_delta(unit, distance)
            if delta != 0:
                return AIAction(type=ActionType.DISTANCE, value=delta, target_id=opponent.id)

        return AIAction(type=ActionType.STANCE, value=self.choose_stance(unit, opponent),
                        target_id=opponent.id)

    def choose_attack_kind(self, unit: AIControlled, distance: int) -> Optional[AttackKind]:
        usable = self.usable_attacks(unit, distance)
        if not usable:
            return None
        follow = self.combo_follow_up(unit)
        follow_kind = None
        if follow and parse_action_key(follow)[0] == ActionType.ATTACK.value:
            follow_kind = AttackKind(parse_action_key(follow)[1])
        weighted = []
        for kind in usable:
            if kind == follow_kind:
                weighted.append((kind, self.tables.ai_combo_kind_weight))
            elif kind == AttackKind.JAVELIN:
                weighted.append((kind, self.tables.ai_javelin_kind_weight))
            else:
                weighted.append((kind, 1.0))
        return weighted_pick(self._rng, weighted)

    def choose_distance_delta(self, unit: AIControlled, distance: int) -> int:
        """-1 closes in, +1 backs off, 0 when no move makes sense."""
        follow = self.combo_follow_up(unit)
        if follow == "distance:advance" and distance > MIN_DISTANCE:
            return -1
        if follow == "distance:retreat" and distance < MAX_DISTANCE:
            return 1
        if not self.usable_attacks(unit, distance) and distance > MIN_DISTANCE:
            return -1
        if distance > unit.preferred_distance:
            return -1
        if distance < unit.preferred_distance:
            return 1
        return 0

    def choose_stance(self, unit: AIControlled, opponent: Combatant) -> Stance:
        t = self.tables
        if unit.health_ratio() < t.ai_low_health:
            choice = Stance.DEFENSIVE
        elif opponent.health_ratio() < t.ai_low_health:
            choice = Stance.AGGRESSIVE
        else:
            choice = t.ai_counter_stance.get(opponent.stance, unit.preferred_stance)
        if choice == unit.stance:
            others = [s for s in Stance if s != unit.stance]
            choice = unit.preferred_stance if unit.preferred_stance != unit.stance else pick(self._rng, others)
        return choice

    def choose_counter_kind(self, unit: Combatant) -> AttackKind:
        """Ripostes are always melee: first usable non-ranged attack."""
        attacks = unit.attacks if isinstance(unit, AIControlled) else []
        for kind in attacks:
            if not kind.is_ranged and kind != AttackKind.SHIELD_SHOVE and self.resolver.can_use(unit, kind):
                return kind
        return self.resolver.default_melee(unit)

"""Status effects (stun / knockdown) and their turn consumption."""
from __future__ import annotations
import logging
from enum import Enum
from typing import List, Optional

from .models import Combatant

logger = logging.getLogger(__name__)


class StatusEffect(Enum):
    STUNNED = "stunned"
    KNOCKED_DOWN = "knocked_down"


class TurnForfeit(Enum):
    """What a combatant does instead of acting when an effect consumes its turn."""
    STUNNED = "stunned"   # salta l'azione
    GET_UP = "get_up"     # si rialza, nessun attacco


class StatusEffectSystem:
    """Applies and consumes one-turn status effects stored on the combatant.

    Effects live on ``Combatant.status`` so a snapshot of the session carries
    them; this class only holds the rules.
    """

    def apply_effect(self, combatant: Combatant, effect: StatusEffect):
        if not combatant.is_alive:
            return
        if effect == StatusEffect.STUNNED:
            combatant.status.stunned = True
        elif effect == StatusEffect.KNOCKED_DOWN:
            combatant.status.knocked_down = True
        logger.debug("%s -> %s", combatant.id, effect.value)

    def has_effect(self, combatant: Combatant, effect: StatusEffect) -> bool:
        if effect == StatusEffect.STUNNED:
            return combatant.status.stunned
        return combatant.status.knocked_down

    def get_effects(self, combatant: Combatant) -> List[StatusEffect]:
        return [e for e in StatusEffect if self.has_effect(combatant, e)]

    def is_vulnerable(self, combatant: Combatant) -> bool:
        """Stunned or knocked-down units are easier to hit and cannot riposte."""
        return combatant.status.any()

    def consume_turn(self, combatant: Combatant) -> Optional[TurnForfeit]:
        """Called at the start of the combatant's turn.

        Returns None when the unit may act normally. Otherwise the turn is
        forfeited and every pending effect is cleared: a knocked-down unit
        spends it getting up (which also shakes off a stun), a stunned unit
        just loses it.
        """
        if not combatant.status.any():
            return None
        forfeit = TurnForfeit.GET_UP if combatant.status.knocked_down else TurnForfeit.STUNNED
        combatant.status.clear()
        logger.debug("%s forfeits turn (%s)", combatant.id, forfeit.value)
        return forfeit

    def clear_effects(self, combatant: Combatant):
        combatant.status.clear()

"""Counter-exchange handler: bounded riposte loop opened by a missed attack."""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .models import AttackKind, AttackOutcome, CombatSession, Combatant, Side, TargetArea
from .resolver import ActionResolver

logger = logging.getLogger(__name__)


@dataclass
class CounterResult:
    """What one counter attempt did to the window."""
    outcome: Optional[AttackOutcome] = None
    closed: bool = False      # hit or block: normal flow resumes
    exhausted: bool = False   # chain hit max_chain: go to resolution
    aborted: bool = False     # one side already down


class CounterExchange:
    """Alternating ripostes between the two combatants of a missed attack.

    The window state lives in ``session.counter``; this class applies the
    rules: every attempt bumps ``chain``, a hit or a block closes the window,
    reaching ``max_chain`` closes it as exhausted.
    """

    def __init__(self, resolver: ActionResolver, max_chain: int = 4):
        self.resolver = resolver
        self.max_chain = max_chain

    def open(self, session: CombatSession, attacker: Combatant, defender: Combatant):
        """Open the window after ``attacker`` missed ``defender``."""
        state = session.counter
        state.open = True
        state.chain = 0
        state.max_chain = self.max_chain
        state.last_actor = attacker.side
        if attacker.side == Side.PLAYER:
            state.player_side_id, state.enemy_side_id = attacker.id, defender.id
        else:
            state.player_side_id, state.enemy_side_id = defender.id, attacker.id
        logger.debug("counter window opened: %s missed %s", attacker.id, defender.id)

    def close(self, session: CombatSession):
        session.counter.close()

    def participants(self, session: CombatSession) -> Optional[Tuple[Combatant, Combatant]]:
        """(next actor, its target) or None when the window is shut."""
        state = session.counter
        side = state.next_side
        if side is None:
            return None
        player_side = session.find(state.player_side_id)
        enemy_side = session.find(state.enemy_side_id)
        if player_side is None or enemy_side is None:
            return None
        if side == Side.PLAYER:
            return player_side, enemy_side
        return enemy_side, player_side

    def attempt(self, session: CombatSession, kind: AttackKind,
                target_area: TargetArea = TargetArea.BODY, command: int = 0) -> CounterResult:
        state = session.counter
        pair = self.participants(session)
        if pair is None:
            state.close()
            return CounterResult(aborted=True)
        actor, target = pair
        if not actor.is_alive or not target.is_alive:
            logger.warning("counter aborted: %s or %s already down", actor.id, target.id)
            state.close()
            return CounterResult(aborted=True)

        state.chain = min(state.max_chain, state.chain + 1)
        t = self.resolver.tables
        outcome = self.resolver.resolve_attack(
            actor, target, kind, target_area,
            hit_bonus=t.counter_hit_bonus,
            damage_multiplier=t.counter_damage_multiplier,
            is_counter=True, allow_counter=False, command=command,
        )
        state.last_actor = actor.side
        result = CounterResult(outcome=outcome)
        if outcome.hit or outcome.blocked:
            state.close()
            result.closed = True
        elif state.chain >= state.max_chain:
            state.close()
            result.exhausted = True
            logger.debug("counter chain exhausted after %d exchanges", self.max_chain)
        return result

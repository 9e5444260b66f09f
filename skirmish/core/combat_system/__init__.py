"""Combat system module - internal implementation."""
from .models import (
    CombatSession, CombatError, PlayerCombatant, AllyCombatant, EnemyCombatant,
    Phase, Stance, TargetArea, AttackKind, Outcome,
)
from .tables import CombatTables
from .resolver import ActionResolver
from .effects import StatusEffectSystem
from .ai import TacticalAI
from .counter import CounterExchange
from .scheduler import PhaseScheduler, TaskQueue, evaluate_outcome

__all__ = [
    'CombatSession', 'CombatError', 'PlayerCombatant', 'AllyCombatant', 'EnemyCombatant',
    'Phase', 'Stance', 'TargetArea', 'AttackKind', 'Outcome',
    'CombatTables', 'ActionResolver', 'StatusEffectSystem', 'TacticalAI', 'CounterExchange',
    'PhaseScheduler', 'TaskQueue', 'evaluate_outcome',
]

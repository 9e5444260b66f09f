"""Shared fixtures: scripted RNG, small template registry and zero-delay engines."""
import pytest

from skirmish.core.combat import CombatEngine
from skirmish.core.registry import TemplateRegistry
from skirmish.core.combat_system.tables import CombatTables
from skirmish.core.combat_system.interfaces import BufferedNarrativeSink

ZERO_DELAYS = {"intro": 0, "action": 0, "resolution": 0}


class ScriptedRandom:
    """RandomSource returning queued values first, then ``default``."""

    def __init__(self, values=(), default=0.5):
        self.values = list(values)
        self.default = default
        self.calls = 0

    def push(self, *values):
        self.values.extend(values)

    def uniform(self) -> float:
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return self.default


TEST_ENEMIES = {
    "BRUTE": {
        "id": "BRUTE", "name": "Brute", "health": 30, "max_health": 30,
        "power": 10, "accuracy": 0, "defense": 0, "counter_skill": 0,
        "preferred_distance": 1, "weapon_range": 1, "attacks": ["strike"],
        "experience_value": 10,
    },
    "WEAKLING": {
        "id": "WEAKLING", "name": "Weakling", "health": 1, "max_health": 1,
        "power": 1, "accuracy": 0, "defense": 0, "counter_skill": 0,
        "preferred_distance": 1, "weapon_range": 1, "attacks": ["strike"],
        "experience_value": 15,
    },
    "DUELIST": {
        "id": "DUELIST", "name": "Duelist", "health": 50, "max_health": 50,
        "power": 5, "accuracy": 0, "defense": 0, "counter_skill": 20,
        "preferred_distance": 1, "weapon_range": 1, "attacks": ["strike"],
    },
}

TEST_ALLIES = {
    "SQUIRE": {
        "id": "SQUIRE", "name": "Squire", "health": 40, "max_health": 40,
        "power": 4, "accuracy": 0, "defense": 0, "preferred_distance": 1,
        "weapon_range": 1, "attacks": ["strike"],
    },
}

TEST_PLAYER = {
    "id": "player", "name": "Hero", "health": 100, "max_health": 100,
    "power": 5, "defense": 0, "counter_skill": 0, "skills": {},
}


@pytest.fixture
def scripted():
    """Factory: scripted(values, default=0.5) -> ScriptedRandom."""
    return ScriptedRandom


@pytest.fixture
def tables():
    return CombatTables(damage_variance=0.0)


@pytest.fixture
def registry():
    return TemplateRegistry(TEST_ENEMIES, TEST_ALLIES, TEST_PLAYER)


@pytest.fixture
def make_engine(registry, tables):
    """Factory: engine with zero pacing delays over the test registry."""

    def _make(rng=None, **kwargs):
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("tables", tables)
        kwargs.setdefault("sink", BufferedNarrativeSink())
        kwargs.setdefault("delays", dict(ZERO_DELAYS))
        return CombatEngine(rng=rng or ScriptedRandom(), **kwargs)

    return _make

"""JSON schema definitions for combatant templates.

Defines the structure every enemy / ally / player template in
``skirmish/assets`` must follow. Validation happens at load time
(see content_loader); invalid templates are skipped, never half-loaded.
"""

ATTACK_KINDS = [
    "strike", "punch", "slash", "stab", "cleave", "sweep", "hook", "bash",
    "shoot", "aimed_shot", "javelin", "shield_bash", "shield_shove",
]

STANCES = ["neutral", "aggressive", "defensive", "evasive"]

# 'attack:<kind>', 'distance:advance|retreat', 'stance:<stance>'
ACTION_KEY_PATTERN = (
    r"^(attack:(" + "|".join(ATTACK_KINDS) + r")"
    r"|distance:(advance|retreat)"
    r"|stance:(" + "|".join(STANCES) + r"))$"
)

AMMUNITION_SCHEMA = {
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "required": ["current"],
        "properties": {
            "current": {"type": "integer", "minimum": 0},
            "max": {"type": "integer", "minimum": 0},
            "name": {"type": "string"},
            "damage_bonus": {"type": "integer"},
        },
        "additionalProperties": False,
    },
}

EQUIPMENT_ITEM_SCHEMA = {
    "type": "object",
    "required": ["slot", "name"],
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string", "minLength": 1},
        "slot": {"type": "string", "enum": ["weapon", "shield", "head", "body"]},
        "weapon_type": {"type": "string"},
        "damage": {"type": "integer", "minimum": 0},
        "armor_penetration": {"type": "integer", "minimum": 0},
        "defense": {"type": "integer", "minimum": 0},
        "block_chance": {"type": "number", "minimum": 0, "maximum": 100},
        "range": {"type": "integer", "minimum": 1, "maximum": 3},
        "hands": {"type": "integer", "minimum": 1, "maximum": 2},
        "ammo_type": {"type": "string"},
        "durability": {"type": "integer", "minimum": 0},
        "max_durability": {"type": "integer", "minimum": 1},
    },
    "additionalProperties": False,
}

_COMBAT_STATS = {
    "name": {"type": "string", "minLength": 1},
    "description": {"type": "string"},
    "health": {"type": "integer", "minimum": 1},
    "max_health": {"type": "integer", "minimum": 1},
    "power": {"type": "integer", "minimum": 0},
    "accuracy": {"type": "integer"},
    "speed": {"type": "integer"},
    "defense": {"type": "integer", "minimum": 0},
    "counter_skill": {"type": "integer", "minimum": 0},
    "has_shield": {"type": "boolean"},
    "block_chance": {"type": "number", "minimum": 0, "maximum": 100},
    "armor_penetration": {"type": "integer", "minimum": 0},
    "weapon_range": {"type": "integer", "minimum": 1, "maximum": 3},
    "ammunition": AMMUNITION_SCHEMA,
}

COMBATANT_TEMPLATE_SCHEMA = {
    "type": "object",
    "required": ["id", "name", "health", "max_health"],
    "properties": {
        "id": {"type": "string", "pattern": r"^[A-Z0-9_]+$"},
        **_COMBAT_STATS,
        "preferred_distance": {"type": "integer", "minimum": 0, "maximum": 3},
        "preferred_stance": {"type": "string", "enum": STANCES},
        "weapon": {"type": "string"},
        "armor": {"type": "string"},
        "attacks": {
            "type": "array",
            "minItems": 1,
            "items": {"type": "string", "enum": ATTACK_KINDS},
        },
        "combos": {
            "type": "object",
            "propertyNames": {"pattern": ACTION_KEY_PATTERN},
            "additionalProperties": {"type": "string", "pattern": ACTION_KEY_PATTERN},
        },
        "experience_value": {"type": "integer", "minimum": 0},
        "loot_table": {"type": "array", "items": {"type": "string"}},
        "loot_chance": {"type": "number", "minimum": 0.0, "maximum": 1.0},
    },
    "additionalProperties": False,
}

PLAYER_TEMPLATE_SCHEMA = {
    "type": "object",
    "required": ["name", "health", "max_health"],
    "properties": {
        "id": {"type": "string"},
        **_COMBAT_STATS,
        "skills": {
            "type": "object",
            "additionalProperties": {"type": "integer", "minimum": 0},
        },
        "equipment": {"type": "array", "items": EQUIPMENT_ITEM_SCHEMA},
    },
    "additionalProperties": False,
}

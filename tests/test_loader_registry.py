"""Tests for template loading/validation and the combatant factories."""
import json

import jsonschema
import pytest

from skirmish.core.registry import TemplateRegistry
from skirmish.core.loader.content_loader import (
    load_combat_content, load_templates, validate_template,
)
from skirmish.core.combat_system.models import AttackKind, Stance

VALID = {"id": "BANDIT", "name": "Bandit", "health": 20, "max_health": 20}


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


# ---------------------------------------------------------------------------
# loader
# ---------------------------------------------------------------------------

def test_packaged_assets_load():
    registry = TemplateRegistry.from_assets()
    for tid in ("ARRASI_VAELGORR", "IMPERIAL_DESERTER", "ARRASI_DRUSKARI"):
        assert registry.has_enemy(tid)
    assert registry.has_ally("PAANIC_REGULAR")
    assert registry.player_template["name"] == "Avventuriero"


def test_invalid_templates_are_skipped(tmp_path, caplog):
    path = _write(tmp_path / "enemies.json", [VALID, {"id": "BROKEN", "name": "Broken"}])
    data = load_templates(path)
    assert list(data) == ["BANDIT"]
    assert "Invalid template BROKEN" in caplog.text


def test_category_layout_is_accepted(tmp_path):
    path = _write(tmp_path / "enemies.json", {"bandits": [VALID], "notes": "ignored"})
    assert list(load_templates(path)) == ["BANDIT"]


def test_single_template_file(tmp_path):
    path = _write(tmp_path / "enemies.json", VALID)
    assert list(load_templates(path)) == ["BANDIT"]


def test_malformed_and_missing_files(tmp_path, caplog):
    bad = tmp_path / "enemies.json"
    bad.write_text("{ not json", encoding="utf-8")
    assert load_templates(str(bad)) == {}
    assert "malformed" in caplog.text
    assert load_templates(str(tmp_path / "nope.json")) == {}
    assert "not found" in caplog.text


def test_schema_rejects_bad_fields():
    with pytest.raises(jsonschema.ValidationError):
        validate_template(dict(VALID, id="lowercase"))
    with pytest.raises(jsonschema.ValidationError):
        validate_template(dict(VALID, attacks=["fireball"]))
    with pytest.raises(jsonschema.ValidationError):
        validate_template(dict(VALID, combos={"attack:javelin": "dance:now"}))
    with pytest.raises(jsonschema.ValidationError):
        validate_template(dict(VALID, wings=2))
    assert validate_template(dict(VALID, combos={"attack:javelin": "distance:advance"}))


def test_partial_assets_dir(tmp_path):
    _write(tmp_path / "enemies.json", [VALID])
    enemies, allies, player = load_combat_content(tmp_path)
    assert list(enemies) == ["BANDIT"]
    assert allies == {}
    assert player is None
    registry = TemplateRegistry.from_assets(tmp_path)
    assert registry.create_player().name == "Avventuriero"


# ---------------------------------------------------------------------------
# registry factories
# ---------------------------------------------------------------------------

def test_enemy_from_template():
    registry = TemplateRegistry.from_assets()
    e = registry.create_enemy("ARRASI_VAELGORR", 3)
    assert e.id == "arrasi_vaelgorr_1"
    assert e.template_id == "ARRASI_VAELGORR"
    assert e.health == e.max_health == 90
    assert e.distance == 3
    assert e.preferred_distance == 2
    assert e.stance == Stance.NEUTRAL
    assert e.attacks[0] == AttackKind.JAVELIN
    assert e.ammo_count("javelin") == 3
    assert e.ammunition["javelin"].damage_bonus == 2
    assert e.combos["attack:javelin"] == "distance:advance"
    assert e.experience_value == 20
    assert registry.create_enemy("ARRASI_VAELGORR").id == "arrasi_vaelgorr_2"
    registry.reset_ids()
    assert registry.create_enemy("ARRASI_VAELGORR").id == "arrasi_vaelgorr_1"


def test_instances_do_not_share_template_data():
    registry = TemplateRegistry.from_assets()
    a = registry.create_enemy("ARRASI_VAELGORR")
    b = registry.create_enemy("ARRASI_VAELGORR")
    a.consume_ammo("javelin")
    a.combos["attack:cleave"] = "distance:retreat"
    assert b.ammo_count("javelin") == 3
    assert "attack:cleave" not in b.combos
    tpl = registry.enemies["ARRASI_VAELGORR"]
    assert tpl["ammunition"]["javelin"]["current"] == 3
    assert "attack:cleave" not in tpl["combos"]


def test_unknown_template_falls_back_to_default(caplog):
    registry = TemplateRegistry({}, {})
    e = registry.create_enemy("GHOST", 1)
    assert e.name == "Unknown Enemy"
    assert (e.health, e.power, e.defense) == (50, 5, 5)
    assert e.attacks == [AttackKind.STRIKE]
    assert e.id == "ghost_1"
    assert "Unknown enemy template 'GHOST'" in caplog.text
    ally = registry.create_ally("NOBODY", 1)
    assert ally.name == "Unknown Ally"
    assert "Unknown ally template 'NOBODY'" in caplog.text


def test_player_overrides_and_equipment_copies():
    registry = TemplateRegistry.from_assets()
    p = registry.create_player({"health": 40})
    assert p.id == "player"
    assert p.health == 40
    assert p.skill("melee") == 2
    assert registry.player_template["health"] == 100
    first = registry.player_equipment()
    second = registry.player_equipment()
    assert [i.slot for i in first] == ["weapon", "shield", "head", "body"]
    first[0].durability = 0
    assert second[0].durability == 100
    assert registry.player_equipment({"equipment": []}) == []

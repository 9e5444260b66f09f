"""Load combatant templates: enemies, allies and the default player.

Scans the assets directory (``config.get_assets_dir()`` unless a path is
given) for ``enemies.json``, ``allies.json`` and ``player.json``. Every
template is validated with jsonschema; malformed files and invalid
templates are logged and skipped, never half-loaded.
"""
from __future__ import annotations
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

from config import get_assets_dir
from .schema import COMBATANT_TEMPLATE_SCHEMA, PLAYER_TEMPLATE_SCHEMA

logger = logging.getLogger(__name__)

ENEMIES_FILE = "enemies.json"
ALLIES_FILE = "allies.json"
PLAYER_FILE = "player.json"


def _load_json(file_path: str) -> Any:
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("Template file not found: %s", file_path)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Skipping malformed template file %s: %s", file_path, exc)
    return None


def _collect_items(obj: Any) -> List[dict]:
    """Single item with 'id', a list of items, or category -> list of items."""
    if isinstance(obj, dict) and 'id' in obj:
        return [obj]
    if isinstance(obj, list):
        return [w for w in obj if isinstance(w, dict)]
    items: List[dict] = []
    if isinstance(obj, dict):
        for v in obj.values():
            if isinstance(v, list):
                items.extend(w for w in v if isinstance(w, dict))
    return items


def validate_template(payload: dict, schema: dict = COMBATANT_TEMPLATE_SCHEMA) -> bool:
    """Validate a template against its schema. Raises jsonschema.ValidationError."""
    jsonschema.validate(payload, schema)
    return True


def load_templates(file_path: str) -> Dict[str, dict]:
    """Validated enemy/ally templates from one file, keyed by id."""
    data: Dict[str, dict] = {}
    for item in _collect_items(_load_json(file_path)):
        try:
            validate_template(item)
        except jsonschema.ValidationError as exc:
            logger.warning("Invalid template %s in %s: %s", item.get('id', '?'),
                           os.path.basename(file_path), exc.message)
            continue
        data[item['id']] = item
    return data


def load_player_template(file_path: str) -> Optional[dict]:
    obj = _load_json(file_path)
    if not isinstance(obj, dict):
        return None
    try:
        validate_template(obj, PLAYER_TEMPLATE_SCHEMA)
    except jsonschema.ValidationError as exc:
        logger.warning("Invalid player template in %s: %s", os.path.basename(file_path), exc.message)
        return None
    return obj


def load_combat_content(assets_dir: Optional[str] = None) -> Tuple[Dict[str, dict], Dict[str, dict], Optional[dict]]:
    """(enemies, allies, player) templates from the assets directory."""
    base = str(assets_dir) if assets_dir else str(get_assets_dir())
    enemies = load_templates(os.path.join(base, ENEMIES_FILE))
    allies = load_templates(os.path.join(base, ALLIES_FILE))
    player = load_player_template(os.path.join(base, PLAYER_FILE))
    logger.debug("Loaded %d enemy and %d ally templates from %s", len(enemies), len(allies), base)
    return enemies, allies, player


__all__ = ['load_combat_content', 'load_templates', 'load_player_template', 'validate_template']

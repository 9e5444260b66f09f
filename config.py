"""Configurazione centrale per Skirmish.

Qui centralizziamo i parametri di ritmo del combattimento (ritardi tra le
fasi narrate), la lunghezza massima delle catene di contrattacchi, il limite
di turni di default e il logging. Tutti i valori hanno un default sensato e
possono essere sovrascritti via variabili d'ambiente.

Le costanti numeriche delle regole (tabelle di posizione, modificatori di
distanza, moltiplicatori degli attacchi) NON stanno qui: vivono in
``skirmish.core.combat_system.tables.CombatTables``.
"""
from __future__ import annotations
import os
from pathlib import Path


def _get_int_env(name: str, default: int, minval: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_float_env(name: str, default: float, minval: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = float(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val in {"1", "true", "yes", "on"}


# ---------------- Ritmo (coda differita) ----------------
# Millisecondi simulati tra l'introduzione e la prima fase del giocatore
INTRO_DELAY_MS: int = _get_int_env("SK_INTRO_DELAY_MS", 1000, minval=0)

# Pausa tra la narrazione di un'azione e la sua risoluzione numerica
ACTION_DELAY_MS: int = _get_int_env("SK_ACTION_DELAY_MS", 1000, minval=0)

# Pausa prima di entrare in 'resolution' dopo il turno di un'unità
RESOLUTION_DELAY_MS: int = _get_int_env("SK_RESOLUTION_DELAY_MS", 1500, minval=0)


# ---------------- Regole di sessione ----------------
# Scambi massimi di contrattacchi prima che entrambi si separino
MAX_COUNTER_CHAIN: int = _get_int_env("SK_MAX_COUNTER_CHAIN", 4, minval=1)

# Limite turni quando require_defeat è False
DEFAULT_MAX_TURNS: int = _get_int_env("SK_DEFAULT_MAX_TURNS", 30, minval=1)

# Distanza iniziale di ogni unità AI (0=grappling .. 3=far)
DEFAULT_START_DISTANCE: int = max(0, min(3, _get_int_env("SK_START_DISTANCE", 2)))


# ---------------- CLI ----------------
# Mostra una riga di stato dopo ogni turno nel CLI
CLI_SHOW_STATUS: bool = _get_bool_env("SK_CLI_STATUS", True)

# Secondi reali di attesa tra le righe narrate nel CLI (0 = nessuna pausa)
CLI_PACING_SECONDS: float = _get_float_env("SK_CLI_PACING_SEC", 0.0, minval=0.0)


__all__ = [
    # Ritmo
    "INTRO_DELAY_MS", "ACTION_DELAY_MS", "RESOLUTION_DELAY_MS",
    # Regole
    "MAX_COUNTER_CHAIN", "DEFAULT_MAX_TURNS", "DEFAULT_START_DISTANCE",
    # CLI
    "CLI_SHOW_STATUS", "CLI_PACING_SECONDS",
    # Getter
    "get_combat_seed", "get_log_level", "get_assets_dir",
]


def get_combat_seed() -> int | None:
    """Seed per l'RNG di default. Var: SK_COMBAT_SEED (default: nessun seed)."""
    raw = os.getenv("SK_COMBAT_SEED")
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def get_log_level() -> str:
    """Livello di logging per il CLI. Var: SK_LOG_LEVEL (default WARNING)."""
    val = os.getenv("SK_LOG_LEVEL", "WARNING").strip().upper()
    if val not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return "WARNING"
    return val


def get_assets_dir() -> Path:
    """Cartella dei template JSON. Var: SK_ASSETS_DIR (default: skirmish/assets)."""
    raw = os.getenv("SK_ASSETS_DIR")
    if raw and raw.strip():
        return Path(raw.strip())
    return Path(__file__).resolve().parent / "skirmish" / "assets"

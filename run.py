"""Minimal CLI loop to play a skirmish from the terminal.

Usage (example):
    python run.py                              # scelta dello scontro da menu
    python run.py ARRASI_VAELGORR IMPERIAL_DESERTER +PAANIC_REGULAR
Gli id preceduti da '+' sono alleati. Poi digita i comandi:
    attack slash
    move -1
    stance defensive
"""
from __future__ import annotations
import difflib
import logging
import sys
import time
try:
    # Forza l'output UTF-8 su Windows per evitare errori 'charmap' durante la stampa
    sys.stdout.reconfigure(encoding='utf-8')
    sys.stderr.reconfigure(encoding='utf-8')
except AttributeError:
    pass

from config import CLI_SHOW_STATUS, CLI_PACING_SECONDS, get_log_level
from skirmish.core.combat import CombatEngine, CombatError
from skirmish.core.combat_system.interfaces import BufferedNarrativeSink
from skirmish.core.combat_system.models import Phase

PROMPT = "> "

SCENARIOS = [
    ("Schermaglia con un Vaelgorr", ["ARRASI_VAELGORR"], [], {}),
    ("Disertori imperiali", ["IMPERIAL_DESERTER", "IMPERIAL_DESERTER"], ["PAANIC_REGULAR"], {}),
    ("Il Druskari (fino alla morte)", ["ARRASI_DRUSKARI"], ["PAANIC_REGULAR"], {"require_defeat": True}),
    ("Ondate Arrasi", ["ARRASI_VAELGORR"], ["PAANIC_REGULAR"],
     {"waves": [{"type": "ARRASI_VAELGORR", "waves": 1}, {"type": "ARRASI_DRUSKARI", "waves": 1}]}),
]

COMMAND_HELP = {
    'attack': {'usage': 'attack [tipo]', 'desc': 'Attacca il bersaglio attuale (tipi: vedi status).'},
    'counter': {'usage': 'counter [tipo]', 'desc': 'Contrattacca quando si apre la finestra.'},
    'move': {'usage': 'move -1|+1', 'desc': 'Avvicinati (-1) o allontanati (+1) dal bersaglio.'},
    'stance': {'usage': 'stance <neutral|aggressive|defensive|evasive>', 'desc': 'Cambia posizione.'},
    'aim': {'usage': 'aim <head|body|legs>', 'desc': 'Sceglie la zona da colpire (azione libera).'},
    'target': {'usage': 'target <n>', 'desc': 'Seleziona il nemico n (azione libera).'},
    'flee': {'usage': 'flee', 'desc': 'Tenta la fuga; più facile a distanza.'},
    'status': {'usage': 'status', 'desc': 'Mostra schieramenti, distanze e attacchi disponibili.'},
    'help': {'usage': 'help [comando]', 'desc': 'Senza argomenti elenca tutto; con argomento mostra usage.'},
    'quit': {'usage': 'quit | exit', 'desc': 'Esce dal combattimento.'},
}


def help_lines():
    lines = ["Comandi disponibili:"]
    max_usage = max(len(info['usage']) for info in COMMAND_HELP.values())
    for info in COMMAND_HELP.values():
        lines.append(f" {info['usage'].ljust(max_usage)}  - {info['desc']}")
    return lines


def status_lines(engine: CombatEngine):
    snap = engine.snapshot()
    roster = snap['roster']
    p = roster['player']
    lines = [
        f"Turno {snap['turn']}/{snap['max_turns']} | fase {snap['phase']} | "
        f"posizione {snap['player_stance']} | mira {snap['target_area']}",
        f"  {p['name']}: {p['health']}/{p['max_health']} PV, giavellotti {p['ammunition'].get('javelin', 0)}",
    ]
    for a in roster['allies']:
        lines.append(f"  [alleato] {a['name']}: {a['health']}/{a['max_health']} PV, {a['distance_label']}")
    for idx, e in enumerate(roster['enemies']):
        mark = "*" if idx == snap['active_enemy_index'] else " "
        state = "" if e['alive'] else " (a terra)"
        lines.append(f" {mark}[{idx}] {e['name']}: {e['health']}/{e['max_health']} PV, "
                     f"{e['distance_label']}, {e['stance']}{state}")
    if snap['available_attacks']:
        lines.append("  Attacchi: " + ", ".join(snap['available_attacks']))
    return lines


def flush(sink: BufferedNarrativeSink):
    for line in sink.drain():
        print(line)
        if CLI_PACING_SECONDS:
            time.sleep(CLI_PACING_SECONDS)


def choose_scenario():
    print("Scegli lo scontro:")
    for idx, (title, *_rest) in enumerate(SCENARIOS, start=1):
        print(f" {idx}) {title}")
    while True:
        raw = input(PROMPT).strip()
        if raw in {"quit", "exit"}:
            return None
        if raw.isdigit() and 1 <= int(raw) <= len(SCENARIOS):
            return SCENARIOS[int(raw) - 1]
        print(f"Inserisci un numero tra 1 e {len(SCENARIOS)}.")


def parse_command(cmd: str):
    """Map a CLI line to (action, params) or None."""
    parts = cmd.split()
    name, args = parts[0], parts[1:]
    if name == 'attack':
        return 'attack', ({'attack_kind': args[0]} if args else {})
    if name == 'counter':
        return 'counter', ({'attack_kind': args[0]} if args else {})
    if name == 'move' and args:
        return 'change_distance', {'change': -1 if args[0].startswith('-') else 1}
    if name == 'stance' and args:
        return 'change_stance', {'stance': args[0]}
    if name == 'aim' and args:
        return 'change_target', {'target': args[0]}
    if name == 'target' and args and args[0].isdigit():
        return 'select_enemy', {'index': int(args[0])}
    if name == 'flee':
        return 'flee', {}
    return None


def combat_loop(engine: CombatEngine, sink: BufferedNarrativeSink):
    engine.run_pending()
    flush(sink)
    while engine.session.active:
        if CLI_SHOW_STATUS and engine.phase == Phase.PLAYER and not engine.session.awaiting_counter:
            for line in status_lines(engine):
                print(line)
        cmd = input(PROMPT).strip()
        if not cmd:
            continue
        if cmd in {"quit", "exit"}:
            print("Abbandoni il combattimento.")
            return
        if cmd.startswith("help"):
            parts = cmd.split(maxsplit=1)
            if len(parts) == 1:
                for line in help_lines():
                    print(line)
            else:
                topic = parts[1].strip()
                info = COMMAND_HELP.get(topic)
                if info:
                    print(f"Uso: {info['usage']}\n{info['desc']}")
                else:
                    close = difflib.get_close_matches(topic, COMMAND_HELP.keys(), n=3)
                    hint = f" Forse intendevi: {', '.join(close)}" if close else ""
                    print(f"Comando '{topic}' non trovato.{hint}")
            continue
        if cmd == "status":
            for line in status_lines(engine):
                print(line)
            continue
        parsed = parse_command(cmd)
        if parsed is None:
            close = difflib.get_close_matches(cmd.split()[0], COMMAND_HELP.keys(), n=3)
            hint = f" Forse intendevi: {', '.join(close)}" if close else ""
            print(f"Comando non riconosciuto.{hint}")
            continue
        try:
            engine.handle_player_action(*parsed)
        except CombatError as e:
            print(f"Errore: {e}")
            continue
        engine.run_pending()
        flush(sink)
    rewards = engine.session.rewards or {}
    if rewards.get('experience'):
        print(f"Esperienza guadagnata: {rewards['experience']}")
    if rewards.get('loot'):
        print("Bottino: " + ", ".join(rewards['loot']))


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=get_log_level(), format="%(levelname)s %(name)s: %(message)s")
    sink = BufferedNarrativeSink()
    engine = CombatEngine(sink=sink)
    if argv:
        enemies = [a for a in argv if not a.startswith('+')]
        allies = [a[1:] for a in argv if a.startswith('+')]
        options = {}
    else:
        picked = choose_scenario()
        if picked is None:
            print("Arrivederci.")
            return
        _title, enemies, allies, options = picked
    print("-- Digita 'help' per l'elenco comandi. --")
    engine.initiate_combat(enemies, allies, options)
    combat_loop(engine, sink)


if __name__ == "__main__":
    main()

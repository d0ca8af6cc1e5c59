"""Audit logging.

Appends structured JSON entries to ~/.gsb/logs.jsonl.
Each entry records one store event (backup, restore, delete, prune) with
timestamp, target name and snapshot.
"""

import json
from datetime import datetime
from pathlib import Path

LOGS_FILE = Path.home() / ".gsb" / "logs.jsonl"


def write_log(entry, path=LOGS_FILE):
    """Append an audit log entry."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    entry = {**entry, "timestamp": datetime.now().isoformat()}
    with open(path, "a") as f:
        f.write(json.dumps(entry) + "\n")


def read_log(path=LOGS_FILE):
    """Return all parseable entries, oldest first."""
    path = Path(path)
    if not path.exists():
        return []
    entries = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return entries

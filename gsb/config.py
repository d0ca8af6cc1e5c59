import json
import os
from pathlib import Path

from dotenv import dotenv_values

from gsb.errors import ConflictError, NotFoundError, ValidationError

GSB_HOME = Path.home() / ".gsb"
GLOBAL_CONFIG_FILE = GSB_HOME / "config.json"
ENV_FILE = GSB_HOME / "env"

# Per-target config record, stored next to the target's snapshots.
CONFIG_FILE = "config.json"

DEFAULT_CONFIG = {
    "root": str(GSB_HOME / "saves"),
    "staged_restore": False,
}

_TRUE = {"1", "true", "yes", "on"}


def load_env():
    """Load ~/.gsb/env into os.environ without overriding what is already set.

    Format: KEY=VALUE, one per line, parsed by python-dotenv.
    """
    if not ENV_FILE.exists():
        return {}
    values = {k: v for k, v in dotenv_values(ENV_FILE).items() if v is not None}
    for key, value in values.items():
        if key not in os.environ:
            os.environ[key] = value
    return values


def load_global_config():
    """Load ~/.gsb/config.json, or {} if it is missing or unreadable."""
    if GLOBAL_CONFIG_FILE.exists():
        try:
            return json.loads(GLOBAL_CONFIG_FILE.read_text())
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def save_global_config(updates):
    """Merge updates into ~/.gsb/config.json."""
    existing = load_global_config()
    existing.update(updates)
    GLOBAL_CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    GLOBAL_CONFIG_FILE.write_text(json.dumps(existing, indent=2) + "\n")


def load_config():
    # Merge order: defaults → global config → ~/.gsb/env → environment
    config = {**DEFAULT_CONFIG, **load_global_config()}
    load_env()
    if os.environ.get("GSB_ROOT"):
        config["root"] = os.environ["GSB_ROOT"]
    if "GSB_STAGED_RESTORE" in os.environ:
        config["staged_restore"] = os.environ["GSB_STAGED_RESTORE"].strip().lower() in _TRUE
    config["root"] = os.path.abspath(os.path.expanduser(config["root"]))
    return config


def target_dir(root, name, must_exist=True):
    """Storage directory for target `name`: an immediate child of `root`."""
    if not name or name in (".", ".."):
        raise ValidationError(f"bad name {name!r}")
    root = os.path.abspath(root)
    path = os.path.join(root, name)
    if os.path.dirname(path) != root:
        raise ValidationError(f"bad name {name!r}")
    if must_exist and not os.path.isdir(path):
        raise NotFoundError(f"unknown target {name!r}")
    return path


def read_config(storage_dir):
    """Return the live source path recorded for a target."""
    path = os.path.join(storage_dir, CONFIG_FILE)
    try:
        with open(path) as f:
            record = json.load(f)
    except FileNotFoundError:
        raise NotFoundError(f"missing {CONFIG_FILE} in {storage_dir}")
    except json.JSONDecodeError as e:
        raise ValidationError(f"invalid JSON in {path}: {e}")
    src = record.get("src") if isinstance(record, dict) else None
    if not src:
        raise ValidationError(f"no src in {path}")
    return src


def write_config(storage_dir, source):
    """Create the config record for a new target. Never overwrites."""
    path = os.path.join(storage_dir, CONFIG_FILE)
    try:
        with open(path, "x") as f:
            json.dump({"src": source}, f)
    except FileExistsError:
        raise ConflictError(f"{path} already exists")
    return path

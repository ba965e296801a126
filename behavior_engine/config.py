"""Engine configuration loaded from YAML."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from behavior_engine.storage import SqliteStorage

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = PROJECT_ROOT / "args" / "behavior_engine.yaml"
CONFIG_ENV_VAR = "BEHAVIOR_ENGINE_CONFIG"

DEFAULTS: dict[str, Any] = {
    "feedback": {"max_events": 200},
    "title_preferences": {"max_records": 500, "expiry_days": 180},
    "corrections": {"max_corrections": 100, "max_accuracy_records": 100, "expiry_days": 90},
    "storage": {"path": "data/behavior_engine.db"},
}

# (section, key) pairs that must be non-negative integers
_LIMITS = [
    ("feedback", "max_events"),
    ("title_preferences", "max_records"),
    ("title_preferences", "expiry_days"),
    ("corrections", "max_corrections"),
    ("corrections", "max_accuracy_records"),
    ("corrections", "expiry_days"),
]


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def check_limit(name: str, value) -> int:
    """Return ``value`` if it is a non-negative integer, else raise ``ValueError``."""

    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def load_config(path: Optional[str | Path] = None) -> dict[str, Any]:
    """Load the ``behavior_engine`` section from YAML, merged over defaults.

    Resolution order: explicit ``path``, then the ``BEHAVIOR_ENGINE_CONFIG``
    environment variable, then ``args/behavior_engine.yaml``. A missing file
    returns the defaults.
    """

    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or CONFIG_PATH
    config_path = Path(path)
    if not config_path.exists():
        return copy.deepcopy(DEFAULTS)

    with open(config_path, encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"{config_path}: expected a mapping at the top level")

    section = payload.get("behavior_engine", {}) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{config_path}: 'behavior_engine' must be a mapping")
    config = _merge(DEFAULTS, section)
    for group, key in _LIMITS:
        check_limit(f"{config_path}: {group}.{key}", config[group][key])
    return config


def storage_from_config(config: Optional[dict[str, Any]] = None) -> SqliteStorage:
    """SQLite storage at ``storage.path``; relative paths resolve from the project root."""

    config = config if config is not None else load_config()
    path = Path(config["storage"]["path"])
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return SqliteStorage(path)

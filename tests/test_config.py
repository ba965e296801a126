import pytest
import yaml

from behavior_engine.config import (
    CONFIG_ENV_VAR,
    DEFAULTS,
    PROJECT_ROOT,
    load_config,
    storage_from_config,
)
from behavior_engine.storage import MemoryStorage
from behavior_engine.title_preferences import TitlePreferenceStore


def test_missing_file_returns_defaults(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config == DEFAULTS
    config["feedback"]["max_events"] = 1
    assert DEFAULTS["feedback"]["max_events"] == 200

def test_yaml_overrides_merge_over_defaults(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text(
        "behavior_engine:\n"
        "  title_preferences:\n"
        "    max_records: 50\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config["title_preferences"] == {"max_records": 50, "expiry_days": 180}
    assert config["feedback"]["max_events"] == 200

def test_env_var_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "env.yaml"
    path.write_text("behavior_engine:\n  feedback:\n    max_events: 7\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert load_config()["feedback"]["max_events"] == 7

def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)

def test_empty_file_returns_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == DEFAULTS

def test_bundled_config_matches_defaults():
    assert load_config(PROJECT_ROOT / "args" / "behavior_engine.yaml") == DEFAULTS

def test_storage_path_resolution(tmp_path):
    relative = storage_from_config({"storage": {"path": "data/x.db"}})
    assert relative.path == PROJECT_ROOT / "data" / "x.db"
    absolute = storage_from_config({"storage": {"path": str(tmp_path / "y.db")}})
    assert absolute.path == tmp_path / "y.db"

def test_store_from_config_uses_limits():
    config = load_config("does-not-exist.yaml")
    config["title_preferences"]["max_records"] = 3
    store = TitlePreferenceStore.from_config(config, storage=MemoryStorage())
    assert store.max_records == 3
    assert store.expiry_days == 180


@pytest.mark.parametrize("value", [-1, "ten", True, 2.5])
def test_invalid_limits_are_rejected(tmp_path, value):
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.safe_dump({"behavior_engine": {"feedback": {"max_events": value}}}), encoding="utf-8")
    with pytest.raises(ValueError, match="feedback.max_events"):
        load_config(path)


def test_zero_limit_is_allowed(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("behavior_engine:\n  corrections:\n    max_corrections: 0\n", encoding="utf-8")
    assert load_config(path)["corrections"]["max_corrections"] == 0

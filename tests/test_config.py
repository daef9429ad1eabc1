"""Tests for configuration loading."""

from pathlib import Path

import pytest

from todo_calendar.config import Config, ConfigModel, get_config, load_config, save_config
from todo_calendar.errors import ConfigError


def test_defaults(tmp_path):
    config = ConfigModel(data_dir=str(tmp_path))
    assert config.backend == "supabase"
    assert config.first_day_of_week == 6
    assert config.request_timeout == 30.0
    assert config.get_config_path() == tmp_path / "config.yaml"
    assert config.get_session_path() == tmp_path / "session.json"


def test_home_is_expanded():
    assert not ConfigModel(data_dir="~/.todo-calendar").data_dir.startswith("~")


@pytest.mark.parametrize("field, value", [
    ("backend", "sqlite"),
    ("first_day_of_week", 7),
    ("request_timeout", 0),
    ("log_level", "chatty"),
    ("web_port", 70000),
])
def test_invalid_values(field, value):
    with pytest.raises(ConfigError):
        ConfigModel(**{field: value})


def test_yaml_round_trip_keeps_values(tmp_path):
    config = ConfigModel(backend="memory", first_day_of_week=0, data_dir=str(tmp_path))
    save_config(config)
    Config._instance = None
    loaded = load_config(tmp_path / "config.yaml")
    assert loaded.backend == "memory"
    assert loaded.first_day_of_week == 0


def test_unknown_keys_are_ignored():
    config = ConfigModel.from_yaml("backend: memory\ntheme: dark\n")
    assert config.backend == "memory"


def test_invalid_yaml():
    with pytest.raises(ConfigError):
        ConfigModel.from_yaml("backend: [unclosed")
    with pytest.raises(ConfigError):
        ConfigModel.from_yaml("- just\n- a list\n")


def test_environment_overrides_file(tmp_path, monkeypatch):
    data_dir = Path(tmp_path / "data")
    data_dir.mkdir(parents=True)
    (data_dir / "config.yaml").write_text("backend: memory\nweb_port: 9000\n")
    monkeypatch.setenv("TODO_CALENDAR_WEB_PORT", "9100")
    monkeypatch.setenv("TODO_CALENDAR_SUPABASE_URL", "https://abc.supabase.co")

    config = get_config()

    assert config.backend == "memory"
    assert config.web_port == 9100
    assert config.supabase_url == "https://abc.supabase.co"
    assert get_config() is config


def test_invalid_environment_value(monkeypatch):
    monkeypatch.setenv("TODO_CALENDAR_FIRST_DAY_OF_WEEK", "9")
    with pytest.raises(ConfigError):
        Config.reload()


def test_missing_file_uses_defaults():
    config = Config.reload()
    assert config.backend == "supabase"
    assert config.data_dir.endswith("data")

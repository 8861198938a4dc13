"""Unit tests for configuration loading (config_loader, config_manager)."""

import json
import os

import pytest

from community_calendar.core.config_loader import Config, load_config
from community_calendar.core.config_manager import ConfigManager, get_config_value, parse_env_file

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def test_defaults() -> None:
    cfg = Config()
    assert cfg.server_port == 8080
    assert cfg.community_utc_offset_hours == 3
    assert cfg.agenda_days == 14
    assert cfg.upcoming_limit == 4
    assert cfg.data_path is None
    assert cfg.api_bearer_token is None


def test_from_dict_coerces_and_clamps() -> None:
    cfg = Config.from_dict(
        {
            "server_port": "9090",
            "community_utc_offset_hours": 20,
            "agenda_days": 0,
            "upcoming_limit": "lots",
            "log_level": "debug",
            "debug_logging": "yes",
        }
    )
    assert cfg.server_port == 9090
    assert cfg.community_utc_offset_hours == 14
    assert cfg.agenda_days == 1
    assert cfg.upcoming_limit == 4
    assert cfg.log_level == "DEBUG"
    assert cfg.debug_logging is True


def test_merged_ignores_none_overrides() -> None:
    cfg = Config(server_port=9000).merged({"server_port": None, "data_path": "/tmp/x.json"})
    assert cfg.server_port == 9000
    assert cfg.data_path == "/tmp/x.json"


def test_load_config_missing_file_uses_defaults(tmp_path) -> None:
    assert load_config(str(tmp_path / "missing.yaml")) == Config()


def test_load_config_yaml(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("server_port: 8181\ncommunity_utc_offset_hours: 2\napi_bearer_token: s3cret\n")
    cfg = load_config(str(path))
    assert cfg.server_port == 8181
    assert cfg.community_utc_offset_hours == 2
    assert cfg.api_bearer_token == "s3cret"


def test_load_config_empty_yaml(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(str(path)) == Config()


def test_load_config_json(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"agenda_days": 7}))
    assert load_config(str(path)).agenda_days == 7


def test_load_config_rejects_non_mapping(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_parse_env_file(tmp_path) -> None:
    env = tmp_path / ".env"
    env.write_text("# comment\nCOMMUNITY_WEB_PORT='9000'\nexport COMMUNITY_API_TOKEN=\"tok\"\nnot a pair\n")
    assert parse_env_file(env) == {"COMMUNITY_WEB_PORT": "9000", "COMMUNITY_API_TOKEN": "tok"}
    assert parse_env_file(tmp_path / "absent") == {}


def test_env_file_never_overrides_environment(tmp_path, monkeypatch) -> None:
    env = tmp_path / ".env"
    env.write_text("COMMUNITY_WEB_PORT=9000\nCOMMUNITY_DATA_PATH=/data/from-env-file.json\n")
    monkeypatch.setenv("COMMUNITY_WEB_PORT", "7000")
    # registered so monkeypatch removes it again after the test
    monkeypatch.setenv("COMMUNITY_DATA_PATH", "")
    monkeypatch.delenv("COMMUNITY_DATA_PATH")

    cfg = ConfigManager(env).load_full_config()

    assert cfg["server_port"] == 7000
    assert cfg["data_path"] == "/data/from-env-file.json"
    assert os.environ["COMMUNITY_DATA_PATH"] == "/data/from-env-file.json"


def test_build_config_from_env(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("COMMUNITY_SERVER_BIND", "127.0.0.1")
    monkeypatch.setenv("COMMUNITY_SERVER_PORT", "not-a-port")
    monkeypatch.setenv("COMMUNITY_UTC_OFFSET_HOURS", "5")
    monkeypatch.setenv("COMMUNITY_API_TOKEN", "tok")
    monkeypatch.setenv("COMMUNITY_LOG_LEVEL", "warning")
    monkeypatch.setenv("COMMUNITY_DEBUG", "true")

    cfg = ConfigManager(tmp_path / ".env").build_config_from_env()

    assert cfg == {
        "server_bind": "127.0.0.1",
        "community_utc_offset_hours": 5,
        "api_bearer_token": "tok",
        "log_level": "WARNING",
        "debug_logging": True,
    }


def test_get_config_value_supports_dicts_and_objects() -> None:
    assert get_config_value({"a": 1}, "a") == 1
    assert get_config_value(Config(), "server_port") == 8080
    assert get_config_value(Config(), "missing", "x") == "x"

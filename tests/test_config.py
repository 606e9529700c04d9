from __future__ import annotations

from pathlib import Path

from mission_control.config import (
    get_coordinator_limits,
    get_dispatcher_settings,
    get_executor_policy,
    get_generator_config,
    load_config,
)
from mission_control.logging_utils import LOG_LEVEL_ENV, resolve_log_level


def test_load_config_missing_and_invalid(tmp_path: Path) -> None:
    assert load_config(tmp_path) == ({}, None)

    state = tmp_path / ".mission_control"
    state.mkdir()
    (state / "config.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    data, err = load_config(tmp_path)
    assert data == {}
    assert err and "mapping" in err

    (state / "config.yaml").write_text("dispatcher: [unclosed\n", encoding="utf-8")
    data, err = load_config(tmp_path)
    assert data == {}
    assert err and err.startswith("Unable to read config.yaml")


def test_typed_settings_fall_back_on_bad_values() -> None:
    config = {
        "dispatcher": {"max_workers": "lots", "batch_size": 5, "force": "yes", "poll_interval_seconds": -1},
        "executor": {"dwell_minutes": {"assigned": 0, "review": "x"}, "debounce_minutes": 1},
        "coordinator": {"max_actions": 4, "max_creates": 0},
        "generator": {"timeout_seconds": 60},
    }

    settings = get_dispatcher_settings(config)
    assert settings.max_workers == 4
    assert settings.batch_size == 5
    assert settings.force is True
    assert settings.poll_interval == 30.0

    policy = get_executor_policy(config)
    assert policy.dwell_for("assigned") == 0.0
    assert policy.dwell_for("review") == 5.0
    assert policy.dwell_for("inbox") == 0.0
    assert policy.debounce_minutes == 1.0
    assert policy.generate_timeout == 60.0

    limits = get_coordinator_limits(config)
    assert (limits.max_actions, limits.max_creates) == (4, 0)
    assert limits.generate_timeout == 60.0


def test_generator_config_defaults_to_command() -> None:
    assert get_generator_config({})["type"] == "command"
    assert get_generator_config({"generator": {"type": "ollama"}}) == {"type": "ollama"}


def test_resolve_log_level_precedence(monkeypatch) -> None:
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    assert resolve_log_level() == "INFO"
    assert resolve_log_level(config={"logging": {"level": "warning"}}) == "WARNING"
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    assert resolve_log_level(config={"logging": {"level": "warning"}}) == "DEBUG"
    assert resolve_log_level("error") == "ERROR"

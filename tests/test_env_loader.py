# tests/test_env_loader.py
"""
Tests for env.loader.load_environment and build_agent_config.

Covers:
- The shipped config/ directory loads
- Profile selection (env.yaml default, argument, AGENT_PROFILE)
- HOST / PORT / BOT_USERNAME overrides
- Defaults for omitted agent options, per-kind timeout merging
- Validation failures
"""

from __future__ import annotations

from pathlib import Path

import pytest

from env.loader import build_agent_config, load_environment
from env.schema import DEFAULT_ACTION_TIMEOUTS_MS, AgentConfig

ENV_YAML = """\
profile: dev
profiles:
  dev:
    bot_username: digger
    model_profile: tiny
    connection:
      host: 10.0.0.5
      port: 4000
    agent:
      cadence_ms: 5000
      planner_timeout_ms: 1500
      action_timeout_ms_by_kind:
        move_to: 12000
  other:
    bot_username: other_bot
    model_profile: tiny
"""

MODELS_YAML = """\
model_profiles:
  tiny:
    path: models/tiny.gguf
    context_length: 2048
    temperature: 0.1
"""


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("HOST", "PORT", "BOT_USERNAME", "AGENT_PROFILE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    (tmp_path / "env.yaml").write_text(ENV_YAML, encoding="utf-8")
    (tmp_path / "models.yaml").write_text(MODELS_YAML, encoding="utf-8")
    return tmp_path


def test_shipped_config_loads() -> None:
    profile = load_environment()

    assert profile.name == "local"
    assert profile.agent.cadence_ms == 10_000
    assert profile.agent.planner_timeout_ms is None
    assert profile.agent.entity_radius == 32.0


def test_active_profile_from_file(config_dir: Path) -> None:
    profile = load_environment(config_dir=config_dir)

    assert profile.name == "dev"
    assert profile.bot_username == "digger"
    assert (profile.connection.host, profile.connection.port) == ("10.0.0.5", 4000)
    assert profile.agent.cadence_s == 5.0
    assert profile.agent.planner_timeout_s == 1.5
    assert profile.agent.timeout_s("move_to") == 12.0
    assert profile.agent.timeout_s("eat") == DEFAULT_ACTION_TIMEOUTS_MS["eat"] / 1000.0
    assert profile.model.path == "models/tiny.gguf"
    assert profile.model.max_tokens == 1024


def test_profile_argument_and_env_var(config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    assert load_environment(config_dir=config_dir, profile="other").bot_username == "other_bot"

    monkeypatch.setenv("AGENT_PROFILE", "other")
    profile = load_environment(config_dir=config_dir)
    assert profile.name == "other"
    assert profile.agent == build_agent_config({})


def test_process_environment_overrides_connection(config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOST", "example.org")
    monkeypatch.setenv("PORT", "25599")
    monkeypatch.setenv("BOT_USERNAME", "night_shift")

    profile = load_environment(config_dir=config_dir)

    assert profile.connection.host == "example.org"
    assert profile.connection.port == 25599
    assert profile.bot_username == "night_shift"


def test_bad_port_is_rejected(config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "not-a-port")
    with pytest.raises(ValueError):
        load_environment(config_dir=config_dir)

    monkeypatch.setenv("PORT", "70000")
    with pytest.raises(ValueError):
        load_environment(config_dir=config_dir)


def test_unknown_profile_and_missing_file(config_dir: Path, tmp_path: Path) -> None:
    with pytest.raises(KeyError):
        load_environment(config_dir=config_dir, profile="nope")

    with pytest.raises(FileNotFoundError):
        load_environment(config_dir=tmp_path / "missing")


def test_agent_defaults() -> None:
    assert build_agent_config({}) == AgentConfig()


@pytest.mark.parametrize(
    "raw",
    [
        {"cadence_ms": 0},
        {"planner_timeout_ms": -5},
        {"cancel_ack_timeout_ms": 0},
        {"max_actions_per_run": 0},
        {"hazard_fluids": ["magma"]},
        {"action_timeout_ms_by_kind": {"eat": 0}},
    ],
)
def test_invalid_agent_options(raw: dict) -> None:
    with pytest.raises(ValueError):
        build_agent_config(raw)

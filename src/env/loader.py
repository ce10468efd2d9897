from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .schema import (
    DEFAULT_ACTION_TIMEOUTS_MS,
    DEFAULT_HOSTILE_MOBS,
    AgentConfig,
    ConnectionConfig,
    EnvProfile,
    ModelSettings,
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_ROOT = PROJECT_ROOT / "config"


def _load_yaml(config_dir: Path, name: str) -> Dict[str, Any]:
    """Load a YAML config file from the config directory."""
    path = config_dir / name
    if not path.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _select_profile(
    env_cfg: Dict[str, Any],
    override: Optional[str],
) -> Tuple[str, Dict[str, Any]]:
    """Return (active_profile_name, active_profile_mapping)."""
    profile_name = override or env_cfg.get("profile")
    if not profile_name:
        raise ValueError("env.yaml must define a 'profile' key.")
    profiles = env_cfg.get("profiles")
    if not isinstance(profiles, dict):
        raise ValueError("env.yaml must define a 'profiles' mapping.")
    if profile_name not in profiles:
        raise KeyError(f"Profile '{profile_name}' not found in env.yaml profiles.")
    return profile_name, profiles[profile_name] or {}


def build_agent_config(raw: Mapping[str, Any]) -> AgentConfig:
    """Build an AgentConfig from a plain mapping (e.g. the YAML `agent` block)."""
    timeouts = dict(DEFAULT_ACTION_TIMEOUTS_MS)
    for kind, ms in (raw.get("action_timeout_ms_by_kind") or {}).items():
        timeouts[str(kind)] = int(ms)

    planner_timeout = raw.get("planner_timeout_ms")

    cfg = AgentConfig(
        cadence_ms=int(raw.get("cadence_ms", 10_000)),
        action_timeout_ms_by_kind=timeouts,
        hazard_check_enabled=bool(raw.get("hazard_check_enabled", True)),
        hazard_fluids=tuple(raw.get("hazard_fluids", ("lava", "water"))),
        planner_timeout_ms=None if planner_timeout is None else int(planner_timeout),
        cancel_ack_timeout_ms=int(raw.get("cancel_ack_timeout_ms", 2_000)),
        poll_interval_ms=int(raw.get("poll_interval_ms", 200)),
        sense_radius=int(raw.get("sense_radius", 5)),
        entity_radius=float(raw.get("entity_radius", 32.0)),
        status_chat_enabled=bool(raw.get("status_chat_enabled", True)),
        max_actions_per_run=int(raw.get("max_actions_per_run", 8)),
        hostile_mobs=tuple(raw.get("hostile_mobs", DEFAULT_HOSTILE_MOBS)),
    )
    _validate_agent(cfg)
    return cfg


def _validate_agent(cfg: AgentConfig) -> None:
    """Minimal sanity checks for loop/executor options."""
    if cfg.cadence_ms <= 0:
        raise ValueError(f"cadence_ms must be positive, got {cfg.cadence_ms}")
    for kind, ms in cfg.action_timeout_ms_by_kind.items():
        if ms <= 0:
            raise ValueError(f"action timeout for {kind!r} must be positive, got {ms}")
    if cfg.planner_timeout_ms is not None and cfg.planner_timeout_ms <= 0:
        raise ValueError("planner_timeout_ms must be positive or null")
    if cfg.cancel_ack_timeout_ms <= 0:
        raise ValueError("cancel_ack_timeout_ms must be positive")
    if cfg.poll_interval_ms <= 0:
        raise ValueError("poll_interval_ms must be positive")
    if cfg.max_actions_per_run <= 0:
        raise ValueError("max_actions_per_run must be positive")
    unknown = set(cfg.hazard_fluids) - {"lava", "water"}
    if unknown:
        raise ValueError(f"Unknown hazard fluids: {sorted(unknown)}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_environment(
    config_dir: Optional[Path] = None,
    profile: Optional[str] = None,
) -> EnvProfile:
    """Main entry point: returns a fully resolved EnvProfile.

    Reads config/env.yaml (profiles) and config/models.yaml (model
    profiles). HOST, PORT and BOT_USERNAME environment variables override
    the connection block of the active profile.
    """
    config_dir = config_dir or CONFIG_ROOT

    env_cfg = _load_yaml(config_dir, "env.yaml")
    models_cfg = _load_yaml(config_dir, "models.yaml")

    active_profile_name, active_profile = _select_profile(
        env_cfg, profile or os.getenv("AGENT_PROFILE")
    )

    # Connection, with process environment overrides
    conn_raw = active_profile.get("connection") or {}
    host = os.getenv("HOST") or conn_raw.get("host", "127.0.0.1")
    port_raw = os.getenv("PORT") or conn_raw.get("port", 25570)
    try:
        port = int(port_raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {port_raw!r}") from None
    connection = ConnectionConfig(host=str(host), port=port)

    bot_username = os.getenv("BOT_USERNAME") or active_profile.get("bot_username", "agent")

    agent = build_agent_config(active_profile.get("agent") or {})

    # Resolve model profile
    model_profile_name = active_profile.get("model_profile")
    model_profiles = models_cfg.get("model_profiles") or {}
    if model_profile_name not in model_profiles:
        raise KeyError(f"Model profile '{model_profile_name}' not found in models.yaml")
    model_raw = model_profiles[model_profile_name]
    model = ModelSettings(
        path=str(model_raw["path"]),
        context_length=int(model_raw.get("context_length", 4096)),
        gpu_layers=model_raw.get("gpu_layers"),
        n_threads=model_raw.get("n_threads"),
        n_batch=model_raw.get("n_batch"),
        temperature=float(model_raw.get("temperature", 0.3)),
        max_tokens=int(model_raw.get("max_tokens", 1024)),
    )

    if not 0 < connection.port < 65536:
        raise ValueError(f"Port out of range: {connection.port}")

    return EnvProfile(
        name=active_profile_name,
        bot_username=str(bot_username),
        connection=connection,
        agent=agent,
        model=model,
    )

# EnvProfile, ConnectionConfig, AgentConfig, ModelSettings dataclasses
# src/env/schema.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


# Per-kind time budgets for Action.start(), in milliseconds.
DEFAULT_ACTION_TIMEOUTS_MS: Dict[str, int] = {
    "move_to": 30_000,
    "dig_block": 30_000,
    "follow_and_attack": 30_000,
    "flee_from": 6_000,
    "eat": 10_000,
    "wait": 5_000,
    "say": 1_000,
}

DEFAULT_HOSTILE_MOBS: Tuple[str, ...] = (
    "zombie",
    "skeleton",
    "creeper",
    "spider",
    "husk",
    "drowned",
    "enderman",
    "witch",
    "slime",
    "stray",
    "phantom",
    "pillager",
)


@dataclass(frozen=True)
class ConnectionConfig:
    """Where the game-client bridge listens (JSON lines over TCP)."""
    host: str = "127.0.0.1"
    port: int = 25570


@dataclass(frozen=True)
class AgentConfig:
    """
    Static options for the control loop, executor, actions and actuator.

    Built once at startup and passed by reference; nothing reads settings
    from the environment after that.
    """
    cadence_ms: int = 10_000
    action_timeout_ms_by_kind: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_ACTION_TIMEOUTS_MS)
    )
    hazard_check_enabled: bool = True
    hazard_fluids: Tuple[str, ...] = ("lava", "water")

    # None blocks on the planner indefinitely.
    planner_timeout_ms: Optional[int] = None

    cancel_ack_timeout_ms: int = 2_000
    poll_interval_ms: int = 200
    sense_radius: int = 5
    entity_radius: float = 32.0
    status_chat_enabled: bool = True
    max_actions_per_run: int = 8
    hostile_mobs: Tuple[str, ...] = DEFAULT_HOSTILE_MOBS

    def timeout_s(self, kind: str) -> float:
        """Time budget for an action kind, falling back to the move budget."""
        ms = self.action_timeout_ms_by_kind.get(
            kind, DEFAULT_ACTION_TIMEOUTS_MS.get(kind, DEFAULT_ACTION_TIMEOUTS_MS["move_to"])
        )
        return ms / 1000.0

    @property
    def cadence_s(self) -> float:
        return self.cadence_ms / 1000.0

    @property
    def cancel_ack_timeout_s(self) -> float:
        return self.cancel_ack_timeout_ms / 1000.0

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def planner_timeout_s(self) -> Optional[float]:
        if self.planner_timeout_ms is None:
            return None
        return self.planner_timeout_ms / 1000.0


@dataclass(frozen=True)
class ModelSettings:
    """Local GGUF model used by the planner backend."""
    path: str
    context_length: int = 4096
    gpu_layers: Optional[int] = None
    n_threads: Optional[int] = None
    n_batch: Optional[int] = None
    temperature: float = 0.3
    max_tokens: int = 1024


@dataclass(frozen=True)
class EnvProfile:
    """Resolved environment for one active profile."""
    name: str
    bot_username: str
    connection: ConnectionConfig
    agent: AgentConfig
    model: ModelSettings

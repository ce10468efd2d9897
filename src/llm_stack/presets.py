# src/llm_stack/presets.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .schema import render_catalogue


@dataclass
class RolePreset:
    """Configuration for a logical LLM role."""
    name: str
    temperature: float
    max_tokens: int
    system_prompt: Optional[str] = None
    stop: Optional[List[str]] = None


SURVIVAL_SYSTEM_PROMPT = """\
You control a Minecraft survival bot. Each turn you receive the bot's
current state and the actions it has not started yet. Reply with the next
few actions that keep the bot alive and make progress: eat when hungry,
leave lava and deep water, fight or flee from hostile mobs, gather
resources when safe.

RULES:
- Return ONLY a JSON object, with no commentary before or after it.
- The FIRST non-whitespace character MUST be '{'.
- Shape: {"actions": [{"action": <name>, "args": {...}}, ...], "notes": "<short reason>"}
- Use only the actions and argument names listed below.
- Entity ids must come from "entitiesAroundMe" in the state.
- Return {"actions": []} when nothing needs doing.

AVAILABLE ACTIONS:
"""


def planner_preset(temperature: float = 0.3, max_tokens: int = 1024) -> RolePreset:
    """Survival planner role: system prompt plus the rendered action catalogue."""
    return RolePreset(
        name="planner",
        temperature=temperature,
        max_tokens=max_tokens,
        system_prompt=SURVIVAL_SYSTEM_PROMPT + render_catalogue(),
    )

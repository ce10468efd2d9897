# src/llm_stack/schema.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


# ============================================================================
# Action declarations shown to the planner model
# ============================================================================

@dataclass(frozen=True)
class ArgSpec:
    """One argument of an action declaration."""
    name: str
    type: str
    description: str
    required: bool = True


@dataclass(frozen=True)
class ActionSpec:
    """
    Declaration of one action kind the model may choose.

    The names and arguments here are the canonical ones accepted by
    agent.translate, so a model following the catalogue needs no aliasing.
    """
    name: str
    description: str
    args: Tuple[ArgSpec, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.name,
            "description": self.description,
            "args": {
                a.name: f"{a.type}{'' if a.required else ' (optional)'}: {a.description}"
                for a in self.args
            },
        }


ACTION_CATALOGUE: Tuple[ActionSpec, ...] = (
    ActionSpec(
        "move_to",
        "Walk to a position.",
        (
            ArgSpec("x", "number", "target x"),
            ArgSpec("y", "number", "target y"),
            ArgSpec("z", "number", "target z"),
            ArgSpec("tolerance", "number", "how close counts as arrived, default 1", False),
        ),
    ),
    ActionSpec(
        "eat",
        "Eat a food item from the inventory. Cannot be interrupted.",
        (
            ArgSpec("item", "string", "item name; best available food if omitted", False),
            ArgSpec("prefer", "list[string]", "preferred foods, first match wins", False),
        ),
    ),
    ActionSpec(
        "follow_and_attack",
        "Chase an entity and attack it until it is gone.",
        (ArgSpec("entity_id", "integer", "id from the entities list"),),
    ),
    ActionSpec(
        "dig_block",
        "Break the block at a position.",
        (
            ArgSpec("x", "integer", "block x"),
            ArgSpec("y", "integer", "block y"),
            ArgSpec("z", "integer", "block z"),
        ),
    ),
    ActionSpec(
        "flee_from",
        "Run directly away from a threat (entity or position).",
        (
            ArgSpec("entity_id", "integer", "threat entity id", False),
            ArgSpec("x", "number", "threat x, when no entity_id", False),
            ArgSpec("y", "number", "threat y, when no entity_id", False),
            ArgSpec("z", "number", "threat z, when no entity_id", False),
            ArgSpec("min_distance", "number", "safe distance, at least 8, default 16", False),
        ),
    ),
    ActionSpec(
        "wait",
        "Do nothing for a while.",
        (ArgSpec("ms", "integer", "milliseconds, 250 to 5000"),),
    ),
    ActionSpec(
        "say",
        "Send a chat message (at most 120 characters).",
        (ArgSpec("text", "string", "message"),),
    ),
)


def render_catalogue(specs: Tuple[ActionSpec, ...] = ACTION_CATALOGUE) -> str:
    """Catalogue as pretty JSON for the system prompt."""
    return json.dumps([s.to_dict() for s in specs], indent=2)


# ============================================================================
# Planner response
# ============================================================================

@dataclass
class PlannerResponse:
    """
    Parsed planner reply.

    Expected JSON shape from the model:

        {
          "actions": [
            {"action": "move_to", "args": {"x": 1, "y": 64, "z": 2}},
            ...
          ],
          "notes": "optional explanation"
        }
    """
    actions: List[Dict[str, Any]]
    notes: str = ""
    raw_text: str = ""

# src/agent/translate.py
"""
Decision -> Action translation.

The registry is closed: only the kinds in ACTION_TYPES (plus a few
historical aliases) translate. Argument names are accepted in snake_case
or camelCase, and a handful of synonyms are folded onto the canonical
names that Action.describe() emits, so describe() output always
translates back into an equivalent action.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from contracts import Actuator, Decision
from env.schema import AgentConfig

from .actions import ACTION_TYPES, Action
from .errors import InvalidDecisionError

log = logging.getLogger(__name__)


KIND_ALIASES: Dict[str, str] = {
    "move_to_position": "move_to",
    "goto": "move_to",
    "eat_from_inventory": "eat",
    "attack": "follow_and_attack",
    "flee": "flee_from",
    "chat": "say",
}

# Per-kind synonyms, applied after camelCase -> snake_case.
ARG_ALIASES: Dict[str, Dict[str, str]] = {
    "move_to": {"range": "tolerance"},
    "eat": {"item_name": "item", "name": "item"},
    "follow_and_attack": {"target_id": "entity_id", "id": "entity_id"},
    "dig_block": {},
    "flee_from": {
        "threat_x": "x",
        "threat_y": "y",
        "threat_z": "z",
        "threat_id": "entity_id",
        "distance": "min_distance",
    },
    "wait": {"duration_ms": "ms", "milliseconds": "ms"},
    "say": {"message": "text"},
}

# Nested point arguments flattened into x/y/z.
_POINT_KEYS: Tuple[str, ...] = ("position", "target", "threat", "pos")

_CAMEL = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL.sub("_", name).lower()


def canonical_kind(kind: str) -> str:
    key = _snake(kind.strip())
    return KIND_ALIASES.get(key, key)


def normalize_args(kind: str, args: Mapping[str, Any]) -> Dict[str, Any]:
    """Fold camelCase, synonyms and nested points onto canonical names."""
    aliases = ARG_ALIASES.get(kind, {})
    out: Dict[str, Any] = {}
    for raw_key, value in args.items():
        key = _snake(str(raw_key))
        if key in _POINT_KEYS and isinstance(value, Mapping):
            for axis in ("x", "y", "z"):
                if axis in value:
                    out.setdefault(axis, value[axis])
            continue
        key = aliases.get(key, key)
        if key in out:
            raise InvalidDecisionError(kind, f"argument {key!r} given twice")
        out[key] = value
    return out


def translate_one(
    decision: Decision,
    actuator: Actuator,
    config: Optional[AgentConfig] = None,
) -> Action:
    """
    Build the Action for one decision.

    Raises InvalidDecisionError for unknown kinds, unknown or missing
    arguments, and arguments that fail validation.
    """
    kind = canonical_kind(decision.kind)
    cls = ACTION_TYPES.get(kind)
    if cls is None:
        raise InvalidDecisionError(decision.kind, "unknown action kind")

    args = normalize_args(kind, decision.args)
    try:
        return cls(actuator, config, **args)
    except InvalidDecisionError:
        raise
    except TypeError as exc:
        # Unknown keyword or missing required argument.
        raise InvalidDecisionError(kind, f"bad arguments {sorted(args)}: {exc}") from exc
    except (ValueError, OverflowError) as exc:
        raise InvalidDecisionError(kind, str(exc)) from exc


def translate(
    decisions: Iterable[Decision],
    actuator: Actuator,
    config: Optional[AgentConfig] = None,
) -> Tuple[List[Action], List[Tuple[Decision, InvalidDecisionError]]]:
    """
    Translate a batch, dropping invalid entries.

    Returns (actions, rejected). Each rejected decision is logged at
    warning level; the rest of the batch is kept in order.
    """
    actions: List[Action] = []
    rejected: List[Tuple[Decision, InvalidDecisionError]] = []
    for decision in decisions:
        try:
            actions.append(translate_one(decision, actuator, config))
        except InvalidDecisionError as exc:
            log.warning("Dropping decision %s: %s", decision.to_dict(), exc)
            rejected.append((decision, exc))
    return actions, rejected


__all__ = [
    "KIND_ALIASES",
    "ARG_ALIASES",
    "canonical_kind",
    "normalize_args",
    "translate_one",
    "translate",
]

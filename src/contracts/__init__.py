# src/contracts/__init__.py

from __future__ import annotations

"""
Shared contracts for the survival agent.

Re-exports the data types and interfaces every other package depends on:
  - world snapshot and decision records
  - action outcome types and the failure taxonomy
  - one-shot completion signals
  - the Actuator and Planner protocols
"""

from .types import (
    ActionError,
    ActionResult,
    ActionState,
    ActuatorEvent,
    ActuatorEventType,
    Decision,
    EntityInfo,
    GoalOutcome,
    ItemStack,
    Point,
    Pose,
    TerrainCell,
    Vitals,
    WorldSnapshot,
)
from .signals import CancelToken, GoalHandle, Signal
from .actuator import Actuator, ActuatorListener
from .planner import Planner, PlannerError

__all__ = [
    "ActionError",
    "ActionResult",
    "ActionState",
    "ActuatorEvent",
    "ActuatorEventType",
    "Decision",
    "EntityInfo",
    "GoalOutcome",
    "ItemStack",
    "Point",
    "Pose",
    "TerrainCell",
    "Vitals",
    "WorldSnapshot",
    "CancelToken",
    "GoalHandle",
    "Signal",
    "Actuator",
    "ActuatorListener",
    "Planner",
    "PlannerError",
]

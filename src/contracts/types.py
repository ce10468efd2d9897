# core shared types: WorldSnapshot, Decision, ActionResult, ActuatorEvent
# src/contracts/types.py

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Mapping, Optional, Tuple


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Point:
    """Block-space position. Floats are kept; callers floor when needed."""
    x: float
    y: float
    z: float

    def distance_to(self, other: "Point") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2
            + (self.y - other.y) ** 2
            + (self.z - other.z) ** 2
        )

    def offset(self, dx: float, dy: float, dz: float) -> "Point":
        return Point(self.x + dx, self.y + dy, self.z + dz)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


# ---------------------------------------------------------------------------
# World snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Vitals:
    health: float                           # 0..20
    food: float                             # satiation, 0..20
    oxygen: float                           # breath, 0..20


@dataclass(frozen=True)
class Pose:
    position: Point
    yaw: float = 0.0
    pitch: float = 0.0
    on_ground: bool = True


@dataclass(frozen=True)
class EntityInfo:
    """Entity near the agent, with distance measured at snapshot time."""
    entity_id: int
    name: str                               # e.g. "zombie", "cow", "Steve"
    kind: str                               # "mob", "player", "object", ...
    position: Point
    distance: float
    hostile: bool = False


@dataclass(frozen=True)
class TerrainCell:
    position: Point
    block: str                              # block name, "air" when open
    solid: bool


@dataclass(frozen=True)
class ItemStack:
    name: str
    count: int


@dataclass(frozen=True)
class WorldSnapshot:
    """Immutable per-cycle capture of agent and environment state.

    Built once per control-loop cycle by the Actuator and consumed by the
    Planner. Every collection is a tuple so the record cannot be mutated
    after it is taken.

    Fields:

      - tick / time_of_day / is_day:
          World clock. Day is time_of_day in [0, 12000).

      - vitals:
          Health, satiation and breath.

      - pose:
          Position, orientation and grounded flag.

      - entities:
          Nearby entities within the sense radius, closest first.

      - terrain:
          Blocks in the sense cube around the agent, classified solid/open.

      - inventory:
          Current holdings.

      - in_water / in_lava:
          Fluid flags from the latest physics tick.
    """
    tick: int
    time_of_day: int
    is_day: bool
    vitals: Vitals
    pose: Pose
    entities: Tuple[EntityInfo, ...] = ()
    terrain: Tuple[TerrainCell, ...] = ()
    inventory: Tuple[ItemStack, ...] = ()
    in_water: bool = False
    in_lava: bool = False

    @property
    def position(self) -> Point:
        return self.pose.position

    def entity(self, entity_id: int) -> Optional[EntityInfo]:
        for e in self.entities:
            if e.entity_id == entity_id:
                return e
        return None

    def item_count(self, name: str) -> int:
        return sum(stack.count for stack in self.inventory if stack.name == name)

    def has_item(self, name: str) -> bool:
        return self.item_count(name) > 0

    def nearest_hostile(self) -> Optional[EntityInfo]:
        hostiles = [e for e in self.entities if e.hostile]
        if not hostiles:
            return None
        return min(hostiles, key=lambda e: e.distance)

    def status_line(self) -> str:
        """Short human-readable line for the chat channel."""
        p = self.pose.position
        return (
            f"Status summary: {self.vitals.health:g} HP, {self.vitals.food:g} food, "
            f"position at ({p.x:.1f}, {p.y:.1f}, {p.z:.1f})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe view used for planner prompts and monitoring payloads."""
        hostile = self.nearest_hostile()
        return {
            "tick": self.tick,
            "timeOfDay": self.time_of_day,
            "isDay": self.is_day,
            "health": self.vitals.health,
            "food": self.vitals.food,
            "oxygenLevel": self.vitals.oxygen,
            "position": self.pose.position.to_dict(),
            "onGround": self.pose.on_ground,
            "inWater": self.in_water,
            "inLava": self.in_lava,
            "inventoryItems": [
                {"name": s.name, "count": s.count} for s in self.inventory
            ],
            "nearestHostile": None if hostile is None else {
                "entityId": hostile.entity_id,
                "kind": hostile.name,
                "distance": round(hostile.distance, 2),
                "position": hostile.position.to_dict(),
            },
            "entitiesAroundMe": [
                {
                    "entityId": e.entity_id,
                    "name": e.name,
                    "type": e.kind,
                    "hostile": e.hostile,
                    "position": e.position.to_dict(),
                    "distance": round(e.distance, 2),
                }
                for e in self.entities
            ],
            "blocksAroundMe": [
                {
                    "x": c.position.x,
                    "y": c.position.y,
                    "z": c.position.z,
                    "type": c.block,
                    "solid": c.solid,
                }
                for c in self.terrain
            ],
        }


# ---------------------------------------------------------------------------
# Planner decisions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Decision:
    """One proposed move from the Planner: a kind tag plus raw arguments.

    This is the untyped boundary. Arguments are validated only when the
    decision is translated into a concrete Action.
    """
    kind: str
    args: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Decision":
        """
        Accept both {"action": ..., "args": {...}} (the describe() shape)
        and {"name": ..., "args": {...}} (function-call shape).
        """
        kind = data.get("action", data.get("name"))
        args = data.get("args") or {}
        if not isinstance(kind, str) or not kind:
            raise ValueError(f"decision has no action name: {dict(data)!r}")
        if not isinstance(args, Mapping):
            raise ValueError(f"decision args must be a mapping: {args!r}")
        return cls(kind=kind, args=dict(args))

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.kind, "args": dict(self.args)}


# ---------------------------------------------------------------------------
# Action outcomes
# ---------------------------------------------------------------------------

class ActionState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (ActionState.SUCCEEDED, ActionState.FAILED, ActionState.CANCELLED)


class ActionError(str, Enum):
    """Failure taxonomy for Action.start()."""

    UNREACHABLE = "unreachable"                     # pathing failed to the goal
    RESOURCE_UNAVAILABLE = "resource_unavailable"   # required item/entity absent
    TARGET_INVALID = "target_invalid"               # entity gone or params nonsensical
    TIMEOUT = "timeout"                             # per-action budget exceeded
    ACTUATOR_ERROR = "actuator_error"               # directive raised unexpectedly
    CANCELLED = "cancelled"                         # goal cleared before completion


@dataclass
class ActionResult:
    """Result of running one Action."""
    success: bool
    error: Optional[ActionError] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details: Any) -> "ActionResult":
        return cls(success=True, error=None, details=dict(details))

    @classmethod
    def failure(cls, error: ActionError, **details: Any) -> "ActionResult":
        return cls(success=False, error=error, details=dict(details))

    @property
    def reason(self) -> str:
        """Human-readable failure reason for chat/log lines."""
        if self.success:
            return "ok"
        msg = self.details.get("message")
        label = self.error.value if self.error is not None else "unknown"
        return f"{label}: {msg}" if msg else label


# ---------------------------------------------------------------------------
# Actuator events and goal outcomes
# ---------------------------------------------------------------------------

class GoalOutcome(Enum):
    """How an Actuator-side directive ended. Resolved exactly once."""

    REACHED = auto()        # movement/dig goal reached, consume finished
    TARGET_LOST = auto()    # follow target left the world (killed, despawned)
    CLEARED = auto()        # goal cleared (cancel, hazard, superseded)
    UNREACHABLE = auto()    # no path
    FAILED = auto()         # the game client rejected or aborted the directive


class ActuatorEventType(Enum):
    GOAL_REACHED = auto()
    GOAL_CLEARED = auto()
    GOAL_FAILED = auto()
    HAZARD_ACTIVE = auto()
    PHYSICS_TICK = auto()
    CHAT = auto()


@dataclass(frozen=True)
class ActuatorEvent:
    type: ActuatorEventType
    payload: Mapping[str, Any] = field(default_factory=dict)


__all__: List[str] = [
    "Point",
    "Vitals",
    "Pose",
    "EntityInfo",
    "TerrainCell",
    "ItemStack",
    "WorldSnapshot",
    "Decision",
    "ActionState",
    "ActionError",
    "ActionResult",
    "GoalOutcome",
    "ActuatorEventType",
    "ActuatorEvent",
]

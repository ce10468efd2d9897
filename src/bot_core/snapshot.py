# RawWorldSnapshot + conversion to WorldSnapshot
# src/bot_core/snapshot.py
"""
Snapshot structures for bot_core.

This module defines the raw world snapshot types used internally by the
actuator adapter and provides the adapter that converts a RawWorldSnapshot
into the immutable WorldSnapshot defined in `contracts.types`.

Design goals:
- Keep Raw* structures close to the data we ingest from the bridge.
- Keep WorldSnapshot stable and contract-owned; this module only adapts into it.
- Perception rules (sense radius, hostile classification, day/night) live
  here and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from contracts.types import (
    EntityInfo,
    ItemStack,
    Point,
    Pose,
    TerrainCell,
    Vitals,
    WorldSnapshot,
)

# Blocks the bridge reports that never block movement.
_OPEN_BLOCKS = frozenset({"air", "cave_air", "void_air", "empty"})

DAY_LENGTH_TICKS = 24_000
NIGHT_START_TICKS = 12_000


# ---------------------------------------------------------------------------
# Raw world types (internal to bot_core)
# ---------------------------------------------------------------------------


@dataclass
class RawEntity:
    """
    Raw entity data as captured from bridge messages.

    `data` keeps the original payload for debugging.
    """

    entity_id: int
    name: str   # "zombie", "cow", player name, ...
    kind: str   # "player", "mob", "object", ...
    x: float
    y: float
    z: float
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RawBlock:
    x: int
    y: int
    z: int
    name: str
    solid: bool | None = None  # None -> infer from name


@dataclass
class RawWorldSnapshot:
    """
    Full raw snapshot of the world as tracked by WorldTracker.

    All other subsystems (planner, loop) work with WorldSnapshot, not
    this type.
    """

    tick: int
    time_of_day: int

    player_pos: Dict[str, float]  # {"x": float, "y": float, "z": float}
    player_yaw: float
    player_pitch: float
    on_ground: bool

    health: float
    food: float
    oxygen: float

    entities: List[RawEntity]
    blocks: Dict[Tuple[int, int, int], RawBlock]
    inventory: List[Dict[str, Any]]

    in_water: bool = False
    in_lava: bool = False

    # Misc runtime context (profile name, username, ...)
    context: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# WorldSnapshot adapter (RawWorldSnapshot -> contracts.types.WorldSnapshot)
# ---------------------------------------------------------------------------


def is_solid(block: RawBlock) -> bool:
    if block.solid is not None:
        return bool(block.solid)
    name = block.name.split(":")[-1]
    return name not in _OPEN_BLOCKS and name not in ("water", "lava")


def _entities_in_range(
    snapshot: RawWorldSnapshot,
    origin: Point,
    radius: float,
    hostile_mobs: Iterable[str],
) -> Tuple[EntityInfo, ...]:
    hostile = {h.lower() for h in hostile_mobs}
    self_id = snapshot.context.get("self_entity_id")
    found: List[EntityInfo] = []
    for e in snapshot.entities:
        if self_id is not None and e.entity_id == self_id:
            continue
        pos = Point(e.x, e.y, e.z)
        dist = origin.distance_to(pos)
        if dist > radius:
            continue
        found.append(
            EntityInfo(
                entity_id=e.entity_id,
                name=e.name,
                kind=e.kind,
                position=pos,
                distance=dist,
                hostile=e.kind == "mob" and e.name.lower() in hostile,
            )
        )
    found.sort(key=lambda info: info.distance)
    return tuple(found)


def _terrain_around(
    snapshot: RawWorldSnapshot,
    origin: Point,
    radius: int,
) -> Tuple[TerrainCell, ...]:
    """Blocks within the sense cube centred on the floored position."""
    cx, cy, cz = int(origin.x // 1), int(origin.y // 1), int(origin.z // 1)
    cells: List[TerrainCell] = []
    for (x, y, z), block in sorted(snapshot.blocks.items()):
        if abs(x - cx) > radius or abs(y - cy) > radius or abs(z - cz) > radius:
            continue
        cells.append(
            TerrainCell(position=Point(x, y, z), block=block.name, solid=is_solid(block))
        )
    return tuple(cells)


def _inventory_stacks(inventory: List[Dict[str, Any]]) -> Tuple[ItemStack, ...]:
    stacks: List[ItemStack] = []
    for slot in inventory:
        name = slot.get("name")
        if not name:
            continue
        try:
            count = int(slot.get("count", 1))
        except (TypeError, ValueError):
            count = 1
        if count > 0:
            stacks.append(ItemStack(name=str(name), count=count))
    return tuple(stacks)


def snapshot_to_world_snapshot(
    snapshot: RawWorldSnapshot,
    *,
    sense_radius: int = 5,
    entity_radius: float = 32.0,
    hostile_mobs: Iterable[str] = (),
) -> WorldSnapshot:
    """
    Adapt a RawWorldSnapshot into the immutable WorldSnapshot.

    Entity distance and hostility are measured against the player position
    at the time of the call; entities farther than entity_radius are
    dropped. Terrain is limited to the sense cube.
    """
    position = Point(
        float(snapshot.player_pos.get("x", 0.0)),
        float(snapshot.player_pos.get("y", 0.0)),
        float(snapshot.player_pos.get("z", 0.0)),
    )
    time_of_day = int(snapshot.time_of_day) % DAY_LENGTH_TICKS

    return WorldSnapshot(
        tick=int(snapshot.tick),
        time_of_day=time_of_day,
        is_day=0 <= time_of_day < NIGHT_START_TICKS,
        vitals=Vitals(
            health=float(snapshot.health),
            food=float(snapshot.food),
            oxygen=float(snapshot.oxygen),
        ),
        pose=Pose(
            position=position,
            yaw=float(snapshot.player_yaw),
            pitch=float(snapshot.player_pitch),
            on_ground=bool(snapshot.on_ground),
        ),
        entities=_entities_in_range(snapshot, position, float(entity_radius), hostile_mobs),
        terrain=_terrain_around(snapshot, position, sense_radius),
        inventory=_inventory_stacks(snapshot.inventory),
        in_water=bool(snapshot.in_water),
        in_lava=bool(snapshot.in_lava),
    )


__all__ = [
    "RawEntity",
    "RawBlock",
    "RawWorldSnapshot",
    "is_solid",
    "snapshot_to_world_snapshot",
]

# track player, entities, blocks and inventory from bridge packets
# src/bot_core/world_tracker.py
"""
World tracker for bot_core.

Consumes normalized bridge messages from a PacketClient and maintains a
raw, incrementally updated view of the world. This module is the ONLY
owner of RawWorldSnapshot assembly.

Rules:
- Never construct WorldSnapshot here (that lives in bot_core.snapshot).
- Never classify hostiles or terrain; keep storage "raw".
- Handlers run on the pump thread; build_snapshot() may be called from
  any thread, so all state is guarded by one lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .net import PacketClient
from .snapshot import RawBlock, RawEntity, RawWorldSnapshot


@dataclass
class _PlayerState:
    """Minimal tracked state for the local player."""

    pos: Dict[str, float] = field(
        default_factory=lambda: {"x": 0.0, "y": 64.0, "z": 0.0}
    )
    yaw: float = 0.0
    pitch: float = 0.0
    on_ground: bool = True
    health: float = 20.0
    food: float = 20.0
    oxygen: float = 20.0
    in_water: bool = False
    in_lava: bool = False


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class WorldTracker:
    """
    Maintains an incrementally updated RawWorldSnapshot.

    PacketClient implementations must normalize bridge data into these
    logically named message types:

        - "login"              → own entity id / username
        - "time_update"        → tick and time of day
        - "position_update"    → player position/rotation
        - "vitals_update"      → health, food, oxygen
        - "physics_tick"       → fluid flags (and optionally position)
        - "spawn_entity"       → entity created
        - "entity_move"        → entity moved
        - "destroy_entities"   → entities destroyed
        - "block_update"       → one block, or a "blocks" list of blocks
        - "set_slot"           → single inventory slot changed
        - "window_items"       → full inventory snapshot
    """

    def __init__(self, client: PacketClient) -> None:
        self._client = client
        self._lock = threading.Lock()

        # Basic scalar world state
        self._tick: int = 0
        self._time_of_day: int = 0
        self._player: _PlayerState = _PlayerState()

        # Entities keyed by numeric ID
        self._entities: Dict[int, RawEntity] = {}

        # Known blocks keyed by integer coordinates
        self._blocks: Dict[Tuple[int, int, int], RawBlock] = {}

        # Flat inventory representation (list of slot dicts)
        self._inventory: List[Dict[str, Any]] = []

        # Context map for misc metadata (profile, username, own entity id)
        self._context: Dict[str, Any] = {}

        # Wire client → handlers
        self._register_handlers()

    # ------------------------------------------------------------------
    # Packet wiring
    # ------------------------------------------------------------------

    def _register_handlers(self) -> None:
        self._client.on_packet("login", self._handle_login)
        self._client.on_packet("time_update", self._handle_time_update)
        self._client.on_packet("position_update", self._handle_position_update)
        self._client.on_packet("vitals_update", self._handle_vitals_update)
        self._client.on_packet("physics_tick", self._handle_physics_tick)
        self._client.on_packet("spawn_entity", self._handle_spawn_entity)
        self._client.on_packet("entity_move", self._handle_entity_move)
        self._client.on_packet("destroy_entities", self._handle_destroy_entities)
        self._client.on_packet("block_update", self._handle_block_update)
        self._client.on_packet("set_slot", self._handle_set_slot)
        self._client.on_packet("window_items", self._handle_window_items)

    # ------------------------------------------------------------------
    # Packet handlers
    # ------------------------------------------------------------------

    def _handle_login(self, pkt: Mapping[str, Any]) -> None:
        """
        Expected fields:
            - "entity_id": int
            - "username": str (optional)
        """
        with self._lock:
            if "entity_id" in pkt:
                try:
                    self._context["self_entity_id"] = int(pkt["entity_id"])
                except (TypeError, ValueError):
                    pass
            if pkt.get("username"):
                self._context["username"] = str(pkt["username"])

    def _handle_time_update(self, pkt: Mapping[str, Any]) -> None:
        """
        Update world tick and time of day.

        Expected fields:
            - "tick": int
            - "time_of_day": int (0..24000, optional)
        """
        with self._lock:
            try:
                self._tick = int(pkt.get("tick", self._tick))
            except (TypeError, ValueError):
                return
            if "time_of_day" in pkt:
                try:
                    self._time_of_day = int(pkt["time_of_day"])
                except (TypeError, ValueError):
                    pass

    def _handle_position_update(self, pkt: Mapping[str, Any]) -> None:
        """
        Update player position/rotation.

        Expected fields:
            - "x", "y", "z": float
            - "yaw", "pitch": float (optional)
            - "on_ground": bool (optional)
        """
        with self._lock:
            self._update_position(pkt)
            p = self._player
            if "yaw" in pkt:
                p.yaw = _as_float(pkt["yaw"], p.yaw)
            if "pitch" in pkt:
                p.pitch = _as_float(pkt["pitch"], p.pitch)
            if "on_ground" in pkt:
                p.on_ground = bool(pkt["on_ground"])

    def _handle_vitals_update(self, pkt: Mapping[str, Any]) -> None:
        with self._lock:
            p = self._player
            p.health = _as_float(pkt.get("health"), p.health)
            p.food = _as_float(pkt.get("food"), p.food)
            p.oxygen = _as_float(pkt.get("oxygen"), p.oxygen)

    def _handle_physics_tick(self, pkt: Mapping[str, Any]) -> None:
        """
        Per-tick physics flags from the bridge.

        Expected fields:
            - "in_water", "in_lava": bool
            - "x", "y", "z": float (optional)
        """
        with self._lock:
            if "in_water" in pkt:
                self._player.in_water = bool(pkt["in_water"])
            if "in_lava" in pkt:
                self._player.in_lava = bool(pkt["in_lava"])
            if "x" in pkt:
                self._update_position(pkt)

    def _handle_spawn_entity(self, pkt: Mapping[str, Any]) -> None:
        """
        Track newly spawned entities.

        Expected fields:
            - "entity_id": int
            - "name": str, "kind": str
            - "x", "y", "z": float
        """
        try:
            entity_id = int(pkt["entity_id"])
        except (KeyError, TypeError, ValueError):
            return

        name = str(pkt.get("name", "unknown"))
        kind = str(pkt.get("kind", pkt.get("type", "unknown")))

        with self._lock:
            self._entities[entity_id] = RawEntity(
                entity_id=entity_id,
                name=name,
                kind=kind,
                x=_as_float(pkt.get("x"), 0.0),
                y=_as_float(pkt.get("y"), 0.0),
                z=_as_float(pkt.get("z"), 0.0),
                data=dict(pkt),
            )

    def _handle_entity_move(self, pkt: Mapping[str, Any]) -> None:
        try:
            entity_id = int(pkt["entity_id"])
        except (KeyError, TypeError, ValueError):
            return
        with self._lock:
            ent = self._entities.get(entity_id)
            if ent is None:
                # Moves for untracked entities are dropped; spawn comes first.
                return
            ent.x = _as_float(pkt.get("x"), ent.x)
            ent.y = _as_float(pkt.get("y"), ent.y)
            ent.z = _as_float(pkt.get("z"), ent.z)

    def _handle_destroy_entities(self, pkt: Mapping[str, Any]) -> None:
        """
        Remove entities that the bridge reports as destroyed.

        Expected fields:
            - "entity_ids": iterable of ints
        """
        ids = pkt.get("entity_ids")
        if not ids:
            return

        with self._lock:
            for raw_id in ids:
                try:
                    eid = int(raw_id)
                except (TypeError, ValueError):
                    continue
                self._entities.pop(eid, None)

    def _handle_block_update(self, pkt: Mapping[str, Any]) -> None:
        """
        Store one block or a batch of blocks.

        Expected fields, either:
            - "x", "y", "z": int, "name": str, "solid": bool (optional)
            - "blocks": list of mappings with the same fields
        """
        entries = pkt.get("blocks")
        if not isinstance(entries, list):
            entries = [pkt]

        with self._lock:
            for entry in entries:
                if not isinstance(entry, Mapping):
                    continue
                try:
                    x, y, z = int(entry["x"]), int(entry["y"]), int(entry["z"])
                except (KeyError, TypeError, ValueError):
                    continue
                name = str(entry.get("name", "air"))
                solid = entry.get("solid")
                self._blocks[(x, y, z)] = RawBlock(
                    x=x,
                    y=y,
                    z=z,
                    name=name,
                    solid=None if solid is None else bool(solid),
                )

    def _handle_set_slot(self, pkt: Mapping[str, Any]) -> None:
        """
        Update a single inventory slot.

        Expected fields:
            - "slot": int
            - "item": {"name": str, "count": int} or None
        """
        try:
            idx = int(pkt.get("slot"))
        except (TypeError, ValueError):
            return
        if idx < 0:
            return

        item = pkt.get("item")
        with self._lock:
            while len(self._inventory) <= idx:
                self._inventory.append({})
            # Empty slot is represented as {}.
            self._inventory[idx] = dict(item) if isinstance(item, Mapping) else {}

    def _handle_window_items(self, pkt: Mapping[str, Any]) -> None:
        """
        Replace the entire inventory representation.

        Expected fields:
            - "items": list of slot mappings (or null for empty slots)
        """
        items = pkt.get("items")
        if not isinstance(items, list):
            return

        new_inv = [dict(entry) if isinstance(entry, Mapping) else {} for entry in items]
        with self._lock:
            self._inventory = new_inv

    def _update_position(self, pkt: Mapping[str, Any]) -> None:
        # Caller holds the lock.
        pos = self._player.pos
        try:
            self._player.pos = {
                "x": float(pkt.get("x", pos["x"])),
                "y": float(pkt.get("y", pos["y"])),
                "z": float(pkt.get("z", pos["z"])),
            }
        except (TypeError, ValueError):
            # Ignore malformed position updates.
            pass

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def self_entity_id(self) -> Optional[int]:
        return self._context.get("self_entity_id")

    def has_entity(self, entity_id: int) -> bool:
        with self._lock:
            return entity_id in self._entities

    def set_context(self, key: str, value: Any) -> None:
        """Attach arbitrary metadata to the tracker context."""
        with self._lock:
            self._context[key] = value

    def update_context(self, data: Mapping[str, Any]) -> None:
        with self._lock:
            self._context.update(data)

    def build_snapshot(self) -> RawWorldSnapshot:
        """
        Build a RawWorldSnapshot from the current tracked state.

        Every container is copied, so later packets never mutate a snapshot
        that has already been handed out.
        """
        with self._lock:
            p = self._player
            return RawWorldSnapshot(
                tick=self._tick,
                time_of_day=self._time_of_day,
                player_pos=dict(p.pos),
                player_yaw=p.yaw,
                player_pitch=p.pitch,
                on_ground=p.on_ground,
                health=p.health,
                food=p.food,
                oxygen=p.oxygen,
                entities=[
                    RawEntity(
                        entity_id=e.entity_id,
                        name=e.name,
                        kind=e.kind,
                        x=e.x,
                        y=e.y,
                        z=e.z,
                        data=dict(e.data),
                    )
                    for e in self._entities.values()
                ],
                blocks=dict(self._blocks),
                inventory=[dict(stack) for stack in self._inventory],
                in_water=p.in_water,
                in_lava=p.in_lava,
                context=dict(self._context),
            )


__all__ = ["WorldTracker"]

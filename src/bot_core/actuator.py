# src/bot_core/actuator.py
"""
Packet-level Actuator implementation over the game-client bridge.

This module wires together:
- PacketClient / IPC transport
- WorldTracker (incremental raw world state)
- Snapshot adapter (RawWorldSnapshot -> WorldSnapshot)
- Goal bookkeeping (GoalHandle / CancelToken resolution)

Public surface:
    class PacketActuator(Actuator):
        connect() / disconnect() / tick() / run_pump(stop_event)
        current_state() -> WorldSnapshot
        issue_move_goal / issue_follow_and_attack / issue_consume / issue_dig
        cancel_current_goal() -> CancelToken
        say(text)
        subscribe / unsubscribe

Design constraints:
- The bridge pursues at most one movement goal at a time (move, follow,
  dig). Issuing a new one supersedes the old, whose handle resolves
  CLEARED. Consume runs on its own slot and is never cleared by
  cancel_current_goal().
- Every GoalHandle is resolved exactly once; late or stale completion
  messages are ignored.
- Non-directive failures (connect, pump, send) raise BotCoreError.
- Listeners are called on the pump thread, outside the adapter lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from itertools import count
from typing import Any, Dict, List, Mapping, Optional, Tuple

from contracts import (
    ActuatorEvent,
    ActuatorEventType,
    ActuatorListener,
    CancelToken,
    GoalHandle,
    GoalOutcome,
    Point,
    WorldSnapshot,
)
from env.schema import AgentConfig

from .net import PacketClient
from .snapshot import snapshot_to_world_snapshot
from .world_tracker import WorldTracker

log = logging.getLogger(__name__)

# path_update statuses that end a movement goal
_PATH_FAILURE_STATUSES = frozenset({"noPath", "timeout"})


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


@dataclass
class BotCoreError(RuntimeError):
    """
    Domain-level error raised by PacketActuator for non-action failures.

    Examples:
        - failed to connect or disconnect cleanly
        - pump I/O failures
        - a directive packet could not be sent

    Actions convert the latter into an actuator_error ActionResult.
    """

    code: str
    details: dict[str, Any]

    def __str__(self) -> str:
        return f"BotCoreError(code={self.code!r}, details={self.details!r})"


@dataclass
class _GoalSlot:
    goal_id: int
    kind: str
    handle: GoalHandle


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


class PacketActuator:
    """
    Actuator backed by a PacketClient.

    Outgoing packets:
        set_goal            {"goal_id", "x", "y", "z", "range"}
        follow_and_attack   {"goal_id", "entity_id"}
        dig_block           {"goal_id", "x", "y", "z"}
        consume             {"request_id", "item"}
        clear_goal          {"goal_id"}
        chat                {"message"}

    Incoming packets (besides the ones WorldTracker consumes):
        goal_reached, goal_cleared, path_update, target_lost, dig_done,
        consume_done, physics_tick, hazard, chat
    """

    def __init__(
        self,
        client: PacketClient,
        *,
        config: Optional[AgentConfig] = None,
        tracker: Optional[WorldTracker] = None,
    ) -> None:
        self._client = client
        self._config = config or AgentConfig()
        self._tracker = tracker or WorldTracker(client)

        self._lock = threading.Lock()
        self._ids = count(1)
        self._goal: Optional[_GoalSlot] = None
        self._consume: Optional[_GoalSlot] = None
        # (goal_id, token) for clears the bridge has not acknowledged yet.
        self._clear_tokens: List[Tuple[int, CancelToken]] = []
        self._listeners: List[ActuatorListener] = []
        self._connected = False

        self._register_handlers()

    @property
    def tracker(self) -> WorldTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, *, username: Optional[str] = None) -> None:
        """
        Establish the bridge connection.

        Raises:
            BotCoreError if the underlying client fails to connect.
        """
        if self._connected:
            return
        try:
            self._client.connect()
        except Exception as exc:
            raise BotCoreError(
                code="connect_failed",
                details={"exception": repr(exc)},
            ) from exc
        self._connected = True
        if username:
            self._tracker.set_context("username", username)

    def disconnect(self) -> None:
        """
        Disconnect from the bridge. Outstanding goals resolve FAILED.

        Raises:
            BotCoreError if the underlying client fails to disconnect.
        """
        if not self._connected:
            return
        self._connected = False
        self._fail_outstanding()
        try:
            self._client.disconnect()
        except Exception as exc:
            raise BotCoreError(
                code="disconnect_failed",
                details={"exception": repr(exc)},
            ) from exc

    def tick(self) -> None:
        """Pump the transport once; handlers run on the calling thread."""
        if not self._connected:
            return
        try:
            self._client.tick()
        except Exception as exc:
            raise BotCoreError(
                code="tick_failed",
                details={"exception": repr(exc)},
            ) from exc

    def run_pump(self, stop: threading.Event, interval_s: float = 0.01) -> None:
        """
        Pump until `stop` is set. Intended as the body of the event thread.

        A pump failure is logged and ends the loop; reconnecting is left to
        the caller.
        """
        log.info("PacketActuator pump started")
        while not stop.is_set():
            try:
                self.tick()
            except BotCoreError:
                log.exception("PacketActuator pump failed; stopping pump")
                self._fail_outstanding()
                break
            stop.wait(interval_s)
        log.info("PacketActuator pump stopped")

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def current_state(self) -> WorldSnapshot:
        raw = self._tracker.build_snapshot()
        return snapshot_to_world_snapshot(
            raw,
            sense_radius=self._config.sense_radius,
            entity_radius=self._config.entity_radius,
            hostile_mobs=self._config.hostile_mobs,
        )

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    def issue_move_goal(self, point: Point, tolerance: float) -> GoalHandle:
        return self._issue_goal(
            "set_goal",
            {"x": point.x, "y": point.y, "z": point.z, "range": float(tolerance)},
        )

    def issue_follow_and_attack(self, target_id: int) -> GoalHandle:
        return self._issue_goal("follow_and_attack", {"entity_id": int(target_id)})

    def issue_dig(self, point: Point) -> GoalHandle:
        return self._issue_goal(
            "dig_block",
            {"x": int(point.x // 1), "y": int(point.y // 1), "z": int(point.z // 1)},
        )

    def issue_consume(self, item_name: str) -> GoalHandle:
        slot = _GoalSlot(goal_id=next(self._ids), kind="consume", handle=GoalHandle())
        with self._lock:
            previous, self._consume = self._consume, slot
        if previous is not None:
            previous.handle.resolve(GoalOutcome.CLEARED)

        self._send_directive(slot, "consume", {"request_id": slot.goal_id, "item": item_name})
        return slot.handle

    def cancel_current_goal(self) -> CancelToken:
        with self._lock:
            goal = self._goal
            if goal is None:
                return CancelToken.acknowledged()
            token = CancelToken()
            in_flight = any(gid == goal.goal_id for gid, _ in self._clear_tokens)
            self._clear_tokens.append((goal.goal_id, token))

        if in_flight:
            # One clear_goal per goal; its acknowledgement resolves every token.
            return token

        try:
            self._client.send_packet("clear_goal", {"goal_id": goal.goal_id})
        except Exception as exc:
            with self._lock:
                self._clear_tokens = [e for e in self._clear_tokens if e[1] is not token]
            raise BotCoreError(
                code="send_failed",
                details={"packet": "clear_goal", "exception": repr(exc)},
            ) from exc
        log.debug("clear_goal sent for goal %d (%s)", goal.goal_id, goal.kind)
        return token

    def say(self, text: str) -> None:
        try:
            self._client.send_packet("chat", {"message": str(text)})
        except Exception as exc:
            raise BotCoreError(
                code="send_failed",
                details={"packet": "chat", "exception": repr(exc)},
            ) from exc

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    def subscribe(self, listener: ActuatorListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: ActuatorListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event_type: ActuatorEventType, payload: Mapping[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        event = ActuatorEvent(type=event_type, payload=dict(payload))
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                log.exception("Actuator listener failed on %s", event_type.name)

    # ------------------------------------------------------------------
    # Goal bookkeeping
    # ------------------------------------------------------------------

    def _issue_goal(self, packet_type: str, data: Dict[str, Any]) -> GoalHandle:
        slot = _GoalSlot(goal_id=next(self._ids), kind=packet_type, handle=GoalHandle())
        with self._lock:
            previous, self._goal = self._goal, slot
            tokens = [] if previous is None else self._pop_clear_tokens(previous.goal_id)
        if previous is not None:
            # The bridge replaces its goal; the old one will never complete.
            previous.handle.resolve(GoalOutcome.CLEARED)
        for token in tokens:
            token.resolve(True)

        self._send_directive(slot, packet_type, dict(data, goal_id=slot.goal_id))
        return slot.handle

    def _send_directive(self, slot: _GoalSlot, packet_type: str, data: Mapping[str, Any]) -> None:
        try:
            self._client.send_packet(packet_type, data)
        except Exception as exc:
            with self._lock:
                if self._goal is slot:
                    self._goal = None
                if self._consume is slot:
                    self._consume = None
            slot.handle.resolve(GoalOutcome.FAILED)
            raise BotCoreError(
                code="send_failed",
                details={"packet": packet_type, "exception": repr(exc)},
            ) from exc

    def _take_goal(self, pkt: Mapping[str, Any]) -> Optional[_GoalSlot]:
        """
        Detach the current movement goal if `pkt` refers to it. A goal that
        ends this way is gone from the bridge too, so clears still waiting
        on it are acknowledged.
        """
        with self._lock:
            goal = self._goal
            if goal is None:
                return None
            raw_id = pkt.get("goal_id")
            if raw_id is not None:
                try:
                    if int(raw_id) != goal.goal_id:
                        return None
                except (TypeError, ValueError):
                    return None
            self._goal = None
            tokens = self._pop_clear_tokens(goal.goal_id)
        for token in tokens:
            token.resolve(True)
        return goal

    def _pop_clear_tokens(self, goal_id: int) -> List[CancelToken]:
        # Caller holds self._lock.
        popped = [t for gid, t in self._clear_tokens if gid == goal_id]
        self._clear_tokens = [e for e in self._clear_tokens if e[0] != goal_id]
        return popped

    def _fail_outstanding(self) -> None:
        with self._lock:
            slots = [s for s in (self._goal, self._consume) if s is not None]
            self._goal = None
            self._consume = None
            tokens = [t for _, t in self._clear_tokens]
            self._clear_tokens = []
        for slot in slots:
            slot.handle.resolve(GoalOutcome.FAILED)
        for token in tokens:
            token.resolve(True)

    # ------------------------------------------------------------------
    # Packet handlers
    # ------------------------------------------------------------------

    def _register_handlers(self) -> None:
        self._client.on_packet("goal_reached", self._handle_goal_reached)
        self._client.on_packet("goal_cleared", self._handle_goal_cleared)
        self._client.on_packet("path_update", self._handle_path_update)
        self._client.on_packet("target_lost", self._handle_target_lost)
        self._client.on_packet("dig_done", self._handle_dig_done)
        self._client.on_packet("consume_done", self._handle_consume_done)
        self._client.on_packet("physics_tick", self._handle_physics_tick)
        self._client.on_packet("hazard", self._handle_hazard)
        self._client.on_packet("chat", self._handle_chat)

    def _handle_goal_reached(self, pkt: Mapping[str, Any]) -> None:
        goal = self._take_goal(pkt)
        if goal is None:
            return
        goal.handle.resolve(GoalOutcome.REACHED)
        self._emit(ActuatorEventType.GOAL_REACHED, {"goal_id": goal.goal_id, "kind": goal.kind})

    def _handle_goal_cleared(self, pkt: Mapping[str, Any]) -> None:
        """
        The bridge dropped its goal. Resolves the goal handle and every
        outstanding clear token, whoever asked for the clear.
        """
        goal = self._take_goal(pkt)
        with self._lock:
            tokens = [t for _, t in self._clear_tokens]
            self._clear_tokens = []
        if goal is not None:
            goal.handle.resolve(GoalOutcome.CLEARED)
        for token in tokens:
            token.resolve(True)
        self._emit(
            ActuatorEventType.GOAL_CLEARED,
            {"goal_id": None if goal is None else goal.goal_id},
        )

    def _handle_path_update(self, pkt: Mapping[str, Any]) -> None:
        status = pkt.get("status")
        if status not in _PATH_FAILURE_STATUSES:
            return
        goal = self._take_goal(pkt)
        if goal is None:
            return
        goal.handle.resolve(GoalOutcome.UNREACHABLE)
        self._emit(
            ActuatorEventType.GOAL_FAILED,
            {"goal_id": goal.goal_id, "kind": goal.kind, "status": status},
        )

    def _handle_target_lost(self, pkt: Mapping[str, Any]) -> None:
        goal = self._take_goal(pkt)
        if goal is None:
            return
        goal.handle.resolve(GoalOutcome.TARGET_LOST)
        self._emit(
            ActuatorEventType.GOAL_REACHED,
            {"goal_id": goal.goal_id, "kind": goal.kind, "target_lost": True},
        )

    def _handle_dig_done(self, pkt: Mapping[str, Any]) -> None:
        goal = self._take_goal(pkt)
        if goal is None:
            return
        if pkt.get("success", True):
            goal.handle.resolve(GoalOutcome.REACHED)
            self._emit(ActuatorEventType.GOAL_REACHED, {"goal_id": goal.goal_id, "kind": goal.kind})
        else:
            goal.handle.resolve(GoalOutcome.FAILED)
            self._emit(
                ActuatorEventType.GOAL_FAILED,
                {"goal_id": goal.goal_id, "kind": goal.kind, "reason": pkt.get("reason")},
            )

    def _handle_consume_done(self, pkt: Mapping[str, Any]) -> None:
        with self._lock:
            slot = self._consume
            if slot is None:
                return
            raw_id = pkt.get("request_id")
            if raw_id is not None and str(raw_id) != str(slot.goal_id):
                return
            self._consume = None
        ok = bool(pkt.get("success", True))
        slot.handle.resolve(GoalOutcome.REACHED if ok else GoalOutcome.FAILED)

    def _handle_physics_tick(self, pkt: Mapping[str, Any]) -> None:
        # WorldTracker has already applied the flags (registered first).
        self._emit(
            ActuatorEventType.PHYSICS_TICK,
            {
                "in_water": bool(pkt.get("in_water", False)),
                "in_lava": bool(pkt.get("in_lava", False)),
            },
        )

    def _handle_hazard(self, pkt: Mapping[str, Any]) -> None:
        self._emit(
            ActuatorEventType.HAZARD_ACTIVE,
            {"kind": str(pkt.get("kind", "unknown")), "active": bool(pkt.get("active", True))},
        )

    def _handle_chat(self, pkt: Mapping[str, Any]) -> None:
        message = pkt.get("message")
        if not isinstance(message, str):
            return
        self._emit(
            ActuatorEventType.CHAT,
            {"username": str(pkt.get("username", "")), "message": message},
        )


__all__ = ["BotCoreError", "PacketActuator"]

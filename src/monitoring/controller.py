# LoopController linking control commands to the ControlLoop
# src/monitoring/controller.py
"""
Control surface for the control loop.

LoopController wraps a ControlLoop-like object and exposes safe external
control via ControlCommand messages on the EventBus.

Supported commands (ControlCommandType):
- PAUSE          -> request_stop(): cancel the current Run, stop cycling
- RESUME         -> resume cycling
- SINGLE_STEP    -> run exactly one cycle while paused
- CANCEL_PLAN    -> cancel the current Run, keep cycling
- DUMP_STATE     -> emit debug_state() and the latest bus events as a SNAPSHOT

Command handlers may run on any thread (including the Actuator event
thread), so only the loop's non-blocking entry points are used.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Protocol

from .bus import EventBus
from .events import (
    ControlCommand,
    ControlCommandType,
    EventType,
)
from .logger import log_event

log = logging.getLogger(__name__)

RECENT_EVENTS_IN_DUMP = 10


# ============================================================
# Loop interface expected by the controller
# ============================================================

class LoopControl(Protocol):
    """
    Minimal protocol describing what the controller expects from the loop.
    """

    def request_stop(self) -> None:
        ...

    def resume(self) -> None:
        ...

    def request_single_step(self) -> None:
        ...

    def cancel_current_run(self) -> bool:
        ...

    def debug_state(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable snapshot of internal state.

        Recommended contents:
        - run state and current action
        - pending actions
        - last failure
        """
        ...


# ============================================================
# Loop Controller
# ============================================================

class LoopController:
    """
    Control surface for the ControlLoop.

    - Listens for ControlCommand instances on the EventBus.
    - Forwards pause/resume/single-step/cancel into the loop.
    - Emits state snapshots as SNAPSHOT events when requested.
    """

    def __init__(self, loop: LoopControl, bus: EventBus) -> None:
        self._loop = loop
        self._bus = bus
        self._bus.subscribe_commands(self._handle_command)

    def close(self) -> None:
        self._bus.unsubscribe_commands(self._handle_command)

    # --------------------------------------------------------
    # Command handling
    # --------------------------------------------------------

    def _handle_command(self, cmd: ControlCommand) -> None:
        """
        Process an incoming ControlCommand from dashboards, CLIs, or scripts.
        """
        if cmd.cmd == ControlCommandType.PAUSE:
            self._loop.request_stop()
            self._log_control("PAUSE", {"paused": True})

        elif cmd.cmd == ControlCommandType.RESUME:
            self._loop.resume()
            self._log_control("RESUME", {"paused": False})

        elif cmd.cmd == ControlCommandType.SINGLE_STEP:
            self._loop.request_single_step()
            self._log_control("SINGLE_STEP", {"single_step": True})

        elif cmd.cmd == ControlCommandType.CANCEL_PLAN:
            cancelled = self._loop.cancel_current_run()
            self._log_control("CANCEL_PLAN", {"cancelled": cancelled})

        elif cmd.cmd == ControlCommandType.DUMP_STATE:
            state = self._safe_debug_state()
            recent = [
                {"event_type": e.event_type.name, "message": e.message}
                for e in self._bus.recent(RECENT_EVENTS_IN_DUMP)
            ]
            self._log_snapshot(state, recent)

    # --------------------------------------------------------
    # Logging helpers
    # --------------------------------------------------------

    def _log_control(self, cmd_name: str, payload: Dict[str, Any]) -> None:
        """
        Emit a CONTROL_COMMAND monitoring event describing a control action.
        """
        log.info("Control command: %s", cmd_name)
        log_event(
            bus=self._bus,
            module="monitoring.controller",
            event_type=EventType.CONTROL_COMMAND,
            message=f"Control command: {cmd_name}",
            payload={"cmd": cmd_name, **payload},
            correlation_id=None,
        )

    def _log_snapshot(self, state: Dict[str, Any], recent: List[Dict[str, str]]) -> None:
        log_event(
            bus=self._bus,
            module="monitoring.controller",
            event_type=EventType.SNAPSHOT,
            message="Loop state snapshot",
            payload={"state": state, "recent_events": recent},
            correlation_id=None,
        )

    def _safe_debug_state(self) -> Dict[str, Any]:
        """
        Call loop.debug_state() and do a best-effort normalization so
        it is JSON-serializable for logging.
        """
        try:
            state = self._loop.debug_state()
        except Exception as exc:
            log.exception("debug_state() failed")
            return {
                "error": "debug_state_failed",
                "details": repr(exc),
            }

        if is_dataclass(state):
            return asdict(state)
        return state

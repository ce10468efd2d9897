# src/agent/chat_commands.py
"""
In-game chat commands.

    ping    -> "pong"
    coords  -> current position
    status  -> loop/run state and pending work
    stop    -> pause the loop (the current Run is cancelled)
    start   -> resume the loop
    cancel  -> cancel the current Run, keep cycling

Handlers run on the Actuator event thread, so every command uses the
loop's non-blocking entry points. The agent's own messages are ignored.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from contracts import Actuator, ActuatorEvent, ActuatorEventType
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from .loop import ControlLoop

log = logging.getLogger(__name__)

MODULE = "agent.chat_commands"


class ChatCommands:
    def __init__(
        self,
        loop: ControlLoop,
        actuator: Actuator,
        *,
        username: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self._loop = loop
        self._actuator = actuator
        self._username = username
        self._bus = bus
        self._commands: Dict[str, Callable[[], str]] = {
            "ping": self._ping,
            "coords": self._coords,
            "status": self._status,
            "stop": self._stop,
            "start": self._start,
            "cancel": self._cancel,
        }

    def attach(self) -> None:
        self._actuator.subscribe(self.on_event)

    def detach(self) -> None:
        self._actuator.unsubscribe(self.on_event)

    def on_event(self, event: ActuatorEvent) -> None:
        if event.type is not ActuatorEventType.CHAT:
            return
        sender = str(event.payload.get("username", ""))
        if self._username and sender == self._username:
            return
        words = str(event.payload.get("message", "")).strip().lower().split()
        if not words:
            return
        handler = self._commands.get(words[0])
        if handler is None:
            return

        log.info("Chat command %r from %s", words[0], sender or "?")
        reply = handler()
        if self._bus is not None:
            log_event(
                self._bus,
                MODULE,
                EventType.CONTROL_COMMAND,
                f"chat {words[0]}",
                {"command": words[0], "from": sender, "reply": reply},
            )
        try:
            self._actuator.say(reply)
        except Exception:
            log.exception("Reply to %r failed", words[0])

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _ping(self) -> str:
        return "pong"

    def _coords(self) -> str:
        p = self._actuator.current_state().position
        return f"I am at {p.x:.1f}, {p.y:.1f}, {p.z:.1f}"

    def _status(self) -> str:
        state = "stopped" if self._loop.paused else self._loop.current_run_state().value
        pending = [d["action"] for d in self._loop.pending()]
        current = self._loop.executor.current_action()
        parts = [f"Loop {state}"]
        if current is not None:
            parts.append(f"doing {current['action']}")
        parts.append(f"pending: {', '.join(pending) if pending else 'none'}")
        return "; ".join(parts)

    def _stop(self) -> str:
        self._loop.request_stop()
        return "Stopping."

    def _start(self) -> str:
        self._loop.resume()
        return "Resuming."

    def _cancel(self) -> str:
        if self._loop.cancel_current_run():
            return "Cancelled the current run."
        return "Nothing to cancel."


__all__ = ["ChatCommands"]

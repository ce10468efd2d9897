# src/agent/hazard.py
"""
Hazard override reflex.

Runs on the Actuator event thread. When the agent is submerged in a
configured damaging fluid, or the bridge reports an explicit hazard, the
monitor clears the current movement goal directly on the Actuator. It
never touches the executor and never builds an Action: the running
action observes its goal being cleared and the Run aborts the normal way.

Consumption is a separate actuator slot, so an in-flight eat finishes.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Set

from contracts import Actuator, ActuatorEvent, ActuatorEventType
from env.schema import AgentConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

log = logging.getLogger(__name__)

MODULE = "agent.hazard"


class HazardMonitor:
    """Edge-triggered announcements, level-triggered goal clearing."""

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        bus: Optional[EventBus] = None,
    ) -> None:
        self._actuator = actuator
        self._config = config or AgentConfig()
        self._bus = bus
        self._lock = threading.Lock()
        self._fluids: Set[str] = set()
        self._reported: Set[str] = set()
        self._overrides = 0
        self._attached = False

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self) -> None:
        if not self._attached:
            self._actuator.subscribe(self.on_event)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._actuator.unsubscribe(self.on_event)
            self._attached = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        with self._lock:
            return bool(self._fluids or self._reported)

    @property
    def active_hazards(self) -> Set[str]:
        with self._lock:
            return set(self._fluids) | set(self._reported)

    @property
    def override_count(self) -> int:
        return self._overrides

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def on_event(self, event: ActuatorEvent) -> None:
        if not self._config.hazard_check_enabled:
            return
        if event.type is ActuatorEventType.PHYSICS_TICK:
            self._on_physics(event.payload)
        elif event.type is ActuatorEventType.HAZARD_ACTIVE:
            self._on_reported(event.payload)

    def _on_physics(self, payload: Dict[str, object]) -> None:
        current = {
            fluid
            for fluid in self._config.hazard_fluids
            if payload.get(f"in_{fluid}")
        }
        with self._lock:
            entered = current - self._fluids
            left = self._fluids - current
            self._fluids = current
        for fluid in left:
            log.info("Hazard cleared: out of %s", fluid)
        self._apply(entered, source="physics")

    def _on_reported(self, payload: Dict[str, object]) -> None:
        kind = str(payload.get("kind", "unknown"))
        active = bool(payload.get("active", True))
        with self._lock:
            if active:
                entered = set() if kind in self._reported else {kind}
                self._reported.add(kind)
            else:
                self._reported.discard(kind)
                entered = set()
        if not active:
            log.info("Hazard cleared: %s", kind)
            return
        self._apply(entered, source="bridge")

    def _apply(self, entered: Set[str], *, source: str) -> None:
        if not self.active:
            return

        try:
            self._actuator.cancel_current_goal()
        except Exception:
            log.exception("Hazard override could not clear the goal")

        if not entered:
            return

        self._overrides += 1
        names = ", ".join(sorted(entered))
        log.warning("Hazard override (%s): %s; movement goal cleared", source, names)
        if self._bus is not None:
            log_event(
                self._bus,
                MODULE,
                EventType.HAZARD_OVERRIDE,
                f"hazard: {names}",
                {"hazards": sorted(entered), "source": source},
            )
        try:
            self._actuator.say(f"Hazard detected ({names}), stopping movement")
        except Exception:
            log.exception("Hazard announcement failed")


__all__ = ["HazardMonitor"]

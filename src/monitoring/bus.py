# EventBus for monitoring events and control commands
"""
In-process pub/sub for the agent's monitoring stream.

Two channels share one bus:

- MonitoringEvent: published by the control loop, executor, hazard monitor
  and chat commands; consumed by the JSONL logger and the dashboard.
- ControlCommand: published by the dashboard, scripts or tests; consumed by
  monitoring.controller.LoopController.

Publishers may be on the control-loop thread or the Actuator event thread,
so delivery happens on the publisher's thread, outside the bus lock, and a
failing subscriber never stops delivery to the others. The bus also keeps
the last few events for state dumps.
"""

from __future__ import annotations

import logging
from collections import deque
from threading import Lock
from typing import Callable, Deque, FrozenSet, Iterable, List, Optional, Tuple

from .events import ControlCommand, EventType, MonitoringEvent

log = logging.getLogger(__name__)


SubscriberFn = Callable[[MonitoringEvent], None]
CommandHandlerFn = Callable[[ControlCommand], None]

_Subscription = Tuple[SubscriberFn, Optional[FrozenSet[EventType]]]


class EventBus:
    """Thread-safe event and command bus with a bounded event history."""

    def __init__(self, history: int = 50) -> None:
        self._subscribers: List[_Subscription] = []
        self._cmd_handlers: List[CommandHandlerFn] = []
        self._recent: Deque[MonitoringEvent] = deque(maxlen=max(0, history))
        self._lock = Lock()

    # --------------------------------------------------------
    # Monitoring events
    # --------------------------------------------------------

    def subscribe(
        self,
        fn: SubscriberFn,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> None:
        """
        Deliver events to `fn`; only the given types when `event_types` is set.
        """
        types = None if event_types is None else frozenset(event_types)
        with self._lock:
            self._subscribers.append((fn, types))

    def unsubscribe(self, fn: SubscriberFn) -> None:
        """Remove every subscription of `fn`. Unknown callables are ignored."""
        with self._lock:
            self._subscribers = [s for s in self._subscribers if s[0] != fn]

    def publish(self, event: MonitoringEvent) -> None:
        with self._lock:
            self._recent.append(event)
            targets = [
                fn for fn, types in self._subscribers
                if types is None or event.event_type in types
            ]

        for fn in targets:
            try:
                fn(event)
            except Exception:
                log.exception("Monitoring subscriber failed on %s", event.event_type.name)

    def recent(self, limit: Optional[int] = None) -> List[MonitoringEvent]:
        """Most recent events, oldest first."""
        with self._lock:
            events = list(self._recent)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    # --------------------------------------------------------
    # Control commands
    # --------------------------------------------------------

    def subscribe_commands(self, fn: CommandHandlerFn) -> None:
        with self._lock:
            self._cmd_handlers.append(fn)

    def unsubscribe_commands(self, fn: CommandHandlerFn) -> None:
        with self._lock:
            if fn in self._cmd_handlers:
                self._cmd_handlers.remove(fn)

    def publish_command(self, cmd: ControlCommand) -> None:
        with self._lock:
            handlers = list(self._cmd_handlers)

        for fn in handlers:
            try:
                fn(cmd)
            except Exception:
                log.exception("Control command handler failed on %s", cmd.cmd.name)

    def clear(self) -> None:
        """Drop all subscribers, handlers and history."""
        with self._lock:
            self._subscribers.clear()
            self._cmd_handlers.clear()
            self._recent.clear()

# JSON logger subscribing to EventBus
"""
Structured event log for the survival agent.

JsonFileLogger appends every MonitoringEvent published on an EventBus to a
JSON-lines file (one object per line: ts, module, event_type, message,
payload, correlation_id). Runs can be replayed with `jq` or loaded back
with read_events().

log_event() is the one call sites use to publish:

    log_event(bus, "agent.executor", EventType.ACTION_FAILED,
              "move_to failed: unreachable", {"action": ...}, "run-12")
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .bus import EventBus
from .events import EventType, MonitoringEvent

log = logging.getLogger(__name__)


class JsonFileLogger:
    """
    Appends MonitoringEvents to `path` as JSONL.

    The parent directory is created on demand. Values that json cannot
    encode (paths, enums inside payloads) are written with str(). Write
    failures are logged, never raised into the publisher.
    """

    def __init__(
        self,
        path: Path,
        bus: EventBus,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> None:
        self._path = Path(path)
        self._bus = bus
        self._lock = threading.Lock()
        self._written = 0
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._path.open("a", encoding="utf-8")
        bus.subscribe(self._on_event, event_types)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def written(self) -> int:
        return self._written

    def _on_event(self, event: MonitoringEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        with self._lock:
            if self._file.closed:
                return
            try:
                self._file.write(line + "\n")
                self._file.flush()
            except OSError:
                log.exception("Could not write monitoring event to %s", self._path)
                return
            self._written += 1

    def close(self) -> None:
        """Detach from the bus and close the file. Safe to call twice."""
        self._bus.unsubscribe(self._on_event)
        with self._lock:
            if not self._file.closed:
                self._file.close()

    def __enter__(self) -> "JsonFileLogger":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def read_events(path: Path) -> List[Dict[str, Any]]:
    """Load a JSONL event log; blank and corrupt lines are skipped."""
    events: List[Dict[str, Any]] = []
    with Path(path).open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                log.warning("Skipping corrupt event log line %d in %s", lineno, path)
    return events


def log_event(
    bus: EventBus,
    module: str,
    event_type: EventType,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> None:
    """Build a MonitoringEvent stamped with the current time and publish it."""
    bus.publish(
        MonitoringEvent(
            ts=time.time(),
            module=module,
            event_type=event_type,
            message=message,
            payload=payload or {},
            correlation_id=correlation_id,
        )
    )

# src/bot_core/tracing.py
"""
Tracing for action execution.

A thin, structured logging layer around each finished Action so that
monitoring tooling and tests can consume consistent traces.

It does NOT:
- Call LLMs
- Make control decisions
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Mapping, Optional

from contracts import ActionResult, WorldSnapshot


@dataclass
class ActionTraceRecord:
    """Structured record of a single action execution."""

    timestamp: float           # wall-clock time (time.time())
    duration_s: float          # execution duration in seconds

    kind: Optional[str]
    args: Dict[str, Any]

    success: bool
    error: Optional[str]

    # Minimal world context at start time
    tick: Optional[int]
    position: Dict[str, float]


class ActionTracer:
    """
    In-memory action tracer with optional logging.

    Responsibilities:
    - Keep a rolling buffer of recent ActionTraceRecord entries.
    - Emit a single structured log line per action (info level).
    """

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        max_records: int = 10_000,
    ) -> None:
        self._logger = logger or logging.getLogger("bot_core.action")
        self._records: Deque[ActionTraceRecord] = deque(maxlen=max_records)

    def record(
        self,
        *,
        description: Mapping[str, Any],
        result: ActionResult,
        duration_s: float,
        snapshot: Optional[WorldSnapshot] = None,
    ) -> None:
        """
        Record a trace for a finished action.

        `description` is the action's describe() output. Call this on
        failures too; `success` and `error` capture the outcome.
        """
        try:
            record = self._build_record(description, result, duration_s, snapshot)
        except Exception:
            # Tracing must never crash the caller.
            self._logger.exception("Failed to build ActionTraceRecord")
            return

        self._records.append(record)

        self._logger.info(
            "action_exec kind=%s success=%s error=%s duration=%.4fs tick=%s "
            "pos=(%.2f,%.2f,%.2f)",
            record.kind,
            record.success,
            record.error,
            record.duration_s,
            record.tick,
            record.position.get("x", 0.0),
            record.position.get("y", 0.0),
            record.position.get("z", 0.0),
        )

    def get_records(self) -> List[ActionTraceRecord]:
        """Return a copy of all currently buffered records."""
        return list(self._records)

    def _build_record(
        self,
        description: Mapping[str, Any],
        result: ActionResult,
        duration_s: float,
        snapshot: Optional[WorldSnapshot],
    ) -> ActionTraceRecord:
        args = description.get("args") or {}
        return ActionTraceRecord(
            timestamp=time.time(),
            duration_s=duration_s,
            kind=description.get("action"),
            args=dict(args) if isinstance(args, Mapping) else {},
            success=bool(result.success),
            error=None if result.error is None else result.error.value,
            tick=None if snapshot is None else snapshot.tick,
            position={} if snapshot is None else snapshot.position.to_dict(),
        )

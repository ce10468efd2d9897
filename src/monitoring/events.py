# path: src/monitoring/events.py
"""
Event and command schemas for monitoring.

This module defines:
- MonitoringEvent (structured system events)
- EventType enum
- ControlCommandType enum
- ControlCommand for human/system-issued controls

All events are JSON-serializable via `.to_dict()` and are intended
for use with monitoring.bus.EventBus and monitoring.logger.JsonFileLogger.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional


# ============================================================
# Event Types
# ============================================================

class EventType(Enum):
    """Typed monitoring events emitted by the loop, executor and hazard monitor."""

    # Control loop cycles
    CYCLE_STARTED = auto()

    # Planner
    PLAN_CREATED = auto()
    PLANNER_FAILED = auto()
    DECISION_REJECTED = auto()

    # Per-action execution
    ACTION_STARTED = auto()
    ACTION_SUCCEEDED = auto()
    ACTION_FAILED = auto()

    # Whole-run outcomes
    RUN_COMPLETED = auto()
    RUN_ABORTED = auto()        # a step failed; payload carries the unexecuted tail
    RUN_CANCELLED = auto()      # external cancellation (new cycle, stop, cancel)

    # Reflex override
    HAZARD_OVERRIDE = auto()

    # Control surface events
    CONTROL_COMMAND = auto()

    # Full state snapshot (rare)
    SNAPSHOT = auto()

    # Generic log messages
    LOG = auto()


# ============================================================
# Monitoring Event Structure
# ============================================================

@dataclass
class MonitoringEvent:
    """
    Runtime event emitted by the agent core or the control surface.

    All fields must be JSON-safe.
    """

    ts: float                   # UNIX timestamp (seconds)
    module: str                 # Source module string ("agent.executor", ...)
    event_type: EventType       # Enum describing the event class
    message: str                # Short human-readable description
    payload: Dict[str, Any]     # Structured data (decisions, action, snapshot)
    correlation_id: Optional[str] = None  # Groups events per run ("run-12")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict for loggers."""
        data = asdict(self)
        data["event_type"] = self.event_type.name  # store name, not enum
        return data


# ============================================================
# Control Commands
# ============================================================

class ControlCommandType(Enum):
    """
    Commands that humans or tools can send to control the loop.
    """

    PAUSE = auto()          # Stop cycling after the current run drains
    RESUME = auto()         # Start cycling again
    SINGLE_STEP = auto()    # Run exactly one cycle while paused
    CANCEL_PLAN = auto()    # Cancel the current run
    DUMP_STATE = auto()     # Emit a SNAPSHOT event with debug_state()


@dataclass
class ControlCommand:
    """
    Represents an external command for the agent.

    Sent through EventBus.publish_command(), then interpreted by
    monitoring.controller.LoopController.
    """

    cmd: ControlCommandType
    args: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def pause() -> "ControlCommand":
        return ControlCommand(ControlCommandType.PAUSE, {})

    @staticmethod
    def resume() -> "ControlCommand":
        return ControlCommand(ControlCommandType.RESUME, {})

    @staticmethod
    def single_step() -> "ControlCommand":
        return ControlCommand(ControlCommandType.SINGLE_STEP, {})

    @staticmethod
    def cancel_plan() -> "ControlCommand":
        return ControlCommand(ControlCommandType.CANCEL_PLAN, {})

    @staticmethod
    def dump_state() -> "ControlCommand":
        return ControlCommand(ControlCommandType.DUMP_STATE, {})

# src/agent/errors.py

from __future__ import annotations

from contracts.planner import PlannerError


class ExecutorBusyError(RuntimeError):
    """submit() was called while a Run is still active."""


class InvalidDecisionError(ValueError):
    """A planner decision names an unknown action or carries bad arguments."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message


__all__ = ["ExecutorBusyError", "InvalidDecisionError", "PlannerError"]

# Planner interface definition
# src/contracts/planner.py

from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence

from .types import Decision, WorldSnapshot


class PlannerError(RuntimeError):
    """Raised when the decision oracle is unreachable or answers garbage."""


class Planner(Protocol):
    """Decision oracle: world snapshot in, ordered decisions out."""

    def propose(
        self,
        snapshot: WorldSnapshot,
        pending: Sequence[Dict[str, Any]],
    ) -> List[Decision]:
        """
        Return zero or more decisions, in execution order.

        `pending` is the describe() output of work the executor has not
        started yet, so the oracle can see unfinished commitments. An empty
        result means "no action needed".
        """
        ...

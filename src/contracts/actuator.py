# Actuator interface definition
# src/contracts/actuator.py

from __future__ import annotations

from typing import Callable, Protocol

from .signals import CancelToken, GoalHandle
from .types import ActuatorEvent, Point, WorldSnapshot

# Listener for the Actuator's event stream. Called on the Actuator's own
# event thread; listeners must not block.
ActuatorListener = Callable[[ActuatorEvent], None]


class Actuator(Protocol):
    """Abstract interface for the game-client body the agent drives.

    This is the narrow surface the action core needs:
    - a per-cycle world snapshot
    - one method per outward directive, each returning a GoalHandle that
      is resolved exactly once when the client reports completion
    - goal cancellation with an explicit acknowledgement token
    - chat output
    - an event stream (goal reached/cleared/failed, hazard, physics tick, chat)
    """

    def current_state(self) -> WorldSnapshot:
        """Return an immutable snapshot of the latest known world state."""
        ...

    def issue_move_goal(self, point: Point, tolerance: float) -> GoalHandle:
        """Path to within `tolerance` blocks of `point`."""
        ...

    def issue_follow_and_attack(self, target_id: int) -> GoalHandle:
        """
        Follow the entity and attack it whenever in range.

        The handle resolves TARGET_LOST once the entity is gone.
        """
        ...

    def issue_consume(self, item_name: str) -> GoalHandle:
        """Equip `item_name` in hand and consume it."""
        ...

    def issue_dig(self, point: Point) -> GoalHandle:
        """Approach and dig the block at `point`."""
        ...

    def cancel_current_goal(self) -> CancelToken:
        """
        Ask the client to drop whatever movement goal it is pursuing.

        Never blocks. The token resolves when the client acknowledges the
        clear, or is already resolved when there was no goal.
        """
        ...

    def say(self, text: str) -> None:
        """Send one chat line."""
        ...

    def subscribe(self, listener: ActuatorListener) -> None:
        """Register a listener on the event stream."""
        ...

    def unsubscribe(self, listener: ActuatorListener) -> None:
        """Remove a listener. Safe to call if it is not registered."""
        ...

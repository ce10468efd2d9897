# src/agent/actions.py
"""
Concrete Actions the executor runs.

Every Action is single-use and follows one state machine:

    NOT_STARTED -> RUNNING -> SUCCEEDED | FAILED | CANCELLED

start() issues at most one outward directive to the Actuator and then
waits for the directive's GoalHandle, the per-kind timeout, or a
cancellation request, whichever comes first. Failures never raise; they
come back as an ActionResult carrying an ActionError.

cancel() may be called from any thread at any time. Once it returns, the
action will not issue further directives, and any goal it owns has been
told to stop. The returned CancelToken resolves when the Actuator
acknowledges the clear.
"""

from __future__ import annotations

import abc
import logging
import math
import threading
import time
from typing import Any, Callable, ClassVar, Dict, Iterable, Optional, Sequence, Tuple

from contracts import (
    ActionError,
    ActionResult,
    ActionState,
    Actuator,
    CancelToken,
    GoalHandle,
    GoalOutcome,
    Point,
    WorldSnapshot,
)
from env.schema import AgentConfig

from .errors import InvalidDecisionError

log = logging.getLogger(__name__)


SAY_MAX_CHARS = 120
WAIT_MIN_MS = 250
WAIT_MAX_MS = 5_000
FLEE_MIN_DISTANCE = 8.0
FLEE_DEFAULT_DISTANCE = 16.0
FLEE_TOLERANCE = 2.0
MOVE_DEFAULT_TOLERANCE = 1.0

DEFAULT_FOODS: Tuple[str, ...] = (
    "cooked_beef",
    "cooked_porkchop",
    "cooked_mutton",
    "cooked_chicken",
    "bread",
    "baked_potato",
    "carrot",
    "apple",
    "pumpkin_pie",
    "beetroot_soup",
    "mushroom_stew",
    "cookie",
)

_OUTCOME_ERRORS: Dict[GoalOutcome, ActionError] = {
    GoalOutcome.UNREACHABLE: ActionError.UNREACHABLE,
    GoalOutcome.CLEARED: ActionError.CANCELLED,
    GoalOutcome.TARGET_LOST: ActionError.TARGET_INVALID,
    GoalOutcome.FAILED: ActionError.ACTUATOR_ERROR,
}


def _number(kind: str, name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidDecisionError(kind, f"{name} must be a number, got {value!r}")
    try:
        value = float(value)
    except OverflowError:
        raise InvalidDecisionError(kind, f"{name} is out of range") from None
    if not math.isfinite(value):
        raise InvalidDecisionError(kind, f"{name} must be finite, got {value!r}")
    return value


def _entity_id(kind: str, value: Any) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or (isinstance(value, float) and not math.isfinite(value))
        or int(value) != value
    ):
        raise InvalidDecisionError(kind, f"entity_id must be an integer, got {value!r}")
    return int(value)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class Action(abc.ABC):
    """Base class for every concrete action kind."""

    kind: ClassVar[str] = ""
    # False: once the directive is in flight, cancel() is a no-op.
    cancellable: ClassVar[bool] = True

    def __init__(self, actuator: Actuator, config: Optional[AgentConfig] = None) -> None:
        self._actuator = actuator
        self._config = config or AgentConfig()

        self._lock = threading.Lock()
        self._state = ActionState.NOT_STARTED
        self._cancel_requested = threading.Event()
        self._handle: Optional[GoalHandle] = None
        self._result: Optional[ActionResult] = None
        self._finished = threading.Event()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ActionState:
        return self._state

    @property
    def result(self) -> Optional[ActionResult]:
        return self._result

    @property
    def timeout_s(self) -> float:
        return self._config.timeout_s(self.kind)

    @property
    def in_flight(self) -> bool:
        """True once a directive has been issued and not yet resolved."""
        handle = self._handle
        return handle is not None and not handle.done

    def describe(self) -> Dict[str, Any]:
        return {"action": self.kind, "args": self._args()}

    @abc.abstractmethod
    def _args(self) -> Dict[str, Any]:
        ...

    def wait_done(self, timeout: Optional[float] = None) -> bool:
        """Block until start() has returned (or the action never started)."""
        return self._finished.wait(timeout)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._args()!r}, state={self._state.value})"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> ActionResult:
        with self._lock:
            if self._state is not ActionState.NOT_STARTED:
                raise RuntimeError(f"{self.kind} action already {self._state.value}; actions are single-use")
            if self._cancel_requested.is_set():
                self._state = ActionState.CANCELLED
                self._result = ActionResult.failure(ActionError.CANCELLED, message="cancelled before start")
                self._finished.set()
                return self._result
            self._state = ActionState.RUNNING

        deadline = time.monotonic() + self.timeout_s
        try:
            result = self._execute(deadline)
        except Exception as exc:
            log.exception("%s action raised", self.kind)
            result = ActionResult.failure(
                ActionError.ACTUATOR_ERROR,
                message=str(exc),
                exception=repr(exc),
            )

        if result.error is ActionError.TIMEOUT:
            self._stop_owned_goal()

        with self._lock:
            if result.success:
                self._state = ActionState.SUCCEEDED
            elif result.error is ActionError.CANCELLED:
                self._state = ActionState.CANCELLED
            else:
                self._state = ActionState.FAILED
            self._result = result
        self._finished.set()
        return result

    def cancel(self) -> CancelToken:
        with self._lock:
            if self._state.terminal:
                return CancelToken.acknowledged()
            if not self.cancellable and self.in_flight:
                # Consuming cannot be interrupted; let it finish.
                return CancelToken.acknowledged()
            self._cancel_requested.set()
            owns_goal = self.in_flight
        if not owns_goal:
            return CancelToken.acknowledged()
        return self._actuator.cancel_current_goal()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def _execute(self, deadline: float) -> ActionResult:
        """Issue the directive and wait for its outcome."""

    def _issue(self, directive: Callable[[], GoalHandle]) -> Optional[GoalHandle]:
        """
        Issue a directive unless cancel() got there first.

        Holding the lock across the call means cancel() either sees the
        handle (and clears the goal) or blocks issuing entirely.
        """
        with self._lock:
            if self._cancel_requested.is_set():
                return None
            handle = directive()
            self._handle = handle
            return handle

    def _await(
        self,
        handle: GoalHandle,
        deadline: float,
        *,
        poll: Optional[Callable[[], Optional[ActionResult]]] = None,
    ) -> ActionResult:
        """
        Wait for the handle in poll-interval steps.

        `poll` runs on every step; returning a result ends the wait early.
        Cancellation is only honoured for cancellable actions.
        """
        interval = self._config.poll_interval_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return ActionResult.failure(
                    ActionError.TIMEOUT,
                    message=f"{self.kind} exceeded {self.timeout_s:g}s",
                )
            outcome = handle.wait(min(interval, remaining))
            if outcome is not None:
                return self._outcome_result(outcome)
            if self.cancellable and self._cancel_requested.is_set():
                return ActionResult.failure(ActionError.CANCELLED, message="cancel requested")
            if poll is not None:
                early = poll()
                if early is not None:
                    return early

    def _outcome_result(self, outcome: GoalOutcome) -> ActionResult:
        if outcome is GoalOutcome.REACHED:
            return ActionResult.ok()
        error = _OUTCOME_ERRORS[outcome]
        return ActionResult.failure(error, message=f"goal {outcome.name.lower()}")

    def _cancelled(self) -> ActionResult:
        return ActionResult.failure(ActionError.CANCELLED, message="cancelled before directive")

    def _stop_owned_goal(self) -> None:
        if not self.cancellable or not self.in_flight:
            return
        try:
            self._actuator.cancel_current_goal()
        except Exception:
            log.exception("%s: clearing goal after timeout failed", self.kind)

    def _snapshot(self) -> WorldSnapshot:
        return self._actuator.current_state()


# ---------------------------------------------------------------------------
# Concrete kinds
# ---------------------------------------------------------------------------


class MoveToAction(Action):
    kind = "move_to"

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        x: Any,
        y: Any,
        z: Any,
        tolerance: Any = MOVE_DEFAULT_TOLERANCE,
    ) -> None:
        super().__init__(actuator, config)
        self.target = Point(
            _number(self.kind, "x", x),
            _number(self.kind, "y", y),
            _number(self.kind, "z", z),
        )
        self.tolerance = _number(self.kind, "tolerance", tolerance)
        if self.tolerance < 0:
            raise InvalidDecisionError(self.kind, "tolerance must be >= 0")

    def _args(self) -> Dict[str, Any]:
        return {**self.target.to_dict(), "tolerance": self.tolerance}

    def _execute(self, deadline: float) -> ActionResult:
        handle = self._issue(lambda: self._actuator.issue_move_goal(self.target, self.tolerance))
        if handle is None:
            return self._cancelled()
        return self._await(handle, deadline)


class EatAction(Action):
    """
    Consume one food item.

    Without an explicit item, the first held item from `prefer` and then
    the built-in food list is chosen. Not cancellable once consuming.
    """

    kind = "eat"
    cancellable = False

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        item: Optional[str] = None,
        prefer: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(actuator, config)
        if item is not None and (not isinstance(item, str) or not item.strip()):
            raise InvalidDecisionError(self.kind, f"item must be a non-empty string, got {item!r}")
        if prefer is not None:
            if isinstance(prefer, str) or not all(isinstance(p, str) for p in prefer):
                raise InvalidDecisionError(self.kind, "prefer must be a list of item names")
        self.item = item.strip() if item else None
        self.prefer: Tuple[str, ...] = tuple(prefer or ())

    def _args(self) -> Dict[str, Any]:
        args: Dict[str, Any] = {}
        if self.item is not None:
            args["item"] = self.item
        if self.prefer:
            args["prefer"] = list(self.prefer)
        return args

    def choose_item(self, snapshot: WorldSnapshot) -> Optional[str]:
        if self.item is not None:
            return self.item if snapshot.has_item(self.item) else None
        for name in _dedupe((*self.prefer, *DEFAULT_FOODS)):
            if snapshot.has_item(name):
                return name
        return None

    def _execute(self, deadline: float) -> ActionResult:
        chosen = self.choose_item(self._snapshot())
        if chosen is None:
            wanted = self.item or "any food"
            return ActionResult.failure(
                ActionError.RESOURCE_UNAVAILABLE,
                message=f"no {wanted} in inventory",
            )
        handle = self._issue(lambda: self._actuator.issue_consume(chosen))
        if handle is None:
            return self._cancelled()
        result = self._await(handle, deadline)
        result.details.setdefault("item", chosen)
        return result


class FollowAndAttackAction(Action):
    """Chase an entity and hit it until it is gone."""

    kind = "follow_and_attack"

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        entity_id: Any,
    ) -> None:
        super().__init__(actuator, config)
        self.entity_id = _entity_id(self.kind, entity_id)

    def _args(self) -> Dict[str, Any]:
        return {"entity_id": self.entity_id}

    def _execute(self, deadline: float) -> ActionResult:
        if self._snapshot().entity(self.entity_id) is None:
            return ActionResult.failure(
                ActionError.TARGET_INVALID,
                message=f"entity {self.entity_id} not in view",
            )
        handle = self._issue(lambda: self._actuator.issue_follow_and_attack(self.entity_id))
        if handle is None:
            return self._cancelled()
        result = self._await(handle, deadline)
        if result.error is ActionError.TARGET_INVALID:
            # Target left the world while being attacked: the job is done.
            return ActionResult.ok(target_lost=True)
        return result


class DigBlockAction(Action):
    kind = "dig_block"

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        x: Any,
        y: Any,
        z: Any,
    ) -> None:
        super().__init__(actuator, config)
        self.target = Point(
            math.floor(_number(self.kind, "x", x)),
            math.floor(_number(self.kind, "y", y)),
            math.floor(_number(self.kind, "z", z)),
        )

    def _args(self) -> Dict[str, Any]:
        return {"x": int(self.target.x), "y": int(self.target.y), "z": int(self.target.z)}

    def _execute(self, deadline: float) -> ActionResult:
        for cell in self._snapshot().terrain:
            if cell.position == self.target and not cell.solid:
                return ActionResult.failure(
                    ActionError.TARGET_INVALID,
                    message=f"nothing to dig at {self._args()}",
                    block=cell.block,
                )
        handle = self._issue(lambda: self._actuator.issue_dig(self.target))
        if handle is None:
            return self._cancelled()
        return self._await(handle, deadline)


class FleeFromAction(Action):
    """
    Run directly away from a threat on the horizontal plane.

    The threat is either an entity (tracked while fleeing) or a fixed
    point. Succeeds once the agent is `min_distance` away or the goal is
    reached; an entity that disappears also counts as success.
    """

    kind = "flee_from"

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        entity_id: Any = None,
        x: Any = None,
        y: Any = None,
        z: Any = None,
        min_distance: Any = FLEE_DEFAULT_DISTANCE,
    ) -> None:
        super().__init__(actuator, config)
        self.entity_id: Optional[int] = None
        self.threat: Optional[Point] = None
        if entity_id is not None:
            self.entity_id = _entity_id(self.kind, entity_id)
        elif x is not None and z is not None:
            self.threat = Point(
                _number(self.kind, "x", x),
                _number(self.kind, "y", 0.0 if y is None else y),
                _number(self.kind, "z", z),
            )
        else:
            raise InvalidDecisionError(self.kind, "needs entity_id or threat x/z")
        self.min_distance = _number(self.kind, "min_distance", min_distance)
        if self.min_distance < FLEE_MIN_DISTANCE:
            raise InvalidDecisionError(
                self.kind, f"min_distance must be >= {FLEE_MIN_DISTANCE:g}, got {self.min_distance:g}"
            )

    def _args(self) -> Dict[str, Any]:
        args: Dict[str, Any] = {"min_distance": self.min_distance}
        if self.entity_id is not None:
            args["entity_id"] = self.entity_id
        elif self.threat is not None:
            args.update(self.threat.to_dict())
        return args

    def _threat_position(self, snapshot: WorldSnapshot) -> Optional[Point]:
        if self.entity_id is None:
            return self.threat
        entity = snapshot.entity(self.entity_id)
        return None if entity is None else entity.position

    @staticmethod
    def escape_point(me: Point, threat: Point, distance: float) -> Point:
        dx, dz = me.x - threat.x, me.z - threat.z
        norm = math.hypot(dx, dz)
        if norm < 1e-6:
            dx, dz, norm = 1.0, 0.0, 1.0
        return Point(threat.x + dx / norm * distance, me.y, threat.z + dz / norm * distance)

    def _execute(self, deadline: float) -> ActionResult:
        snapshot = self._snapshot()
        threat = self._threat_position(snapshot)
        if threat is None:
            return ActionResult.ok(message="threat already gone")
        if _horizontal(snapshot.position, threat) >= self.min_distance:
            return ActionResult.ok(message="already at a safe distance")

        target = self.escape_point(snapshot.position, threat, self.min_distance)
        handle = self._issue(lambda: self._actuator.issue_move_goal(target, FLEE_TOLERANCE))
        if handle is None:
            return self._cancelled()

        def far_enough() -> Optional[ActionResult]:
            now = self._snapshot()
            where = self._threat_position(now)
            if where is None or _horizontal(now.position, where) >= self.min_distance:
                self._stop_owned_goal()
                return ActionResult.ok()
            return None

        return self._await(handle, deadline, poll=far_enough)


class WaitAction(Action):
    """Idle for a bounded duration; interruptible by cancel()."""

    kind = "wait"

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        ms: Any = 1_000,
    ) -> None:
        super().__init__(actuator, config)
        self.ms = int(_clamp(_number(self.kind, "ms", ms), WAIT_MIN_MS, WAIT_MAX_MS))

    @property
    def timeout_s(self) -> float:
        return self.ms / 1000.0

    def _args(self) -> Dict[str, Any]:
        return {"ms": self.ms}

    def _execute(self, deadline: float) -> ActionResult:
        if self._cancel_requested.wait(max(0.0, deadline - time.monotonic())):
            return ActionResult.failure(ActionError.CANCELLED, message="cancel requested")
        return ActionResult.ok(waited_ms=self.ms)


class SayAction(Action):
    kind = "say"

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        text: Any,
    ) -> None:
        super().__init__(actuator, config)
        if not isinstance(text, str) or not text.strip():
            raise InvalidDecisionError(self.kind, "text must be a non-empty string")
        self.text = text.strip()[:SAY_MAX_CHARS]

    def _args(self) -> Dict[str, Any]:
        return {"text": self.text}

    def _execute(self, deadline: float) -> ActionResult:
        with self._lock:
            if self._cancel_requested.is_set():
                return self._cancelled()
            self._actuator.say(self.text)
        return ActionResult.ok()


def _horizontal(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.z - b.z)


def _dedupe(names: Iterable[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for name in names:
        seen.setdefault(name, None)
    return tuple(seen)


ACTION_TYPES: Dict[str, type] = {
    cls.kind: cls
    for cls in (
        MoveToAction,
        EatAction,
        FollowAndAttackAction,
        DigBlockAction,
        FleeFromAction,
        WaitAction,
        SayAction,
    )
}


__all__ = [
    "Action",
    "MoveToAction",
    "EatAction",
    "FollowAndAttackAction",
    "DigBlockAction",
    "FleeFromAction",
    "WaitAction",
    "SayAction",
    "ACTION_TYPES",
    "DEFAULT_FOODS",
]

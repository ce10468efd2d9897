# src/agent/executor.py
"""
Sequential executor for one Run of Actions.

A Run is the ordered list accepted by submit() plus a cursor. run() starts
the actions one at a time; the cursor only advances on success. The first
failure aborts the whole Run: no retry, no skip-and-continue.

    IDLE --submit/run--> RUNNING --failure--> ABORTING --reset--> IDLE
                           |--all succeeded---------------------> IDLE
                           `--cancel requested--reset-----------> IDLE

Threading:
- run() executes on the caller's thread (the control loop).
- request_cancel() never blocks and is safe from the Actuator event thread.
- reset() blocks until the in-flight action has acknowledged cancellation
  (bounded), so at most one action is ever running.
- All Run state is guarded by one lock that is never held while waiting.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from bot_core.tracing import ActionTracer
from contracts import ActionResult, ActionState, Actuator, WorldSnapshot
from env.schema import AgentConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from .actions import Action
from .errors import ExecutorBusyError

log = logging.getLogger(__name__)

MODULE = "agent.executor"


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    ABORTING = "aborting"


@dataclass
class RunReport:
    """Outcome of one run() call."""

    run_id: int
    outcome: str                        # "completed" | "aborted" | "cancelled" | "empty"
    total: int = 0
    completed: int = 0
    failed_action: Optional[Dict[str, Any]] = None
    failure: Optional[ActionResult] = None
    not_started: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome in ("completed", "empty")


class ActionExecutor:
    """Runs at most one Action at a time, in order, aborting on first failure."""

    def __init__(
        self,
        actuator: Actuator,
        config: Optional[AgentConfig] = None,
        *,
        bus: Optional[EventBus] = None,
        tracer: Optional[ActionTracer] = None,
        announce_failures: bool = True,
    ) -> None:
        self._actuator = actuator
        self._config = config or AgentConfig()
        self._bus = bus
        self._tracer = tracer or ActionTracer()
        self._announce_failures = announce_failures

        self._lock = threading.Lock()
        self._actions: List[Action] = []
        self._cursor = 0
        self._current: Optional[Action] = None
        self._state = RunState.IDLE
        self._run_id = 0
        self._cancel_requested = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def current_run_state(self) -> RunState:
        return self._state

    def current_action(self) -> Optional[Dict[str, Any]]:
        action = self._current
        return None if action is None else action.describe()

    def pending(self) -> List[Dict[str, Any]]:
        """describe() of the actions from the cursor on that have not started."""
        with self._lock:
            return [
                a.describe()
                for a in self._actions[self._cursor:]
                if a.state is ActionState.NOT_STARTED
            ]

    @property
    def tracer(self) -> ActionTracer:
        return self._tracer

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def submit(self, actions: Sequence[Action]) -> int:
        """
        Accept a new Run. Returns its run id.

        Raises ExecutorBusyError while a previous Run is still active;
        callers reset() first.
        """
        with self._lock:
            if self._state is not RunState.IDLE or self._actions:
                raise ExecutorBusyError(
                    f"run {self._run_id} is still active ({self._state.value}, "
                    f"{len(self._actions) - self._cursor} left)"
                )
            self._run_id += 1
            self._actions = list(actions)
            self._cursor = 0
            self._cancel_requested = False
            log.debug("Run %d submitted with %d actions", self._run_id, len(self._actions))
            return self._run_id

    def run(self) -> RunReport:
        with self._lock:
            run_id = self._run_id
            total = len(self._actions)
            if not self._actions:
                return RunReport(run_id=run_id, outcome="empty")
            self._state = RunState.RUNNING
        correlation = f"run-{run_id}"
        completed = 0

        while True:
            with self._lock:
                if run_id != self._run_id:
                    # reset() from another thread already tore this Run down.
                    return self._superseded(run_id, total, completed, correlation)
                if self._cancel_requested:
                    action = None
                elif self._cursor >= len(self._actions):
                    self._finish_locked()
                    break
                else:
                    action = self._actions[self._cursor]
                    self._current = action
            if action is None:
                return self._cancelled(run_id, total, completed, correlation)

            description = action.describe()
            self._emit(
                EventType.ACTION_STARTED,
                f"start {description['action']}",
                {"action": description},
                correlation,
            )
            snapshot = self._safe_snapshot()
            started = time.monotonic()
            result = action.start()
            self._tracer.record(
                description=description,
                result=result,
                duration_s=time.monotonic() - started,
                snapshot=snapshot,
            )

            with self._lock:
                stale = run_id != self._run_id
                cancelled = self._cancel_requested
                if not stale:
                    self._current = None
                    if result.success:
                        self._cursor += 1
                    elif not cancelled:
                        self._state = RunState.ABORTING

            if stale:
                return self._superseded(run_id, total, completed, correlation)

            if result.success:
                completed += 1
                self._emit(
                    EventType.ACTION_SUCCEEDED,
                    f"{description['action']} succeeded",
                    {"action": description, "details": dict(result.details)},
                    correlation,
                )
                continue

            if cancelled:
                return self._cancelled(run_id, total, completed, correlation)
            return self._abort(run_id, total, completed, description, result, correlation)

        self._emit(
            EventType.RUN_COMPLETED,
            f"run {run_id} completed",
            {"completed": completed},
            correlation,
        )
        return RunReport(run_id=run_id, outcome="completed", total=total, completed=completed)

    def reset(self) -> None:
        """
        Cancel the in-flight action (waiting for acknowledgement, bounded)
        and drop the Run. Idempotent.
        """
        stopped: Optional[Action] = None
        while True:
            with self._lock:
                action = self._current
                self._cancel_requested = True
            if action is not None and action is not stopped:
                self._stop_action(action)
                stopped = action
            with self._lock:
                # A Run submitted meanwhile may have started another action.
                if self._current is not None and self._current is not stopped:
                    continue
                if self._actions or self._state is not RunState.IDLE:
                    log.debug("Run %d reset at cursor %d", self._run_id, self._cursor)
                # Invalidate any run() still looping on the old list.
                self._run_id += 1
                self._actions = []
                self._cursor = 0
                self._current = None
                self._state = RunState.IDLE
                self._cancel_requested = False
                return

    def request_cancel(self) -> bool:
        """
        Ask the active Run to stop without blocking.

        The in-flight action is told to cancel; run() notices, resets and
        returns. Returns False when there was nothing to cancel.
        """
        with self._lock:
            if not self._actions:
                return False
            self._cancel_requested = True
            action = self._current
        if action is not None:
            try:
                action.cancel()
            except Exception:
                log.exception("cancel() on %s raised", action.kind)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stop_action(self, action: Action) -> None:
        ack_timeout = self._config.cancel_ack_timeout_s
        try:
            token = action.cancel()
        except Exception:
            log.exception("cancel() on %s raised", action.kind)
        else:
            if token.wait(ack_timeout) is None:
                log.warning("%s: goal clear not acknowledged within %.1fs", action.kind, ack_timeout)

        if action.state is ActionState.NOT_STARTED:
            # start() will see the cancel flag and return without a directive.
            return

        # A non-cancellable action runs to completion within its own budget.
        budget = ack_timeout if action.cancellable else action.timeout_s + ack_timeout
        if not action.wait_done(budget):
            log.warning("%s still running %.1fs after cancel", action.kind, budget)

    def _finish_locked(self) -> None:
        self._actions = []
        self._cursor = 0
        self._current = None
        self._state = RunState.IDLE

    def _abort(
        self,
        run_id: int,
        total: int,
        completed: int,
        description: Dict[str, Any],
        result: ActionResult,
        correlation: str,
    ) -> RunReport:
        not_started = self.pending()
        log.warning("Action %s failed (%s); aborting run %d", description, result.reason, run_id)
        self._emit(
            EventType.ACTION_FAILED,
            f"{description['action']} failed: {result.reason}",
            {
                "action": description,
                "error": None if result.error is None else result.error.value,
                "details": dict(result.details),
            },
            correlation,
        )
        if self._announce_failures:
            self._say(f"Action {description['action']} failed: {result.reason}")
        self._emit(
            EventType.RUN_ABORTED,
            f"run {run_id} aborted",
            {"failed": description, "pending": not_started},
            correlation,
        )
        self.reset()
        return RunReport(
            run_id=run_id,
            outcome="aborted",
            total=total,
            completed=completed,
            failed_action=description,
            failure=result,
            not_started=not_started,
        )

    def _cancelled(self, run_id: int, total: int, completed: int, correlation: str) -> RunReport:
        not_started = self.pending()
        self.reset()
        self._emit(
            EventType.RUN_CANCELLED,
            f"run {run_id} cancelled",
            {"completed": completed, "pending": not_started},
            correlation,
        )
        return RunReport(
            run_id=run_id,
            outcome="cancelled",
            total=total,
            completed=completed,
            not_started=not_started,
        )

    def _superseded(self, run_id: int, total: int, completed: int, correlation: str) -> RunReport:
        self._emit(
            EventType.RUN_CANCELLED,
            f"run {run_id} cancelled",
            {"completed": completed, "pending": []},
            correlation,
        )
        return RunReport(run_id=run_id, outcome="cancelled", total=total, completed=completed)

    def _safe_snapshot(self) -> Optional[WorldSnapshot]:
        try:
            return self._actuator.current_state()
        except Exception:
            log.exception("Snapshot for trace failed")
            return None

    def _say(self, text: str) -> None:
        try:
            self._actuator.say(text)
        except Exception:
            log.exception("Failure announcement failed")

    def _emit(
        self,
        event_type: EventType,
        message: str,
        payload: Dict[str, Any],
        correlation: str,
    ) -> None:
        if self._bus is not None:
            log_event(self._bus, MODULE, event_type, message, payload, correlation)


__all__ = ["ActionExecutor", "RunReport", "RunState"]

# Path: src/agent/loop.py
"""
Fixed-cadence control loop.

One cycle:
    1. take a WorldSnapshot from the Actuator
    2. emit a status line in chat (best-effort)
    3. ask the Planner, passing executor.pending()
    4. translate decisions into Actions (bad ones are dropped)
    5. reset() the executor, submit() the new Run, run() it
    6. wait for the cadence, interruptibly

run_forever() is an explicit scheduler loop: the cadence is measured from
the end of one cycle to the start of the next, so cycles never overlap.
Planner failures count as "no decision" and the loop always reaches its
next cycle.

Manual control (request_stop / resume / cancel_current_run) never blocks,
so it is safe to call from the Actuator event thread.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from contracts import Actuator, Decision, Planner, WorldSnapshot
from env.schema import AgentConfig
from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event

from .actions import Action
from .errors import InvalidDecisionError
from .executor import ActionExecutor, RunReport, RunState
from .translate import translate

logger = logging.getLogger(__name__)

MODULE = "agent.loop"


# ---------------------------------------------------------------
# Cycle report
# ---------------------------------------------------------------

@dataclass
class CycleReport:
    cycle: int
    started_at: float
    finished_at: float = 0.0
    snapshot: Optional[WorldSnapshot] = None
    decisions: List[Decision] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)
    planner_error: Optional[str] = None
    run: Optional[RunReport] = None
    skipped: bool = False


class _PlannerStalled(Exception):
    pass


# ---------------------------------------------------------------
# ControlLoop
# ---------------------------------------------------------------

class ControlLoop:
    def __init__(
        self,
        actuator: Actuator,
        planner: Planner,
        executor: Optional[ActionExecutor] = None,
        config: Optional[AgentConfig] = None,
        *,
        bus: Optional[EventBus] = None,
    ) -> None:
        self._actuator = actuator
        self._planner = planner
        self._config = config or AgentConfig()
        self._bus = bus
        self._executor = executor or ActionExecutor(actuator, self._config, bus=bus)

        self._cycle_lock = threading.Lock()
        self._wake = threading.Event()
        self._shutdown = threading.Event()
        self._idle = threading.Event()
        self._idle.set()

        self._paused = False
        self._step_requested = False
        self._cycles = 0
        self._last_report: Optional[CycleReport] = None
        self._last_failure: Optional[Dict[str, Any]] = None

    # -----------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------

    @property
    def executor(self) -> ActionExecutor:
        return self._executor

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def last_report(self) -> Optional[CycleReport]:
        return self._last_report

    def pending(self) -> List[Dict[str, Any]]:
        return self._executor.pending()

    def current_run_state(self) -> RunState:
        return self._executor.current_run_state()

    def debug_state(self) -> Dict[str, Any]:
        """JSON-safe view for DUMP_STATE, the dashboard and the status command."""
        report = self._last_report
        traces = self._executor.tracer.get_records()[-5:]
        return {
            "cycles": self._cycles,
            "paused": self._paused,
            "in_cycle": not self._idle.is_set(),
            "run_state": self.current_run_state().value,
            "current_action": self._executor.current_action(),
            "pending": self.pending(),
            "last_failure": self._last_failure,
            "last_cycle": None if report is None else {
                "cycle": report.cycle,
                "decisions": [d.to_dict() for d in report.decisions],
                "rejected": report.rejected,
                "planner_error": report.planner_error,
                "run_outcome": None if report.run is None else report.run.outcome,
                "duration_s": round(report.finished_at - report.started_at, 3),
            },
            "recent_actions": [
                {"kind": t.kind, "success": t.success, "error": t.error}
                for t in traces
            ],
        }

    # -----------------------------------------------------------
    # Manual control (non-blocking)
    # -----------------------------------------------------------

    def request_stop(self) -> None:
        """Pause cycling and cancel the current Run without waiting."""
        if not self._paused:
            logger.info("ControlLoop stop requested")
        self._paused = True
        self._executor.request_cancel()
        self._wake.set()

    def resume(self) -> None:
        if self._paused:
            logger.info("ControlLoop resumed")
        self._paused = False
        self._wake.set()

    def request_single_step(self) -> None:
        """Run exactly one cycle while paused."""
        self._step_requested = True
        self._wake.set()

    def cancel_current_run(self) -> bool:
        return self._executor.request_cancel()

    # -----------------------------------------------------------
    # Blocking control (never from the Actuator event thread)
    # -----------------------------------------------------------

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        request_stop() and wait until the in-flight cycle has drained.
        Returns False if it did not drain in time.
        """
        self.request_stop()
        return self._idle.wait(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Stop and make run_forever() return."""
        self._shutdown.set()
        return self.stop(timeout)

    # -----------------------------------------------------------
    # Scheduler
    # -----------------------------------------------------------

    def run_forever(self, max_cycles: Optional[int] = None) -> int:
        """
        Cycle until shutdown() or `max_cycles` cycles have run.
        Returns the number of cycles run by this call.
        """
        ran = 0
        logger.info("ControlLoop started (cadence=%.1fs)", self._config.cadence_s)
        while not self._shutdown.is_set():
            if self._paused and not self._step_requested:
                self._wake.wait()
                self._wake.clear()
                continue
            stepping = self._paused
            self._step_requested = False

            try:
                self.run_cycle(force=stepping)
            except Exception:
                logger.exception("Cycle %d failed; continuing at the next cadence", self._cycles)
            ran += 1
            if max_cycles is not None and ran >= max_cycles:
                break

            # Cadence counts from the end of this cycle.
            if self._wake.wait(self._config.cadence_s):
                self._wake.clear()
        logger.info("ControlLoop exited after %d cycles", ran)
        return ran

    def run_cycle(self, *, force: bool = False) -> CycleReport:
        """Run one cycle now. `force` runs the plan even while paused."""
        with self._cycle_lock:
            self._idle.clear()
            try:
                return self._cycle(force)
            except BaseException:
                # Nothing drives the Run once the cycle unwinds.
                self._release_run()
                raise
            finally:
                self._idle.set()

    def _release_run(self) -> None:
        try:
            self._executor.reset()
        except Exception:
            logger.exception("Executor reset after a failed cycle raised")

    # -----------------------------------------------------------
    # One cycle
    # -----------------------------------------------------------

    def _cycle(self, force: bool) -> CycleReport:
        self._cycles += 1
        report = CycleReport(cycle=self._cycles, started_at=time.time())
        self._last_report = report

        try:
            snapshot = self._actuator.current_state()
        except Exception as exc:
            logger.exception("Cycle %d: snapshot failed; skipping", report.cycle)
            report.planner_error = f"snapshot failed: {exc!r}"
            report.skipped = True
            report.finished_at = time.time()
            return report
        report.snapshot = snapshot

        self._emit(
            EventType.CYCLE_STARTED,
            f"cycle {report.cycle}",
            {"cycle": report.cycle, "status": snapshot.status_line()},
        )
        if self._config.status_chat_enabled:
            self._say(snapshot.status_line())

        pending = self.pending()
        decisions = self._propose(snapshot, pending, report)
        report.decisions = decisions

        actions, rejected = translate(decisions, self._actuator, self._config)
        report.rejected = [self._rejection(d, e) for d, e in rejected]
        for entry in report.rejected:
            self._emit(EventType.DECISION_REJECTED, entry["reason"], entry)
        report.actions = [a.describe() for a in actions]
        if report.planner_error is None:
            self._emit(
                EventType.PLAN_CREATED,
                f"{len(actions)} actions",
                {"actions": report.actions, "pending_before": pending},
            )

        # A stop that arrived while planning wins over the new plan.
        self._executor.reset()
        if self._paused and not force:
            report.skipped = True
        elif actions:
            report.run = self._execute(actions, force)

        report.finished_at = time.time()
        return report

    def _execute(self, actions: Sequence[Action], force: bool) -> RunReport:
        self._executor.submit(actions)
        if self._paused and not force:
            # Stopped between reset() and submit(); run() drains immediately.
            self._executor.request_cancel()
        run = self._executor.run()
        if run.outcome == "aborted" and run.failed_action is not None:
            self._last_failure = {
                "action": run.failed_action,
                "reason": None if run.failure is None else run.failure.reason,
                "cycle": self._cycles,
            }
        return run

    def _propose(
        self,
        snapshot: WorldSnapshot,
        pending: List[Dict[str, Any]],
        report: CycleReport,
    ) -> List[Decision]:
        try:
            decisions = self._call_planner(snapshot, pending)
        except _PlannerStalled:
            report.planner_error = f"planner timed out after {self._config.planner_timeout_s:g}s"
        except Exception as exc:
            logger.exception("Planner failed")
            report.planner_error = repr(exc)
        else:
            if not isinstance(decisions, list) or not all(isinstance(d, Decision) for d in decisions):
                report.planner_error = f"planner returned {type(decisions).__name__}, expected list[Decision]"
            else:
                cap = self._config.max_actions_per_run
                if len(decisions) > cap:
                    logger.warning("Planner proposed %d decisions; keeping first %d", len(decisions), cap)
                return decisions[:cap]

        logger.warning("Cycle %d: no decision (%s)", report.cycle, report.planner_error)
        self._emit(EventType.PLANNER_FAILED, report.planner_error or "planner failed", {"error": report.planner_error})
        return []

    def _call_planner(self, snapshot: WorldSnapshot, pending: List[Dict[str, Any]]) -> Any:
        timeout = self._config.planner_timeout_s
        if timeout is None:
            return self._planner.propose(snapshot, pending)

        box: Dict[str, Any] = {}

        def call() -> None:
            try:
                box["result"] = self._planner.propose(snapshot, pending)
            except BaseException as exc:  # re-raised on the loop thread
                box["error"] = exc

        worker = threading.Thread(target=call, name="planner-call", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            raise _PlannerStalled()
        if "error" in box:
            raise box["error"]
        return box.get("result")

    # -----------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------

    @staticmethod
    def _rejection(decision: Decision, error: InvalidDecisionError) -> Dict[str, Any]:
        return {"decision": decision.to_dict(), "reason": str(error)}

    def _say(self, text: str) -> None:
        try:
            self._actuator.say(text)
        except Exception:
            logger.exception("Status chat failed")

    def _emit(self, event_type: EventType, message: str, payload: Dict[str, Any]) -> None:
        if self._bus is not None:
            log_event(self._bus, MODULE, event_type, message, payload, f"cycle-{self._cycles}")


__all__ = ["ControlLoop", "CycleReport"]

# tests/test_executor.py
"""
Tests for agent.executor.ActionExecutor.

Covers:
- Empty and fully successful Runs
- Abort on first failure: no retry, later actions never start,
  pending() shows the unexecuted tail while aborting and [] afterwards
- submit() while busy raises ExecutorBusyError
- reset() is idempotent and cancels the in-flight action
- request_cancel() from another thread
- reset() waits for a non-cancellable eat to finish
- Randomized reset / submit interleavings never run two actions at once
- The module source compiles without warnings
"""

from __future__ import annotations

import random
import threading
import time
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from agent.actions import Action, EatAction, MoveToAction, SayAction, WaitAction
from agent.errors import ExecutorBusyError
import agent.executor
from agent.executor import ActionExecutor, RunReport, RunState
from contracts import ActionError, ActionResult, GoalOutcome, ItemStack
from env.schema import AgentConfig
from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent
from tests.fakes.fake_actuator import FakeActuator, make_snapshot


def fast_config() -> AgentConfig:
    return AgentConfig(
        poll_interval_ms=5,
        cancel_ack_timeout_ms=500,
        action_timeout_ms_by_kind={"move_to": 2_000, "eat": 2_000},
    )


def make_executor(act: FakeActuator, bus: Optional[EventBus] = None) -> ActionExecutor:
    return ActionExecutor(act, fast_config(), bus=bus)


def collect(bus: EventBus) -> List[MonitoringEvent]:
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    return events


def run_async(executor: ActionExecutor) -> Dict[str, Any]:
    box: Dict[str, Any] = {}

    def _run() -> None:
        box["report"] = executor.run()

    box["thread"] = threading.Thread(target=_run, daemon=True)
    box["thread"].start()
    return box


# ---------------------------------------------------------------------------
# Basic Runs
# ---------------------------------------------------------------------------

def test_empty_run_reports_empty() -> None:
    executor = make_executor(FakeActuator())
    executor.submit([])

    report = executor.run()

    assert report.outcome == "empty"
    assert report.ok
    assert executor.current_run_state() is RunState.IDLE


def test_successful_run_executes_in_order() -> None:
    act = FakeActuator()
    act.auto["move"] = GoalOutcome.REACHED
    bus = EventBus()
    events = collect(bus)
    executor = make_executor(act, bus)

    executor.submit([
        MoveToAction(act, x=1, y=64, z=0),
        SayAction(act, text="hello"),
        MoveToAction(act, x=2, y=64, z=0),
    ])
    report = executor.run()

    assert report.outcome == "completed"
    assert report.completed == 3
    assert act.kinds() == ["move", "move"]
    assert act.said == ["hello"]
    assert executor.pending() == []
    assert executor.current_run_state() is RunState.IDLE

    types = [e.event_type for e in events]
    assert types.count(EventType.ACTION_STARTED) == 3
    assert types.count(EventType.ACTION_SUCCEEDED) == 3
    assert types[-1] is EventType.RUN_COMPLETED
    assert len(executor.tracer.get_records()) == 3


def test_first_failure_aborts_run_and_reports_tail() -> None:
    act = FakeActuator()
    act.auto["move"] = GoalOutcome.UNREACHABLE
    bus = EventBus()
    executor = make_executor(act, bus)

    a = MoveToAction(act, x=1, y=64, z=0)
    b = SayAction(act, text="b")
    c = SayAction(act, text="c")
    seen_while_aborting: List[Any] = []

    def on_event(evt: MonitoringEvent) -> None:
        if evt.event_type is EventType.RUN_ABORTED:
            seen_while_aborting.append((executor.current_run_state(), executor.pending(), evt.payload["pending"]))

    bus.subscribe(on_event)
    executor.submit([a, b, c])
    report = executor.run()

    assert report.outcome == "aborted"
    assert not report.ok
    assert report.failed_action == a.describe()
    assert report.failure is not None and report.failure.error.value == "unreachable"
    assert report.not_started == [b.describe(), c.describe()]

    state, pending, payload_pending = seen_while_aborting[0]
    assert state is RunState.ABORTING
    assert pending == [b.describe(), c.describe()]
    assert payload_pending == pending

    assert executor.pending() == []
    assert executor.current_run_state() is RunState.IDLE
    # No retry and nothing after the failure: only the failure announcement.
    assert act.kinds() == ["move"]
    assert act.said == ["Action move_to failed: unreachable: goal unreachable"]


def test_failure_announcement_can_be_disabled() -> None:
    act = FakeActuator()
    act.auto["move"] = GoalOutcome.UNREACHABLE
    executor = ActionExecutor(act, fast_config(), announce_failures=False)

    executor.submit([MoveToAction(act, x=1, y=64, z=0)])
    executor.run()

    assert act.said == []


# ---------------------------------------------------------------------------
# submit / reset
# ---------------------------------------------------------------------------

def test_submit_while_busy_raises() -> None:
    act = FakeActuator()
    executor = make_executor(act)
    executor.submit([SayAction(act, text="one")])

    with pytest.raises(ExecutorBusyError):
        executor.submit([SayAction(act, text="two")])

    executor.reset()
    executor.submit([SayAction(act, text="three")])
    assert executor.run().outcome == "completed"
    assert act.said == ["three"]


def test_reset_is_idempotent() -> None:
    executor = make_executor(FakeActuator())

    executor.reset()
    executor.reset()

    assert executor.current_run_state() is RunState.IDLE
    assert executor.pending() == []
    assert executor.current_action() is None


def test_reset_cancels_in_flight_action() -> None:
    act = FakeActuator()
    executor = make_executor(act)
    first = MoveToAction(act, x=1, y=64, z=0)
    second = MoveToAction(act, x=2, y=64, z=0)
    executor.submit([first, second])
    box = run_async(executor)
    assert act.issued.wait(1.0)
    assert executor.current_action() == first.describe()
    assert executor.pending() == [second.describe()]

    executor.reset()
    box["thread"].join(1.0)

    assert not box["thread"].is_alive()
    assert box["report"].outcome == "cancelled"
    assert act.cancel_calls >= 1
    assert act.kinds() == ["move"]
    assert executor.current_run_state() is RunState.IDLE


def test_request_cancel_stops_run_without_blocking() -> None:
    act = FakeActuator()
    bus = EventBus()
    events = collect(bus)
    executor = make_executor(act, bus)
    executor.submit([WaitAction(act, ms=5_000), SayAction(act, text="never")])
    box = run_async(executor)
    time.sleep(0.05)

    started = time.monotonic()
    assert executor.request_cancel() is True
    assert time.monotonic() - started < 0.1

    box["thread"].join(1.0)
    assert box["report"].outcome == "cancelled"
    assert act.said == []
    assert any(e.event_type is EventType.RUN_CANCELLED for e in events)
    assert executor.request_cancel() is False


def test_reset_waits_for_non_cancellable_eat() -> None:
    act = FakeActuator(make_snapshot(inventory=(ItemStack("bread", 1),)))
    executor = make_executor(act)
    executor.submit([EatAction(act), SayAction(act, text="after")])
    box = run_async(executor)
    assert act.issued.wait(1.0)

    resetter = threading.Thread(target=executor.reset, daemon=True)
    resetter.start()
    time.sleep(0.1)
    assert resetter.is_alive()
    assert act.consume is not None

    act.resolve_consume(GoalOutcome.REACHED)
    resetter.join(1.0)
    box["thread"].join(1.0)

    assert not resetter.is_alive()
    assert act.said == []
    assert executor.current_run_state() is RunState.IDLE


# ---------------------------------------------------------------------------
# One running action at a time
# ---------------------------------------------------------------------------

class _Probe(Action):
    """Counts how many probes are inside start() at once."""

    kind = "probe"
    lock = threading.Lock()
    running = 0
    peak = 0

    def __init__(self, actuator: FakeActuator, config: AgentConfig, duration_s: float) -> None:
        super().__init__(actuator, config)
        self.duration_s = duration_s

    def _args(self) -> Dict[str, Any]:
        return {"duration_s": self.duration_s}

    def _execute(self, deadline: float) -> ActionResult:
        with _Probe.lock:
            _Probe.running += 1
            _Probe.peak = max(_Probe.peak, _Probe.running)
        try:
            if self._cancel_requested.wait(self.duration_s):
                return ActionResult.failure(ActionError.CANCELLED)
            return ActionResult.ok()
        finally:
            with _Probe.lock:
                _Probe.running -= 1


def test_randomized_interleavings_never_overlap_actions() -> None:
    rng = random.Random(1234)
    act = FakeActuator()
    config = fast_config()
    executor = ActionExecutor(act, config, announce_failures=False)
    _Probe.running = 0
    _Probe.peak = 0
    plans = [
        [_Probe(act, config, rng.uniform(0.0, 0.01)) for _ in range(rng.randint(1, 4))]
        for _ in range(40)
    ]
    reports: List[RunReport] = []

    def loop_thread() -> None:
        # Same sequence the control loop uses each cycle.
        for plan in plans:
            executor.reset()
            executor.submit(plan)
            reports.append(executor.run())

    worker = threading.Thread(target=loop_thread, daemon=True)
    worker.start()
    while worker.is_alive():
        time.sleep(rng.uniform(0.0, 0.01))
        if rng.random() < 0.5:
            executor.request_cancel()
        else:
            executor.reset()
    worker.join(5.0)

    assert not worker.is_alive()
    assert len(reports) == len(plans)
    assert _Probe.peak <= 1
    assert {r.outcome for r in reports} <= {"completed", "cancelled", "empty"}
    executor.reset()
    assert executor.current_run_state() is RunState.IDLE


def test_run_report_ok_flags() -> None:
    assert RunReport(run_id=1, outcome="completed").ok
    assert not RunReport(run_id=1, outcome="cancelled").ok


def test_executor_source_compiles_without_warnings() -> None:
    path = Path(agent.executor.__file__)

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(path.read_text(encoding="utf-8"), str(path), "exec")

#tests/test_monitoring_controller.py
"""
Tests for monitoring.controller.LoopController.

Covers:
- PAUSE / RESUME / SINGLE_STEP forwarding
- CANCEL_PLAN result reporting
- DUMP_STATE wiring, including a failing debug_state()
- close() detaches from the bus
- Against a real ControlLoop: PAUSE cancels the Run and stops cycling
"""

from __future__ import annotations

from typing import Any, Dict, List

from agent.loop import ControlLoop
from env.schema import AgentConfig
from monitoring.bus import EventBus
from monitoring.controller import LoopController
from monitoring.events import (
    ControlCommand,
    ControlCommandType,
    EventType,
    MonitoringEvent,
)
from tests.fakes.fake_actuator import FakeActuator
from tests.fakes.fake_planner import FakePlanner


class FakeLoop:
    """
    Simple fake ControlLoop implementing the LoopControl protocol.
    """

    def __init__(self) -> None:
        self.calls: Dict[str, int] = {
            "request_stop": 0,
            "resume": 0,
            "request_single_step": 0,
            "cancel_current_run": 0,
            "debug_state": 0,
        }
        self.has_run = True
        self.broken_state = False

    def request_stop(self) -> None:
        self.calls["request_stop"] += 1

    def resume(self) -> None:
        self.calls["resume"] += 1

    def request_single_step(self) -> None:
        self.calls["request_single_step"] += 1

    def cancel_current_run(self) -> bool:
        self.calls["cancel_current_run"] += 1
        return self.has_run

    def debug_state(self) -> Dict[str, Any]:
        self.calls["debug_state"] += 1
        if self.broken_state:
            raise RuntimeError("state unavailable")
        return {"cycles": 3, "run_state": "idle", "pending": []}


def make_controller():
    bus = EventBus()
    loop = FakeLoop()
    controller = LoopController(loop, bus)
    received: List[MonitoringEvent] = []
    bus.subscribe(received.append)
    return bus, loop, controller, received


def test_controller_forwards_pause_resume_and_single_step():
    bus, loop, _, received = make_controller()

    bus.publish_command(ControlCommand.pause())
    bus.publish_command(ControlCommand.resume())
    bus.publish_command(ControlCommand(cmd=ControlCommandType.SINGLE_STEP, args={}))

    assert loop.calls["request_stop"] == 1
    assert loop.calls["resume"] == 1
    assert loop.calls["request_single_step"] == 1
    assert [e.payload["cmd"] for e in received] == ["PAUSE", "RESUME", "SINGLE_STEP"]
    assert all(e.event_type == EventType.CONTROL_COMMAND for e in received)


def test_controller_cancel_plan_reports_result():
    bus, loop, _, received = make_controller()

    bus.publish_command(ControlCommand.cancel_plan())
    loop.has_run = False
    bus.publish_command(ControlCommand.cancel_plan())

    assert loop.calls["cancel_current_run"] == 2
    assert [e.payload["cancelled"] for e in received] == [True, False]


def test_controller_dump_state():
    bus, loop, _, received = make_controller()

    bus.publish_command(ControlCommand.pause())
    bus.publish_command(ControlCommand.dump_state())

    snapshot_events = [e for e in received if e.event_type == EventType.SNAPSHOT]
    assert snapshot_events, "Expected at least one SNAPSHOT event"
    assert snapshot_events[-1].payload["state"]["cycles"] == 3
    assert snapshot_events[-1].payload["recent_events"] == [
        {"event_type": "CONTROL_COMMAND", "message": "Control command: PAUSE"},
    ]


def test_controller_dump_state_survives_failure():
    bus, loop, _, received = make_controller()
    loop.broken_state = True

    bus.publish_command(ControlCommand.dump_state())

    assert received[-1].payload["state"]["error"] == "debug_state_failed"


def test_controller_close_detaches():
    bus, loop, controller, _ = make_controller()

    controller.close()
    bus.publish_command(ControlCommand.pause())

    assert loop.calls["request_stop"] == 0


def test_controller_drives_real_loop():
    bus = EventBus()
    loop = ControlLoop(FakeActuator(), FakePlanner(), config=AgentConfig(status_chat_enabled=False), bus=bus)
    LoopController(loop, bus)
    received: List[MonitoringEvent] = []
    bus.subscribe(received.append)

    bus.publish_command(ControlCommand.pause())
    assert loop.paused

    bus.publish_command(ControlCommand.resume())
    assert not loop.paused

    bus.publish_command(ControlCommand.dump_state())
    state = received[-1].payload["state"]
    assert state["paused"] is False
    assert state["run_state"] == "idle"

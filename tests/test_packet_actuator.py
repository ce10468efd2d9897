# tests/test_packet_actuator.py
"""
Unit tests for PacketActuator over FakePacketClient.

Covers:
- connect / disconnect, including failure wrapping in BotCoreError
- directive packets and goal ids
- superseded goals resolve CLEARED
- cancel_current_goal() and its acknowledgement via goal_cleared
- Clears resolve when their goal ends; one clear_goal per goal
- path_update / target_lost / dig_done / consume_done completion
- stale goal ids are ignored
- send failures resolve the handle FAILED and raise BotCoreError
- disconnect fails outstanding goals
- bridge events reach subscribed listeners
"""

from __future__ import annotations

import pytest

from bot_core.actuator import BotCoreError, PacketActuator
from bot_core.testing.fakes import FakePacketClient
from contracts import ActuatorEventType, GoalOutcome, Point


class _ExplodingClient(FakePacketClient):
    def connect(self) -> None:
        raise ConnectionRefusedError("no bridge")


def make_actuator() -> tuple:
    client = FakePacketClient()
    actuator = PacketActuator(client)
    actuator.connect(username="survivor")
    return client, actuator


def test_connect_marks_client_connected() -> None:
    client, actuator = make_actuator()

    assert client.connected
    assert actuator.tracker.build_snapshot().context["username"] == "survivor"


def test_connect_failure_raises_botcore_error() -> None:
    actuator = PacketActuator(_ExplodingClient())

    with pytest.raises(BotCoreError) as exc_info:
        actuator.connect()

    assert exc_info.value.code == "connect_failed"


def test_move_goal_packet_and_reached() -> None:
    client, actuator = make_actuator()

    handle = actuator.issue_move_goal(Point(3, 64, -2), 1.5)
    pkt = client.last_packet("set_goal")

    assert pkt == {"x": 3, "y": 64, "z": -2, "range": 1.5, "goal_id": pkt["goal_id"]}
    assert not handle.done

    client.emit("goal_reached", {"goal_id": pkt["goal_id"]})
    assert handle.value is GoalOutcome.REACHED


def test_new_goal_supersedes_old_one() -> None:
    client, actuator = make_actuator()

    first = actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    second = actuator.issue_follow_and_attack(7)

    assert first.value is GoalOutcome.CLEARED
    assert not second.done
    assert client.last_packet("follow_and_attack")["entity_id"] == 7


def test_stale_goal_id_is_ignored() -> None:
    client, actuator = make_actuator()
    actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    current = actuator.issue_move_goal(Point(5, 64, 0), 1.0)
    stale_id = client.packets_of("set_goal")[0]["goal_id"]

    client.emit("goal_reached", {"goal_id": stale_id})

    assert not current.done


def test_cancel_without_goal_is_already_acknowledged() -> None:
    client, actuator = make_actuator()

    token = actuator.cancel_current_goal()

    assert token.done
    assert client.packets_of("clear_goal") == []


def test_cancel_is_acknowledged_by_goal_cleared() -> None:
    client, actuator = make_actuator()
    handle = actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    goal_id = client.last_packet("set_goal")["goal_id"]

    token = actuator.cancel_current_goal()

    assert client.last_packet("clear_goal") == {"goal_id": goal_id}
    assert not token.done

    client.emit("goal_cleared", {"goal_id": goal_id})
    assert token.value is True
    assert handle.value is GoalOutcome.CLEARED


def test_goal_ending_before_clear_ack_resolves_the_token() -> None:
    client, actuator = make_actuator()
    handle = actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    goal_id = client.last_packet("set_goal")["goal_id"]
    token = actuator.cancel_current_goal()

    client.emit("goal_reached", {"goal_id": goal_id})

    assert handle.value is GoalOutcome.REACHED
    assert token.value is True


def test_repeated_cancel_sends_one_clear_per_goal() -> None:
    client, actuator = make_actuator()
    actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    goal_id = client.last_packet("set_goal")["goal_id"]

    tokens = [actuator.cancel_current_goal() for _ in range(3)]

    assert client.packets_of("clear_goal") == [{"goal_id": goal_id}]
    assert not any(t.done for t in tokens)

    client.emit("goal_cleared", {"goal_id": goal_id})
    assert all(t.value is True for t in tokens)


def test_superseding_goal_resolves_pending_clear() -> None:
    client, actuator = make_actuator()
    actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    token = actuator.cancel_current_goal()

    second = actuator.issue_move_goal(Point(5, 64, 0), 1.0)

    assert token.value is True
    assert not second.done
    actuator.cancel_current_goal()
    assert client.last_packet("clear_goal") == {"goal_id": client.last_packet("set_goal")["goal_id"]}


def test_path_failure_resolves_unreachable() -> None:
    client, actuator = make_actuator()
    events = []
    actuator.subscribe(events.append)
    handle = actuator.issue_move_goal(Point(100, 64, 0), 1.0)

    client.emit("path_update", {"status": "partial"})
    assert not handle.done

    client.emit("path_update", {"status": "noPath"})
    assert handle.value is GoalOutcome.UNREACHABLE
    assert events[-1].type is ActuatorEventType.GOAL_FAILED
    assert events[-1].payload["status"] == "noPath"


def test_target_lost_ends_follow() -> None:
    client, actuator = make_actuator()
    handle = actuator.issue_follow_and_attack(7)

    client.emit("target_lost", {})

    assert handle.value is GoalOutcome.TARGET_LOST


def test_dig_done_success_and_failure() -> None:
    client, actuator = make_actuator()

    ok = actuator.issue_dig(Point(1.7, 63.2, -0.5))
    assert client.last_packet("dig_block")["x"] == 1
    assert client.last_packet("dig_block")["z"] == -1
    client.emit("dig_done", {"success": True})
    assert ok.value is GoalOutcome.REACHED

    bad = actuator.issue_dig(Point(0, 63, 0))
    client.emit("dig_done", {"success": False, "reason": "bedrock"})
    assert bad.value is GoalOutcome.FAILED


def test_consume_has_its_own_slot() -> None:
    client, actuator = make_actuator()
    move = actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    eat = actuator.issue_consume("bread")
    request_id = client.last_packet("consume")["request_id"]

    assert not move.done
    actuator.cancel_current_goal()
    client.emit("goal_cleared", {})
    assert move.value is GoalOutcome.CLEARED
    assert not eat.done

    client.emit("consume_done", {"request_id": request_id + 100})
    assert not eat.done
    client.emit("consume_done", {"request_id": request_id, "success": True})
    assert eat.value is GoalOutcome.REACHED


def test_send_failure_resolves_failed_and_raises() -> None:
    client, actuator = make_actuator()
    client.fail_sends_with = OSError("pipe closed")

    with pytest.raises(BotCoreError) as exc_info:
        actuator.issue_move_goal(Point(0, 64, 0), 1.0)

    assert exc_info.value.code == "send_failed"
    assert exc_info.value.details["packet"] == "set_goal"
    # The failed goal is not left as current.
    client.fail_sends_with = None
    assert actuator.cancel_current_goal().done


def test_disconnect_fails_outstanding_goals() -> None:
    client, actuator = make_actuator()
    move = actuator.issue_move_goal(Point(0, 64, 0), 1.0)
    eat = actuator.issue_consume("apple")
    token = actuator.cancel_current_goal()

    actuator.disconnect()

    assert move.value is GoalOutcome.FAILED
    assert eat.value is GoalOutcome.FAILED
    assert token.value is True
    assert not client.connected


def test_bridge_events_reach_listeners() -> None:
    client, actuator = make_actuator()
    events = []
    actuator.subscribe(events.append)

    client.emit("physics_tick", {"in_lava": True})
    client.emit("hazard", {"kind": "fire"})
    client.emit("chat", {"username": "alex", "message": "stop"})
    client.emit("chat", {"username": "alex"})

    assert [e.type for e in events] == [
        ActuatorEventType.PHYSICS_TICK,
        ActuatorEventType.HAZARD_ACTIVE,
        ActuatorEventType.CHAT,
    ]
    assert events[0].payload == {"in_water": False, "in_lava": True}
    assert events[1].payload == {"kind": "fire", "active": True}
    assert events[2].payload["message"] == "stop"
    assert actuator.current_state().in_lava


def test_failing_listener_does_not_block_others() -> None:
    client, actuator = make_actuator()
    seen = []

    def broken(_event) -> None:
        raise RuntimeError("listener bug")

    actuator.subscribe(broken)
    actuator.subscribe(seen.append)
    client.emit("hazard", {"kind": "fire", "active": False})

    assert len(seen) == 1

    actuator.unsubscribe(seen.append)
    client.emit("hazard", {"kind": "fire"})
    assert len(seen) == 1


def test_say_sends_chat_packet() -> None:
    client, actuator = make_actuator()

    actuator.say("hello")

    assert client.packets_of("chat") == [{"message": "hello"}]

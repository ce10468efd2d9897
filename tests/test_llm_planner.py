# tests for llm_stack.planner with a fake backend
# tests/test_llm_planner.py

from __future__ import annotations

import json
from typing import List, Optional

import pytest

from contracts import Decision, PlannerError
from llm_stack.backend import LLMBackend
from llm_stack.planner import LLMPlanner
from llm_stack.presets import planner_preset
from llm_stack.schema import render_catalogue
from tests.fakes.fake_actuator import make_snapshot, zombie


class FakeBackend(LLMBackend):
    def __init__(self, reply: str = "", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: List[str] = []
        self.system_prompts: List[Optional[str]] = []

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        self.prompts.append(prompt)
        self.system_prompts.append(system_prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def make_planner(reply: str = "", **kwargs) -> tuple:
    backend = FakeBackend(reply)
    kwargs.setdefault("persist_calls", False)
    return backend, LLMPlanner(backend, **kwargs)


def test_plan_with_fake_backend() -> None:
    reply = json.dumps({
        "actions": [
            {"action": "move_to", "args": {"x": 1, "y": 64, "z": 2}},
            {"action": "eat", "args": {}},
        ],
        "notes": "head home",
    })
    backend, planner = make_planner(reply)

    decisions = planner.propose(make_snapshot(entities=(zombie(),)), [])

    assert decisions == [
        Decision("move_to", {"x": 1, "y": 64, "z": 2}),
        Decision("eat", {}),
    ]
    assert planner.calls == 1
    assert "entitiesAroundMe" in backend.prompts[0]
    assert "move_to" in (backend.system_prompts[0] or "")


def test_prompt_includes_status_and_pending() -> None:
    _, planner = make_planner()
    pending = [{"action": "eat", "args": {}}]

    prompt = planner.build_prompt(make_snapshot(health=12), pending)

    assert prompt.startswith("STATUS: Status summary: 12 HP, 20 food")
    assert '"action": "eat"' in prompt


def test_reply_wrapped_in_prose_and_fences() -> None:
    reply = 'Sure!\n```json\n{"actions": [{"name": "wait", "args": {"ms": 500}}]}\n```'
    _, planner = make_planner(reply)

    assert planner.propose(make_snapshot(), []) == [Decision("wait", {"ms": 500})]


def test_single_action_object_is_accepted() -> None:
    _, planner = make_planner('{"action": "say", "args": {"text": "hi"}}')

    assert planner.propose(make_snapshot(), []) == [Decision("say", {"text": "hi"})]


def test_malformed_entries_are_dropped_and_batch_capped() -> None:
    entries = [{"action": "wait", "args": {"ms": i}} for i in range(5)]
    entries.insert(1, {"args": {}})
    entries.insert(2, "eat")
    _, planner = make_planner(json.dumps({"actions": entries}), max_actions=3)

    decisions = planner.propose(make_snapshot(), [])

    assert [d.args["ms"] for d in decisions] == [0, 1, 2]


@pytest.mark.parametrize(
    "reply",
    [
        "",
        "I would rather not.",
        '{"actions": "move"}',
        '{"plan": []}',
        "[1, 2, 3]",
    ],
)
def test_unusable_replies_raise_planner_error(reply: str) -> None:
    _, planner = make_planner(reply)

    with pytest.raises(PlannerError):
        planner.propose(make_snapshot(), [])


def test_backend_failure_becomes_planner_error() -> None:
    backend = FakeBackend(error=RuntimeError("CUDA out of memory"))
    planner = LLMPlanner(backend, persist_calls=False)

    with pytest.raises(PlannerError, match="backend error"):
        planner.propose(make_snapshot(), [])


def test_calls_are_persisted(tmp_path) -> None:
    _, planner = make_planner('{"actions": []}', log_dir=tmp_path, persist_calls=True)

    assert planner.propose(make_snapshot(tick=77), []) == []

    files = list(tmp_path.glob("*_planner_propose.json"))
    assert len(files) == 1
    record = json.loads(files[0].read_text(encoding="utf-8"))
    assert record["raw_response"] == '{"actions": []}'
    assert record["extra"]["tick"] == 77


def test_preset_and_catalogue() -> None:
    preset = planner_preset(temperature=0.1, max_tokens=256)

    assert preset.temperature == 0.1
    assert preset.max_tokens == 256
    for name in ("move_to", "eat", "follow_and_attack", "dig_block", "flee_from", "wait", "say"):
        assert name in render_catalogue()

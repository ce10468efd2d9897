# LLM-backed Planner for the control loop
#"src/llm_stack/planner.py"

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from contracts import Decision, PlannerError, WorldSnapshot

from .backend import LLMBackend
from .json_utils import load_json_object
from .log_files import log_llm_call
from .presets import RolePreset, planner_preset
from .schema import PlannerResponse

logger = logging.getLogger(__name__)


class LLMPlanner:
    """
    Planner over a local LLMBackend.

    Responsibilities
    ----------------
    - Render the snapshot and pending work into a user prompt.
    - Call the backend with the survival system prompt + action catalogue.
    - Parse the first JSON object of the reply into Decisions, in order,
      capped at `max_actions`.

    Backend failures and replies with no usable JSON raise PlannerError;
    the control loop treats that as "no decision" for the cycle.
    Argument validation is left to agent.translate.
    """

    def __init__(
        self,
        backend: LLMBackend,
        *,
        preset: Optional[RolePreset] = None,
        max_actions: int = 8,
        log_dir: Optional[Path] = None,
        persist_calls: bool = True,
    ) -> None:
        self._backend = backend
        self._preset = preset or planner_preset()
        self._max_actions = max_actions
        self._log_dir = log_dir
        self._persist_calls = persist_calls
        self._calls = 0

    @property
    def calls(self) -> int:
        return self._calls

    # ------------------------------------------------------------------
    # Planner protocol
    # ------------------------------------------------------------------

    def propose(
        self,
        snapshot: WorldSnapshot,
        pending: Sequence[Dict[str, Any]],
    ) -> List[Decision]:
        prompt = self.build_prompt(snapshot, pending)
        self._calls += 1
        try:
            raw = self._backend.generate(
                prompt,
                max_tokens=self._preset.max_tokens,
                temperature=self._preset.temperature,
                stop=self._preset.stop,
                system_prompt=self._preset.system_prompt,
            )
        except Exception as exc:
            logger.exception("Planner backend call failed")
            raise PlannerError(f"backend error: {exc!r}") from exc

        logger.debug("Planner raw output: %s", raw)
        self._persist(prompt, raw, snapshot)

        resp = self.parse_response(raw)
        if resp.notes:
            logger.info("Planner notes: %s", resp.notes)

        decisions: List[Decision] = []
        for entry in resp.actions:
            try:
                decisions.append(Decision.from_dict(entry))
            except (ValueError, AttributeError) as exc:
                logger.warning("Dropping malformed planner entry %r: %s", entry, exc)
        if len(decisions) > self._max_actions:
            logger.info("Planner proposed %d actions; keeping %d", len(decisions), self._max_actions)
            decisions = decisions[: self._max_actions]
        return decisions

    # ------------------------------------------------------------------
    # Prompt / response
    # ------------------------------------------------------------------

    def build_prompt(
        self,
        snapshot: WorldSnapshot,
        pending: Sequence[Dict[str, Any]],
    ) -> str:
        state_json = json.dumps(snapshot.to_dict(), indent=2, default=str)
        pending_json = json.dumps(list(pending), indent=2, default=str)
        return (
            f"STATUS: {snapshot.status_line()}\n\n"
            f"STATE:\n{state_json}\n\n"
            f"NOT YET STARTED (will be replaced by your answer):\n{pending_json}\n\n"
            "Return the JSON object now."
        )

    @staticmethod
    def parse_response(raw: str) -> PlannerResponse:
        """
        Lenient parse of a model reply.

        Accepts {"actions": [...]}, a single {"action": ..., "args": ...}
        object, and replies wrapped in prose or code fences.
        """
        if not raw or not raw.strip():
            raise PlannerError("empty planner reply")

        data, err = load_json_object(raw, context="LLMPlanner.propose")
        if data is None:
            logger.error("Planner JSON decode error: %s", err)
            raise PlannerError(err or "unparseable planner reply")

        if "actions" in data:
            actions = data.get("actions") or []
            if not isinstance(actions, list):
                raise PlannerError(f"'actions' must be a list, got {type(actions).__name__}")
        elif "action" in data or "name" in data:
            actions = [data]
        else:
            raise PlannerError(f"planner reply has no 'actions': {sorted(data)!r}")

        return PlannerResponse(
            actions=[a for a in actions if isinstance(a, dict)],
            notes=str(data.get("notes", "") or ""),
            raw_text=raw,
        )

    def _persist(self, prompt: str, raw: str, snapshot: WorldSnapshot) -> None:
        if not self._persist_calls:
            return
        try:
            log_llm_call(
                role="planner",
                operation="propose",
                prompt=prompt,
                raw_response=raw,
                extra={"tick": snapshot.tick, "call": self._calls},
                log_dir=self._log_dir,
            )
        except OSError:
            logger.exception("Could not persist planner call")

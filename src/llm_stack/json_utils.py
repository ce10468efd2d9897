# src/llm_stack/json_utils.py

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def extract_json_object(raw: str) -> str:
    """
    Try to salvage a JSON object from a noisy LLM reply.

    Strategy:
    - Strip whitespace and markdown code fences
    - Find first '{' and last '}' and take that slice
    - If that fails, just return the trimmed text
    """
    if not raw:
        return raw

    trimmed = raw.strip()
    if trimmed.startswith("```"):
        trimmed = trimmed.strip("`")
        if trimmed.lower().startswith("json"):
            trimmed = trimmed[4:]
        trimmed = trimmed.strip()

    first = trimmed.find("{")
    last = trimmed.rfind("}")
    if first == -1 or last == -1 or last <= first:
        return trimmed

    candidate = trimmed[first : last + 1]
    logger.debug("extracted JSON candidate: %s", candidate)
    return candidate


def load_json_or_none(
    raw: str,
    *,
    context: str = "unknown",
) -> Tuple[Optional[Any], Optional[str]]:
    """
    Best-effort JSON loader.

    Returns (data, error_message). If parsing fails, data is None and
    error_message describes the failure.
    """
    try:
        data = json.loads(raw)
        return data, None
    except json.JSONDecodeError as e:
        msg = f"{context}: JSONDecodeError at pos {e.pos}: {e.msg}"
        logger.debug("load_json_or_none failed: %s; raw=%r", msg, raw)
        return None, msg


def load_json_object(raw: str, *, context: str = "unknown") -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """extract_json_object + load_json_or_none, rejecting non-object results."""
    data, err = load_json_or_none(extract_json_object(raw), context=context)
    if err is not None:
        return None, err
    if not isinstance(data, dict):
        return None, f"{context}: expected a JSON object, got {type(data).__name__}"
    return data, None

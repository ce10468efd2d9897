# src/llm_stack/log_files.py

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = PROJECT_ROOT / "logs" / "llm"


def log_llm_call(
    *,
    role: str,
    operation: str,
    prompt: str,
    raw_response: str,
    extra: Optional[Dict[str, Any]] = None,
    log_dir: Optional[Path] = None,
) -> Path:
    """Persist a single LLM interaction to logs/llm/ (or `log_dir`) as JSON.

    Returns the path of the written file.
    """
    target = Path(log_dir) if log_dir is not None else LOG_DIR
    target.mkdir(parents=True, exist_ok=True)

    ts = time.strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    # several calls per second are possible at short cadences
    millis = int((time.time() % 1) * 1000)
    path = target / f"{ts}{millis:03d}_{pid}_{role}_{operation}.json"

    payload = {
        "timestamp": ts,
        "pid": pid,
        "role": role,
        "operation": operation,
        "prompt": prompt,
        "raw_response": raw_response,
        "extra": extra or {},
    }

    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2, default=str)

    return path

# src/agent/logging_config.py
"""
Central logging configuration for the agent runtime.

Call configure_logging() from your main entrypoint once, for example:

    from agent.logging_config import configure_logging
    configure_logging("DEBUG")

After that, executor / loop / actuator logs are visible on stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import Union


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure root logging if no handlers are attached yet.

    Args:
        level: logging level as int or name ("INFO", "debug", ...)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()

    # Don't duplicate handlers if someone already configured logging.
    if root.handlers:
        root.setLevel(level)
        return

    handler = logging.StreamHandler(stream=sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)

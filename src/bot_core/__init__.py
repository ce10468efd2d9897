# bot_core package
# src/bot_core/__init__.py
"""
bot_core package: the game-client body the agent drives.

Exports:
    - PacketActuator: Actuator implementation over the bridge PacketClient
    - BotCoreError: domain-level error type for non-action failures
    - WorldTracker: incremental raw world state
    - ActionTracer: per-action trace records
"""

from __future__ import annotations

from .actuator import BotCoreError, PacketActuator
from .tracing import ActionTraceRecord, ActionTracer
from .world_tracker import WorldTracker

__all__ = [
    "PacketActuator",
    "BotCoreError",
    "WorldTracker",
    "ActionTracer",
    "ActionTraceRecord",
]

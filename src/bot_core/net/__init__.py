# bot_core.net package
# src/bot_core/net/__init__.py
"""
Network layer for bot_core.

This package provides:
- PacketClient protocol (common interface)
- IpcClient: JSON-lines TCP client for the game-client bridge
- Factory helper wired to the resolved connection config.
"""

from __future__ import annotations

from .client import (
    PacketClient,
    PacketHandler,
    create_packet_client,
)

__all__ = [
    "PacketClient",
    "PacketHandler",
    "create_packet_client",
]

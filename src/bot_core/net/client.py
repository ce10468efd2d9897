# packet client abstraction for the game-client bridge
# src/bot_core/net/client.py
"""
Client abstraction for bot_core.

Defines the PacketClient protocol used by bot_core, plus a factory for
constructing the concrete client from the resolved connection settings.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol

from env.schema import ConnectionConfig

# Type alias for packet handlers.
PacketHandler = Callable[[Mapping[str, Any]], None]


class PacketClient(Protocol):
    """
    Abstract interface for a message-level game-client bridge.

    Implementations:
    - IpcClient (JSON lines over TCP to the bridge process)
    - FakePacketClient (tests)
    """

    def connect(self) -> None:
        """Establish connection and complete handshake."""
        ...

    def disconnect(self) -> None:
        """Cleanly disconnect from the bridge endpoint."""
        ...

    def tick(self) -> None:
        """
        Pump incoming messages, calling registered handlers. Should be
        called regularly from the actuator's pump thread.
        """
        ...

    def send_packet(self, packet_type: str, data: Mapping[str, Any]) -> None:
        """
        Send a high-level packet representation.

        This function is the only way bot_core emits data.
        """
        ...

    def on_packet(self, packet_type: str, handler: PacketHandler) -> None:
        """
        Register a handler for messages of a given type.

        Several handlers may be registered for the same type; they are
        called in registration order with the decoded payload mapping.
        """
        ...


def create_packet_client(connection: ConnectionConfig) -> PacketClient:
    """Construct the IPC client for the given connection settings."""
    # imported here so PacketClient users never load the socket layer
    from .ipc import IpcClient

    return IpcClient(connection)

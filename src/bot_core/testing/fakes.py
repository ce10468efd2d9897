# src/bot_core/testing/fakes.py
"""
Test helpers for bot_core.

Provides:
- FakePacketClient: in-memory PacketClient implementation for unit tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..net import PacketClient, PacketHandler


@dataclass
class SentPacket:
    """Record of a packet sent through FakePacketClient."""

    packet_type: str
    data: Dict[str, Any]


class FakePacketClient(PacketClient):
    """
    In-memory PacketClient used for unit and integration tests.

    Features:
    - Records all packets sent via send_packet().
    - Allows manual emission of incoming packets to registered handlers.
    - Optional send failure injection.
    - No real network or IPC.
    """

    def __init__(self) -> None:
        self.connected: bool = False
        self.sent_packets: List[SentPacket] = []
        self.fail_sends_with: Optional[Exception] = None
        self.tick_count: int = 0
        self._handlers: Dict[str, List[PacketHandler]] = {}

    # ------------------------------------------------------------------
    # PacketClient protocol
    # ------------------------------------------------------------------

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def tick(self) -> None:
        """Counts pumps; incoming messages are injected with emit()."""
        self.tick_count += 1

    def send_packet(self, packet_type: str, data: Mapping[str, Any]) -> None:
        if self.fail_sends_with is not None:
            raise self.fail_sends_with
        self.sent_packets.append(
            SentPacket(packet_type=packet_type, data=dict(data))
        )

    def on_packet(self, packet_type: str, handler: PacketHandler) -> None:
        self._handlers.setdefault(packet_type, []).append(handler)

    # ------------------------------------------------------------------
    # Test-only helpers
    # ------------------------------------------------------------------

    def emit(self, packet_type: str, payload: Mapping[str, Any]) -> None:
        """
        Manually trigger a packet event for tests.

        This calls every registered handler for the type with the payload.
        """
        for handler in list(self._handlers.get(packet_type, [])):
            handler(payload)

    def packets_of(self, packet_type: str) -> List[Dict[str, Any]]:
        """Payloads of all sent packets of one type, in send order."""
        return [p.data for p in self.sent_packets if p.packet_type == packet_type]

    def last_packet(self, packet_type: str) -> Optional[Dict[str, Any]]:
        sent = self.packets_of(packet_type)
        return sent[-1] if sent else None

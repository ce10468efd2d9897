# JSON-lines TCP client for the game-client bridge
# src/bot_core/net/ipc.py
"""
IPC client for the game-client bridge.

The bridge is a separate process that hosts the real game client and its
pathfinder. It listens on TCP and speaks one JSON object per line in both
directions:

    {"type": "<packet_type>", "payload": {...}}

Outgoing packets are directives (set_goal, clear_goal, chat, ...); incoming
ones are world updates and goal completions. Decoding is split out into
decode_lines() so framing can be tested without a socket.
"""

from __future__ import annotations

import json
import logging
import select
import socket
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from env.schema import ConnectionConfig

from .client import PacketClient, PacketHandler

log = logging.getLogger(__name__)

Message = Tuple[str, Dict[str, Any]]

CONNECT_TIMEOUT_S = 5.0
RECV_CHUNK = 65536


def encode_message(packet_type: str, data: Mapping[str, Any]) -> bytes:
    msg = {"type": packet_type, "payload": dict(data)}
    return json.dumps(msg, separators=(",", ":")).encode("utf-8") + b"\n"


def decode_lines(buffer: bytes) -> Tuple[List[Message], bytes]:
    """
    Split `buffer` into complete messages and the unfinished tail.

    Lines that are not a JSON object with a string "type" and an object
    "payload" are logged and skipped.
    """
    messages: List[Message] = []
    *lines, rest = buffer.split(b"\n")
    for raw in lines:
        raw = raw.strip()
        if not raw:
            continue
        try:
            obj = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            log.warning("Bridge sent undecodable line: %r", raw[:200])
            continue
        if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
            log.warning("Bridge message without a type: %r", obj)
            continue
        payload = obj.get("payload", {})
        if not isinstance(payload, dict):
            log.warning("Bridge message %s has a non-object payload", obj["type"])
            continue
        messages.append((obj["type"], payload))
    return messages, rest


class IpcClient(PacketClient):
    """PacketClient over a non-blocking TCP socket to the bridge."""

    def __init__(
        self,
        connection: ConnectionConfig,
        *,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
    ) -> None:
        self._config = connection
        self._connect_timeout_s = connect_timeout_s
        self._sock: Optional[socket.socket] = None
        self._handlers: Dict[str, List[PacketHandler]] = {}
        self._send_lock = threading.Lock()
        self._pending = b""

    @property
    def connected(self) -> bool:
        return self._sock is not None

    # ------------------------------------------------------------------
    # PacketClient protocol
    # ------------------------------------------------------------------

    def connect(self) -> None:
        if self._sock is not None:
            return
        address = (self._config.host, self._config.port)
        log.info("Connecting to bridge at %s:%d", *address)
        sock = socket.create_connection(address, timeout=self._connect_timeout_s)
        sock.setblocking(False)
        self._sock = sock
        self._pending = b""

    def disconnect(self) -> None:
        with self._send_lock:
            sock, self._sock = self._sock, None
        if sock is None:
            return
        log.info("Disconnecting from bridge")
        sock.close()

    def tick(self) -> None:
        """Read what is available and dispatch every complete message."""
        sock = self._sock
        if sock is None:
            return
        try:
            chunk = sock.recv(RECV_CHUNK)
        except BlockingIOError:
            return
        except OSError as exc:
            self.disconnect()
            raise ConnectionError(f"bridge socket error: {exc}") from exc

        if not chunk:
            self.disconnect()
            raise ConnectionError("bridge closed the connection")

        messages, self._pending = decode_lines(self._pending + chunk)
        for packet_type, payload in messages:
            self._dispatch(packet_type, payload)

    def send_packet(self, packet_type: str, data: Mapping[str, Any]) -> None:
        encoded = encode_message(packet_type, data)
        with self._send_lock:
            if self._sock is None:
                raise ConnectionError("not connected to the bridge")
            self._send_all(self._sock, encoded)

    def on_packet(self, packet_type: str, handler: PacketHandler) -> None:
        self._handlers.setdefault(packet_type, []).append(handler)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _send_all(self, sock: socket.socket, data: bytes) -> None:
        # The socket stays non-blocking for the pump thread; wait until it
        # is writable before each partial send.
        view = memoryview(data)
        while view:
            _, writable, _ = select.select([], [sock], [], self._connect_timeout_s)
            if not writable:
                raise ConnectionError("bridge send timed out")
            try:
                sent = sock.send(view)
            except BlockingIOError:
                continue
            view = view[sent:]

    def _dispatch(self, packet_type: str, payload: Dict[str, Any]) -> None:
        handlers = self._handlers.get(packet_type)
        if not handlers:
            log.debug("No handler for bridge packet %s", packet_type)
            return
        for handler in list(handlers):
            try:
                handler(payload)
            except Exception:
                log.exception("Handler for bridge packet %s failed", packet_type)


__all__ = ["IpcClient", "decode_lines", "encode_message"]

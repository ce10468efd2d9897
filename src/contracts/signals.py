# src/contracts/signals.py
"""
One-shot completion signals shared between the Actuator adapter and Actions.

A Signal is resolved at most once; later resolve() calls are ignored and
report False. This is what makes "exactly one completion per directive" and
"exactly one cancellation acknowledgement" hold without registering and
removing listeners on an event bus.

- GoalHandle: returned by every Actuator directive, resolved with a
  GoalOutcome when the game client reports completion.
- CancelToken: returned by Actuator.cancel_current_goal() and
  Action.cancel(), resolved with True once the clear is acknowledged.
"""

from __future__ import annotations

import threading
from typing import Generic, Optional, TypeVar

from .types import GoalOutcome

T = TypeVar("T")


class Signal(Generic[T]):
    """Thread-safe write-once value with a blocking wait."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._value: Optional[T] = None

    @classmethod
    def resolved(cls, value: T) -> "Signal[T]":
        sig: Signal[T] = cls()
        sig.resolve(value)
        return sig

    def resolve(self, value: T) -> bool:
        """Set the value if unset. Returns True if this call won."""
        with self._lock:
            if self._event.is_set():
                return False
            self._value = value
            self._event.set()
            return True

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def value(self) -> Optional[T]:
        return self._value

    def wait(self, timeout: Optional[float] = None) -> Optional[T]:
        """Block until resolved or timeout; returns the value or None."""
        if self._event.wait(timeout):
            return self._value
        return None

    def __repr__(self) -> str:
        state = f"value={self._value!r}" if self.done else "pending"
        return f"{type(self).__name__}({state})"


class GoalHandle(Signal[GoalOutcome]):
    """Completion signal for one Actuator directive."""


class CancelToken(Signal[bool]):
    """Acknowledgement that a cancellation request has taken effect."""

    @classmethod
    def acknowledged(cls) -> "CancelToken":
        tok = cls()
        tok.resolve(True)
        return tok


__all__ = ["Signal", "GoalHandle", "CancelToken"]

"""Minimal publish/subscribe primitive.

Components expose one `Signal` per event kind instead of inheriting from an
emitter. `connect()` hands back the function that removes the handler again.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from biomelsp.logging import get_logger

T = TypeVar("T")

log = get_logger("events")


class Signal(Generic[T]):
    """A list of handlers called synchronously with one value.

    Handler exceptions are logged and never reach the emitter, so one broken
    listener cannot stop the others from being notified.
    """

    def __init__(self, name: str = "signal") -> None:
        self.name = name
        self._handlers: list[Callable[[T], Any]] = []

    def connect(self, handler: Callable[[T], Any]) -> Callable[[], None]:
        """Register a handler and return its unsubscribe function."""
        self._handlers.append(handler)

        def disconnect() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return disconnect

    def emit(self, value: T) -> None:
        for handler in list(self._handlers):
            try:
                handler(value)
            except Exception:
                log.exception("Handler for %s failed", self.name)

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

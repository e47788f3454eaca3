"""Per-key debouncing on the running event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

K = TypeVar("K", bound=Hashable)


class Debouncer(Generic[K]):
    """Runs `action(key)` once a key has been quiet for `delay` seconds.

    Every `trigger(key)` pushes that key's deadline back. The action's
    coroutine is handed to `spawn`, which defaults to `asyncio.ensure_future`.
    """

    def __init__(
        self,
        delay: float,
        action: Callable[[K], Awaitable[Any]],
        spawn: Callable[[Awaitable[Any]], Any] | None = None,
    ) -> None:
        self.delay = delay
        self._action = action
        self._spawn = spawn or asyncio.ensure_future
        self._timers: dict[K, asyncio.TimerHandle] = {}

    def trigger(self, key: K) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.delay, self._fire, key)

    def _fire(self, key: K) -> None:
        self._timers.pop(key, None)
        self._spawn(self._action(key))

    def cancel(self, key: K) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def pending(self, key: K | None = None) -> bool:
        if key is None:
            return bool(self._timers)
        return key in self._timers

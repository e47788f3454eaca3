"""Tests for Signal and Debouncer."""

from __future__ import annotations

import asyncio

import pytest

from biomelsp.debounce import Debouncer
from biomelsp.events import Signal


class TestSignal:
    def test_emit_and_disconnect(self) -> None:
        signal: Signal[int] = Signal("numbers")
        seen: list[int] = []
        disconnect = signal.connect(seen.append)

        signal.emit(1)
        disconnect()
        disconnect()
        signal.emit(2)

        assert seen == [1]
        assert len(signal) == 0

    def test_failing_handler_does_not_stop_others(self) -> None:
        signal: Signal[str] = Signal("words")
        seen: list[str] = []

        def broken(value: str) -> None:
            raise RuntimeError(value)

        signal.connect(broken)
        signal.connect(seen.append)
        signal.emit("hello")

        assert seen == ["hello"]

    def test_handler_may_disconnect_itself(self) -> None:
        signal: Signal[None] = Signal()
        calls: list[str] = []

        def once(_: None) -> None:
            calls.append("once")
            disconnect()

        disconnect = signal.connect(once)
        signal.connect(lambda _: calls.append("always"))
        signal.emit(None)
        signal.emit(None)

        assert calls == ["once", "always", "always"]

    def test_clear(self) -> None:
        signal: Signal[int] = Signal()
        signal.connect(print)
        signal.clear()
        assert len(signal) == 0


class TestDebouncer:
    """Per-key trailing debounce."""

    @pytest.mark.asyncio
    async def test_burst_runs_once(self) -> None:
        calls: list[str] = []

        async def action(key: str) -> None:
            calls.append(key)

        debouncer: Debouncer[str] = Debouncer(0.05, action)
        for _ in range(3):
            debouncer.trigger("a")
            await asyncio.sleep(0.02)
        assert calls == []
        assert debouncer.pending("a")

        await asyncio.sleep(0.1)

        assert calls == ["a"]
        assert not debouncer.pending()

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        calls: list[str] = []

        async def action(key: str) -> None:
            calls.append(key)

        debouncer: Debouncer[str] = Debouncer(0.02, action)
        debouncer.trigger("a")
        debouncer.trigger("b")
        await asyncio.sleep(0.08)

        assert sorted(calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        calls: list[str] = []

        async def action(key: str) -> None:
            calls.append(key)

        debouncer: Debouncer[str] = Debouncer(0.02, action)
        debouncer.trigger("a")
        debouncer.trigger("b")
        debouncer.cancel("a")
        await asyncio.sleep(0.08)
        assert calls == ["b"]

        debouncer.trigger("c")
        debouncer.cancel_all()
        await asyncio.sleep(0.05)
        assert calls == ["b"]

    @pytest.mark.asyncio
    async def test_custom_spawn(self) -> None:
        spawned: list[asyncio.Task[None]] = []

        async def action(key: str) -> None:
            pass

        def spawn(coro):
            task = asyncio.ensure_future(coro)
            spawned.append(task)
            return task

        debouncer: Debouncer[str] = Debouncer(0.01, action, spawn=spawn)
        debouncer.trigger("a")
        await asyncio.sleep(0.05)

        assert len(spawned) == 1
        assert spawned[0].done()

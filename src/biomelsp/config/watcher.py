"""Reload configuration when one of its layer files changes on disk."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from pathlib import Path

from biomelsp.config.paths import get_config_paths
from biomelsp.logging import get_logger

log = get_logger("config.watcher")

DEFAULT_POLL_INTERVAL = 2.0


def _mtime(path: Path) -> float | None:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


class ConfigWatcher:
    """Polls the config layer files and hands changed paths to `on_change`.

    `paths` is called on every poll, so a layer that only becomes relevant
    later (a folder opened after startup) is picked up without a restart.
    """

    def __init__(
        self,
        on_change: Callable[[list[Path]], None],
        paths: Callable[[], Iterable[Path]] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._on_change = on_change
        self._paths = paths or get_config_paths
        self._poll_interval = poll_interval
        self._seen: dict[Path, float | None] = {}
        self._task: asyncio.Task[None] | None = None

    def detect_changes(self) -> list[Path]:
        """Paths created, modified or deleted since the previous call.

        A path seen for the first time only counts when it already exists.
        """
        current = {path: _mtime(path) for path in self._paths()}
        previous, self._seen = self._seen, current

        changed = [path for path, mtime in current.items() if previous.get(path) != mtime]
        # Paths no longer offered by `paths` disappear like deleted files.
        changed += [path for path, mtime in previous.items() if path not in current and mtime is not None]
        return changed

    async def _run(self) -> None:
        self.detect_changes()
        while True:
            await asyncio.sleep(self._poll_interval)
            changed = self.detect_changes()
            if not changed:
                continue
            log.info("Config changed: %s", ", ".join(str(p) for p in changed))
            try:
                self._on_change(changed)
            except Exception:
                log.exception("Error applying config change")

    def start(self) -> None:
        """Start polling. Must be called from within a running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            log.debug("Config watcher started (interval=%.1fs)", self._poll_interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            log.debug("Config watcher stopped")

    async def __aenter__(self) -> ConfigWatcher:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        self.stop()

"""Polling watcher for a fixed set of files in one directory.

Used for dependency lockfiles: a file that does not exist yet is tracked
until it appears, and deletion is reported like any other change.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from biomelsp.logging import get_logger

log = get_logger("watching")

MIN_POLL_INTERVAL = 0.05

# (mtime, size) of an existing file, None for a missing one
Snapshot = tuple[float, int] | None


@dataclass(frozen=True)
class FileChangeEvent:
    path: Path
    change_type: str  # "created", "modified" or "deleted"
    old_mtime: float | None
    new_mtime: float | None


def _snapshot(path: Path) -> Snapshot:
    stat = path.stat()
    return stat.st_mtime, stat.st_size


class FileWatcher:
    """Reports created, modified and deleted files by comparing stat snapshots.

    Example:
        watcher = FileWatcher(project_dir, ["yarn.lock", "package-lock.json"])
        task = asyncio.create_task(watcher.start(lambda event: print(event.path)))
    """

    def __init__(self, base: Path, filenames: Iterable[str] = (), poll_interval: float = 1.0) -> None:
        self._base = base
        self._poll_interval = max(MIN_POLL_INTERVAL, poll_interval)
        self._snapshots: dict[Path, Snapshot] = {}
        self._running = False

        for name in filenames:
            self.register_path(name)

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def watched_paths(self) -> list[Path]:
        return list(self._snapshots)

    def resolve_path(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self._base / path

    def register_path(self, path: str | Path) -> None:
        resolved = self.resolve_path(path)
        if resolved in self._snapshots:
            return
        try:
            self._snapshots[resolved] = _snapshot(resolved)
        except OSError:
            self._snapshots[resolved] = None

    def unregister_path(self, path: str | Path) -> None:
        self._snapshots.pop(self.resolve_path(path), None)

    def check_changes(self) -> list[FileChangeEvent]:
        """Poll every watched file once."""
        events = []
        for path, before in list(self._snapshots.items()):
            try:
                after = _snapshot(path)
            except FileNotFoundError:
                after = None
            except OSError as e:
                log.warning("Error checking %s: %s", path, e)
                continue
            if after == before:
                continue

            self._snapshots[path] = after
            if before is None:
                change_type = "created"
            elif after is None:
                change_type = "deleted"
            else:
                change_type = "modified"
            events.append(
                FileChangeEvent(
                    path=path,
                    change_type=change_type,
                    old_mtime=before[0] if before else None,
                    new_mtime=after[0] if after else None,
                )
            )
        return events

    async def start(self, callback: Callable[[FileChangeEvent], None]) -> None:
        """Poll until `stop()` is called or the task is cancelled."""
        if self._running:
            log.warning("FileWatcher for %s already running", self._base)
            return
        self._running = True
        try:
            while self._running:
                await asyncio.sleep(self._poll_interval)
                for event in self.check_changes():
                    try:
                        callback(event)
                    except Exception:
                        log.exception("File change callback failed for %s", event.path)
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False

    def is_running(self) -> bool:
        return self._running

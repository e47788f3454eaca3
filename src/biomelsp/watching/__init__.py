"""Polling file watching."""

from biomelsp.watching.watcher import FileChangeEvent, FileWatcher

__all__ = ["FileChangeEvent", "FileWatcher"]

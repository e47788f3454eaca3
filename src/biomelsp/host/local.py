"""Standalone host used by the CLI.

Backs the host protocols with in-memory workspace state, the layered YAML
configuration, polling file watchers, a rich console prompter and a YAML
storage file.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

import yaml
from rich.console import Console
from rich.prompt import Prompt

from biomelsp.config.loader import load_config, load_yaml_file
from biomelsp.config.paths import get_storage_path
from biomelsp.config.schema import Config
from biomelsp.config.settings import LocalSettings
from biomelsp.events import Signal
from biomelsp.host.protocol import Host, TextDocument, Unsubscribe, WorkspaceFolder
from biomelsp.logging import get_logger
from biomelsp.watching import FileChangeEvent, FileWatcher

log = get_logger("host")


class LocalWorkspace:
    """Workspace folders and documents held in memory."""

    def __init__(self, folders: Iterable[Path] = ()) -> None:
        self._folders: list[WorkspaceFolder] = []
        self._documents: dict[str, TextDocument] = {}
        self._active: TextDocument | None = None

        self._folders_changed: Signal[None] = Signal("workspace.folders")
        self._active_changed: Signal[TextDocument | None] = Signal("workspace.active_document")
        self._opened: Signal[TextDocument] = Signal("workspace.open")
        self._closed: Signal[TextDocument] = Signal("workspace.close")

        for folder in folders:
            self._append_folder(Path(folder))

    @property
    def folders(self) -> Sequence[WorkspaceFolder]:
        return tuple(self._folders)

    @property
    def active_document(self) -> TextDocument | None:
        return self._active

    @property
    def open_documents(self) -> Sequence[TextDocument]:
        return tuple(self._documents.values())

    def folder_for(self, path: Path) -> WorkspaceFolder | None:
        """The innermost folder containing `path`."""
        owners = [folder for folder in self._folders if folder.contains(path)]
        return max(owners, key=lambda folder: len(folder.uri.parts), default=None)

    def _append_folder(self, path: Path, name: str | None = None) -> WorkspaceFolder | None:
        path = path.absolute()
        if any(folder.uri == path for folder in self._folders):
            return None
        folder = WorkspaceFolder(uri=path, name=name or path.name, index=len(self._folders))
        self._folders.append(folder)
        return folder

    def add_folder(self, path: Path, name: str | None = None) -> WorkspaceFolder | None:
        folder = self._append_folder(path, name)
        if folder is not None:
            self._folders_changed.emit(None)
        return folder

    def remove_folder(self, path: Path) -> None:
        path = path.absolute()
        remaining = [folder for folder in self._folders if folder.uri != path]
        if len(remaining) == len(self._folders):
            return
        self._folders = [
            WorkspaceFolder(uri=folder.uri, name=folder.name, index=index)
            for index, folder in enumerate(remaining)
        ]
        self._folders_changed.emit(None)

    def open_document(self, document: TextDocument, *, activate: bool = True) -> None:
        if document.uri not in self._documents:
            self._documents[document.uri] = document
            self._opened.emit(document)
        if activate:
            self.set_active_document(document)

    def close_document(self, uri: str) -> None:
        document = self._documents.pop(uri, None)
        if document is None:
            return
        if self._active is not None and self._active.uri == uri:
            self.set_active_document(None)
        self._closed.emit(document)

    def set_active_document(self, document: TextDocument | None) -> None:
        if document == self._active:
            return
        self._active = document
        self._active_changed.emit(document)

    def on_did_change_folders(self, handler: Callable[[None], None]) -> Unsubscribe:
        return self._folders_changed.connect(handler)

    def on_did_change_active_document(self, handler: Callable[[TextDocument | None], None]) -> Unsubscribe:
        return self._active_changed.connect(handler)

    def on_did_open_document(self, handler: Callable[[TextDocument], None]) -> Unsubscribe:
        return self._opened.connect(handler)

    def on_did_close_document(self, handler: Callable[[TextDocument], None]) -> Unsubscribe:
        return self._closed.connect(handler)


class PollingWatcherFactory:
    """Runs one polling `FileWatcher` task per `watch()` call.

    Must be used from within a running event loop.
    """

    def __init__(self, poll_interval: float = 1.0) -> None:
        self.poll_interval = poll_interval
        self._tasks: set[asyncio.Task[None]] = set()

    def watch(self, base: Path, filenames: Sequence[str], handler: Callable[[Path], None]) -> Unsubscribe:
        watcher = FileWatcher(base, filenames, poll_interval=self.poll_interval)

        def on_event(event: FileChangeEvent) -> None:
            log.debug("%s %s", event.change_type, event.path)
            handler(event.path)

        task = asyncio.create_task(watcher.start(on_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unwatch() -> None:
            watcher.stop()
            task.cancel()

        return unwatch

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class ConsolePrompter:
    """Asks on the terminal; dismissed (None) when stdin is not interactive."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    async def ask(self, message: str, *choices: str) -> str | None:
        if not sys.stdin.isatty():
            log.info("Not asking (no terminal): %s", message)
            return None

        answer = await asyncio.to_thread(
            Prompt.ask, message, console=self.console, choices=list(choices), default=""
        )
        return answer or None


class YamlStorage:
    """Key-value storage persisted to a YAML file."""

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self._data: dict[str, Any] = load_yaml_file(path) if path is not None else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        self._save()

    def _save(self) -> None:
        if self.path is None:
            return
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(self._data, f, default_flow_style=False, allow_unicode=True, sort_keys=True)
            temp_path.replace(self.path)
        except OSError as e:
            log.warning("Could not write storage %s: %s", self.path, e)
            if temp_path.exists():
                temp_path.unlink()


def create_local_host(
    folders: Iterable[Path] = (),
    config: Config | None = None,
    *,
    config_file: Path | None = None,
    storage_path: Path | None = None,
) -> tuple[Host, LocalSettings, LocalWorkspace]:
    """Wire up a host for the given folders.

    Returns the host together with its concrete settings and workspace so the
    caller can drive reloads and document changes.
    """
    config = config or load_config(extra_file=config_file)
    workspace = LocalWorkspace(folders)
    settings = LocalSettings(
        config.settings,
        roots=lambda: [folder.uri for folder in workspace.folders],
        load_global=lambda: load_config(reload=True, extra_file=config_file).settings,
    )
    host = Host(
        settings=settings,
        workspace=workspace,
        watchers=PollingWatcherFactory(config.orchestrator.watch_poll_interval),
        prompter=ConsolePrompter(),
        storage=YamlStorage(storage_path or get_storage_path()),
    )
    return host, settings, workspace

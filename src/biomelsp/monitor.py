"""Workspace folder and focus tracking."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from biomelsp.events import Signal
from biomelsp.logging import get_logger

if TYPE_CHECKING:
    from biomelsp.host.protocol import TextDocument, Workspace, WorkspaceFolder

log = get_logger("monitor")


@dataclass(frozen=True)
class FoldersChanged:
    added: tuple[WorkspaceFolder, ...]
    removed: tuple[WorkspaceFolder, ...]


class WorkspaceMonitor:
    """Turns host notifications into folder-set diffs and active-folder changes.

    Signals:
        folders_changed: `FoldersChanged` computed against the previous snapshot.
        active_folder_changed: the monitored folder owning the focused document,
            emitted only when it differs from the last one reported.
    """

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace
        self._folders: list[WorkspaceFolder] = []
        self._active_folder: WorkspaceFolder | None = None
        self._subscriptions: list[Callable[[], None]] = []

        self.folders_changed: Signal[FoldersChanged] = Signal("monitor.folders_changed")
        self.active_folder_changed: Signal[WorkspaceFolder | None] = Signal("monitor.active_folder_changed")

    @property
    def folders(self) -> list[WorkspaceFolder]:
        return list(self._folders)

    @property
    def active_folder(self) -> WorkspaceFolder | None:
        return self._active_folder

    def init(self) -> None:
        """Take the initial snapshot and start listening to the host."""
        self.refresh_folders()
        self.refresh_active_folder(self._workspace.active_document)

        if not self._subscriptions:
            self._subscriptions = [
                self._workspace.on_did_change_folders(lambda _: self.refresh_folders()),
                self._workspace.on_did_change_active_document(self.refresh_active_folder),
            ]

    def refresh_folders(self) -> FoldersChanged | None:
        current = list(self._workspace.folders)
        added = tuple(folder for folder in current if folder not in self._folders)
        removed = tuple(folder for folder in self._folders if folder not in current)
        self._folders = current

        if not added and not removed:
            return None

        event = FoldersChanged(added=added, removed=removed)
        log.info(
            "Folders changed: +%s -%s",
            [folder.name for folder in added],
            [folder.name for folder in removed],
        )
        self.folders_changed.emit(event)

        if self._active_folder is not None and self._active_folder in removed:
            self._active_folder = None
        return event

    def refresh_active_folder(self, document: TextDocument | None) -> None:
        if document is None or document.path is None:
            return

        folder = self._workspace.folder_for(document.path)
        if folder is None or folder not in self._folders:
            return
        if folder == self._active_folder:
            return

        self._active_folder = folder
        log.debug("Active folder: %s", folder.name)
        self.active_folder_changed.emit(folder)

    def dispose(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        self.folders_changed.clear()
        self.active_folder_changed.clear()

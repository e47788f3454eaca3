"""Tests for WorkspaceMonitor."""

from __future__ import annotations

from pathlib import Path

import pytest

from biomelsp.host.local import LocalWorkspace
from biomelsp.host.protocol import TextDocument, WorkspaceFolder
from biomelsp.monitor import FoldersChanged, WorkspaceMonitor


@pytest.fixture
def dirs(tmp_path: Path) -> list[Path]:
    paths = [tmp_path / name for name in ("f1", "f2", "f3")]
    for path in paths:
        path.mkdir()
    return paths


def folder(path: Path) -> WorkspaceFolder:
    return WorkspaceFolder(uri=path, name=path.name)


class TestFolderDiffs:
    """folders_changed events."""

    def test_init_reports_initial_folders(self, dirs: list[Path]) -> None:
        workspace = LocalWorkspace(dirs[:2])
        monitor = WorkspaceMonitor(workspace)
        events: list[FoldersChanged] = []
        monitor.folders_changed.connect(events.append)

        monitor.init()

        assert events == [FoldersChanged(added=(folder(dirs[0]), folder(dirs[1])), removed=())]
        assert monitor.folders == [folder(dirs[0]), folder(dirs[1])]

    def test_add_and_remove(self, dirs: list[Path]) -> None:
        workspace = LocalWorkspace(dirs[:2])
        monitor = WorkspaceMonitor(workspace)
        monitor.init()
        events: list[FoldersChanged] = []
        monitor.folders_changed.connect(events.append)

        workspace.add_folder(dirs[2])
        workspace.remove_folder(dirs[1])

        assert events == [
            FoldersChanged(added=(folder(dirs[2]),), removed=()),
            FoldersChanged(added=(), removed=(folder(dirs[1]),)),
        ]

    def test_reindexing_is_not_a_change(self, dirs: list[Path]) -> None:
        """Removing the first folder shifts indexes of the rest without reporting them."""
        workspace = LocalWorkspace(dirs)
        monitor = WorkspaceMonitor(workspace)
        monitor.init()
        events: list[FoldersChanged] = []
        monitor.folders_changed.connect(events.append)

        workspace.remove_folder(dirs[0])

        assert events == [FoldersChanged(added=(), removed=(folder(dirs[0]),))]

    def test_no_change_no_event(self, dirs: list[Path]) -> None:
        monitor = WorkspaceMonitor(LocalWorkspace(dirs[:1]))
        monitor.init()
        events: list[FoldersChanged] = []
        monitor.folders_changed.connect(events.append)

        assert monitor.refresh_folders() is None
        assert events == []


class TestActiveFolder:
    """active_folder_changed events."""

    def test_focus_moves_between_folders(self, dirs: list[Path]) -> None:
        workspace = LocalWorkspace(dirs[:2])
        monitor = WorkspaceMonitor(workspace)
        monitor.init()
        seen: list[WorkspaceFolder | None] = []
        monitor.active_folder_changed.connect(seen.append)

        workspace.open_document(TextDocument.from_path(dirs[0] / "a.ts"))
        workspace.open_document(TextDocument.from_path(dirs[0] / "b.ts"))
        workspace.open_document(TextDocument.from_path(dirs[1] / "c.ts"))

        assert seen == [folder(dirs[0]), folder(dirs[1])]
        assert monitor.active_folder == folder(dirs[1])

    def test_outside_documents_keep_last_folder(self, dirs: list[Path], tmp_path: Path) -> None:
        workspace = LocalWorkspace(dirs[:1])
        monitor = WorkspaceMonitor(workspace)
        monitor.init()
        seen: list[WorkspaceFolder | None] = []
        monitor.active_folder_changed.connect(seen.append)

        workspace.open_document(TextDocument.from_path(dirs[0] / "a.ts"))
        workspace.open_document(TextDocument.from_path(tmp_path / "elsewhere.ts"))
        workspace.open_document(TextDocument.from_uri("untitled:Untitled-1"))
        workspace.set_active_document(None)

        assert seen == [folder(dirs[0])]
        assert monitor.active_folder == folder(dirs[0])

    def test_init_picks_up_focused_document(self, dirs: list[Path]) -> None:
        workspace = LocalWorkspace(dirs[:2])
        workspace.open_document(TextDocument.from_path(dirs[1] / "index.js"))
        monitor = WorkspaceMonitor(workspace)

        monitor.init()

        assert monitor.active_folder == folder(dirs[1])

    def test_removed_folder_is_forgotten(self, dirs: list[Path]) -> None:
        workspace = LocalWorkspace(dirs[:2])
        workspace.open_document(TextDocument.from_path(dirs[1] / "index.js"))
        monitor = WorkspaceMonitor(workspace)
        monitor.init()

        workspace.remove_folder(dirs[1])

        assert monitor.active_folder is None


class TestDispose:
    def test_dispose_stops_listening(self, dirs: list[Path]) -> None:
        workspace = LocalWorkspace(dirs[:1])
        monitor = WorkspaceMonitor(workspace)
        monitor.init()
        events: list[FoldersChanged] = []
        monitor.folders_changed.connect(events.append)

        monitor.dispose()
        workspace.add_folder(dirs[1])

        assert events == []
        assert monitor.folders == [folder(dirs[0])]

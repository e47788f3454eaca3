"""Tests for the standalone host: workspace, watchers, storage and prompter."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
import yaml

from biomelsp.config.schema import Config, OrchestratorConfig
from biomelsp.host.local import (
    ConsolePrompter,
    LocalWorkspace,
    PollingWatcherFactory,
    YamlStorage,
    create_local_host,
)
from biomelsp.host.protocol import TextDocument, WorkspaceFolder


class TestLocalWorkspace:
    def test_folders_are_indexed_and_deduplicated(self, tmp_path: Path) -> None:
        workspace = LocalWorkspace([tmp_path / "a", tmp_path / "b", tmp_path / "a"])

        assert [(f.name, f.index) for f in workspace.folders] == [("a", 0), ("b", 1)]
        assert workspace.add_folder(tmp_path / "b") is None

        workspace.remove_folder(tmp_path / "a")
        assert [(f.name, f.index) for f in workspace.folders] == [("b", 0)]

    def test_folder_for_prefers_innermost(self, tmp_path: Path) -> None:
        workspace = LocalWorkspace([tmp_path, tmp_path / "packages" / "web"])

        inner = workspace.folder_for(tmp_path / "packages" / "web" / "index.ts")
        outer = workspace.folder_for(tmp_path / "README.md")

        assert inner == WorkspaceFolder(uri=tmp_path / "packages" / "web", name="web")
        assert outer is not None and outer.uri == tmp_path
        assert workspace.folder_for(tmp_path.parent / "x.ts") is None

    def test_documents(self, tmp_path: Path) -> None:
        workspace = LocalWorkspace()
        opened: list[TextDocument] = []
        closed: list[TextDocument] = []
        active: list[TextDocument | None] = []
        workspace.on_did_open_document(opened.append)
        workspace.on_did_close_document(closed.append)
        workspace.on_did_change_active_document(active.append)
        first = TextDocument.from_path(tmp_path / "a.ts")
        untitled = TextDocument.from_uri("untitled:Untitled-1")

        workspace.open_document(first)
        workspace.open_document(untitled, activate=False)
        workspace.open_document(first)
        workspace.close_document(first.uri)
        workspace.close_document("file:///never-opened.ts")

        assert opened == [first, untitled]
        assert closed == [first]
        assert active == [first, None]
        assert workspace.open_documents == (untitled,)
        assert workspace.active_document is None

    def test_folder_events(self, tmp_path: Path) -> None:
        workspace = LocalWorkspace()
        events: list[None] = []
        unsubscribe = workspace.on_did_change_folders(events.append)

        workspace.add_folder(tmp_path)
        workspace.remove_folder(tmp_path / "missing")
        unsubscribe()
        workspace.remove_folder(tmp_path)

        assert events == [None]


class TestYamlStorage:
    def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / "storage.yaml"
        storage = YamlStorage(path)

        storage.set("biome.downloadedBinary", {"version": "2.1.0", "path": "/opt/biome"})

        assert yaml.safe_load(path.read_text()) == {
            "biome.downloadedBinary": {"version": "2.1.0", "path": "/opt/biome"}
        }
        assert YamlStorage(path).get("biome.downloadedBinary")["version"] == "2.1.0"
        assert not path.with_name("storage.yaml.tmp").exists()

    def test_none_removes_key(self, tmp_path: Path) -> None:
        storage = YamlStorage(tmp_path / "storage.yaml")
        storage.set("key", 1)
        storage.set("key", None)

        assert storage.get("key", "default") == "default"
        assert YamlStorage(tmp_path / "storage.yaml").get("key") is None

    def test_in_memory(self) -> None:
        storage = YamlStorage(None)
        storage.set("key", "value")
        assert storage.get("key") == "value"


class TestPollingWatcherFactory:
    @pytest.mark.asyncio
    async def test_watch_and_unwatch(self, tmp_path: Path) -> None:
        factory = PollingWatcherFactory(poll_interval=0.05)
        changed: list[Path] = []
        seen = asyncio.Event()

        def on_change(path: Path) -> None:
            changed.append(path)
            seen.set()

        unwatch = factory.watch(tmp_path, ["pnpm-lock.yaml"], on_change)
        await asyncio.sleep(0)
        (tmp_path / "pnpm-lock.yaml").write_text("lockfileVersion: '9.0'\n")
        await asyncio.wait_for(seen.wait(), timeout=5)

        unwatch()
        (tmp_path / "pnpm-lock.yaml").unlink()
        await asyncio.sleep(0.15)

        assert changed == [tmp_path / "pnpm-lock.yaml"]
        factory.close()


class TestConsolePrompter:
    @pytest.mark.asyncio
    async def test_dismissed_without_terminal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("biomelsp.host.local.sys.stdin", io.StringIO())
        assert await ConsolePrompter().ask("Download Biome?", "Download", "Not now") is None


class TestCreateLocalHost:
    def test_wiring(self, tmp_path: Path) -> None:
        config = Config(
            orchestrator=OrchestratorConfig(watch_poll_interval=0.2),
            settings={"requireConfigFile": True},
        )

        host, settings, workspace = create_local_host([tmp_path], config, storage_path=tmp_path / "storage.yaml")

        assert host.settings is settings
        assert host.workspace is workspace
        assert [f.uri for f in workspace.folders] == [tmp_path]
        assert settings.get("requireConfigFile") is True
        assert isinstance(host.watchers, PollingWatcherFactory)
        assert host.watchers.poll_interval == 0.2
        assert isinstance(host.storage, YamlStorage)
        assert host.downloader is None

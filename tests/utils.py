"""Shared fakes for biomelsp tests."""

from __future__ import annotations

import asyncio
import json
import socket
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

from biomelsp.config.settings import LocalSettings
from biomelsp.events import Signal
from biomelsp.host.local import LocalWorkspace
from biomelsp.host.protocol import Host, TextDocument
from biomelsp.locator import LocatedBinary, PlatformInfo, StrategyKind
from biomelsp.lsp.filters import DocumentFilter, selector_matches
from biomelsp.lsp.launch import LaunchOptions
from biomelsp.project import Project


class FakeWatchers:
    """FileWatcherFactory that lets tests fire events by hand."""

    def __init__(self) -> None:
        self.watches: dict[Path, tuple[tuple[str, ...], Callable[[Path], None]]] = {}

    def watch(self, base: Path, filenames: Sequence[str], handler: Callable[[Path], None]) -> Callable[[], None]:
        self.watches[base] = (tuple(filenames), handler)

        def unwatch() -> None:
            self.watches.pop(base, None)

        return unwatch

    def fire(self, base: Path, filename: str) -> None:
        names, handler = self.watches[base]
        assert filename in names
        handler(base / filename)


class FakePrompter:
    def __init__(self, *answers: str | None) -> None:
        self.answers = list(answers)
        self.asked: list[tuple[str, tuple[str, ...]]] = []

    async def ask(self, message: str, *choices: str) -> str | None:
        self.asked.append((message, choices))
        return self.answers.pop(0) if self.answers else None


class MemoryStorage:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class FakeClient:
    """Stands in for LanguageClient: a selector, a `closed` signal and stop()."""

    def __init__(self, binary: Path, options: LaunchOptions) -> None:
        self.binary = binary
        self.options = options
        self.closed: Signal[Exception | None] = Signal("fake.closed")
        self.stopped = 0

    @property
    def document_selector(self) -> list[DocumentFilter]:
        return list(self.options.document_selector)

    def handles(self, document: TextDocument) -> bool:
        return selector_matches(self.options.document_selector, document)

    async def stop(self) -> None:
        self.stopped += 1

    def drop(self, error: Exception | None = None) -> None:
        """Simulate the server going away."""
        self.closed.emit(error)


class FakeLauncher:
    """Records launches; can fail, or hold launches until `gate` is set."""

    def __init__(self) -> None:
        self.launches: list[tuple[Path, LaunchOptions]] = []
        self.clients: list[FakeClient] = []
        self.failures: dict[str, Exception] = {}
        self.gate: asyncio.Event | None = None

    async def launch(self, binary: Path, options: LaunchOptions) -> FakeClient:
        self.launches.append((binary, options))
        if self.gate is not None:
            await self.gate.wait()
        for name, error in self.failures.items():
            if name in options.name:
                raise error
        client = FakeClient(binary, options)
        self.clients.append(client)
        return client

    def launched(self, name: str) -> int:
        return sum(1 for _, options in self.launches if name in options.name)


class FakeLocator:
    """Resolves every context to `binary`, unless told otherwise."""

    def __init__(self, binary: Path | None = Path("/usr/bin/biome")) -> None:
        self.binary = binary
        self.calls: list[Project | None] = []
        self.error: Exception | None = None

    async def resolve(self, project: Project | None) -> LocatedBinary | None:
        self.calls.append(project)
        if self.error is not None:
            raise self.error
        if self.binary is None:
            return None
        return LocatedBinary(self.binary, StrategyKind.SETTINGS)


def make_host(
    folders: Iterable[Path] = (),
    settings: dict[str, Any] | None = None,
    *,
    prompter: FakePrompter | None = None,
    storage: MemoryStorage | None = None,
    downloader: Any = None,
) -> Host:
    """A host over real in-memory workspace and settings with fake watchers."""
    workspace = LocalWorkspace(folders)
    return Host(
        settings=LocalSettings(settings, roots=lambda: [folder.uri for folder in workspace.folders]),
        workspace=workspace,
        watchers=FakeWatchers(),
        prompter=prompter,
        storage=storage,
        downloader=downloader,
    )


def make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path


def install_biome(project_dir: Path, platform: PlatformInfo) -> Path:
    """Lay out @biomejs/biome and its platform companion under node_modules."""
    (project_dir / "package.json").write_text(json.dumps({"devDependencies": {"@biomejs/biome": "^2.0.0"}}))
    main = project_dir / "node_modules" / "@biomejs" / "biome"
    main.mkdir(parents=True)
    (main / "package.json").write_text('{"name": "@biomejs/biome"}')
    companion = project_dir / "node_modules" / platform.package_name
    companion.mkdir(parents=True)
    (companion / "package.json").write_text(json.dumps({"name": platform.package_name}))
    return make_executable(companion / platform.binary_name)


Streams = tuple[asyncio.StreamReader, asyncio.StreamWriter]


async def stream_pair() -> tuple[Streams, Streams]:
    """Two connected stream endpoints: (client side, server side)."""
    left, right = socket.socketpair()
    client = await asyncio.open_connection(sock=left)
    server = await asyncio.open_connection(sock=right)
    return client, server


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """One Content-Length framed JSON message, or None at end of stream."""
    length = None
    try:
        while line := await reader.readline():
            if line == b"\r\n":
                break
            name, _, value = line.decode("ascii").partition(":")
            if name.strip().lower() == "content-length":
                length = int(value)
        if length is None:
            return None
        return json.loads(await reader.readexactly(length))
    except (ConnectionResetError, asyncio.IncompleteReadError):
        return None


async def write_message(writer: asyncio.StreamWriter, message: dict[str, Any]) -> None:
    body = json.dumps(message).encode("utf-8")
    writer.write(b"Content-Length: %d\r\n\r\n" % len(body) + body)
    await writer.drain()


class FakeServer:
    """Scripted language server on the far end of a stream pair.

    Answers initialize and shutdown, records everything it receives and can
    send its own requests to the client with `call()`.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        initialize_error: dict[str, Any] | None = None,
        answer_initialize: bool = True,
        unanswered: Iterable[str] = (),
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.initialize_error = initialize_error
        self.answer_initialize = answer_initialize
        self.unanswered = set(unanswered)
        self.received: list[dict[str, Any]] = []
        self._calls: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._ids = 0

    def methods(self) -> list[str]:
        return [message["method"] for message in self.received if "method" in message]

    async def serve(self) -> None:
        while (message := await read_message(self.reader)) is not None:
            self.received.append(message)
            method = message.get("method")
            if method is None:
                future = self._calls.pop(message.get("id"), None)
                if future is not None:
                    future.set_result(message)
                continue
            if "id" not in message:
                if method == "exit":
                    break
                continue
            await self._reply(message["id"], method)
        self.writer.close()

    async def _reply(self, message_id: Any, method: str) -> None:
        if method in self.unanswered:
            return
        reply: dict[str, Any] = {"jsonrpc": "2.0", "id": message_id}
        if method == "initialize":
            if not self.answer_initialize:
                return
            if self.initialize_error is not None:
                reply["error"] = self.initialize_error
            else:
                reply["result"] = {
                    "capabilities": {"documentFormattingProvider": True},
                    "serverInfo": {"name": "biome_lsp", "version": "2.1.0"},
                }
        elif method == "shutdown":
            reply["result"] = None
        else:
            reply["error"] = {"code": -32601, "message": method}
        await write_message(self.writer, reply)

    async def call(self, method: str, params: Any = None) -> dict[str, Any]:
        """Send a request to the client and wait for its response."""
        self._ids += 1
        message_id = f"server-{self._ids}"
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._calls[message_id] = future
        await write_message(self.writer, {"jsonrpc": "2.0", "id": message_id, "method": method, "params": params})
        return await asyncio.wait_for(future, timeout=5)

    async def notify(self, method: str, params: Any = None) -> None:
        await write_message(self.writer, {"jsonrpc": "2.0", "method": method, "params": params})

"""Tests for LanguageClient against a scripted server."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import pytest
from lsprotocol import types

from biomelsp.errors import ClientError
from biomelsp.host.protocol import TextDocument, WorkspaceFolder
from biomelsp.logging import TRACE
from biomelsp.lsp.client import METHOD_NOT_FOUND, LanguageClient
from biomelsp.lsp.filters import project_selector
from tests.utils import FakeServer, stream_pair


async def connect(tmp_path: Path, **kwargs: Any) -> tuple[LanguageClient, FakeServer, asyncio.Task[None]]:
    server_keys = ("initialize_error", "answer_initialize", "unanswered")
    server_kwargs = {key: kwargs.pop(key) for key in server_keys if key in kwargs}
    (client_reader, client_writer), (server_reader, server_writer) = await stream_pair()
    server = FakeServer(server_reader, server_writer, **server_kwargs)
    task = asyncio.create_task(server.serve())
    kwargs.setdefault("workspace_folders", [WorkspaceFolder(uri=tmp_path, name="app")])
    client = LanguageClient("biome (app)", client_reader, client_writer, **kwargs)
    return client, server, task


def trace_lines(caplog: pytest.LogCaptureFixture) -> list[str]:
    return [record.getMessage() for record in caplog.records if record.name == "biomelsp.lsp.trace"]


class TestHandshake:
    """initialize / initialized."""

    @pytest.mark.asyncio
    async def test_initialize(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)

        await client.start()

        assert client.running
        assert client.server_version == "2.1.0"
        assert client.capabilities is not None
        assert client.capabilities.document_formatting_provider is True
        initialize = server.received[0]
        assert initialize["method"] == "initialize"
        assert initialize["params"]["rootUri"] == tmp_path.as_uri()
        assert initialize["params"]["workspaceFolders"] == [{"uri": tmp_path.as_uri(), "name": "app"}]
        assert initialize["params"]["capabilities"]["workspace"]["configuration"] is True
        assert initialize["params"]["clientInfo"]["name"] == "biomelsp"
        assert initialize["params"]["trace"] == "off"

        await client.stop()
        await task
        assert server.methods() == ["initialize", "initialized", "shutdown", "exit"]

    @pytest.mark.asyncio
    async def test_initialize_hook(self, tmp_path: Path) -> None:
        def fill(params: types.InitializeParams) -> None:
            params.root_uri = "file:///override"

        client, server, task = await connect(tmp_path, fill_initialize_params=fill)

        await client.start()

        assert server.received[0]["params"]["rootUri"] == "file:///override"
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_initialize_error(self, tmp_path: Path) -> None:
        client, _, task = await connect(tmp_path, initialize_error={"code": -32603, "message": "bad config"})

        with pytest.raises(ClientError, match="bad config") as excinfo:
            await client.start()

        assert excinfo.value.code == -32603
        assert not client.running
        await task

    @pytest.mark.asyncio
    async def test_initialize_timeout(self, tmp_path: Path) -> None:
        client, _, task = await connect(tmp_path, answer_initialize=False, request_timeout=0.05)

        with pytest.raises(ClientError, match="timed out"):
            await client.start()

        await task

    @pytest.mark.asyncio
    async def test_request_before_start(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)

        with pytest.raises(ClientError, match="not open"):
            await client.request("shutdown")

        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_error_response_carries_code(self, tmp_path: Path) -> None:
        client, _, task = await connect(tmp_path)
        await client.start()

        with pytest.raises(ClientError) as excinfo:
            await client.request("biome/unknown", timeout=5)

        assert excinfo.value.code == METHOD_NOT_FOUND
        await client.stop()
        await task


class TestServerRequests:
    """Requests the server sends to the client."""

    @pytest.mark.asyncio
    async def test_workspace_configuration(self, tmp_path: Path) -> None:
        asked: list[tuple[str | None, str | None]] = []

        def configuration(section: str | None, scope_uri: str | None) -> Any:
            asked.append((section, scope_uri))
            return {"enabled": True} if section == "biome" else None

        client, server, task = await connect(tmp_path, configuration=configuration)
        await client.start()

        response = await server.call(
            "workspace/configuration",
            {"items": [{"section": "biome", "scopeUri": tmp_path.as_uri()}, {"section": "editor"}]},
        )

        assert response["result"] == [{"enabled": True}, None]
        assert asked == [("biome", tmp_path.as_uri()), ("editor", None)]
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_workspace_configuration_without_provider(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)
        await client.start()

        response = await server.call("workspace/configuration", {"items": [{"section": "biome"}, {"section": "x"}]})

        assert response["result"] == [None, None]
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_workspace_folders(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)
        await client.start()

        response = await server.call("workspace/workspaceFolders")

        assert response["result"] == [{"uri": tmp_path.as_uri(), "name": "app"}]
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_register_capability_is_acknowledged(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)
        await client.start()

        response = await server.call("client/registerCapability", {"registrations": []})

        assert "error" not in response
        assert response["result"] is None
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_unknown_request(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)
        await client.start()

        response = await server.call("biome/unknown")

        assert response["error"]["code"] == METHOD_NOT_FOUND
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_log_message_is_forwarded(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="biomelsp.lsp.client")
        client, server, task = await connect(tmp_path)
        await client.start()

        await server.notify("window/logMessage", {"type": 2, "message": "config file ignored"})
        # Messages are handled in order, so the answer arrives after the log line
        await server.call("workspace/workspaceFolders")

        [record] = [r for r in caplog.records if "config file ignored" in r.getMessage()]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "[biome (app)] config file ignored"
        await client.stop()
        await task


class TestTrace:
    """Message tracing at the TRACE level."""

    @pytest.mark.asyncio
    async def test_messages(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(TRACE, logger="biomelsp.lsp.trace")
        client, server, task = await connect(tmp_path, trace="messages")

        await client.start()
        await client.stop()
        await task

        lines = trace_lines(caplog)
        assert server.received[0]["params"]["trace"] == "messages"
        assert any(line.startswith("[biome (app)] Sending request 'initialize - (") for line in lines)
        assert any(line.startswith("[biome (app)] Received response (") for line in lines)
        assert "[biome (app)] Sending notification 'initialized'." in lines
        assert not any("Params:" in line for line in lines)

    @pytest.mark.asyncio
    async def test_verbose(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(TRACE, logger="biomelsp.lsp.trace")
        client, _, task = await connect(tmp_path, trace="verbose")

        await client.start()
        await client.stop()
        await task

        [initialize] = [line for line in trace_lines(caplog) if "'initialize - (" in line]
        assert "Params:" in initialize
        assert tmp_path.as_uri() in initialize
        assert any("Result:" in line and "biome_lsp" in line for line in trace_lines(caplog))

    @pytest.mark.asyncio
    async def test_off(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(TRACE, logger="biomelsp.lsp.trace")
        client, _, task = await connect(tmp_path)

        await client.start()
        await client.stop()
        await task

        assert trace_lines(caplog) == []

    @pytest.mark.asyncio
    async def test_unknown_level_turns_tracing_off(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path, trace="loud")

        await client.start()

        assert client.trace == "off"
        assert server.received[0]["params"]["trace"] == "off"
        await client.stop()
        await task


class TestConnectionLoss:
    @pytest.mark.asyncio
    async def test_closed_signal_on_server_exit(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)
        await client.start()
        closed = asyncio.Event()
        errors: list[Exception | None] = []

        def on_closed(error: Exception | None) -> None:
            errors.append(error)
            closed.set()

        client.closed.connect(on_closed)
        server.writer.close()
        await asyncio.wait_for(closed.wait(), timeout=5)

        assert errors == [None]
        assert not client.running
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_reset_reads_as_end_of_stream(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path)
        await client.start()
        closed = asyncio.Event()
        errors: list[Exception | None] = []

        def on_closed(error: Exception | None) -> None:
            errors.append(error)
            closed.set()

        client.closed.connect(on_closed)
        client._reader._reader.set_exception(ConnectionResetError(104, "Connection reset by peer"))
        await asyncio.wait_for(closed.wait(), timeout=5)

        assert errors == [None]
        await client.stop()
        server.writer.close()
        await task

    @pytest.mark.asyncio
    async def test_request_fails_when_connection_drops(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path, unanswered={"biome/slow"})
        await client.start()

        request = asyncio.create_task(client.request("biome/slow", timeout=5))
        while "biome/slow" not in server.methods():
            await asyncio.sleep(0.01)
        server.writer.close()

        with pytest.raises(ClientError, match="closed"):
            await request
        await client.stop()
        await task

    @pytest.mark.asyncio
    async def test_stop_does_not_signal(self, tmp_path: Path) -> None:
        client, _, task = await connect(tmp_path)
        await client.start()
        errors: list[Exception | None] = []
        client.closed.connect(errors.append)

        await client.stop()
        await task

        assert errors == []


class TestRouting:
    @pytest.mark.asyncio
    async def test_handles(self, tmp_path: Path) -> None:
        client, server, task = await connect(tmp_path, document_selector=project_selector(tmp_path))

        assert client.handles(TextDocument.from_path(tmp_path / "src" / "index.ts"))
        assert not client.handles(TextDocument.from_path(tmp_path.parent / "index.ts"))

        await client.stop()
        await task

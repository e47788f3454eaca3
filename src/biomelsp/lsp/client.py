"""Language client for one Biome server, built on pygls.

pygls does the JSON-RPC work: framing, request correlation and answering
unknown server requests with MethodNotFound. This module adds what a
session needs on top: the initialize / shutdown lifecycle over streams it
was handed, the `fill_initialize_params` hook, answers to the server
requests a proxying client must acknowledge, message tracing and a `closed`
signal when the server goes away on its own.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from lsprotocol import types
from pygls.exceptions import JsonRpcException
from pygls.io_ import run_async
from pygls.lsp.client import BaseLanguageClient

from biomelsp.constants import VERSION
from biomelsp.errors import ClientError
from biomelsp.events import Signal
from biomelsp.host.protocol import TextDocument, WorkspaceFolder
from biomelsp.logging import TRACE, get_logger
from biomelsp.lsp.filters import DocumentFilter, selector_matches

log = get_logger("lsp.client")
trace_log = get_logger("lsp.trace")

CLIENT_NAME = "biomelsp"

METHOD_NOT_FOUND = -32601

# biome.lsp.trace.server values
TRACE_LEVELS = ("off", "messages", "verbose")

# Server requests acknowledged with a null result
_ACKNOWLEDGED_REQUESTS = (
    types.CLIENT_REGISTER_CAPABILITY,
    types.CLIENT_UNREGISTER_CAPABILITY,
    types.WINDOW_WORK_DONE_PROGRESS_CREATE,
    types.WINDOW_SHOW_MESSAGE_REQUEST,
    types.WORKSPACE_CODE_LENS_REFRESH,
    types.WORKSPACE_DIAGNOSTIC_REFRESH,
    types.WORKSPACE_INLAY_HINT_REFRESH,
    types.WORKSPACE_SEMANTIC_TOKENS_REFRESH,
)

_LOG_LEVELS = {
    types.MessageType.Error: logging.ERROR,
    types.MessageType.Warning: logging.WARNING,
    types.MessageType.Info: logging.INFO,
    types.MessageType.Log: logging.DEBUG,
}

InitializeHook = Callable[[types.InitializeParams], None]
# (section, scopeUri) -> value answered for one workspace/configuration item
ConfigurationProvider = Callable[[str | None, str | None], Any]


def _uri(path: Path) -> str:
    return path.absolute().as_uri()


def _acknowledge(params: Any) -> None:
    return None


def client_capabilities() -> types.ClientCapabilities:
    return types.ClientCapabilities(
        workspace=types.WorkspaceClientCapabilities(
            configuration=True,
            workspace_folders=True,
            did_change_configuration=types.DidChangeConfigurationClientCapabilities(dynamic_registration=True),
            did_change_watched_files=types.DidChangeWatchedFilesClientCapabilities(dynamic_registration=True),
        ),
        text_document=types.TextDocumentClientCapabilities(
            synchronization=types.TextDocumentSyncClientCapabilities(dynamic_registration=True, did_save=True),
            formatting=types.DocumentFormattingClientCapabilities(dynamic_registration=True),
            range_formatting=types.DocumentRangeFormattingClientCapabilities(dynamic_registration=True),
            code_action=types.CodeActionClientCapabilities(dynamic_registration=True),
            publish_diagnostics=types.PublishDiagnosticsClientCapabilities(related_information=True),
        ),
        window=types.WindowClientCapabilities(work_done_progress=True),
    )


class MessageTracer:
    """Logs JSON-RPC traffic at TRACE level.

    "messages" logs the kind, method and id of each message; "verbose" adds
    the params, result or error.
    """

    def __init__(self, name: str, level: str = "off") -> None:
        self.name = name
        self.level = level

    @property
    def enabled(self) -> bool:
        return self.level != "off" and trace_log.isEnabledFor(TRACE)

    def sent(self, data: bytes) -> None:
        self._trace("Sending", data)

    def received(self, data: bytes) -> None:
        self._trace("Received", data)

    def _trace(self, direction: str, data: bytes) -> None:
        if not self.enabled:
            return
        # JSON never carries a raw blank line, so the body follows the last one
        body = data.rpartition(b"\r\n\r\n")[2]
        if not body.strip():
            return
        try:
            message = json.loads(body)
        except ValueError:
            trace_log.log(TRACE, "[%s] %s %d undecodable bytes", self.name, direction, len(body))
            return
        if not isinstance(message, dict):
            return

        if "method" in message:
            if "id" in message:
                summary = f"request '{message['method']} - ({message['id']})'"
            else:
                summary = f"notification '{message['method']}'"
            label, detail = "Params", message.get("params")
        elif "error" in message:
            summary = f"error response ({message.get('id')})"
            label, detail = "Error", message["error"]
        else:
            summary = f"response ({message.get('id')})"
            label, detail = "Result", message.get("result")

        if self.level == "verbose":
            trace_log.log(TRACE, "[%s] %s %s.\n%s: %s", self.name, direction, summary, label, json.dumps(detail, indent=4))
        else:
            trace_log.log(TRACE, "[%s] %s %s.", self.name, direction, summary)


class _ServerOutput:
    """Reader handed to pygls; a reset after the peer left reads as end of stream."""

    def __init__(self, reader: asyncio.StreamReader, tracer: MessageTracer) -> None:
        self._reader = reader
        self._tracer = tracer

    def at_eof(self) -> bool:
        return self._reader.at_eof()

    async def readline(self) -> bytes:
        try:
            return await self._reader.readline()
        except (ConnectionResetError, BrokenPipeError):
            return b""

    async def readexactly(self, n: int) -> bytes:
        data = await self._reader.readexactly(n)
        self._tracer.received(data)
        return data


class _ServerInput:
    """Writer handed to pygls."""

    def __init__(self, writer: asyncio.StreamWriter, tracer: MessageTracer) -> None:
        self._writer = writer
        self._tracer = tracer

    def write(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._tracer.sent(data)
        self._writer.write(data)

    def close(self) -> None:
        self._writer.close()


class LanguageClient(BaseLanguageClient):
    """A client connection to one language server.

    Args:
        name: Label used in logs.
        reader: Stream carrying server output.
        writer: Stream carrying client output.
        process: The server process when the client owns it (stdio launch).
        document_selector: Filters deciding which documents this client serves.
        workspace_folders: Folders reported in the initialize request.
        initialization_options: Sent verbatim as `initializationOptions`.
        fill_initialize_params: Hook that may edit the initialize params in place.
        configuration: Answers `workspace/configuration` items; None answers null.
        trace: "off", "messages" or "verbose".
        request_timeout: Timeout for the initialize handshake.
        shutdown_timeout: Timeout for the shutdown request, and the grace
            period before an owned process is killed.
    """

    def __init__(
        self,
        name: str,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        process: asyncio.subprocess.Process | None = None,
        document_selector: Sequence[DocumentFilter] = (),
        workspace_folders: Sequence[WorkspaceFolder] = (),
        initialization_options: dict[str, Any] | None = None,
        fill_initialize_params: InitializeHook | None = None,
        configuration: ConfigurationProvider | None = None,
        trace: str = "off",
        request_timeout: float = 30.0,
        shutdown_timeout: float = 5.0,
    ) -> None:
        super().__init__(CLIENT_NAME, VERSION)
        self.name = name
        if trace not in TRACE_LEVELS:
            log.warning("%s: unknown trace level %r, tracing is off", name, trace)
            trace = "off"
        self.trace = trace
        self._tracer = MessageTracer(name, trace)
        self._reader = _ServerOutput(reader, self._tracer)
        self._writer = writer
        self._process = process
        self._document_selector = list(document_selector)
        self._workspace_folders = list(workspace_folders)
        self._initialization_options = initialization_options
        self._fill_initialize_params = fill_initialize_params
        self._read_configuration = configuration
        self._request_timeout = request_timeout
        self._shutdown_timeout = shutdown_timeout

        self._connection_stop = threading.Event()
        self._disconnected = asyncio.Event()
        self._connection: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._error: Exception | None = None
        self._running = False
        self._stopping = False

        self.server_info: types.ServerInfo | None = None
        self.capabilities: types.ServerCapabilities | None = None
        self.closed: Signal[Exception | None] = Signal(f"{name}.closed")

        self.protocol.set_writer(_ServerInput(writer, self._tracer))
        self.feature(types.WORKSPACE_CONFIGURATION)(self._configuration)
        self.feature(types.WORKSPACE_WORKSPACE_FOLDERS)(self._folders)
        for method in _ACKNOWLEDGED_REQUESTS:
            self.feature(method)(_acknowledge)
        self.feature(types.WINDOW_LOG_MESSAGE)(self._log_message)
        self.feature(types.WINDOW_SHOW_MESSAGE)(self._log_message)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def document_selector(self) -> list[DocumentFilter]:
        return list(self._document_selector)

    @property
    def server_version(self) -> str | None:
        return self.server_info.version if self.server_info is not None else None

    def handles(self, document: TextDocument) -> bool:
        """Whether `document` falls under this client's document selector."""
        return selector_matches(self._document_selector, document)

    def initialize_params(self) -> types.InitializeParams:
        root = self._workspace_folders[0].uri if self._workspace_folders else None
        params = types.InitializeParams(
            capabilities=client_capabilities(),
            process_id=os.getpid(),
            client_info=types.ClientInfo(name=CLIENT_NAME, version=VERSION),
            root_uri=_uri(root) if root else None,
            root_path=str(root) if root else None,
            workspace_folders=self._folders(None),
            initialization_options=self._initialization_options,
            trace=types.TraceValue(self.trace),
        )
        if self._fill_initialize_params is not None:
            self._fill_initialize_params(params)
        return params

    async def start(self) -> None:
        """Start reading and perform the initialize handshake.

        Raises:
            ClientError: If the server rejects or does not answer `initialize`.
        """
        if self._running:
            return

        self._connection = asyncio.create_task(self._serve())
        if self._process is not None and self._process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr(self._process.stderr))

        try:
            result = await self._call(self.initialize_async(self.initialize_params()), self._request_timeout)
        except asyncio.TimeoutError as e:
            await self._close()
            raise ClientError(f"{self.name}: initialize timed out after {self._request_timeout}s") from e
        except ClientError:
            await self._close()
            raise

        self.capabilities = result.capabilities
        self.server_info = result.server_info

        self.initialized(types.InitializedParams())
        self._running = True
        log.info("%s initialized (server %s)", self.name, self.server_version or "unknown")

    async def stop(self) -> None:
        """Shut the server down politely, then release the connection and process."""
        if self._stopping:
            return
        self._stopping = True

        if self._running and not self._disconnected.is_set():
            try:
                await self._call(self.shutdown_async(None), self._shutdown_timeout)
                self.exit(None)
            except (ClientError, asyncio.TimeoutError) as e:
                log.warning("%s did not shut down cleanly: %s", self.name, str(e) or "timed out")

        self._running = False
        await self._close()

    async def request(self, method: str, params: Any = None, *, timeout: float | None = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            ClientError: On an error response or a closed connection.
            asyncio.TimeoutError: When `timeout` elapses.
        """
        if self._connection is None or self._connection.done():
            raise ClientError(f"{self.name}: connection is not open")
        return await self._call(self.protocol.send_request_async(method, params), timeout)

    async def notify(self, method: str, params: Any = None) -> None:
        if self._connection is None or self._connection.done():
            raise ClientError(f"{self.name}: connection is not open")
        self.protocol.notify(method, params)

    async def _call(self, future: asyncio.Future[Any], timeout: float | None) -> Any:
        """Await a pygls response future, giving up when the connection drops."""
        disconnected = asyncio.ensure_future(self._disconnected.wait())
        try:
            done, _ = await asyncio.wait({future, disconnected}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            disconnected.cancel()

        if future in done:
            try:
                return future.result()
            except JsonRpcException as e:
                message = getattr(e, "message", None) or str(e) or "request failed"
                raise ClientError(f"{self.name}: {message}", code=getattr(e, "code", None)) from e

        future.cancel()
        if disconnected in done:
            raise ClientError(f"Connection to {self.name} closed")
        raise asyncio.TimeoutError()

    async def _serve(self) -> None:
        try:
            await run_async(
                stop_event=self._connection_stop,
                reader=self._reader,
                protocol=self.protocol,
                logger=log,
                error_handler=self._on_protocol_error,
            )
        finally:
            self._disconnected.set()
            if not self._stopping:
                log.warning("%s: server connection closed unexpectedly", self.name)
                self._running = False
                self.closed.emit(self._error)

    def _on_protocol_error(self, error: Exception, source: Any = None) -> None:
        log.error("%s: invalid message from server: %s", self.name, error)
        self._error = error

    # -------------------------------------------------------------------------
    # Server requests and notifications
    # -------------------------------------------------------------------------

    def _configuration(self, params: types.ConfigurationParams) -> list[Any]:
        if self._read_configuration is None:
            return [None for _ in params.items]
        return [self._read_configuration(item.section, item.scope_uri) for item in params.items]

    def _folders(self, params: Any) -> list[types.WorkspaceFolder] | None:
        return [types.WorkspaceFolder(uri=_uri(f.uri), name=f.name) for f in self._workspace_folders] or None

    def _log_message(self, params: types.LogMessageParams) -> None:
        log.log(_LOG_LEVELS.get(params.type, logging.INFO), "[%s] %s", self.name, params.message)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        while line := await stream.readline():
            log.debug("[%s stderr] %s", self.name, line.decode("utf-8", errors="replace").rstrip())

    async def _close(self) -> None:
        self._stopping = True
        self._running = False
        self._connection_stop.set()

        with contextlib.suppress(ConnectionError, RuntimeError):
            self._writer.close()
            await self._writer.wait_closed()

        process = self._process
        if process is not None and process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), timeout=self._shutdown_timeout)
            except asyncio.TimeoutError:
                log.warning("%s did not exit, killing it", self.name)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        for task in (self._connection, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

"""Launching a language server and connecting a client to it.

Two shapes are supported:

- `StdioLauncher` spawns `biome lsp-proxy` and talks over its stdin/stdout.
- `SocketLauncher` runs `biome __print_socket`, reads the address it prints
  (a Unix socket path or a Windows named pipe) and connects to it.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from biomelsp.config.schema import SessionConfig, TransportKind
from biomelsp.errors import ClientError, LaunchError
from biomelsp.host.protocol import WorkspaceFolder
from biomelsp.logging import get_logger
from biomelsp.lsp.client import ConfigurationProvider, InitializeHook, LanguageClient
from biomelsp.lsp.filters import DocumentFilter
from biomelsp.process import run_command

log = get_logger("lsp.launch")

# Stream buffer limit; Biome responses can be large
STREAM_LIMIT = 16 * 1024 * 1024


@dataclass
class LaunchOptions:
    """Everything a launcher needs besides the binary."""

    name: str
    cwd: Path | None = None
    config_file: Path | None = None
    document_selector: list[DocumentFilter] = field(default_factory=list)
    workspace_folders: list[WorkspaceFolder] = field(default_factory=list)
    initialization_options: dict[str, Any] | None = None
    fill_initialize_params: InitializeHook | None = None
    configuration: ConfigurationProvider | None = None
    trace: str = "off"


class Launcher(Protocol):
    async def launch(self, binary: Path, options: LaunchOptions) -> LanguageClient:
        """Start a server with `binary` and return an initialized client.

        Raises:
            LaunchError: The server could not be spawned or reached.
            ClientError: The initialize handshake failed.
        """
        ...


def lsp_proxy_args(config_file: Path | None) -> list[str]:
    args = ["lsp-proxy"]
    if config_file is not None:
        args += ["--config-path", str(config_file)]
    return args


class _BaseLauncher:
    def __init__(self, config: SessionConfig | None = None) -> None:
        self._config = config or SessionConfig()

    def _client(
        self,
        options: LaunchOptions,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        process: asyncio.subprocess.Process | None = None,
    ) -> LanguageClient:
        return LanguageClient(
            options.name,
            reader,
            writer,
            process=process,
            document_selector=options.document_selector,
            workspace_folders=options.workspace_folders,
            initialization_options=options.initialization_options,
            fill_initialize_params=options.fill_initialize_params,
            configuration=options.configuration,
            trace=options.trace,
            request_timeout=self._config.request_timeout,
            shutdown_timeout=self._config.shutdown_timeout,
        )


class StdioLauncher(_BaseLauncher):
    """Talks to `biome lsp-proxy` over the child's standard streams."""

    async def launch(self, binary: Path, options: LaunchOptions) -> LanguageClient:
        args = lsp_proxy_args(options.config_file)
        command = " ".join([str(binary), *args])
        log.info("Spawning %s", command)

        try:
            process = await asyncio.create_subprocess_exec(
                str(binary),
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(options.cwd) if options.cwd else None,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise LaunchError(f"Could not spawn {command}: {e}", command=command) from e

        assert process.stdin is not None and process.stdout is not None
        client = self._client(options, process.stdout, process.stdin, process)
        try:
            await client.start()
        except ClientError:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            await process.wait()
            raise
        return client


async def open_connection(address: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Connect to a Unix socket, or a named pipe on Windows."""
    if sys.platform == "win32":
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=STREAM_LIMIT)
        protocol = asyncio.StreamReaderProtocol(reader)
        transport, _ = await loop.create_pipe_connection(lambda: protocol, address)  # type: ignore[attr-defined]
        writer = asyncio.StreamWriter(transport, protocol, reader, loop)
        return reader, writer
    return await asyncio.open_unix_connection(address, limit=STREAM_LIMIT)


class SocketLauncher(_BaseLauncher):
    """Connects to the Biome daemon through the address `__print_socket` reports."""

    async def print_socket(self, binary: Path, cwd: Path | None = None) -> str:
        """Run `__print_socket` with a bounded wait and return the address.

        Raises:
            LaunchError: On spawn failure, non-zero exit or empty output.
        """
        result = await run_command(
            binary, ["__print_socket"], cwd=cwd, timeout=self._config.print_socket_timeout
        )
        address = result.stdout.rstrip()

        failed = result.exit_code not in (0, None) or result.status == "error"
        if failed or not address:
            message = f'Command "{result.command}" exited with code {result.exit_code}'
            if result.status == "timeout":
                message = f'Command "{result.command}" printed no address within {self._config.print_socket_timeout}s'
            if result.stderr:
                message += f"\nOutput:\n{result.stderr}"
            raise LaunchError(message, command=result.command, exit_code=result.exit_code, stderr=result.stderr)

        if result.status == "timeout":
            log.warning("%s timed out, using captured address %s", result.command, address)
        return address

    async def launch(self, binary: Path, options: LaunchOptions) -> LanguageClient:
        address = await self.print_socket(binary, options.cwd)
        log.info("Connecting %s to %s", options.name, address)

        try:
            reader, writer = await open_connection(address)
        except OSError as e:
            raise LaunchError(f'Could not connect to the Biome server at "{address}": {e}') from e

        client = self._client(options, reader, writer)
        await client.start()
        return client


def create_launcher(config: SessionConfig | None = None) -> Launcher:
    config = config or SessionConfig()
    if config.transport is TransportKind.SOCKET:
        return SocketLauncher(config)
    return StdioLauncher(config)

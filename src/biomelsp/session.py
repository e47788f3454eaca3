"""Lifecycle of one language server session.

A session is bound to a project, or to nothing for the global session that
serves unsaved and virtual documents. Lifecycle operations are serialized by
one lock per session: a `stop()` or `destroy()` requested while `start()` is
in flight runs right after it settles.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from biomelsp.constants import NAMESPACE, SUPPORTED_LANGUAGES
from biomelsp.errors import BinaryNotFoundError, ClientError
from biomelsp.events import Signal
from biomelsp.host.protocol import TextDocument
from biomelsp.logging import get_logger
from biomelsp.lsp.filters import DocumentFilter, global_selector, project_selector
from biomelsp.lsp.launch import LaunchOptions

if TYPE_CHECKING:
    from lsprotocol import types

    from biomelsp.host.protocol import Settings, WorkspaceFolder
    from biomelsp.locator import BinaryLocator, LocatedBinary
    from biomelsp.lsp.client import LanguageClient
    from biomelsp.lsp.launch import Launcher
    from biomelsp.project import Project

log = get_logger("session")


class SessionState(Enum):
    """State of a session as seen by listeners."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    RESTARTING = "restarting"  # stop chained to start, reported once
    ERROR = "error"  # resolution, launch or connection failure


class Session:
    """One language client bound to one project (or to the global context)."""

    def __init__(
        self,
        project: Project | None,
        locator: BinaryLocator,
        launcher: Launcher,
        *,
        workspace_folders: Sequence[WorkspaceFolder] = (),
        languages: Sequence[str] = SUPPORTED_LANGUAGES,
        settings: Settings | None = None,
    ) -> None:
        self._project = project
        self._locator = locator
        self._launcher = launcher
        self._workspace_folders = list(workspace_folders)
        self._languages = tuple(languages)
        self._settings = settings

        self._state = SessionState.STOPPED
        self._binary: LocatedBinary | None = None
        self._client: LanguageClient | None = None
        self._client_subscription: Callable[[], None] | None = None
        self._state_changed: Signal[SessionState] = Signal("session.state")
        self._lock = asyncio.Lock()
        self._pending_restart: asyncio.Future[None] | None = None
        self._destroyed = False

        self.error: Exception | None = None

    def __repr__(self) -> str:
        return f"<Session {self.name} {self._state.value}>"

    @property
    def name(self) -> str:
        return f"biome ({self._project.name if self._project else 'global'})"

    @property
    def project(self) -> Project | None:
        return self._project

    @property
    def is_global(self) -> bool:
        return self._project is None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def binary(self) -> LocatedBinary | None:
        return self._binary

    @property
    def binary_path(self) -> Path | None:
        return self._binary.path if self._binary else None

    @property
    def client(self) -> LanguageClient | None:
        return self._client

    @property
    def document_selector(self) -> list[DocumentFilter]:
        if self._project is None:
            return global_selector(self._languages)
        return project_selector(self._project.uri, self._languages)

    def handles(self, document: TextDocument) -> bool:
        """Routing check, delegated to the running client's document selector."""
        return self._client is not None and self._client.handles(document)

    def update_project(self, project: Project) -> None:
        """Adopt a new value of the same project; used from the next start on."""
        self._project = project

    def reset(self) -> None:
        """Forget the resolved binary so the next start resolves it again."""
        self._binary = None

    def on_state_change(self, listener: Callable[[SessionState], Any]) -> Callable[[], None]:
        if self._destroyed:
            return lambda: None
        return self._state_changed.connect(listener)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        log.debug("%s: %s -> %s", self.name, self._state.value, state.value)
        self._state = state
        self._state_changed.emit(state)

    async def start(self) -> None:
        """Resolve the binary if needed and launch the client.

        No-op while starting or running. Failures leave the session in ERROR
        with the exception in `error`; they are not raised.
        """
        if self._destroyed:
            log.warning("%s: start() called after destroy()", self.name)
            return
        async with self._lock:
            if self._destroyed:
                return
            await self._start(announce=True)

    async def stop(self) -> None:
        async with self._lock:
            await self._stop(announce=True)

    async def restart(self) -> None:
        """Stop and start again, observed as a single RESTARTING transition.

        A call made while an earlier restart has not yet reached its start
        phase joins that restart instead of queuing another one.
        """
        if self._destroyed:
            log.warning("%s: restart() called after destroy()", self.name)
            return

        pending = self._pending_restart
        if pending is not None:
            await asyncio.shield(pending)
            return

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending_restart = future
        try:
            async with self._lock:
                if self._destroyed:
                    return
                self._set_state(SessionState.RESTARTING)
                await self._stop(announce=False)
                # Requests from here on need a fresh cycle
                self._pending_restart = None
                await self._start(announce=False)
        finally:
            if self._pending_restart is future:
                self._pending_restart = None
            if not future.done():
                future.set_result(None)

    async def destroy(self) -> None:
        """Stop and drop all listeners. Terminal."""
        if self._destroyed:
            return
        self._destroyed = True
        async with self._lock:
            await self._stop(announce=True)
        self._state_changed.clear()

    async def _resolve(self) -> LocatedBinary | None:
        if self._binary is None:
            self._binary = await self._locator.resolve(self._project)
        return self._binary

    async def _start(self, *, announce: bool) -> None:
        if self._state in (SessionState.RUNNING, SessionState.STARTING):
            return
        if announce:
            self._set_state(SessionState.STARTING)

        try:
            binary = await self._resolve()
        except Exception as e:
            log.exception("%s: binary resolution failed", self.name)
            self.error = e
            self._set_state(SessionState.ERROR)
            return
        if binary is None:
            self.error = BinaryNotFoundError(
                f"No Biome binary found for {self.name}. Install @biomejs/biome as a "
                "dependency or set biome.lsp.bin."
            )
            log.error("%s", self.error)
            self._set_state(SessionState.ERROR)
            return

        # A client whose connection dropped is still attached
        await self._release_client()

        try:
            client = await self._launcher.launch(binary.path, self._launch_options())
        except Exception as e:
            self.error = e
            log.error("%s: failed to start %s: %s", self.name, binary.path, e)
            self._set_state(SessionState.ERROR)
            return

        self._client = client
        self._client_subscription = client.closed.connect(self._on_client_closed)
        self.error = None
        log.info("%s: running %s", self.name, binary.path)
        self._set_state(SessionState.RUNNING)

    async def _stop(self, *, announce: bool) -> None:
        if self._state is SessionState.STOPPED and self._client is None:
            return
        if announce:
            self._set_state(SessionState.STOPPING)

        await self._release_client()

        if announce:
            self._set_state(SessionState.STOPPED)

    async def _release_client(self) -> None:
        client, self._client = self._client, None
        if self._client_subscription is not None:
            self._client_subscription()
            self._client_subscription = None
        if client is not None:
            try:
                await client.stop()
            except Exception as e:
                log.warning("%s: error while stopping client: %s", self.name, e)

    def _on_client_closed(self, error: Exception | None) -> None:
        if self._state is not SessionState.RUNNING:
            return
        self.error = ClientError(f"{self.name}: language server connection lost" + (f": {error}" if error else ""))
        log.error("%s", self.error)
        self._set_state(SessionState.ERROR)

    def _fill_initialize_params(self, params: types.InitializeParams) -> None:
        if self._project is not None:
            params.root_uri = self._project.uri.absolute().as_uri()
            params.root_path = str(self._project.uri)

    def _scope(self, scope_uri: str | None = None) -> Path | None:
        if scope_uri:
            path = TextDocument.from_uri(scope_uri).path
            if path is not None:
                return path
        return self._project.uri if self._project else None

    def _configuration(self, section: str | None, scope_uri: str | None) -> Any:
        """Answer a `workspace/configuration` item from the `biome` settings."""
        head, _, key = (section or "").partition(".")
        if self._settings is None or head != NAMESPACE:
            return None
        return self._settings.get(key, self._scope(scope_uri))

    def _launch_options(self) -> LaunchOptions:
        project = self._project
        trace = "off"
        if self._settings is not None:
            trace = self._settings.get("lsp.trace.server", self._scope(), "off")
        return LaunchOptions(
            name=self.name,
            cwd=project.uri if project else None,
            config_file=project.config_file if project else None,
            document_selector=self.document_selector,
            workspace_folders=self._workspace_folders,
            fill_initialize_params=self._fill_initialize_params if project else None,
            configuration=self._configuration,
            trace=trace,
        )

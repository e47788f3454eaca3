"""Reconciles the live sessions against the projects in the workspace.

The orchestrator owns the `{Project: Session}` map and the lazily managed
global session. It reacts to folder changes, settings changes and lockfile
changes:

- folder changes run a reconciliation pass
- settings changes wait for a settle delay, reconcile, then restart the
  surviving sessions in the affected scope
- lockfile bursts are debounced per project into one restart

Reconciliation passes are serialized by one lock; restarts are serialized per
project by a finer lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from biomelsp.config.schema import Config, OrchestratorConfig, SessionConfig
from biomelsp.constants import GLOBAL_SCHEMES, LOCKFILES, NAMESPACE
from biomelsp.debounce import Debouncer
from biomelsp.events import Signal
from biomelsp.host.protocol import ConfigurationChange, Host, TextDocument, WorkspaceFolder
from biomelsp.locator import BinaryLocator
from biomelsp.logging import get_logger
from biomelsp.lsp.launch import Launcher, create_launcher
from biomelsp.monitor import FoldersChanged, WorkspaceMonitor
from biomelsp.project import Project
from biomelsp.registry import ProjectRegistry
from biomelsp.session import Session

log = get_logger("orchestrator")


class ExtensionState(Enum):
    """Process-wide lifecycle, written only by the orchestrator."""

    INITIALIZING = "initializing"
    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    RESTARTING = "restarting"


@dataclass
class ExtensionContext:
    """State and collaborators shared by every component of one orchestrator."""

    host: Host
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    session_config: SessionConfig = field(default_factory=SessionConfig)
    state: ExtensionState = ExtensionState.INITIALIZING
    active_folder: WorkspaceFolder | None = None
    active_project: Project | None = None
    state_changed: Signal[ExtensionState] = field(default_factory=lambda: Signal("extension.state"))

    def set_state(self, state: ExtensionState) -> None:
        if state is self.state:
            return
        log.info("Extension state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.state_changed.emit(state)

    def on_state_change(self, handler: Callable[[ExtensionState], Any]) -> Callable[[], None]:
        return self.state_changed.connect(handler)


class Orchestrator:
    """Keeps exactly one session per project, plus the global session on demand."""

    def __init__(
        self,
        host: Host,
        config: Config | None = None,
        *,
        locator: BinaryLocator | None = None,
        launcher: Launcher | None = None,
        registry: ProjectRegistry | None = None,
        monitor: WorkspaceMonitor | None = None,
    ) -> None:
        config = config or Config()
        self.context = ExtensionContext(host=host, config=config.orchestrator, session_config=config.session)
        self.locator = locator or BinaryLocator(host, probe_timeout=config.session.probe_timeout)
        self.launcher = launcher or create_launcher(config.session)
        self.registry = registry or ProjectRegistry(host)
        self.monitor = monitor or WorkspaceMonitor(host.workspace)

        self._sessions: dict[Project, Session] = {}
        self._global_session: Session | None = None
        self._lockfile_watches: dict[Project, Callable[[], None]] = {}
        self._restart_locks: dict[Project, asyncio.Lock] = {}
        self._reconcile_lock = asyncio.Lock()
        self._global_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._subscriptions: list[Callable[[], None]] = []
        self._started = False

        self._lockfile_debouncer: Debouncer[Project] = Debouncer(
            config.orchestrator.lockfile_debounce, self.restart_project, spawn=self._spawn
        )

    @property
    def host(self) -> Host:
        return self.context.host

    @property
    def state(self) -> ExtensionState:
        return self.context.state

    @property
    def sessions(self) -> MappingProxyType[Project, Session]:
        return MappingProxyType(self._sessions)

    @property
    def global_session(self) -> Session | None:
        return self._global_session

    def session_for(self, document: TextDocument) -> Session | None:
        """The session whose document selector accepts `document`."""
        for session in self._all_sessions():
            if session.handles(document):
                return session
        return None

    def _all_sessions(self) -> list[Session]:
        sessions = list(self._sessions.values())
        if self._global_session is not None:
            sessions.append(self._global_session)
        return sessions

    def _enabled(self) -> bool:
        return self.host.settings.get("enabled", None, True) is not False

    # =========================================================================
    # Top-level lifecycle
    # =========================================================================

    async def activate(self) -> None:
        """Subscribe to the host and start when enabled."""
        self.monitor.init()

        workspace = self.host.workspace
        self._subscriptions = [
            self.monitor.folders_changed.connect(self._on_folders_changed),
            self.monitor.active_folder_changed.connect(self._on_active_folder_changed),
            self.host.settings.on_did_change(self._on_configuration_changed),
            workspace.on_did_change_active_document(self._on_active_document_changed),
            workspace.on_did_open_document(self._on_document_changed),
            workspace.on_did_close_document(self._on_document_changed),
        ]
        self.context.active_folder = self.monitor.active_folder

        if self._enabled():
            await self.start()
        else:
            log.info("Biome is disabled")
            self.context.set_state(ExtensionState.STOPPED)

    async def deactivate(self) -> None:
        """Unsubscribe from the host and stop every session."""
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        self.monitor.dispose()
        self._lockfile_debouncer.cancel_all()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        await self.stop()

    async def start(self) -> None:
        if self._started:
            return
        self.context.set_state(ExtensionState.STARTING)
        self._started = True
        await self.reconcile()
        await self.sync_global_session()
        self._update_active_project(self.host.workspace.active_document)
        self.context.set_state(ExtensionState.STARTED)

    async def stop(self) -> None:
        self.context.set_state(ExtensionState.STOPPING)
        self._started = False
        self._lockfile_debouncer.cancel_all()
        await self.reconcile([])
        await self.sync_global_session()
        self.context.set_state(ExtensionState.STOPPED)

    async def restart(self) -> None:
        """Restart every live session; starts from scratch when stopped."""
        if not self._started:
            await self.start()
            return
        self.context.set_state(ExtensionState.RESTARTING)
        await asyncio.gather(
            *(self.restart_project(project) for project in list(self._sessions)),
            self._restart_global_session(),
        )
        self.context.set_state(ExtensionState.STARTED)

    async def reset(self) -> None:
        """Forget every resolved binary, then restart."""
        log.info("Resetting: binaries will be resolved again")
        for session in self._all_sessions():
            session.reset()
        await self.restart()

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile(self, current_projects: list[Project] | None = None) -> None:
        """Make the live sessions match `current_projects` (the registry's by default).

        Sessions of unchanged projects are left alone; a project whose value
        changed without changing identity is re-keyed in place.
        """
        async with self._reconcile_lock:
            if current_projects is None:
                current_projects = self.registry.discover_projects() if self._started else []

            current = list(dict.fromkeys(current_projects))
            removed = [project for project in self._sessions if project not in current]
            added = [project for project in current if project not in self._sessions]

            for project in removed:
                try:
                    await self._destroy_session(project)
                except Exception:
                    log.exception("Failed to destroy session for %s", project)

            for project in current:
                self._rekey(project)

            for project in added:
                try:
                    await self._create_session(project)
                except Exception:
                    log.exception("Failed to create session for %s", project)

            self._update_active_project(self.host.workspace.active_document)
            if added or removed:
                log.info(
                    "Reconciled: +%s -%s (%d live)",
                    [p.name for p in added],
                    [p.name for p in removed],
                    len(self._sessions),
                )

    def _rekey(self, project: Project) -> None:
        for live in self._sessions:
            if live == project:
                break
        else:
            return
        if live.config_file == project.config_file:
            return
        session = self._sessions.pop(live)
        session.update_project(project)
        self._sessions[project] = session
        log.debug("Updated %s (config file %s)", project, project.config_file)

    def _make_session(self, project: Project | None) -> Session:
        folders = [project.folder] if project is not None and project.folder is not None else []
        return Session(project, self.locator, self.launcher, workspace_folders=folders, settings=self.host.settings)

    async def _create_session(self, project: Project) -> None:
        # Watch first: a project only counts as live once both exist
        unwatch = self.host.watchers.watch(
            project.uri, LOCKFILES, lambda path, project=project: self._on_lockfile_changed(project, path)
        )
        session = self._make_session(project)
        self._lockfile_watches[project] = unwatch
        self._sessions[project] = session
        await session.start()

    async def _destroy_session(self, project: Project) -> None:
        session = self._sessions.pop(project)
        self._lockfile_debouncer.cancel(project)
        unwatch = self._lockfile_watches.pop(project, None)
        if unwatch is not None:
            unwatch()
        self._restart_locks.pop(project, None)
        if self.context.active_project == project:
            self.context.active_project = None
        await session.destroy()

    async def restart_project(self, project: Project) -> None:
        """Restart one project's session, one restart per project at a time."""
        lock = self._restart_locks.setdefault(project, asyncio.Lock())
        async with lock:
            session = self._sessions.get(project)
            if session is None:
                return
            log.info("Restarting %s", session.name)
            await session.restart()

    # =========================================================================
    # Global session
    # =========================================================================

    def _needs_global_session(self) -> bool:
        return self._started and any(
            document.scheme in GLOBAL_SCHEMES for document in self.host.workspace.open_documents
        )

    async def sync_global_session(self) -> None:
        """Create the global session when a global document is open, destroy it after the last one closes."""
        async with self._global_lock:
            needed = self._needs_global_session()
            if needed and self._global_session is None:
                session = self._make_session(None)
                self._global_session = session
                await session.start()
            elif not needed and self._global_session is not None:
                session, self._global_session = self._global_session, None
                await session.destroy()

    async def _restart_global_session(self) -> None:
        async with self._global_lock:
            if self._global_session is not None:
                await self._global_session.restart()

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _on_folders_changed(self, event: FoldersChanged) -> None:
        if self._started:
            self._spawn(self.reconcile())

    def _on_active_folder_changed(self, folder: WorkspaceFolder | None) -> None:
        self.context.active_folder = folder

    def _on_active_document_changed(self, document: TextDocument | None) -> None:
        self._update_active_project(document)
        # Without folders the active file decides the project
        if self._started and not self.host.workspace.folders:
            self._spawn(self.reconcile())

    def _on_document_changed(self, document: TextDocument) -> None:
        if document.scheme in GLOBAL_SCHEMES:
            self._spawn(self.sync_global_session())

    def _on_lockfile_changed(self, project: Project, path: Path) -> None:
        if project not in self._sessions:
            return
        log.debug("Lockfile %s changed", path)
        self._lockfile_debouncer.trigger(project)

    def _on_configuration_changed(self, change: ConfigurationChange) -> None:
        if change.affects(NAMESPACE):
            self._spawn(self._apply_configuration_change(change))

    async def _apply_configuration_change(self, change: ConfigurationChange) -> None:
        await asyncio.sleep(self.context.config.settle_delay)

        if not self._enabled():
            if self._started:
                log.info("Biome was disabled")
                await self.stop()
            return
        if not self._started:
            await self.start()
            return

        existing = set(self._sessions)
        await self.reconcile()

        affected = [
            project
            for project in self._sessions
            if project in existing and change.affects(NAMESPACE, project.uri)
        ]
        restarts: list[Awaitable[None]] = [self.restart_project(project) for project in affected]
        if change.is_global:
            restarts.append(self._restart_global_session())
        await asyncio.gather(*restarts)

    def _update_active_project(self, document: TextDocument | None) -> None:
        if document is None or document.path is None:
            return
        owners = [project for project in self._sessions if project.contains(document.path)]
        # Nested projects: the deepest directory owns the file
        self.context.active_project = max(owners, key=lambda p: len(p.uri.parts), default=None)

    # =========================================================================
    # Background tasks
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("Background task failed: %s", error, exc_info=error)

    async def wait_idle(self) -> None:
        """Wait until no background work or pending debounce remains."""
        while self._tasks or self._lockfile_debouncer.pending():
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._lockfile_debouncer.delay / 4 or 0.01)

"""Contracts for the host environment the orchestrator runs inside.

An editor integration implements these protocols on top of its own APIs.
`biomelsp.host.local` implements them for standalone use from the CLI.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import unquote, urlparse

from biomelsp.constants import EXTENSION_LANGUAGES, FILE_SCHEME

Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class WorkspaceFolder:
    """A folder open in the host. Identity is (uri, name)."""

    uri: Path
    name: str
    index: int = field(default=0, compare=False)

    def contains(self, path: Path) -> bool:
        return path == self.uri or self.uri in path.parents


@dataclass(frozen=True)
class TextDocument:
    """A document known to the host."""

    uri: str
    scheme: str = FILE_SCHEME
    path: Path | None = None
    language_id: str = ""

    @classmethod
    def from_path(cls, path: Path, language_id: str | None = None) -> TextDocument:
        path = path.absolute()
        if language_id is None:
            language_id = EXTENSION_LANGUAGES.get(path.suffix.lower(), "plaintext")
        return cls(uri=path.as_uri(), scheme=FILE_SCHEME, path=path, language_id=language_id)

    @classmethod
    def from_uri(cls, uri: str, language_id: str = "") -> TextDocument:
        parsed = urlparse(uri)
        path = Path(unquote(parsed.path)) if parsed.scheme == FILE_SCHEME else None
        return cls(uri=uri, scheme=parsed.scheme, path=path, language_id=language_id)


@dataclass(frozen=True)
class ConfigurationChange:
    """A settings change notification.

    Attributes:
        sections: Fully qualified keys that changed, e.g. {"biome", "biome.lsp.bin"}.
        scopes: Directories the change was narrowed to. None means every scope.
    """

    sections: frozenset[str]
    scopes: frozenset[Path] | None = None

    def affects(self, section: str, scope: Path | None = None) -> bool:
        """True when `section` (or anything under it) changed for `scope`."""
        if not any(
            changed == section or changed.startswith(section + ".") or section.startswith(changed + ".")
            for changed in self.sections
        ):
            return False
        if scope is None or self.scopes is None:
            return True
        return any(scope == changed or changed in scope.parents for changed in self.scopes)

    @property
    def is_global(self) -> bool:
        return self.scopes is None


@dataclass(frozen=True)
class DownloadedBinary:
    version: str
    path: Path


@runtime_checkable
class Settings(Protocol):
    """Scoped read/write access to the `biome` settings namespace.

    Keys are relative to the namespace ("lsp.bin", "enabled"). A scope is a
    directory; lookups fall back from the most specific scope to global.
    The empty key reads the whole namespace.
    """

    def get(self, key: str, scope: Path | None = None, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, scope: Path | None = None) -> None: ...

    def on_did_change(self, handler: Callable[[ConfigurationChange], None]) -> Unsubscribe: ...


@runtime_checkable
class Workspace(Protocol):
    """Folder list, active document and open documents of the host."""

    @property
    def folders(self) -> Sequence[WorkspaceFolder]: ...

    @property
    def active_document(self) -> TextDocument | None: ...

    @property
    def open_documents(self) -> Sequence[TextDocument]: ...

    def folder_for(self, path: Path) -> WorkspaceFolder | None: ...

    def on_did_change_folders(self, handler: Callable[[None], None]) -> Unsubscribe: ...

    def on_did_change_active_document(
        self, handler: Callable[[TextDocument | None], None]
    ) -> Unsubscribe: ...

    def on_did_open_document(self, handler: Callable[[TextDocument], None]) -> Unsubscribe: ...

    def on_did_close_document(self, handler: Callable[[TextDocument], None]) -> Unsubscribe: ...


class FileWatcherFactory(Protocol):
    """Watches fixed file names directly inside a directory.

    The handler receives the path of the file that was changed, created or
    deleted.
    """

    def watch(
        self, base: Path, filenames: Sequence[str], handler: Callable[[Path], None]
    ) -> Unsubscribe: ...


class Prompter(Protocol):
    async def ask(self, message: str, *choices: str) -> str | None:
        """Show `message` with `choices`; None when dismissed."""
        ...


class Storage(Protocol):
    """Persistent key-value storage owned by the extension."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class BinaryDownloader(Protocol):
    async def download(self) -> DownloadedBinary | None:
        """Fetch a Biome binary and return where it was installed."""
        ...


@dataclass
class Host:
    """Bundle of host collaborators handed to every component."""

    settings: Settings
    workspace: Workspace
    watchers: FileWatcherFactory
    prompter: Prompter | None = None
    storage: Storage | None = None
    downloader: BinaryDownloader | None = None

"""Binary locator strategies.

The set is closed: `SettingsStrategy`, `NodeModulesStrategy`,
`YarnPnpStrategy`, `PathStrategy` and `DownloadStrategy`, each tagged with a
`StrategyKind`. Strategies never raise for "not found" and never check that
their candidate exists; the locator verifies the final path.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Union

from pydantic import StrictStr, TypeAdapter, ValidationError

from biomelsp.constants import DEPENDENCY_MANIFEST, DOWNLOADED_BINARY_KEY, MAIN_PACKAGE
from biomelsp.locator.node import PNP_MANIFESTS, PnpResolver, directory_issuer, find_companion_binary
from biomelsp.locator.platform import PlatformInfo
from biomelsp.logging import get_logger

if TYPE_CHECKING:
    from biomelsp.host.protocol import Host, Settings
    from biomelsp.project import Project

log = get_logger("locator")

# `lsp.bin` is either a path or a map of platform identifier -> path
_BIN_SETTING: TypeAdapter[str | dict[str, str]] = TypeAdapter(Union[StrictStr, dict[StrictStr, StrictStr]])

DOWNLOAD_CHOICE = "Download and install"
NOT_NOW_CHOICE = "No"
NEVER_CHOICE = "Do not show again"


class StrategyKind(Enum):
    """Which strategy produced a binary."""

    SETTINGS = "settings"
    NODE_MODULES = "node_modules"
    YARN_PNP = "yarn_pnp"
    PATH = "path"
    DOWNLOAD = "download"


class BinaryLocatorStrategy(Protocol):
    kind: StrategyKind

    async def resolve(self, project: Project | None) -> Path | None:
        """Candidate path for `project` (None is the global context)."""
        ...


def _scope(project: Project | None) -> Path | None:
    return project.uri if project is not None else None


class SettingsStrategy:
    """Reads `lsp.bin`, falling back to the deprecated `lspBin` when unset.

    Map values are looked up by exact platform identifier only. Empty or
    malformed values count as unset.
    """

    kind = StrategyKind.SETTINGS

    def __init__(self, settings: Settings, platform: PlatformInfo) -> None:
        self._settings = settings
        self._platform = platform

    def _configured(self, scope: Path | None) -> str | dict[str, str] | None:
        value = self._settings.get("lsp.bin", scope)
        if value is None or value == "":
            value = self._settings.get("lspBin", scope)
        if value is None or value == "":
            return None
        try:
            return _BIN_SETTING.validate_python(value)
        except ValidationError:
            log.warning("Ignoring malformed lsp.bin setting: %r", value)
            return None

    async def resolve(self, project: Project | None) -> Path | None:
        scope = _scope(project)
        value = self._configured(scope)

        if isinstance(value, Mapping):
            value = value.get(self._platform.identifier)
            if value is None:
                log.debug("lsp.bin has no entry for %s", self._platform.identifier)
        if not value:
            return None

        path = Path(value).expanduser()
        if not path.is_absolute():
            path = (scope or Path.cwd()) / path
        return path


class NodeModulesStrategy:
    """Finds the platform companion package installed next to @biomejs/biome."""

    kind = StrategyKind.NODE_MODULES

    def __init__(self, platform: PlatformInfo) -> None:
        self._platform = platform

    async def resolve(self, project: Project | None) -> Path | None:
        if project is None:
            return None
        try:
            return find_companion_binary(project.uri, self._platform)
        except OSError as e:
            log.debug("node_modules lookup failed in %s: %s", project.uri, e)
            return None


class YarnPnpStrategy:
    """Resolves the companion binary through `.pnp.cjs` / `.pnp.js`."""

    kind = StrategyKind.YARN_PNP

    def __init__(self, platform: PlatformInfo, node: str | None = None, timeout: float = 10.0) -> None:
        self._platform = platform
        self._node = node
        self._timeout = timeout

    async def resolve(self, project: Project | None) -> Path | None:
        if project is None:
            return None

        for name in PNP_MANIFESTS:
            manifest = project.uri / name
            if not manifest.is_file():
                continue

            resolver = PnpResolver(manifest, node=self._node, timeout=self._timeout)
            try:
                package = await resolver.resolve_request(
                    f"{MAIN_PACKAGE}/package.json", directory_issuer(project.uri)
                )
                if package is None:
                    continue
                return await resolver.resolve_request(
                    f"{self._platform.package_name}/{self._platform.binary_name}", str(package)
                )
            except Exception as e:
                log.debug("Yarn PnP resolution through %s failed: %s", manifest, e)
                return None

        return None


class PathStrategy:
    """Searches PATH left to right, unless `searchInPath` is disabled."""

    kind = StrategyKind.PATH

    def __init__(
        self,
        settings: Settings,
        platform: PlatformInfo,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._platform = platform
        self._environ = environ

    async def resolve(self, project: Project | None) -> Path | None:
        if self._settings.get("searchInPath", _scope(project), True) is False:
            return None

        environ = os.environ if self._environ is None else self._environ
        for entry in environ.get("PATH", "").split(os.pathsep):
            if not entry:
                continue
            candidate = Path(entry) / self._platform.binary_name
            if candidate.is_file():
                return candidate
        return None


class DownloadStrategy:
    """Offers a downloaded binary in the global context.

    Skipped whenever a workspace folder has dependency-manager metadata, so
    projects that pin Biome are never steered to an unpinned copy. A binary
    downloaded earlier is reused without prompting.
    """

    kind = StrategyKind.DOWNLOAD

    def __init__(self, host: Host) -> None:
        self._host = host

    def _manages_dependencies(self) -> bool:
        return any((folder.uri / DEPENDENCY_MANIFEST).is_file() for folder in self._host.workspace.folders)

    def _cached(self) -> Path | None:
        storage = self._host.storage
        record = storage.get(DOWNLOADED_BINARY_KEY) if storage is not None else None
        if not isinstance(record, Mapping) or not isinstance(record.get("path"), str):
            return None
        path = Path(record["path"])
        if not path.is_file():
            log.info("Previously downloaded binary %s is gone", path)
            return None
        return path

    async def resolve(self, project: Project | None) -> Path | None:
        if project is not None or self._manages_dependencies():
            return None

        cached = self._cached()
        if cached is not None:
            return cached

        settings = self._host.settings
        if settings.get("suggestInstallingGlobally", None, True) is False:
            return None
        if self._host.prompter is None:
            return None

        answer = await self._host.prompter.ask(
            "Biome could not be found. Would you like to download and install it?",
            DOWNLOAD_CHOICE,
            NOT_NOW_CHOICE,
            NEVER_CHOICE,
        )
        if answer == NEVER_CHOICE:
            settings.set("suggestInstallingGlobally", False)
            return None
        if answer != DOWNLOAD_CHOICE:
            return None

        if self._host.downloader is None:
            log.warning("No binary downloader is available in this host")
            return None

        downloaded = await self._host.downloader.download()
        if downloaded is None:
            return None

        if self._host.storage is not None:
            self._host.storage.set(
                DOWNLOADED_BINARY_KEY, {"version": downloaded.version, "path": str(downloaded.path)}
            )
        log.info("Downloaded Biome %s to %s", downloaded.version, downloaded.path)
        return downloaded.path

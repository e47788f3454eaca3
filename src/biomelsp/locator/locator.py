"""Ordered binary resolution with unshimming."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from biomelsp.locator.platform import PlatformInfo
from biomelsp.locator.strategies import (
    BinaryLocatorStrategy,
    DownloadStrategy,
    NodeModulesStrategy,
    PathStrategy,
    SettingsStrategy,
    StrategyKind,
    YarnPnpStrategy,
)
from biomelsp.logging import get_logger
from biomelsp.process import run_command

if TYPE_CHECKING:
    from collections.abc import Mapping

    from biomelsp.host.protocol import Host
    from biomelsp.project import Project

log = get_logger("locator")

# `__where_am_i` exists from this major version on
UNSHIM_MIN_MAJOR = 2

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class LocatedBinary:
    path: Path
    kind: StrategyKind


def parse_version(output: str) -> tuple[int, int, int] | None:
    """Parse the text after "Version: " in `biome --version` output."""
    _, marker, rest = output.partition("Version: ")
    if not marker:
        return None
    match = _VERSION_RE.match(rest.strip())
    if match is None:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


class BinaryLocator:
    """Resolves the Biome binary for a project or for the global context.

    Project order: settings, node_modules, Yarn PnP, PATH.
    Global order: settings, PATH, download.
    The first candidate that exists on disk wins and is then unshimmed.
    """

    def __init__(
        self,
        host: Host,
        platform: PlatformInfo | None = None,
        *,
        unshim: bool = True,
        probe_timeout: float = 5.0,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._platform = platform or PlatformInfo.current()
        self._unshim = unshim
        self._probe_timeout = probe_timeout

        settings = SettingsStrategy(host.settings, self._platform)
        path = PathStrategy(host.settings, self._platform, environ)
        self._project_strategies: tuple[BinaryLocatorStrategy, ...] = (
            settings,
            NodeModulesStrategy(self._platform),
            YarnPnpStrategy(self._platform),
            path,
        )
        self._global_strategies: tuple[BinaryLocatorStrategy, ...] = (
            settings,
            path,
            DownloadStrategy(host),
        )

    @property
    def platform(self) -> PlatformInfo:
        return self._platform

    def strategies_for(self, project: Project | None) -> tuple[BinaryLocatorStrategy, ...]:
        return self._global_strategies if project is None else self._project_strategies

    async def resolve(self, project: Project | None) -> LocatedBinary | None:
        """Find a usable binary for `project` (None is the global context)."""
        label = project.name if project is not None else "global context"

        for strategy in self.strategies_for(project):
            try:
                candidate = await strategy.resolve(project)
            except Exception:
                log.exception("Strategy %s failed for %s", strategy.kind.value, label)
                continue

            if candidate is None:
                continue
            if not candidate.is_file():
                log.debug("%s candidate %s does not exist", strategy.kind.value, candidate)
                continue

            log.info("Found Biome binary for %s via %s: %s", label, strategy.kind.value, candidate)
            if self._unshim:
                candidate = await self.unshim(candidate, project)
            return LocatedBinary(candidate, strategy.kind)

        log.warning("No Biome binary found for %s", label)
        return None

    async def unshim(self, path: Path, project: Project | None = None) -> Path:
        """Replace a package-manager shim with the real executable.

        Every failure keeps `path`.
        """
        cwd = project.uri if project is not None else None

        version_result = await run_command(path, ["--version"], cwd=cwd, timeout=self._probe_timeout)
        if not version_result.success:
            log.warning(
                "Could not query the version of %s: %s",
                path,
                (version_result.stderr or version_result.stdout).strip() or version_result.status,
            )
            return path

        version = parse_version(version_result.stdout)
        if version is None or version[0] < UNSHIM_MIN_MAJOR:
            log.debug("Skipping unshim for %s (version %s)", path, version)
            return path

        where_result = await run_command(path, ["__where_am_i"], cwd=cwd, timeout=self._probe_timeout)
        if not where_result.success:
            log.warning(
                "Could not unshim %s: %s",
                path,
                (where_result.stderr or where_result.stdout).strip() or where_result.status,
            )
            return path

        real = where_result.stdout.strip()
        if not real:
            return path

        real_path = Path(real)
        if real_path == path:
            return path
        if not real_path.is_file():
            log.warning("Unshimmed path %s for %s does not exist", real_path, path)
            return path

        log.info("Unshimmed %s to %s", path, real_path)
        return real_path

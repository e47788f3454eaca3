"""Node.js package resolution helpers.

`find_package_json` mirrors Node's node_modules lookup: starting from a
directory, check `<dir>/node_modules/<package>` for each ancestor, never
appending node_modules to a directory that already is one. Plug'n'Play
installs have no node_modules tree, so `PnpResolver` asks the project's
`.pnp.cjs` manifest through a short node subprocess instead.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterator
from pathlib import Path

from biomelsp.constants import MAIN_PACKAGE
from biomelsp.errors import BiomeLspError
from biomelsp.locator.platform import PlatformInfo
from biomelsp.logging import get_logger
from biomelsp.process import run_command

log = get_logger("locator.node")

PNP_MANIFESTS = (".pnp.cjs", ".pnp.js")

# argv: [node, manifest, request, issuer]
_PNP_SCRIPT = """
const [manifest, request, issuer] = process.argv.slice(1);
const pnp = require(manifest);
const resolved = pnp.resolveRequest(request, issuer);
if (resolved) process.stdout.write(resolved);
"""


def node_modules_dirs(start: Path) -> Iterator[Path]:
    for directory in (start, *start.parents):
        if directory.name == "node_modules":
            continue
        yield directory / "node_modules"


def find_package_json(package: str, start: Path) -> Path | None:
    """Locate `<package>/package.json` visible from `start`."""
    for modules in node_modules_dirs(start):
        candidate = modules / package / "package.json"
        if candidate.is_file():
            return candidate
    return None


def find_companion_binary(project_dir: Path, platform: PlatformInfo) -> Path | None:
    """Resolve the platform companion package's binary through the main package.

    The companion is looked up from the real location of the main package so
    symlinked layouts such as pnpm's resolve like Node does.
    """
    main = find_package_json(MAIN_PACKAGE, project_dir)
    if main is None:
        return None

    package_dir = main.parent.resolve()
    companion = find_package_json(platform.package_name, package_dir)
    if companion is None:
        log.debug("%s found at %s but %s is not installed", MAIN_PACKAGE, package_dir, platform.package_name)
        return None

    return companion.parent / platform.binary_name


class PnpResolver:
    """Resolves module requests through a Yarn Plug'n'Play manifest."""

    def __init__(self, manifest: Path, node: str | None = None, timeout: float = 10.0) -> None:
        self.manifest = manifest
        self._node = node
        self._timeout = timeout

    async def resolve_request(self, request: str, issuer: str) -> Path | None:
        """Run `resolveRequest(request, issuer)`; an issuer ending in a separator is a directory.

        Raises:
            BiomeLspError: When node is missing or the manifest throws.
        """
        node = self._node or shutil.which("node")
        if node is None:
            raise BiomeLspError("node executable not found on PATH")

        result = await run_command(
            node,
            ["-e", _PNP_SCRIPT, str(self.manifest), request, issuer],
            cwd=self.manifest.parent,
            timeout=self._timeout,
        )
        if not result.success:
            raise BiomeLspError(f"PnP resolution of {request} failed: {result.stderr.strip()}")

        resolved = result.stdout.strip()
        return Path(resolved) if resolved else None


def directory_issuer(directory: Path) -> str:
    return f"{directory}{os.sep}"

"""Platform identification for binary lookups."""

from __future__ import annotations

import functools
import os
import platform
import subprocess
import sys
from dataclasses import dataclass

from biomelsp.constants import COMPANION_SCOPE
from biomelsp.logging import get_logger

log = get_logger("locator.platform")

# platform.machine() -> Node.js style architecture names
_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "i386": "ia32",
    "i686": "ia32",
    "ppc64le": "ppc64",
    "s390x": "s390x",
}


def current_os() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def current_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def is_wsl() -> bool:
    if current_os() != "linux":
        return False
    if os.environ.get("WSL_DISTRO_NAME"):
        return True
    return "microsoft" in platform.release().lower()


@functools.lru_cache(maxsize=1)
def is_musl() -> bool:
    """Whether the host C library is musl (never true on WSL)."""
    if current_os() != "linux" or is_wsl():
        return False
    try:
        output = subprocess.run(
            ["ldd", "--version"], capture_output=True, text=True, timeout=5, check=False
        )
    except (OSError, subprocess.SubprocessError) as e:
        log.debug("Could not run ldd: %s", e)
        return False
    # musl's ldd prints its banner on stderr
    return "musl" in output.stdout or "musl" in output.stderr


@dataclass(frozen=True)
class PlatformInfo:
    """Operating system, architecture and libc flavour of a host."""

    os: str
    arch: str
    musl: bool = False

    @classmethod
    def current(cls) -> PlatformInfo:
        return cls(os=current_os(), arch=current_arch(), musl=is_musl())

    @property
    def identifier(self) -> str:
        """Key used in the `lsp.bin` settings map, e.g. "linux-x64-musl"."""
        suffix = "-musl" if self.musl else ""
        return f"{self.os}-{self.arch}{suffix}"

    @property
    def binary_name(self) -> str:
        return "biome.exe" if self.os == "win32" else "biome"

    @property
    def package_name(self) -> str:
        """Companion npm package; Linux always uses the statically linked musl build."""
        suffix = "-musl" if self.os == "linux" else ""
        return f"{COMPANION_SCOPE}/cli-{self.os}-{self.arch}{suffix}"

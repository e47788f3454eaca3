"""Exception hierarchy for biomelsp."""

from __future__ import annotations


class BiomeLspError(Exception):
    """Base class for all biomelsp errors."""


class BinaryNotFoundError(BiomeLspError):
    """No locator strategy produced a usable Biome binary."""


class LaunchError(BiomeLspError):
    """The language server process could not be started or reached.

    Attributes:
        command: The command line that was run, if any.
        exit_code: Exit code of the process, if it exited.
        stderr: Captured error output, possibly empty.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class ClientError(BiomeLspError):
    """The language client failed during the handshake or a request."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code

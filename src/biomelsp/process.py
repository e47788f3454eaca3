"""Short-lived subprocess execution with bounded output collection."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from pathlib import Path

from biomelsp.logging import get_logger

log = get_logger("process")


@dataclass
class CommandResult:
    """Result of running a command to completion.

    Attributes:
        command: The command that was executed (including args).
        exit_code: Process exit code, or None if it was killed on timeout.
        stdout: Captured standard output (partial on timeout).
        stderr: Captured standard error (partial on timeout).
        status: "ok", "error" or "timeout".
        duration_ms: Execution duration in milliseconds.
    """

    command: str
    exit_code: int | None
    stdout: str
    stderr: str
    status: str  # "ok", "error", "timeout"
    duration_ms: float

    @property
    def success(self) -> bool:
        """True if command completed with exit code 0."""
        return self.exit_code == 0

    def __repr__(self) -> str:
        if self.success:
            return f"<CommandResult ok, {len(self.stdout)} chars>"
        return f"<CommandResult {self.status}, exit={self.exit_code}>"


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while chunk := await stream.read(4096):
        sink.extend(chunk)


async def run_command(
    command: str | Path,
    args: list[str] | None = None,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = 10.0,
) -> CommandResult:
    """Run a command and collect its output.

    Output streams are read while the process runs. When `timeout` elapses
    the process is killed and whatever was captured so far is returned with
    status "timeout".

    Args:
        command: Executable to run.
        args: Optional list of arguments.
        cwd: Working directory. Inherits the current one if None.
        env: Additional environment variables.
        timeout: Seconds to wait for exit and output. None waits forever.
    """
    start_time = time.perf_counter()

    cmd_list = [str(command), *(args or [])]
    full_command = " ".join(cmd_list)

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    def elapsed() -> float:
        return (time.perf_counter() - start_time) * 1000

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd_list,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=process_env,
        )
    except FileNotFoundError:
        return CommandResult(full_command, 127, "", f"Command not found: {command}", "error", elapsed())
    except PermissionError:
        return CommandResult(full_command, 126, "", f"Permission denied: {command}", "error", elapsed())
    except OSError as e:
        return CommandResult(full_command, 1, "", f"OS error: {e}", "error", elapsed())

    stdout = bytearray()
    stderr = bytearray()
    try:
        await asyncio.wait_for(
            asyncio.gather(_drain(process.stdout, stdout), _drain(process.stderr, stderr), process.wait()),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        log.debug("%s timed out after %ss", full_command, timeout)
        try:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass
        return CommandResult(
            command=full_command,
            exit_code=None,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            status="timeout",
            duration_ms=elapsed(),
        )

    exit_code = process.returncode
    return CommandResult(
        command=full_command,
        exit_code=exit_code,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        status="ok" if exit_code == 0 else "error",
        duration_ms=elapsed(),
    )

"""Configuration schema dataclasses for biomelsp.

Defines the structure of configuration at all levels (system, user, project).
All fields have defaults to support partial configs that merge together.

Example config.yaml:
    logging:
      verbose: 3
    orchestrator:
      settle_delay: 1.0
      lockfile_debounce: 0.3
    session:
      transport: socket
    biome:
      requireConfigFile: true
      lsp:
        bin:
          linux-x64-musl: /opt/biome/biome
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TransportKind(Enum):
    """How a session reaches its language server."""

    STDIO = "stdio"  # biome lsp-proxy over the child's stdin/stdout
    SOCKET = "socket"  # biome __print_socket, then connect to the printed address


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None  # Log file path


@dataclass
class OrchestratorConfig:
    """Timing knobs for reconciliation."""

    settle_delay: float = 1.0  # Seconds between a settings change and acting on it
    lockfile_debounce: float = 0.3  # Quiet period before a lockfile burst restarts
    watch_poll_interval: float = 1.0  # Polling interval of the local lockfile watcher


@dataclass
class SessionConfig:
    """Language server launch configuration."""

    transport: TransportKind = TransportKind.STDIO
    print_socket_timeout: float = 1.0  # Bounded wait on `__print_socket` output
    probe_timeout: float = 5.0  # Timeout for `--version` / `__where_am_i` probes
    request_timeout: float = 30.0  # Timeout for the initialize handshake
    shutdown_timeout: float = 5.0  # Grace period before the server is killed


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        logging: Logging configuration.
        orchestrator: Reconciliation timing.
        session: Language server launch options.
        settings: The raw `biome:` section, read through the Settings API.
        extra: Unknown top-level keys, kept for forward compatibility.
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    settings: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

"""Logging for biomelsp.

Everything logs under the `biomelsp` logger. Output goes to a file when
`logging.file` or BIOMELSP_LOG names one, otherwise to stderr, but only when
stderr is a terminal: an editor host reading our pipes must not see log text.

Verbosity (`-v` count or `logging.verbose`):
    0 error, 1 warning, 2 info (default), 3 verbose, 4 trace
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from biomelsp.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("biomelsp")

_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


class _LowercaseLevelFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def level_for(config: LoggingConfig | None) -> int:
    """Effective level for `config`; `verbose` wins over `level`."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY[max(0, min(config.verbose, len(_VERBOSITY) - 1))]
    if config.level:
        level = logging.getLevelName(config.level.upper())
        return level if isinstance(level, int) else logging.INFO
    return logging.INFO


def _handler_for(path: str | None) -> logging.Handler | None:
    if path:
        try:
            return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
        except OSError as e:
            if sys.stderr.isatty():
                print(f"[biomelsp] cannot open log file {path}: {e}", file=sys.stderr)
            else:
                return None
    if sys.stderr.isatty():
        return logging.StreamHandler(sys.stderr)
    return None


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure the `biomelsp` logger once; later calls are no-ops."""
    global _configured
    if _configured:
        return
    _configured = True

    level = level_for(config)
    logger.setLevel(level)

    path = config.file if config is not None and config.file else os.environ.get("BIOMELSP_LOG")
    handler = _handler_for(path)
    if handler is None:
        return
    handler.setLevel(level)
    handler.setFormatter(_LowercaseLevelFormatter(_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """The `biomelsp` logger, or its child `name` (e.g. "session")."""
    return logger.getChild(name) if name else logger

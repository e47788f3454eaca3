"""Layered YAML configuration.

System, user, folder and explicit files are merged in that order, then
BIOMELSP_* environment variables are applied on top. The merged mapping is
turned into the typed `Config`; the global (folder-less) result is cached.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from biomelsp.config.merge import merge_configs
from biomelsp.config.paths import get_config_paths
from biomelsp.config.schema import (
    Config,
    LoggingConfig,
    OrchestratorConfig,
    SessionConfig,
    TransportKind,
)
from biomelsp.constants import NAMESPACE
from biomelsp.logging import get_logger

log = get_logger("config")

_cache: Config | None = None
_listeners: list[Callable[[Config], None]] = []

# environment variable -> (section, key)
_ENVIRONMENT = {
    "BIOMELSP_LOG": ("logging", "file"),
    "BIOMELSP_TRANSPORT": ("session", "transport"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Mapping stored in `path`; {} when it is missing, unreadable or not a mapping."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        log.warning("Cannot read %s: %s", path, e)
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for variable, (section, key) in _ENVIRONMENT.items():
        value = os.environ.get(variable)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def _seconds(data: dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        if key in data:
            log.warning("Ignoring invalid value for %s: %r", key, value)
        return default
    return float(value)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Typed `Config` for a merged mapping; invalid values fall back to defaults."""
    log_data = _section(data, "logging")
    verbose = log_data.get("verbose")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=verbose if isinstance(verbose, int) and not isinstance(verbose, bool) else None,
        file=log_data.get("file"),
    )

    orch_data = _section(data, "orchestrator")
    defaults = OrchestratorConfig()
    orchestrator = OrchestratorConfig(
        settle_delay=_seconds(orch_data, "settle_delay", defaults.settle_delay),
        lockfile_debounce=_seconds(orch_data, "lockfile_debounce", defaults.lockfile_debounce),
        watch_poll_interval=_seconds(orch_data, "watch_poll_interval", defaults.watch_poll_interval),
    )

    session_data = _section(data, "session")
    session_defaults = SessionConfig()
    try:
        transport = TransportKind(session_data.get("transport", TransportKind.STDIO.value))
    except ValueError:
        log.warning("Unknown session transport %r, using stdio", session_data.get("transport"))
        transport = TransportKind.STDIO
    session = SessionConfig(
        transport=transport,
        print_socket_timeout=_seconds(
            session_data, "print_socket_timeout", session_defaults.print_socket_timeout
        ),
        probe_timeout=_seconds(session_data, "probe_timeout", session_defaults.probe_timeout),
        request_timeout=_seconds(session_data, "request_timeout", session_defaults.request_timeout),
        shutdown_timeout=_seconds(session_data, "shutdown_timeout", session_defaults.shutdown_timeout),
    )

    known_keys = {"logging", "orchestrator", "session", NAMESPACE}
    extra = {k: v for k, v in data.items() if k not in known_keys}

    return Config(
        logging=logging_config,
        orchestrator=orchestrator,
        session=session,
        settings=_section(data, NAMESPACE),
        extra=extra,
    )


def load_config(
    session_root: str | Path | None = None,
    reload: bool = False,
    extra_file: Path | None = None,
) -> Config:
    """Merge every configuration layer into a `Config`.

    Later layers win: system, user, `<session_root>/.biomelsp/config.yaml`,
    `extra_file`, then the environment. Only the plain global config (no
    folder, no extra file) is cached; `reload` bypasses the cache.
    """
    global _cache

    cacheable = session_root is None and extra_file is None
    if cacheable and _cache is not None and not reload:
        return _cache

    paths = get_config_paths(session_root)
    if extra_file is not None:
        paths.append(extra_file)

    layers = []
    for path in paths:
        data = load_yaml_file(path)
        if data:
            log.debug("Loaded config from %s", path)
            layers.append(data)
    layers.append(env_overrides())

    config = dict_to_config(merge_configs(*layers))
    if cacheable:
        _cache = config
    return config


def get_config() -> Config:
    return _cache if _cache is not None else load_config()


def reset_config() -> None:
    global _cache
    _cache = None


def reload_config(session_root: str | Path | None = None) -> Config:
    """Re-read the files and pass the result to every `on_config_reload` listener."""
    config = load_config(session_root=session_root, reload=True)
    for listener in list(_listeners):
        try:
            listener(config)
        except Exception:
            log.exception("Config reload listener failed")
    return config


def on_config_reload(listener: Callable[[Config], None]) -> Callable[[], None]:
    """Subscribe to reloads; call the returned function to unsubscribe."""
    _listeners.append(listener)

    def unsubscribe() -> None:
        if listener in _listeners:
            _listeners.remove(listener)

    return unsubscribe

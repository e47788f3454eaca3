"""Configuration management for biomelsp.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/biomelsp/ or %PROGRAMDATA%)
- User-level config (~/.config/biomelsp/ or %APPDATA%)
- Folder-level config (<folder>/.biomelsp/)
- Environment variable overrides (highest priority)

Example usage:
    from biomelsp.config import load_config, LocalSettings

    config = load_config()
    print(config.orchestrator.settle_delay)

    # The `biome:` section, scoped per directory
    settings = LocalSettings(config.settings, roots=lambda: [Path("/work/app")])
    settings.get("lsp.bin", Path("/work/app"))
"""

from biomelsp.config.loader import (
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from biomelsp.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_storage_path,
    get_system_config_path,
    get_user_config_path,
)
from biomelsp.config.schema import (
    Config,
    LoggingConfig,
    OrchestratorConfig,
    SessionConfig,
    TransportKind,
)
from biomelsp.config.settings import LocalSettings
from biomelsp.config.watcher import ConfigWatcher

__all__ = [
    # Main API
    "get_config",
    "load_config",
    "on_config_reload",
    "reload_config",
    "reset_config",
    # Paths
    "get_config_paths",
    "get_project_config_path",
    "get_storage_path",
    "get_system_config_path",
    "get_user_config_path",
    # Schema
    "Config",
    "LoggingConfig",
    "OrchestratorConfig",
    "SessionConfig",
    "TransportKind",
    # Scoped settings
    "LocalSettings",
    # Watching
    "ConfigWatcher",
]

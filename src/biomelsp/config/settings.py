"""Scope-aware `biome` settings backed by the YAML configuration layers.

Lookup order for a key at a scope (highest priority first):

1. values set at runtime with `set()` for the scope or one of its parents
2. the `biome:` section of `<dir>/.biomelsp/config.yaml` for the scope and its
   parents, up to the workspace root that contains it (nearest wins)
3. runtime values set without a scope
4. the `biome:` section of the global configuration (system, user, --config)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from biomelsp.config.loader import load_yaml_file
from biomelsp.config.merge import assign, changed_keys, lookup, merge_configs
from biomelsp.config.paths import get_config_paths, get_project_config_path
from biomelsp.constants import NAMESPACE
from biomelsp.events import Signal
from biomelsp.host.protocol import ConfigurationChange, Unsubscribe
from biomelsp.logging import get_logger

log = get_logger("config.settings")


def _namespace(data: dict[str, Any]) -> dict[str, Any]:
    section = data.get(NAMESPACE)
    return section if isinstance(section, dict) else {}


class LocalSettings:
    """`Settings` implementation for the standalone host."""

    def __init__(
        self,
        global_settings: dict[str, Any] | None = None,
        roots: Callable[[], Iterable[Path]] | None = None,
        load_global: Callable[[], dict[str, Any]] | None = None,
    ) -> None:
        """
        Args:
            global_settings: The `biome:` section of the merged global config.
            roots: Supplies the workspace roots that bound folder-level lookups.
            load_global: Re-reads the global `biome:` section on reload.
        """
        self._global = dict(global_settings or {})
        self._roots = roots or (lambda: ())
        self._load_global = load_global
        self._layers: dict[Path, dict[str, Any]] = {}
        self._overrides: dict[Path | None, dict[str, Any]] = {}
        self._changed: Signal[ConfigurationChange] = Signal("settings.changed")

    # -------------------------------------------------------------------------
    # Settings protocol
    # -------------------------------------------------------------------------

    def get(self, key: str, scope: Path | None = None, default: Any = None) -> Any:
        value = lookup(self.effective(scope), key)
        return default if value is None else value

    def set(self, key: str, value: Any, scope: Path | None = None) -> None:
        assign(self._overrides.setdefault(scope, {}), key, value)
        head = key.partition(".")[0]
        self._emit({f"{NAMESPACE}.{head}"}, None if scope is None else {scope})

    def on_did_change(self, handler: Callable[[ConfigurationChange], None]) -> Unsubscribe:
        return self._changed.connect(handler)

    # -------------------------------------------------------------------------
    # Layers
    # -------------------------------------------------------------------------

    def effective(self, scope: Path | None = None) -> dict[str, Any]:
        """The merged settings visible at `scope`."""
        chain = self._scope_chain(scope)
        layers = [self._global, self._overrides.get(None)]
        layers += [self._folder_layer(directory) for directory in chain]
        layers += [self._overrides.get(directory) for directory in chain]
        return merge_configs(*layers)

    def _scope_chain(self, scope: Path | None) -> list[Path]:
        """Directories from the enclosing root down to `scope`."""
        if scope is None:
            return []
        chain = [scope]
        roots = set(self._roots())
        if scope not in roots:
            for parent in scope.parents:
                chain.append(parent)
                if parent in roots:
                    break
            else:
                chain = [scope]
        return list(reversed(chain))

    def _folder_layer(self, directory: Path) -> dict[str, Any]:
        layer = self._layers.get(directory)
        if layer is None:
            layer = self._layers[directory] = _namespace(load_yaml_file(get_project_config_path(directory)))
        return layer

    def watched_paths(self) -> list[Path]:
        """Files whose changes `reload()` understands."""
        paths = list(get_config_paths())
        directories = set(self._layers) | set(self._roots())
        paths += [get_project_config_path(directory) for directory in sorted(directories)]
        return paths

    def reload(self, changed_paths: Iterable[Path]) -> list[ConfigurationChange]:
        """Re-read the given configuration files and emit what changed."""
        changes: list[ConfigurationChange] = []
        global_paths = set(get_config_paths())
        folders = set(self._layers) | set(self._roots())
        for path in changed_paths:
            directory = path.parent.parent
            is_folder_layer = directory in folders and path == get_project_config_path(directory)
            # ~/.biomelsp/config.yaml is the user config, and may also be a folder layer
            if path in global_paths or not is_folder_layer:
                if self._load_global is not None:
                    old, new = self._global, dict(self._load_global())
                    self._global = new
                    changes += self._changed_in(path, old, new, None)
            if is_folder_layer:
                old = self._layers.get(directory, {})
                new = self._layers[directory] = _namespace(load_yaml_file(path))
                changes += self._changed_in(path, old, new, {directory})
        return changes

    def _changed_in(
        self, path: Path, old: dict[str, Any], new: dict[str, Any], scopes: set[Path] | None
    ) -> list[ConfigurationChange]:
        keys = changed_keys(old, new)
        if not keys:
            return []
        log.info("Settings changed in %s: %s", path, sorted(keys))
        return [self._emit({f"{NAMESPACE}.{key}" for key in keys}, scopes)]

    def _emit(self, sections: set[str], scopes: set[Path] | None) -> ConfigurationChange:
        change = ConfigurationChange(
            sections=frozenset(sections),
            scopes=None if scopes is None else frozenset(scopes),
        )
        self._changed.emit(change)
        return change

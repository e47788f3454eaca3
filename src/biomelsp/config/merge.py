"""Dictionary helpers for layered configuration.

Layers are merged lowest priority first. The same helpers back the
scope-aware settings lookups in `biomelsp.config.settings`.
"""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return `base` updated with `override`, recursing into nested dicts.

    - None in `override` leaves the base value alone, so a layer can be partial
    - Lists and scalars are replaced, never concatenated
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_configs(*layers: dict[str, Any] | None) -> dict[str, Any]:
    """Fold any number of layers into one dict (later layers win)."""
    result: dict[str, Any] = {}
    for layer in layers:
        if layer:
            result = deep_merge(result, layer)
    return result


def lookup(data: dict[str, Any], key: str) -> Any:
    """Read a dotted key such as "lsp.bin".

    A literal dotted key ("lsp.bin": ...) is honoured before the nested form
    (lsp: {bin: ...}). Missing keys give None; an empty key gives `data`.
    """
    if not key:
        return data
    if key in data:
        return data[key]
    head, _, rest = key.partition(".")
    child = data.get(head)
    if rest and isinstance(child, dict):
        return lookup(child, rest)
    return None


def assign(data: dict[str, Any], key: str, value: Any) -> None:
    """Write a dotted key into nested dicts, creating them as needed."""
    head, _, rest = key.partition(".")
    if not rest:
        data[head] = value
        return
    child = data.get(head)
    if not isinstance(child, dict):
        child = data[head] = {}
    assign(child, rest, value)


def changed_keys(old: dict[str, Any], new: dict[str, Any]) -> set[str]:
    """Top-level keys whose values differ between two layers."""
    return {key for key in old.keys() | new.keys() if old.get(key) != new.get(key)}

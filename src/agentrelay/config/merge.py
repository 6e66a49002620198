"""Cascading merge of configuration layers.

Layers are plain dicts parsed from YAML; later layers win. Nested mappings
merge key by key, sequences and scalars are replaced, and an explicit None
in a later layer leaves the earlier value in place.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new dict with override layered on top of base.

    Neither input is modified.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_configs(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Fold config layers left to right (lowest priority first)."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)
    return merged

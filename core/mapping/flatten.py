"""Flatten nested input records into a dotted-path index."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

FlatIndex = dict[str, Any]


def flatten_record(
    record: Any,
    parent_key: str = "",
    result: FlatIndex | None = None,
) -> FlatIndex:
    """Flatten a JSON-like value into ``{"a.b.0.c": leaf}`` form.

    Rules:
    - Mappings recurse with ``parent.key`` paths; empty mappings emit nothing.
    - Lists index elements numerically; mapping elements recurse, anything
      else (including nested lists) is assigned as the leaf value.
    - Every other value (str, int, float, bool, None, date, bytes) is a leaf.
    - Non-mapping input returns the accumulator unchanged.

    Cyclic structures are not detected; callers pass acyclic JSON data.
    """

    if result is None:
        result = {}
    if not isinstance(record, Mapping):
        return result

    for key, value in record.items():
        path = f"{parent_key}.{key}" if parent_key else str(key)
        if isinstance(value, Mapping):
            flatten_record(value, path, result)
        elif isinstance(value, list):
            for index, item in enumerate(value):
                item_path = f"{path}.{index}"
                if isinstance(item, Mapping):
                    flatten_record(item, item_path, result)
                else:
                    result[item_path] = item
        else:
            result[path] = value

    return result

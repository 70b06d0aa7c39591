"""Utility functions for repository operations."""

import json
from enum import Enum
from typing import Any, Iterable, Optional, Union

from arbatch.utils.serialization import dump_json


def ensure_json(value: Optional[Union[str, dict, list]]) -> Optional[Union[dict, list]]:
    """
    Normalize JSONB values from database to Python dict/list.

    asyncpg returns JSONB as str unless a codec is configured; this helper
    ensures consistent handling either way.

    Raises:
        TypeError: If value is an unexpected type
        json.JSONDecodeError: If string is not valid JSON
    """
    if value is None:
        return None

    if isinstance(value, (dict, list)):
        return value

    if isinstance(value, str):
        return json.loads(value)

    raise TypeError(
        f"Expected str, dict, list, or None for JSONB value, got {type(value).__name__}"
    )


def build_set_clause(
    fields: dict[str, Any],
    allowed: Iterable[str],
    jsonb_fields: Iterable[str] = (),
    start_idx: int = 1,
) -> tuple[str, list[Any]]:
    """
    Build the ``SET`` part of an UPDATE from keyword fields.

    Enum values are unwrapped and JSONB columns are serialized. Column names
    are checked against ``allowed`` since they are interpolated into SQL.

    Returns:
        Tuple of (comma-joined assignments, parameter list)

    Raises:
        ValueError: If a field is not an allowed column
    """
    allowed = set(allowed)
    jsonb = set(jsonb_fields)
    assignments = []
    params: list[Any] = []
    idx = start_idx

    for name, value in fields.items():
        if name not in allowed:
            raise ValueError(f"Unknown or read-only column: {name}")
        if name in jsonb:
            value = dump_json(value) if value is not None else None
            assignments.append(f"{name} = ${idx}::jsonb")
        else:
            if isinstance(value, Enum):
                value = value.value
            assignments.append(f"{name} = ${idx}")
        params.append(value)
        idx += 1

    return ", ".join(assignments), params

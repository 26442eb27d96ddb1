"""
POS Core Caching: Stable Key Derivation
=========================================
Logically identical queries must collapse onto one cache key,
whatever order their fields were set in.

Rules:
- Mapping keys are sorted
- None values are dropped (an unset filter equals a missing one)
- Decimals render as strings, datetimes as ISO 8601, enums by value
- Dataclasses are treated as mappings of their fields
"""

from __future__ import annotations

import dataclasses
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping


def canonicalize(value: Any) -> Any:
    """Reduce a value to JSON-compatible primitives in canonical form."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return canonicalize({
            f.name: getattr(value, f.name) for f in dataclasses.fields(value)
        })
    if isinstance(value, Mapping):
        return {
            str(k): canonicalize(v)
            for k, v in value.items()
            if v is not None
        }
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(
            (canonicalize(v) for v in value),
            key=lambda item: json.dumps(item, sort_keys=True),
        )
    raise TypeError(
        f"Cannot derive a cache key from {type(value).__name__}."
    )


def stable_cache_key(value: Any) -> str:
    """
    Canonical string form of a query object.

    stable_cache_key({"b": 1, "a": None, "c": 2})
        == stable_cache_key({"c": 2, "b": 1})
        == '{"b":1,"c":2}'
    """
    return json.dumps(
        canonicalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )

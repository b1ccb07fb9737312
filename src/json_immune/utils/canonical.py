"""
json-immune — canonical JSON rendering and content identifiers

File: src/json_immune/utils/canonical.py

Purpose
- Render JSON-compatible values to a single canonical text form.
- Derive content identifiers (``sha256:<hex>``) from that form.

Functional requirements
- Object keys are sorted lexicographically at every depth.
- No insignificant whitespace; non-ASCII text is kept verbatim.
- Integral floats render as integers (``42.0`` -> ``42``); NaN and infinities render as ``null``.
- Tuples render as arrays.
- Values that are not JSON-compatible raise ``TypeError``.

Non-functional requirements
- Pure and deterministic; two structurally equal values always share one rendering.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Final, TypeAlias

from json_immune.constants import CONTENT_ID_PREFIX
from json_immune.utils.hashing import is_sha256_hex, sha256_text

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

# Above this magnitude float reprs switch to exponent notation, same as ECMAScript.
_INTEGRAL_FLOAT_LIMIT: Final[float] = 1e21


def canonicalize(value: object) -> str:
    """Return the canonical JSON text for ``value``."""

    return json.dumps(
        normalize_json_value(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def content_id(value: object) -> str:
    """Return ``sha256:<hex>`` over the canonical rendering of ``value``."""

    return f"{CONTENT_ID_PREFIX}{sha256_text(canonicalize(value))}"


def is_content_id(value: object) -> bool:
    if not isinstance(value, str) or not value.startswith(CONTENT_ID_PREFIX):
        return False
    return is_sha256_hex(value[len(CONTENT_ID_PREFIX) :])


def normalize_json_value(value: object) -> JSONValue:
    """Return a plain JSON tree with floats, tuples and keys normalized."""

    return _normalize(value, active=set())


def _normalize(value: object, *, active: set[int]) -> JSONValue:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer() and abs(value) < _INTEGRAL_FLOAT_LIMIT:
            return int(value)
        return value
    if isinstance(value, Mapping):
        marker = id(value)
        if marker in active:
            raise TypeError("cannot canonicalize a cyclic structure")
        active.add(marker)
        try:
            return {str(key): _normalize(item, active=active) for key, item in value.items()}
        finally:
            active.discard(marker)
    if isinstance(value, (list, tuple)):
        marker = id(value)
        if marker in active:
            raise TypeError("cannot canonicalize a cyclic structure")
        active.add(marker)
        try:
            return [_normalize(item, active=active) for item in value]
        finally:
            active.discard(marker)
    raise TypeError(f"value of type {type(value).__name__} is not JSON-compatible")


__all__ = [
    "JSONScalar",
    "JSONValue",
    "canonicalize",
    "content_id",
    "is_content_id",
    "normalize_json_value",
]

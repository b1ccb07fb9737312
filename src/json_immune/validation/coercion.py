"""Scalar type coercion applied while validating (numeric strings, boolean words, nulls)."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Final

from json_immune.utils.canonical import JSONValue

_NUMERIC_TEXT: Final[re.Pattern[str]] = re.compile(
    r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$"
)
_INTEGER_TEXT: Final[re.Pattern[str]] = re.compile(r"^\s*[+-]?\d+\s*$")


class _NoCoercion:
    __slots__ = ()


_NO_COERCION: Final[_NoCoercion] = _NoCoercion()


def declared_types(schema: object) -> tuple[str, ...]:
    if not isinstance(schema, Mapping):
        return ()
    raw = schema.get("type")
    if isinstance(raw, str):
        return (raw,)
    if isinstance(raw, (list, tuple)):
        return tuple(item for item in raw if isinstance(item, str))
    return ()


def matches_type(value: object, type_name: str) -> bool:
    if type_name == "null":
        return value is None
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "object":
        return isinstance(value, dict)
    if type_name == "array":
        return isinstance(value, list)
    if isinstance(value, bool):
        return False
    if type_name == "number":
        return isinstance(value, (int, float))
    if type_name == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    return False


def coerce_value(value: JSONValue, schema: object) -> JSONValue:
    """Return ``value`` converted to the first declared scalar type it can take.

    Values that already match one of the declared types are returned unchanged.
    """

    types = declared_types(schema)
    if not types or any(matches_type(value, type_name) for type_name in types):
        return value
    for type_name in types:
        converted = _convert(value, type_name)
        if not isinstance(converted, _NoCoercion):
            return converted
    return value


def _convert(value: JSONValue, type_name: str) -> JSONValue | _NoCoercion:
    if type_name == "number":
        return _to_number(value, integral=False)
    if type_name == "integer":
        return _to_number(value, integral=True)
    if type_name == "string":
        return _to_string(value)
    if type_name == "boolean":
        return _to_boolean(value)
    if type_name == "null":
        return _to_null(value)
    return _NO_COERCION


def _to_number(value: JSONValue, *, integral: bool) -> JSONValue | _NoCoercion:
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0
    if not isinstance(value, str) or not _NUMERIC_TEXT.match(value):
        return _NO_COERCION
    if _INTEGER_TEXT.match(value):
        return int(value.strip())
    parsed = float(value)
    if not math.isfinite(parsed):
        return _NO_COERCION
    if integral:
        if not parsed.is_integer():
            return _NO_COERCION
        return int(parsed)
    return parsed


def _to_string(value: JSONValue) -> JSONValue | _NoCoercion:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return _NO_COERCION


def _to_boolean(value: JSONValue) -> JSONValue | _NoCoercion:
    if value is None:
        return False
    if value == "true":
        return True
    if value == "false":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value == 1:
            return True
        if value == 0:
            return False
    return _NO_COERCION


def _to_null(value: JSONValue) -> JSONValue | _NoCoercion:
    if value == "" or value is False:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return None
    return _NO_COERCION


__all__ = ["coerce_value", "declared_types", "matches_type"]

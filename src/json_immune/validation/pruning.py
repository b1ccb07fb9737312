"""Schema-directed removal of undeclared object keys."""

from __future__ import annotations

import re
from collections.abc import Mapping

from json_immune.utils.canonical import JSONValue


def prune_unknown(value: JSONValue, schema: object) -> JSONValue:
    """Return a copy of ``value`` without keys the schema does not declare.

    ``additionalProperties: false`` drops undeclared keys; a schema-valued
    ``additionalProperties`` is applied to the remaining extras. Declared
    properties, ``items`` and ``prefixItems`` are followed recursively.
    Keys matched by ``patternProperties`` are kept. The input is never mutated.
    """

    if not isinstance(schema, Mapping):
        return _copy(value)

    if isinstance(value, dict):
        return _prune_object(value, schema)
    if isinstance(value, list):
        return _prune_array(value, schema)
    return value


def _prune_object(value: dict[str, JSONValue], schema: Mapping[str, object]) -> JSONValue:
    properties = schema.get("properties")
    declared = properties if isinstance(properties, Mapping) else {}
    patterns_raw = schema.get("patternProperties")
    patterns = patterns_raw if isinstance(patterns_raw, Mapping) else {}
    additional = schema.get("additionalProperties", True)

    pruned: dict[str, JSONValue] = {}
    for key, item in value.items():
        if key in declared:
            pruned[key] = prune_unknown(item, declared[key])
            continue
        matched = [subschema for pattern, subschema in patterns.items() if re.search(pattern, key)]
        if matched:
            pruned[key] = prune_unknown(item, matched[0])
            continue
        if additional is False:
            continue
        pruned[key] = prune_unknown(item, additional)
    return pruned


def _prune_array(value: list[JSONValue], schema: Mapping[str, object]) -> JSONValue:
    prefix_raw = schema.get("prefixItems")
    items = schema.get("items")
    if isinstance(items, list):
        prefix_raw, items = items, schema.get("additionalItems")
    prefix = prefix_raw if isinstance(prefix_raw, list) else []

    result: list[JSONValue] = []
    for index, item in enumerate(value):
        subschema = prefix[index] if index < len(prefix) else items
        result.append(prune_unknown(item, subschema))
    return result


def _copy(value: JSONValue) -> JSONValue:
    if isinstance(value, dict):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy(item) for item in value]
    return value


__all__ = ["prune_unknown"]

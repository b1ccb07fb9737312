"""Unit tests for schema-directed pruning of undeclared keys."""

from __future__ import annotations

import copy

from json_immune.validation.pruning import prune_unknown


def test_closed_objects_drop_undeclared_keys_recursively() -> None:
    schema = {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "card": {
                "type": "object",
                "additionalProperties": False,
                "properties": {"last4": {"type": "string"}},
            }
        },
    }
    value = {"card": {"last4": "4242", "cvv": "123"}, "debug": True}
    original = copy.deepcopy(value)

    assert prune_unknown(value, schema) == {"card": {"last4": "4242"}}
    assert value == original


def test_open_objects_keep_extras() -> None:
    schema = {"type": "object", "properties": {"a": {"type": "integer"}}}

    assert prune_unknown({"a": 1, "b": 2}, schema) == {"a": 1, "b": 2}


def test_schema_valued_additional_properties_is_recursed_into() -> None:
    schema = {
        "type": "object",
        "additionalProperties": {
            "type": "object",
            "additionalProperties": False,
            "properties": {"id": {"type": "string"}},
        },
    }

    pruned = prune_unknown({"x": {"id": "1", "noise": 0}}, schema)

    assert pruned == {"x": {"id": "1"}}


def test_pattern_properties_are_kept() -> None:
    schema = {
        "type": "object",
        "additionalProperties": False,
        "patternProperties": {"^x-": {"type": "string"}},
    }

    assert prune_unknown({"x-trace": "1", "other": 2}, schema) == {"x-trace": "1"}


def test_arrays_follow_items_and_prefix_items() -> None:
    closed = {"type": "object", "additionalProperties": False, "properties": {"k": {}}}
    schema = {"type": "array", "prefixItems": [{"type": "integer"}], "items": closed}

    pruned = prune_unknown([{"k": 1, "z": 2}, {"k": 3, "z": 4}], schema)

    assert pruned == [{"k": 1, "z": 2}, {"k": 3}]


def test_boolean_or_missing_schema_returns_copy() -> None:
    value = {"a": [1]}

    pruned = prune_unknown(value, True)

    assert pruned == value
    assert pruned is not value

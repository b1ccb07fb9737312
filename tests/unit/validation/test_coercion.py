"""Unit tests for scalar coercion rules."""

from __future__ import annotations

import pytest

from json_immune.validation.coercion import coerce_value, declared_types, matches_type


@pytest.mark.parametrize(
    ("value", "schema", "expected"),
    [
        ("42", {"type": "number"}, 42),
        ("4.5", {"type": "number"}, 4.5),
        (" 7 ", {"type": "integer"}, 7),
        ("3.0", {"type": "integer"}, 3),
        (True, {"type": "number"}, 1),
        (None, {"type": "integer"}, 0),
        (12, {"type": "string"}, "12"),
        (2.0, {"type": "string"}, "2"),
        (False, {"type": "string"}, "false"),
        (None, {"type": "string"}, ""),
        ("true", {"type": "boolean"}, True),
        (0, {"type": "boolean"}, False),
        ("", {"type": "null"}, None),
        ("5", {"type": ["null", "integer"]}, 5),
    ],
)
def test_coercions(value: object, schema: dict[str, object], expected: object) -> None:
    coerced = coerce_value(value, schema)

    assert coerced == expected
    assert type(coerced) is type(expected)


@pytest.mark.parametrize(
    ("value", "schema"),
    [
        ("abc", {"type": "number"}),
        ("3.5", {"type": "integer"}),
        ("inf", {"type": "number"}),
        ("yes", {"type": "boolean"}),
        (2, {"type": "boolean"}),
        ({"a": 1}, {"type": "string"}),
        ("5", {}),
    ],
)
def test_values_that_cannot_be_converted_are_unchanged(
    value: object, schema: dict[str, object]
) -> None:
    assert coerce_value(value, schema) == value


def test_matching_values_are_left_alone() -> None:
    assert coerce_value("42", {"type": ["string", "number"]}) == "42"


def test_type_helpers() -> None:
    assert declared_types({"type": ["string", 3, "null"]}) == ("string", "null")
    assert declared_types(True) == ()
    assert not matches_type(True, "integer")
    assert matches_type(2.0, "integer")

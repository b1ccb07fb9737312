"""Deterministic structural repair of raw JSON input."""

from json_immune.repair.structural import (
    NOTE_INPUT_WAS_OBJECT,
    NOTE_JSONREPAIR,
    NOTE_PARSED,
    ParseOutcome,
    StrictJSONError,
    UnrepairableJSONError,
    check_nesting_depth,
    loads_strict,
    try_parse,
)

__all__ = [
    "NOTE_INPUT_WAS_OBJECT",
    "NOTE_JSONREPAIR",
    "NOTE_PARSED",
    "ParseOutcome",
    "StrictJSONError",
    "UnrepairableJSONError",
    "check_nesting_depth",
    "loads_strict",
    "try_parse",
]

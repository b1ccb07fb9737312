"""
json-immune — structural repair stage

File: src/json_immune/repair/structural.py

Purpose
- Turn raw input into a JSON value: strict parse first, then syntax repair.

Functional requirements
- Non-text input is taken as already parsed (note ``input was object``); it must be
  JSON-shaped.
- Text is stripped of disallowed control characters, then parsed strictly (note ``parsed``).
- On strict failure the text is repaired with ``json_repair`` and re-parsed strictly
  (note ``jsonrepair``); a repair that yields a bare scalar is not accepted.
- Strict parsing rejects ``NaN`` and ``Infinity`` literals and number literals that overflow
  to a non-finite float.
- Documents nested deeper than ``MAX_NESTING_DEPTH`` are rejected without a repair attempt.
- Never raises; failures are reported through ``ParseOutcome.ok``.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Final

from json_repair import repair_json

from json_immune.constants import MAX_NESTING_DEPTH
from json_immune.security.sanitizer import strip_control_chars
from json_immune.utils.canonical import JSONValue, normalize_json_value

NOTE_INPUT_WAS_OBJECT: Final[str] = "input was object"
NOTE_PARSED: Final[str] = "parsed"
NOTE_JSONREPAIR: Final[str] = "jsonrepair"


@dataclass(frozen=True, slots=True)
class ParseOutcome:
    ok: bool
    value: JSONValue = None
    note: str = ""

    @property
    def repaired(self) -> bool:
        return self.ok and self.note == NOTE_JSONREPAIR


class StrictJSONError(ValueError):
    """Raised by ``loads_strict`` for input the standard grammar rejects."""


class UnrepairableJSONError(StrictJSONError):
    """Strict parse failure that syntax repair cannot fix (depth or number range)."""


def loads_strict(text: str, *, max_depth: int = MAX_NESTING_DEPTH) -> JSONValue:
    """Parse RFC 8259 JSON; non-finite numbers and over-deep nesting are rejected."""

    try:
        value = json.loads(
            text,
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except StrictJSONError:
        raise
    except json.JSONDecodeError as exc:
        raise StrictJSONError(f"{exc.msg} at line {exc.lineno} column {exc.colno}") from exc
    except RecursionError as exc:
        raise UnrepairableJSONError(_depth_note(max_depth)) from exc
    except ValueError as exc:
        # int() digit limit on oversized integer literals.
        raise UnrepairableJSONError("integer literal is too large") from exc
    check_nesting_depth(value, max_depth=max_depth)
    return value


def check_nesting_depth(value: object, *, max_depth: int = MAX_NESTING_DEPTH) -> None:
    """Raise ``UnrepairableJSONError`` when arrays/objects nest deeper than ``max_depth``."""

    pending: list[tuple[object, int]] = [(value, 1)]
    while pending:
        node, depth = pending.pop()
        if isinstance(node, dict):
            children = list(node.values())
        elif isinstance(node, list):
            children = node
        else:
            continue
        if depth > max_depth:
            raise UnrepairableJSONError(_depth_note(max_depth))
        pending.extend((child, depth + 1) for child in children)


def try_parse(raw: object) -> ParseOutcome:
    """Parse ``raw`` or repair its syntax; see the module docstring for the contract."""

    if not isinstance(raw, str):
        try:
            value = normalize_json_value(raw)
            check_nesting_depth(value)
        except (TypeError, ValueError) as exc:
            return ParseOutcome(ok=False, note=_failure_note(exc))
        except RecursionError:
            return ParseOutcome(ok=False, note=_depth_note(MAX_NESTING_DEPTH))
        return ParseOutcome(ok=True, value=value, note=NOTE_INPUT_WAS_OBJECT)

    text = strip_control_chars(raw)
    try:
        return ParseOutcome(ok=True, value=loads_strict(text), note=NOTE_PARSED)
    except UnrepairableJSONError as exc:
        return ParseOutcome(ok=False, note=_failure_note(exc))
    except StrictJSONError:
        pass

    try:
        repaired_text = repair_json(text, return_objects=False)
        if not isinstance(repaired_text, str) or not repaired_text.strip():
            raise StrictJSONError("syntax repair produced no document")
        value = loads_strict(repaired_text)
    except Exception as exc:  # noqa: BLE001 - parse failures are reported, never raised.
        return ParseOutcome(ok=False, note=_failure_note(exc))

    if not isinstance(value, (dict, list)):
        return ParseOutcome(ok=False, note="syntax repair did not yield an object or array")
    return ParseOutcome(ok=True, value=value, note=NOTE_JSONREPAIR)


def _reject_constant(name: str) -> JSONValue:
    raise StrictJSONError(f"non-finite number literal {name} is not valid JSON")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise UnrepairableJSONError("number literal overflows to a non-finite value")
    return value


def _depth_note(max_depth: int) -> str:
    return f"document nesting exceeds {max_depth} levels"


def _failure_note(exc: BaseException) -> str:
    if isinstance(exc, RecursionError):
        return _depth_note(MAX_NESTING_DEPTH)
    text = " ".join(str(exc).split())
    return text or "failed to parse"


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

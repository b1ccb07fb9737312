"""
json-immune — schema validation stage

File: src/json_immune/validation/schema_validator.py

Purpose
- Validate payloads against JSON Schema (draft 2020-12 unless ``$schema`` says otherwise)
  with scalar coercion, removal of failing additional properties, and the
  ``within24h`` timestamp keyword.

Functional requirements
- No schema means the payload passes unchanged.
- Each distinct schema is compiled once per coercion mode and reused.
- Validation runs on a deep copy; the caller's value is never mutated.
- Error strings read ``<json-pointer> <message> [<keyword>]`` with ``/`` for the root,
  sorted by location for stable diagnostics.
- Messages are built from the keyword and its schema value only; payload values never
  appear in them, so masked fields cannot leak through diagnostics.
- An invalid schema, or a ``$ref`` that does not resolve inside the schema, produces a
  failed outcome flagged ``schema_error``. Remote references are never retrieved.
- A payload too deep to validate produces a failed outcome instead of raising.

Non-functional requirements
- Engines are pluggable through ``ValidationStrategy``.
"""

from __future__ import annotations

import copy
import re
from collections import OrderedDict
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Final, Protocol, runtime_checkable

from jsonschema import Draft202012Validator, FormatChecker, validators
from jsonschema.exceptions import SchemaError, ValidationError
from referencing import Registry
from referencing.exceptions import Unresolvable

from json_immune.constants import WITHIN_WINDOW_SECONDS
from json_immune.utils.canonical import JSONValue, content_id
from json_immune.validation.coercion import coerce_value

ClockFn = Callable[[], datetime]
SchemaLike = Mapping[str, object] | bool

WITHIN_24H_KEYWORD: Final[str] = "within24h"
VALID_NOTE: Final[str] = "valid"

_DEFAULT_MAX_COMPILED: Final[int] = 256
_DATE_TIME_SEPARATOR: Final[re.Pattern[str]] = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}")

# No retrieval hook: only the metaschemas and the schema's own resources resolve.
_LOCAL_REGISTRY: Final[Registry] = Registry()

# Keywords whose jsonschema message names schema-declared property names only.
_SCHEMA_DERIVED_MESSAGES: Final[frozenset[str]] = frozenset(
    {"required", "dependentRequired", "dependencies", WITHIN_24H_KEYWORD}
)
_BOUND_MESSAGES: Final[dict[str, str]] = {
    "minimum": "must be >= {0}",
    "maximum": "must be <= {0}",
    "exclusiveMinimum": "must be > {0}",
    "exclusiveMaximum": "must be < {0}",
    "multipleOf": "must be multiple of {0}",
    "minLength": "must NOT have fewer than {0} characters",
    "maxLength": "must NOT have more than {0} characters",
    "minItems": "must NOT have fewer than {0} items",
    "maxItems": "must NOT have more than {0} items",
    "minProperties": "must NOT have fewer than {0} properties",
    "maxProperties": "must NOT have more than {0} properties",
    "minContains": "must contain at least {0} valid items",
    "maxContains": "must contain at most {0} valid items",
    "pattern": 'must match pattern "{0}"',
    "format": 'must match format "{0}"',
}
_FIXED_MESSAGES: Final[dict[str, str]] = {
    "enum": "must be equal to one of the allowed values",
    "const": "must be equal to constant",
    "uniqueItems": "must NOT have duplicate items",
    "additionalProperties": "must NOT have additional properties",
    "unevaluatedProperties": "must NOT have unevaluated properties",
    "additionalItems": "must NOT have additional items",
    "items": "must NOT have additional items",
    "unevaluatedItems": "must NOT have unevaluated items",
    "contains": "must contain at least 1 valid item",
    "anyOf": "must match a schema in anyOf",
    "oneOf": "must match exactly one schema in oneOf",
    "not": "must NOT be valid",
}
_FALSE_SCHEMA_KEYWORD: Final[str] = "false schema"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of one validation; ``coerced`` is the validated copy."""

    ok: bool
    errors: tuple[str, ...] = ()
    coerced: JSONValue = None
    schema_error: bool = False

    @property
    def note(self) -> str:
        return VALID_NOTE if self.ok else "; ".join(self.errors)


@runtime_checkable
class ValidationStrategy(Protocol):
    """Capability used by the orchestrator to check payloads."""

    def validate(
        self,
        value: JSONValue,
        schema: SchemaLike | None = None,
        *,
        coerce: bool | None = None,
    ) -> ValidationOutcome:
        """Validate ``value``; ``coerce=None`` keeps the strategy default."""


class SchemaValidator:
    """``jsonschema``-backed validation strategy with a compiled-schema cache."""

    def __init__(
        self,
        *,
        coerce: bool = True,
        remove_additional: bool = True,
        clock: ClockFn | None = None,
        max_compiled: int = _DEFAULT_MAX_COMPILED,
    ) -> None:
        if max_compiled <= 0:
            raise ValueError("max_compiled must be > 0")
        self._coerce = coerce
        self._remove_additional = remove_additional
        self._clock = clock if clock is not None else _utc_now
        self._max_compiled = max_compiled
        self._compiled: OrderedDict[str, Any] = OrderedDict()
        self._format_checker = build_format_checker()

    @property
    def compiled_count(self) -> int:
        return len(self._compiled)

    def validate(
        self,
        value: JSONValue,
        schema: SchemaLike | None = None,
        *,
        coerce: bool | None = None,
    ) -> ValidationOutcome:
        if schema is None:
            return ValidationOutcome(ok=True, coerced=value)

        coerce_enabled = self._coerce if coerce is None else coerce
        try:
            validator = self._compile(schema, coerce=coerce_enabled)
        except SchemaError as exc:
            return ValidationOutcome(
                ok=False,
                errors=(f"/ invalid schema: {_one_line(exc.message)} [schema]",),
                schema_error=True,
            )

        try:
            working = copy.deepcopy(value)
            if coerce_enabled:
                working = coerce_value(working, schema)
            errors = sorted(validator.iter_errors(working), key=_error_sort_key)
        except Unresolvable as exc:
            return ValidationOutcome(
                ok=False,
                errors=(f"/ can't resolve reference {exc.ref} [$ref]",),
                schema_error=True,
            )
        except RecursionError:
            return ValidationOutcome(
                ok=False, errors=("/ document is nested too deeply to validate [depth]",)
            )

        if errors:
            return ValidationOutcome(
                ok=False,
                errors=tuple(render_error(error) for error in errors),
                coerced=working,
            )
        return ValidationOutcome(ok=True, coerced=working)

    def _compile(self, schema: SchemaLike, *, coerce: bool) -> Any:
        key = f"{content_id(schema)}|coerce={int(coerce)}"
        cached = self._compiled.get(key)
        if cached is not None:
            self._compiled.move_to_end(key)
            return cached

        base = validators.validator_for(schema, default=Draft202012Validator)
        base.check_schema(schema)
        validator_cls = _extend_validator(
            base,
            coerce=coerce,
            remove_additional=self._remove_additional,
            clock=self._clock,
        )
        validator = validator_cls(
            schema, format_checker=self._format_checker, registry=_LOCAL_REGISTRY
        )

        self._compiled[key] = validator
        while len(self._compiled) > self._max_compiled:
            self._compiled.popitem(last=False)
        return validator


def build_format_checker() -> FormatChecker:
    """Format checker whose ``date-time`` check needs no optional dependency."""

    checker = FormatChecker()
    checker.checks("date-time", raises=ValueError)(_is_date_time)
    return checker


def parse_timestamp(text: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""

    try:
        moment = datetime.fromisoformat(text.strip())
    except ValueError:
        return None
    if moment.tzinfo is None or moment.utcoffset() is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def render_error(error: ValidationError) -> str:
    return f"{json_pointer(error.absolute_path)} {describe_error(error)} [{_keyword(error)}]"


def describe_error(error: ValidationError) -> str:
    """Ajv-style message built from the failing keyword and its schema value."""

    keyword = _keyword(error)
    expected = error.validator_value
    if keyword in _SCHEMA_DERIVED_MESSAGES:
        return _one_line(error.message)
    if keyword == "type":
        types = expected if isinstance(expected, list) else [expected]
        return "must be " + ",".join(str(name) for name in types)
    if keyword in _BOUND_MESSAGES:
        return _one_line(_BOUND_MESSAGES[keyword].format(expected))
    if keyword in _FIXED_MESSAGES:
        return _FIXED_MESSAGES[keyword]
    if keyword == _FALSE_SCHEMA_KEYWORD:
        return "boolean schema is false"
    return f'must pass "{keyword}" keyword validation'


def _keyword(error: ValidationError) -> str:
    return _FALSE_SCHEMA_KEYWORD if error.validator is None else str(error.validator)


def json_pointer(path: Iterable[object]) -> str:
    parts = [str(part).replace("~", "~0").replace("/", "~1") for part in path]
    if not parts:
        return "/"
    return "/" + "/".join(parts)


def _extend_validator(
    base: Any,
    *,
    coerce: bool,
    remove_additional: bool,
    clock: ClockFn,
) -> Any:
    overrides: dict[str, Callable[..., Iterator[ValidationError] | None]] = {
        WITHIN_24H_KEYWORD: _within_window_keyword(
            clock, timedelta(seconds=WITHIN_WINDOW_SECONDS)
        ),
    }
    if remove_additional:
        overrides["additionalProperties"] = _remove_failing_additional(coerce=coerce)
    if coerce:
        for keyword, prepare in (
            ("properties", _coerce_properties),
            ("items", _coerce_items),
            ("prefixItems", _coerce_prefix_items),
        ):
            original = base.VALIDATORS.get(keyword)
            if original is not None:
                overrides[keyword] = _with_preparation(original, prepare)
    return validators.extend(base, overrides)


def _with_preparation(
    original: Callable[..., Iterator[ValidationError] | None],
    prepare: Callable[[object, object, Mapping[str, object]], None],
) -> Callable[..., Iterator[ValidationError]]:
    def keyword(
        validator: Any, value: object, instance: object, schema: Mapping[str, object]
    ) -> Iterator[ValidationError]:
        prepare(value, instance, schema)
        errors = original(validator, value, instance, schema)
        if errors is not None:
            yield from errors

    return keyword


def _coerce_properties(properties: object, instance: object, schema: Mapping[str, object]) -> None:
    if not isinstance(instance, dict) or not isinstance(properties, Mapping):
        return
    for name, subschema in properties.items():
        if name in instance:
            instance[name] = coerce_value(instance[name], subschema)


def _coerce_items(items: object, instance: object, schema: Mapping[str, object]) -> None:
    if not isinstance(instance, list):
        return
    if isinstance(items, list):
        for index, subschema in enumerate(items[: len(instance)]):
            instance[index] = coerce_value(instance[index], subschema)
        return
    prefix = schema.get("prefixItems")
    start = len(prefix) if isinstance(prefix, list) else 0
    for index in range(start, len(instance)):
        instance[index] = coerce_value(instance[index], items)


def _coerce_prefix_items(prefix: object, instance: object, schema: Mapping[str, object]) -> None:
    if not isinstance(instance, list) or not isinstance(prefix, list):
        return
    for index, subschema in enumerate(prefix[: len(instance)]):
        instance[index] = coerce_value(instance[index], subschema)


def _remove_failing_additional(*, coerce: bool) -> Callable[..., Iterator[ValidationError]]:
    def additional_properties(
        validator: Any, additional: object, instance: object, schema: Mapping[str, object]
    ) -> Iterator[ValidationError]:
        if not isinstance(instance, dict) or additional is True:
            return
        for name in _additional_keys(instance, schema):
            if additional is False:
                del instance[name]
                continue
            if coerce:
                instance[name] = coerce_value(instance[name], additional)
            if any(True for _ in validator.descend(instance[name], additional, path=name)):
                del instance[name]
        yield from ()

    return additional_properties


def _additional_keys(instance: Mapping[str, object], schema: Mapping[str, object]) -> list[str]:
    properties = schema.get("properties")
    declared = set(properties) if isinstance(properties, Mapping) else set()
    patterns_raw = schema.get("patternProperties")
    patterns = list(patterns_raw) if isinstance(patterns_raw, Mapping) else []
    return [
        name
        for name in instance
        if name not in declared and not any(re.search(pattern, name) for pattern in patterns)
    ]


def _within_window_keyword(
    clock: ClockFn, window: timedelta
) -> Callable[..., Iterator[ValidationError]]:
    def within_24h(
        validator: Any, enabled: object, instance: object, schema: Mapping[str, object]
    ) -> Iterator[ValidationError]:
        if enabled is not True or not isinstance(instance, str):
            return
        moment = parse_timestamp(instance)
        if moment is None:
            yield ValidationError("must be a parseable timestamp")
            return
        now = clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        if abs(now - moment) > window:
            yield ValidationError("must be within 24 hours of now")

    return within_24h


def _is_date_time(instance: object) -> bool:
    if not isinstance(instance, str):
        return True
    if not _DATE_TIME_SEPARATOR.match(instance):
        raise ValueError(f"{instance!r} is not an RFC 3339 date-time")
    moment = datetime.fromisoformat(instance)
    if moment.tzinfo is None:
        raise ValueError(f"{instance!r} has no UTC offset")
    return True


def _error_sort_key(error: ValidationError) -> tuple[tuple[str, ...], str, str]:
    path = tuple(str(part) for part in error.absolute_path)
    return (path, _keyword(error), describe_error(error))


def _one_line(text: str) -> str:
    return " ".join(str(text).split())


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = [
    "ClockFn",
    "SchemaLike",
    "SchemaValidator",
    "VALID_NOTE",
    "ValidationOutcome",
    "ValidationStrategy",
    "WITHIN_24H_KEYWORD",
    "build_format_checker",
    "describe_error",
    "json_pointer",
    "parse_timestamp",
    "render_error",
]

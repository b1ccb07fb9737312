"""Schema validation, coercion, pruning, and packaged schemas."""

from json_immune.validation.builtin import (
    UnknownSchemaError,
    list_builtin_schemas,
    load_builtin_schema,
)
from json_immune.validation.coercion import coerce_value
from json_immune.validation.pruning import prune_unknown
from json_immune.validation.schema_validator import (
    VALID_NOTE,
    SchemaLike,
    SchemaValidator,
    ValidationOutcome,
    ValidationStrategy,
    parse_timestamp,
)

__all__ = [
    "SchemaLike",
    "SchemaValidator",
    "UnknownSchemaError",
    "VALID_NOTE",
    "ValidationOutcome",
    "ValidationStrategy",
    "coerce_value",
    "list_builtin_schemas",
    "load_builtin_schema",
    "parse_timestamp",
    "prune_unknown",
]

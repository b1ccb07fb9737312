"""
json-immune — packaged schemas

File: src/json_immune/validation/builtin.py

Purpose
- Expose the JSON Schemas shipped with the package by short name (``payment``).
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Final

from json_immune.utils.canonical import JSONValue

SCHEMAS_DIR: Final[Path] = Path(__file__).resolve().parent.parent / "schemas"
_SUFFIX: Final[str] = ".schema.json"


class UnknownSchemaError(LookupError):
    def __init__(self, name: str, available: tuple[str, ...]) -> None:
        self.name = name
        self.available = available
        listed = ", ".join(available) if available else "none"
        super().__init__(f"unknown built-in schema {name!r} (available: {listed})")


def list_builtin_schemas() -> tuple[str, ...]:
    if not SCHEMAS_DIR.is_dir():
        return ()
    return tuple(
        sorted(path.name[: -len(_SUFFIX)] for path in SCHEMAS_DIR.glob(f"*{_SUFFIX}"))
    )


def load_builtin_schema(name: str) -> dict[str, JSONValue]:
    """Return a fresh copy of the named schema."""

    return json.loads(_read_schema_text(name.strip().lower()))


@lru_cache(maxsize=16)
def _read_schema_text(name: str) -> str:
    available = list_builtin_schemas()
    if name not in available:
        raise UnknownSchemaError(name, available)
    return (SCHEMAS_DIR / f"{name}{_SUFFIX}").read_text(encoding="utf-8")


__all__ = ["SCHEMAS_DIR", "UnknownSchemaError", "list_builtin_schemas", "load_builtin_schema"]

"""
json-immune — repair prompt rendering

File: src/json_immune/escalation/prompt.py

Purpose
- Render the fixed system/user prompt pair sent to repair backends from the
  packaged Jinja2 templates.

Functional requirements
- Rendering is deterministic for the same payload text and schema.
- The schema is embedded in canonical form; absent schemas get a fixed note.
- Payload text is inserted verbatim; callers pass already-redacted text.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final

from jinja2 import Environment, StrictUndefined, Template

from json_immune.utils.canonical import canonicalize
from json_immune.utils.hashing import sha256_text

TEMPLATE_ROOT: Final[Path] = Path(__file__).resolve().parent / "templates"
SYSTEM_TEMPLATE: Final[str] = "system.j2"
USER_TEMPLATE: Final[str] = "user.j2"


class PromptTemplateError(RuntimeError):
    """Raised when a packaged template is missing or fails to render."""


@dataclass(frozen=True, slots=True)
class RepairPrompt:
    system: str
    user: str

    @property
    def prompt_hash(self) -> str:
        return sha256_text(f"{self.system}\n\n{self.user}")


def render_repair_prompt(
    payload_text: str,
    schema: Mapping[str, object] | bool | None = None,
) -> RepairPrompt:
    if not isinstance(payload_text, str):
        raise TypeError("payload_text must be a string")

    schema_text = canonicalize(schema) if schema is not None else ""
    system = _render(SYSTEM_TEMPLATE)
    user = _render(USER_TEMPLATE, payload_text=payload_text, schema_text=schema_text)
    return RepairPrompt(system=system, user=user)


def _render(name: str, **variables: str) -> str:
    rendered = _load_template(name).render(**variables)
    return _normalize_newlines(rendered).rstrip("\n")


@lru_cache(maxsize=8)
def _load_template(name: str) -> Template:
    path = TEMPLATE_ROOT / name
    if not path.is_file():
        raise PromptTemplateError(f"prompt template not found: {path}")
    return _environment().from_string(_normalize_newlines(path.read_text(encoding="utf-8")))


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=False,
        lstrip_blocks=False,
        newline_sequence="\n",
        keep_trailing_newline=True,
    )


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "PromptTemplateError",
    "RepairPrompt",
    "SYSTEM_TEMPLATE",
    "TEMPLATE_ROOT",
    "USER_TEMPLATE",
    "render_repair_prompt",
]

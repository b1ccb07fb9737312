"""
json-immune — public security utilities

File: src/json_immune/security/__init__.py

Purpose
- Input sanitization and redaction helpers shared by every pipeline stage.

Functional requirements
- Caller-designated payload paths must be masked before text leaves the process.
- Diagnostics and log fields must not carry secret-like text.
"""

from json_immune.security.redaction import (
    DEFAULT_SENSITIVE_KEYS,
    REDACTED_VALUE,
    RedactionError,
    clone_json,
    is_sensitive_key,
    parse_path,
    redact_by_path,
    redact_structure,
    redact_text,
)
from json_immune.security.sanitizer import has_control_chars, strip_control_chars

__all__ = [
    "DEFAULT_SENSITIVE_KEYS",
    "REDACTED_VALUE",
    "RedactionError",
    "clone_json",
    "has_control_chars",
    "is_sensitive_key",
    "parse_path",
    "redact_by_path",
    "redact_structure",
    "redact_text",
    "strip_control_chars",
]

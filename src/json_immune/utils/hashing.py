"""
json-immune — hashing utilities

File: src/json_immune/utils/hashing.py

Purpose
- Provide deterministic SHA-256 helpers for bytes, text, and cache keys.

Functional requirements
- Digests are lowercase hex; text is UTF-8 encoded unless told otherwise.
- Cache keys join their parts with ``|`` before hashing so that a payload and a
  schema rendering cannot collide by concatenation.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import string
from typing import Final

SHA256_HEX_LENGTH: Final[int] = 64
_KEY_SEPARATOR: Final[str] = "|"
_HEX_DIGITS = set(string.hexdigits)

__all__ = [
    "SHA256_HEX_LENGTH",
    "is_sha256_hex",
    "sha256_bytes",
    "sha256_key",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_key(*parts: str) -> str:
    """Return the digest of ``parts`` joined with ``|``."""

    if not parts:
        raise ValueError("at least one key part is required")
    return sha256_text(_KEY_SEPARATOR.join(parts))


def is_sha256_hex(value: str) -> bool:
    return len(value) == SHA256_HEX_LENGTH and set(value).issubset(_HEX_DIGITS)

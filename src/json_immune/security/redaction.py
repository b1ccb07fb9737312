"""
json-immune — payload and secret redaction

File: src/json_immune/security/redaction.py

Purpose
- Replace caller-designated payload locations with a placeholder (path redaction).
- Mask secret-like text in diagnostics, provider error notes, and log fields.

Functional requirements
- Path redaction never mutates its input; it works on a JSON-shaped clone.
- Path syntax: dot-separated tokens; ``*`` matches every key or index; numeric
  tokens index arrays; the final token names the leaf that is replaced.
- Paths that match nothing are ignored; blank paths are skipped.
- When the clone cannot be made, the original value is returned unmodified.

Non-functional requirements
- Deterministic and idempotent for stable inputs.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final, TypeAlias

from json_immune.constants import REDACTION_PLACEHOLDER

REDACTED_VALUE: Final[str] = REDACTION_PLACEHOLDER
WILDCARD_TOKEN: Final[str] = "*"

PathTokens: TypeAlias = tuple[str, ...]

DEFAULT_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "authorization",
        "client_secret",
        "password",
        "private_key",
        "refresh_token",
        "secret",
        "token",
    }
)

_SENSITIVE_KEY_SUFFIXES: Final[tuple[str, ...]] = (
    "_api_key",
    "_password",
    "_secret",
    "_token",
)

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class _TextRule:
    name: str
    pattern: re.Pattern[str]
    sensitive_group: int | None = None


_TEXT_RULES: Final[tuple[_TextRule, ...]] = (
    _TextRule(
        name="private_key_block",
        pattern=re.compile(
            r"-----BEGIN(?: [A-Z0-9]+)* PRIVATE KEY-----"
            r"[\s\S]+?"
            r"-----END(?: [A-Z0-9]+)* PRIVATE KEY-----"
        ),
    ),
    _TextRule(
        name="authorization_bearer",
        pattern=re.compile(r"(?i)(\bbearer\s+)([A-Za-z0-9\-._~+/=]{8,})"),
        sensitive_group=2,
    ),
    _TextRule(
        name="explicit_secret_assignment",
        pattern=re.compile(
            r"(?i)(\b(?:password|passwd|secret|api[_-]?key|client[_-]?secret|"
            r"access[_-]?token|refresh[_-]?token)\b\s*[:=]\s*[\"']?)"
            r"([A-Za-z0-9._~+/=-]{6,})"
        ),
        sensitive_group=2,
    ),
    _TextRule(name="openai_api_key", pattern=re.compile(r"\bsk-[A-Za-z0-9_-]{20,255}\b")),
    _TextRule(name="aws_access_key", pattern=re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")),
    _TextRule(name="github_token", pattern=re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,255}\b")),
    _TextRule(
        name="jwt",
        pattern=re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\b"),
    ),
)


class RedactionError(RuntimeError):
    """Raised when a value cannot be cloned for redaction."""


def parse_path(path: str) -> PathTokens:
    """Split a dot path into tokens, dropping empty segments."""

    return tuple(token for token in path.split(".") if token)


def redact_by_path(
    value: object,
    paths: Iterable[object],
    *,
    placeholder: str = REDACTED_VALUE,
) -> object:
    """Return a copy of ``value`` with every matched path replaced by ``placeholder``."""

    token_lists = [parse_path(path) for path in paths if isinstance(path, str)]
    token_lists = [tokens for tokens in token_lists if tokens]
    if value is None or not token_lists:
        return value

    try:
        clone = clone_json(value)
    except RedactionError:
        return value

    for tokens in token_lists:
        _apply(clone, tokens, 0, placeholder)
    return clone


def clone_json(value: object) -> object:
    """Deep-copy a JSON-shaped tree; tuples become lists."""

    return _clone(value, active=set())


def redact_text(text: str, *, replacement: str = REDACTED_VALUE) -> str:
    """Mask secret-like substrings. Deterministic and idempotent."""

    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")
    redacted = text
    for rule in _TEXT_RULES:
        redacted = rule.pattern.sub(
            lambda match, rule=rule: _replace_match(match, rule, replacement), redacted
        )
    return redacted


def redact_structure(value: object, *, replacement: str = REDACTED_VALUE) -> object:
    """Return a copy with sensitive keys masked and string leaves passed through ``redact_text``."""

    if isinstance(value, str):
        return redact_text(value, replacement=replacement)
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key, item in value.items():
            key_name = str(key)
            if is_sensitive_key(key_name):
                out[key_name] = replacement
            else:
                out[key_name] = redact_structure(item, replacement=replacement)
        return out
    if isinstance(value, (list, tuple)):
        return [redact_structure(item, replacement=replacement) for item in value]
    return value


def is_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if not normalized or normalized.endswith("_env"):
        return False
    if normalized in DEFAULT_SENSITIVE_KEYS:
        return True
    return any(normalized.endswith(suffix) for suffix in _SENSITIVE_KEY_SUFFIXES)


def _apply(node: object, tokens: PathTokens, index: int, placeholder: str) -> None:
    token = tokens[index]
    last = index == len(tokens) - 1

    if isinstance(node, list):
        if token == WILDCARD_TOKEN:
            targets: Iterable[int] = range(len(node))
        else:
            position = _array_index(token)
            if position is None or position >= len(node):
                return
            targets = (position,)
        for position in targets:
            if last:
                node[position] = placeholder
            else:
                _apply(node[position], tokens, index + 1, placeholder)
        return

    if isinstance(node, dict):
        if token == WILDCARD_TOKEN:
            keys: Iterable[str] = list(node)
        elif token in node:
            keys = (token,)
        else:
            return
        for key in keys:
            if last:
                node[key] = placeholder
            else:
                _apply(node[key], tokens, index + 1, placeholder)


def _array_index(token: str) -> int | None:
    if not (token.isascii() and token.isdigit()):
        return None
    return int(token)


def _clone(value: object, *, active: set[int]) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (Mapping, list, tuple)):
        marker = id(value)
        if marker in active:
            raise RedactionError("cannot clone a cyclic structure")
        active.add(marker)
        try:
            if isinstance(value, Mapping):
                return {str(key): _clone(item, active=active) for key, item in value.items()}
            return [_clone(item, active=active) for item in value]
        finally:
            active.discard(marker)
    raise RedactionError(f"cannot clone value of type {type(value).__name__}")


def _replace_match(match: re.Match[str], rule: _TextRule, replacement: str) -> str:
    if rule.sensitive_group is None:
        return replacement
    full = match.group(0)
    start, end = match.span(rule.sensitive_group)
    offset_start = start - match.start(0)
    offset_end = end - match.start(0)
    return f"{full[:offset_start]}{replacement}{full[offset_end:]}"


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


__all__ = [
    "DEFAULT_SENSITIVE_KEYS",
    "REDACTED_VALUE",
    "RedactionError",
    "WILDCARD_TOKEN",
    "clone_json",
    "is_sensitive_key",
    "parse_path",
    "redact_by_path",
    "redact_structure",
    "redact_text",
]

"""Input text sanitization applied before any parse attempt."""

from __future__ import annotations

import re
from typing import Final

_BYTE_ORDER_MARK: Final[str] = "\ufeff"
# C0 controls except tab, line feed and carriage return, plus DEL.
_CONTROL_CHARS: Final[re.Pattern[str]] = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def strip_control_chars(text: str) -> str:
    """Drop leading byte-order marks and disallowed control characters.

    ``\\n``, ``\\r`` and ``\\t`` are preserved. The transform is idempotent.
    """

    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")
    return _CONTROL_CHARS.sub("", text).lstrip(_BYTE_ORDER_MARK)


def has_control_chars(text: str) -> bool:
    return text.startswith(_BYTE_ORDER_MARK) or _CONTROL_CHARS.search(text) is not None


__all__ = ["has_control_chars", "strip_control_chars"]

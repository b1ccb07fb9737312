"""Trace and batch identifiers: ``<prefix>-<ULID>``, sortable by creation time."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from typing import Final

ULID_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
_ENTROPY_BYTES: Final[int] = 10
_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1

TRACE_ID_PREFIX: Final[str] = "trc"
RUN_ID_PREFIX: Final[str] = "run"

EntropySource = Callable[[int], bytes]


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: EntropySource | None = None,
) -> str:
    """48-bit millisecond timestamp then 80 random bits, Crockford Base32 encoded."""
    moment = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not isinstance(moment, int) or not 0 <= moment <= _MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms must be an int in 0..{_MAX_TIMESTAMP_MS}")
    entropy = bytes((randbytes or secrets.token_bytes)(_ENTROPY_BYTES))
    if len(entropy) != _ENTROPY_BYTES:
        raise ValueError(f"randbytes must return exactly {_ENTROPY_BYTES} bytes")

    packed = (moment << 80) | int.from_bytes(entropy, "big")
    digits = []
    for _ in range(ULID_LENGTH):
        digits.append(ULID_ALPHABET[packed & 0x1F])
        packed >>= 5
    return "".join(reversed(digits))


def generate_trace_id(
    *, timestamp_ms: int | None = None, randbytes: EntropySource | None = None
) -> str:
    """Identifier for one pipeline run; also names its log directory under the CLI."""
    return f"{TRACE_ID_PREFIX}-{generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)}"


def generate_run_id(
    *, timestamp_ms: int | None = None, randbytes: EntropySource | None = None
) -> str:
    """Identifier for one CLI batch invocation."""
    return f"{RUN_ID_PREFIX}-{generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)}"


__all__ = [
    "RUN_ID_PREFIX",
    "TRACE_ID_PREFIX",
    "ULID_ALPHABET",
    "ULID_LENGTH",
    "generate_run_id",
    "generate_trace_id",
    "generate_ulid",
]

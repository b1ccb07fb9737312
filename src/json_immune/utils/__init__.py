"""Utility exports for canonical rendering, hashing, and concurrency helpers."""

from json_immune.utils.canonical import (
    JSONValue,
    canonicalize,
    content_id,
    is_content_id,
    normalize_json_value,
)
from json_immune.utils.concurrency import (
    CancellationToken,
    WorkerPool,
    run_with_timeout,
)
from json_immune.utils.hashing import is_sha256_hex, sha256_bytes, sha256_key, sha256_text

__all__ = [
    "CancellationToken",
    "JSONValue",
    "WorkerPool",
    "canonicalize",
    "content_id",
    "is_content_id",
    "is_sha256_hex",
    "normalize_json_value",
    "run_with_timeout",
    "sha256_bytes",
    "sha256_key",
    "sha256_text",
]

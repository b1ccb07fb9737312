"""Stable constants shared across pipeline stages."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
RUN_RECORD_SCHEMA_VERSION: Final[int] = 1

# Content addressing.
CONTENT_ID_PREFIX: Final[str] = "sha256:"

# Redaction placeholder written into payloads at caller-supplied paths.
REDACTION_PLACEHOLDER: Final[str] = "***REDACTED***"

# External repair defaults.
DEFAULT_PRIMARY_MODEL: Final[str] = "gpt-4o-mini"
DEFAULT_FALLBACK_MODEL: Final[str] = "gpt-4o"
DEFAULT_REPAIR_TIMEOUT_SECONDS: Final[float] = 8.0
DEFAULT_API_KEY_ENV: Final[str] = "OPENAI_API_KEY"

# Deepest array/object nesting a payload may have; deeper documents are rejected at parse time.
MAX_NESTING_DEPTH: Final[int] = 128

# Timestamp window enforced by the ``within24h`` schema keyword.
WITHIN_WINDOW_SECONDS: Final[int] = 24 * 3600

# Default runtime paths (relative to the working directory unless overridden by config).
LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "CONTENT_ID_PREFIX",
    "DEFAULT_API_KEY_ENV",
    "DEFAULT_FALLBACK_MODEL",
    "DEFAULT_PRIMARY_MODEL",
    "DEFAULT_REPAIR_TIMEOUT_SECONDS",
    "LOG_DIR",
    "MAX_NESTING_DEPTH",
    "REDACTION_PLACEHOLDER",
    "RUN_RECORD_SCHEMA_VERSION",
    "WITHIN_WINDOW_SECONDS",
]

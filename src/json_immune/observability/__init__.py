"""Structured logging for json-immune runs."""

from json_immune.observability.logging import (
    DEFAULT_LOG_FILENAME,
    ROOT_LOGGER_NAME,
    JsonLineFormatter,
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "DEFAULT_LOG_FILENAME",
    "JsonLineFormatter",
    "LoggingConfig",
    "ROOT_LOGGER_NAME",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]

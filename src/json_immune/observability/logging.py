"""
json-immune — structured logging setup

File: src/json_immune/observability/logging.py

Purpose
- Route ``structlog`` events from every plane into one queue-backed, JSON-lines sink.

What should be included in this file
- ``LoggingConfig`` and ``setup_structured_logging`` for a single CLI run or batch.
- ``configure_structlog`` binding structlog to the stdlib ``json_immune`` logger.
- Correlation fields (``trace_id``, ``tenant_id``, ``batch_id``) bound per scope.
- Redaction of every emitted field through ``security.redaction``.

Functional requirements
- Log records are written to ``<log_dir>/<run_id>/immune.jsonl``; stderr mirroring is optional.
- Logging never blocks the pipeline: a full queue drops the record and counts it.
- Payload bodies are never logged; string fields are passed through ``redact_text``.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from json_immune.constants import LOG_DIR, REDACTION_PLACEHOLDER
from json_immune.security.redaction import redact_structure

LogValue = str | int | float | bool | None | list["LogValue"] | dict[str, "LogValue"]
LogRedactor = Callable[[LogValue], LogValue]

ROOT_LOGGER_NAME: Final[str] = "json_immune"
DEFAULT_LOG_FILENAME: Final[str] = "immune.jsonl"
_DEFAULT_QUEUE_SIZE: Final[int] = 4096

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "trace_id", "tenant_id", "batch_id")

_RESERVED_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime"}
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "json_immune_correlation", default=()
)

_ACTIVE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str = Path(LOG_DIR)
    level: int | str = "INFO"
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False
    queue_size: int = _DEFAULT_QUEUE_SIZE
    redact_secrets: bool = True


def configure_structlog() -> None:
    """Send structlog events to stdlib loggers under ``json_immune``.

    Event keyword arguments travel as ``LogRecord`` extras, so the JSON-lines
    formatter below renders them under ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> StructuredLoggingHandle:
    """Configure logging from an ``[observability]`` config section."""

    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    raw_dir: object = log_dir if log_dir is not None else cfg.get("log_dir", str(LOG_DIR))
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=raw_dir if isinstance(raw_dir, (Path, str)) else str(LOG_DIR),
            level=raw_level if isinstance(raw_level, (int, str)) else "INFO",
            log_to_stdout=bool(cfg.get("log_to_stdout", False)),
            redact_secrets=bool(cfg.get("redact_secrets", True)),
        )
    )


class _DropCounter:
    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def value(self) -> int:
        with self._lock:
            return self._value


class _NonBlockingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that captures correlation at emit time and never blocks."""

    def __init__(self, log_queue: queue.Queue[object], drops: _DropCounter) -> None:
        super().__init__(log_queue)
        self._drops = drops

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        context = get_correlation_context()
        if context:
            record.correlation = context
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self._drops.increment()


class JsonLineFormatter(logging.Formatter):
    """One sorted, compact JSON object per record."""

    def __init__(self, *, redactor: LogRedactor, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._redactor = redactor
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, LogValue] = {
            "timestamp": _iso8601z(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": _as_text(self._redactor(record.getMessage())),
        }
        for key, value in sorted(_correlation_for(record, self._base_context).items()):
            event[key] = value

        extras = _extra_fields(record)
        if extras:
            event["fields"] = self._redactor(extras)
        if record.exc_info is not None:
            event["exception"] = _as_text(self._redactor(self.formatException(record.exc_info)))

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Runtime handle for an active logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        log_queue: queue.Queue[object],
        queue_handler: _NonBlockingQueueHandler,
        sinks: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
        drops: _DropCounter,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sinks = sinks
        self._listener = listener
        self._drops = drops
        self._lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._drops.value()

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        for handler in self._sinks:
            handler.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            for handler in self._sinks:
                handler.flush()
                handler.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Configure queue-backed JSON-lines logging for one run."""

    _shutdown_active()

    run_id = _non_empty(config.run_id, "run_id")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    level = _parse_level(config.level)

    run_dir = Path(config.base_log_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_dir / filename

    redactor = default_log_redactor if config.redact_secrets else _identity
    formatter = JsonLineFormatter(redactor=redactor, base_context={"run_id": run_id})

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    sinks: list[logging.Handler] = [file_handler]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[object] = queue.Queue(maxsize=config.queue_size)
    drops = _DropCounter()
    queue_handler = _NonBlockingQueueHandler(log_queue, drops)
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        log_queue=log_queue,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
        drops=drops,
    )
    configure_structlog()
    global _ACTIVE_HANDLE, _ATEXIT_REGISTERED
    with _ACTIVE_LOCK:
        _ACTIVE_HANDLE = handle
        if not _ATEXIT_REGISTERED:
            atexit.register(shutdown_logging)
            _ATEXIT_REGISTERED = True
    return handle


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    global _ACTIVE_HANDLE
    with _ACTIVE_LOCK:
        resolved = handle if handle is not None else _ACTIVE_HANDLE
        if resolved is None:
            return
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None
    resolved.shutdown()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (``None`` unbinds) for records emitted in scope."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
            continue
        text = str(value).strip()
        if text:
            state[key] = text
    token = _CORRELATION.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def default_log_redactor(value: LogValue) -> LogValue:
    """Mask sensitive keys and secret-shaped substrings."""

    return _to_log_value(redact_structure(value))


def _shutdown_active() -> None:
    existing = get_active_logging_handle()
    if existing is not None:
        shutdown_logging(existing)


def _identity(value: LogValue) -> LogValue:
    return value


def _non_empty(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


def _parse_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(str(value).strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z(epoch_seconds: float) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_text(value: LogValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _correlation_for(record: logging.LogRecord, base: Mapping[str, str]) -> dict[str, str]:
    merged = dict(base)
    captured = getattr(record, "correlation", None)
    if isinstance(captured, Mapping):
        merged.update({str(k): str(v) for k, v in captured.items()})
    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value.strip():
            merged[key] = value.strip()
    return merged


def _extra_fields(record: logging.LogRecord) -> dict[str, LogValue]:
    fields: dict[str, LogValue] = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_RECORD_FIELDS or key in _CORRELATION_KEYS or key == "correlation":
            continue
        if key.startswith("_"):
            continue
        fields[key] = _to_log_value(value)
    return fields


def _to_log_value(value: object) -> LogValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else REDACTION_PLACEHOLDER
    if isinstance(value, datetime):
        moment = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _to_log_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_log_value(item) for item in value]
    return repr(value)


__all__ = [
    "DEFAULT_LOG_FILENAME",
    "JsonLineFormatter",
    "LogRedactor",
    "LogValue",
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

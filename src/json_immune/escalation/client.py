"""
json-immune — external repair client

File: src/json_immune/escalation/client.py

Purpose
- Ask a language-model backend to rewrite a payload into valid JSON, with a
  two-tier model fallback and memoization of successful repairs.

Functional requirements
- The primary model is tried first; the fallback model is tried once when it is
  distinct and the primary attempt failed.
- Each attempt has its own deadline. Timeouts, transport errors, and non-JSON
  completions are attempt failures; abandoned attempts are cancelled.
- Successful repairs are stored under ``sha256(text | canonical schema)``;
  a later identical request is served from the cache without a backend call.
- Failure notes carry provider error codes and details passed through
  ``redact_text``; the transmitted payload is never logged or echoed.
- The client does not validate the repaired value against the schema.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

import structlog

from json_immune.constants import (
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_PRIMARY_MODEL,
    DEFAULT_REPAIR_TIMEOUT_SECONDS,
)
from json_immune.escalation.cache import InMemoryRepairCache, RepairCache
from json_immune.escalation.prompt import render_repair_prompt
from json_immune.escalation.providers.base import (
    ProviderError,
    ProviderResponseError,
    RepairBackend,
    RepairRequest,
)
from json_immune.repair.structural import StrictJSONError, loads_strict
from json_immune.security.redaction import redact_text
from json_immune.utils.canonical import JSONValue, canonicalize
from json_immune.utils.concurrency import run_with_timeout
from json_immune.utils.hashing import sha256_key

_TERMINAL_CODES: Final[frozenset[str]] = frozenset({"auth", "unavailable"})
_CACHE_MODEL_KEY: Final[str] = "model"
_CACHE_VALUE_KEY: Final[str] = "value"


@dataclass(frozen=True, slots=True)
class RepairOutcome:
    ok: bool
    value: JSONValue = None
    note: str = ""
    model: str | None = None
    cached: bool = False


class _AttemptFailed(Exception):
    def __init__(self, reason: str, *, terminal: bool = False) -> None:
        self.reason = reason
        self.terminal = terminal
        super().__init__(reason)


class ExternalRepairClient:
    """Two-tier, memoizing front end over a ``RepairBackend``."""

    def __init__(
        self,
        backend: RepairBackend,
        *,
        primary_model: str = DEFAULT_PRIMARY_MODEL,
        fallback_model: str | None = DEFAULT_FALLBACK_MODEL,
        timeout_seconds: float = DEFAULT_REPAIR_TIMEOUT_SECONDS,
        cache: RepairCache | None = None,
        logger: Any | None = None,
    ) -> None:
        if not isinstance(primary_model, str) or not primary_model.strip():
            raise ValueError("primary_model cannot be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._backend = backend
        self._primary_model = primary_model.strip()
        fallback = fallback_model.strip() if isinstance(fallback_model, str) else ""
        self._fallback_model = fallback or None
        self._timeout_seconds = float(timeout_seconds)
        self._cache: RepairCache = cache if cache is not None else InMemoryRepairCache()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def models(self) -> tuple[str, ...]:
        if self._fallback_model is None or self._fallback_model == self._primary_model:
            return (self._primary_model,)
        return (self._primary_model, self._fallback_model)

    @property
    def cache(self) -> RepairCache:
        return self._cache

    @staticmethod
    def cache_key(text: str, schema: Mapping[str, object] | bool | None = None) -> str:
        schema_text = canonicalize(schema) if schema is not None else ""
        return sha256_key(text, schema_text)

    async def repair(
        self,
        text: str,
        schema: Mapping[str, object] | bool | None = None,
    ) -> RepairOutcome:
        key = self.cache_key(text, schema)
        hit = _read_cache_entry(self._cache.get(key))
        if hit is not None:
            model, value = hit
            self._logger.info("repair_cache_hit", model=model)
            return RepairOutcome(
                ok=True, value=value, note=f"llm:{model}", model=model, cached=True
            )

        prompt = render_repair_prompt(text, schema)
        failures: list[str] = []
        for model in self.models:
            request = RepairRequest(
                model=model,
                system_prompt=prompt.system,
                user_prompt=prompt.user,
            )
            try:
                value = await self._attempt(request)
            except _AttemptFailed as failure:
                failures.append(failure.reason)
                if failure.terminal:
                    return RepairOutcome(ok=False, note=failure.reason, model=model)
                continue

            self._cache.put(key, {_CACHE_MODEL_KEY: model, _CACHE_VALUE_KEY: value})
            return RepairOutcome(ok=True, value=value, note=f"llm:{model}", model=model)

        return RepairOutcome(ok=False, note=_failure_note(failures))

    async def _attempt(self, request: RepairRequest) -> JSONValue:
        started = time.perf_counter()
        try:
            raw = await run_with_timeout(self._backend.complete(request), self._timeout_seconds)
            if not isinstance(raw, str):
                raise ProviderResponseError("completion is not text")
            value = loads_strict(raw.strip())
        except TimeoutError as exc:
            self._log_attempt(request.model, started, ok=False, code="timeout")
            raise _AttemptFailed(f"timeout after {self._timeout_seconds:g}s") from exc
        except StrictJSONError as exc:
            self._log_attempt(request.model, started, ok=False, code="response_invalid")
            raise _AttemptFailed(redact_text(f"response_invalid: {exc}")) from exc
        except ProviderError as exc:
            self._log_attempt(request.model, started, ok=False, code=exc.code)
            terminal = not exc.retryable and exc.code in _TERMINAL_CODES
            reason = exc.detail if terminal else f"{exc.code}: {exc.detail}"
            raise _AttemptFailed(redact_text(reason), terminal=terminal) from exc
        except Exception as exc:  # noqa: BLE001 - any backend failure ends this attempt only.
            self._log_attempt(request.model, started, ok=False, code="error")
            detail = " ".join(str(exc).split()) or exc.__class__.__name__
            raise _AttemptFailed(redact_text(detail)) from exc

        self._log_attempt(request.model, started, ok=True, code=None)
        return value

    def _log_attempt(self, model: str, started: float, *, ok: bool, code: str | None) -> None:
        self._logger.info(
            "repair_attempt",
            model=model,
            ok=ok,
            code=code,
            elapsed_ms=int((time.perf_counter() - started) * 1000),
        )


def _read_cache_entry(entry: JSONValue | None) -> tuple[str, JSONValue] | None:
    if not isinstance(entry, dict):
        return None
    model = entry.get(_CACHE_MODEL_KEY)
    if not isinstance(model, str) or _CACHE_VALUE_KEY not in entry:
        return None
    return model, entry[_CACHE_VALUE_KEY]


def _failure_note(failures: list[str]) -> str:
    if not failures:
        return "LLM error: no model attempted"
    if len(failures) == 1:
        return f"LLM error: {failures[0]}"
    return f"LLM error: {failures[-1]}; primary: {failures[0]}"


__all__ = ["ExternalRepairClient", "RepairOutcome"]

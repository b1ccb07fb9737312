"""
json-immune — pipeline orchestrator

File: src/json_immune/pipeline/orchestrator.py

Purpose
- Drive one payload through parse/repair, validation, optional external repair
  and revalidation, then finalization (prune, redact, content id).

Functional requirements
- States run strictly in order: PARSING → VALIDATING → (ESCALATING →
  REVALIDATING)? → FINALIZING.
- Every stage appends a diagnostic with its elapsed milliseconds.
- Stage failures are raised as ``PipelineError`` subclasses and mapped to a
  decision here; nothing escapes ``run``.
- Text sent for external repair is the canonical rendering of the parsed value
  after caller redaction paths were applied.
- Decision is ACCEPT when no repair altered the payload, ACCEPT_WITH_REPAIRS otherwise.

Non-functional requirements
- Runs are independent; the only suspension point is the external repair call.
- Payload content and prompts are never logged.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import structlog

from json_immune.constants import (
    DEFAULT_API_KEY_ENV,
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_PRIMARY_MODEL,
    DEFAULT_REPAIR_TIMEOUT_SECONDS,
)
from json_immune.domain.errors import (
    EscalationError,
    ParseError,
    PayloadValidationError,
    PipelineError,
    RevalidationError,
)
from json_immune.domain.ids import generate_trace_id
from json_immune.domain.models import (
    Decision,
    Diagnostic,
    DiagnosticStep,
    PipelineOptions,
    PipelineResult,
    PipelineState,
    RepairTag,
)
from json_immune.escalation.cache import build_repair_cache
from json_immune.escalation.client import ExternalRepairClient
from json_immune.escalation.providers.base import RepairBackend
from json_immune.escalation.providers.openai_adapter import OpenAIRepairBackend
from json_immune.repair.structural import try_parse
from json_immune.security.redaction import redact_by_path
from json_immune.utils.canonical import JSONValue, canonicalize, content_id
from json_immune.utils.concurrency import WorkerPool
from json_immune.validation.pruning import prune_unknown
from json_immune.validation.schema_validator import (
    SchemaLike,
    SchemaValidator,
    ValidationStrategy,
)

TimerFn = Callable[[], float]

NOTE_ESCALATION_DISABLED = "LLM disabled via options"
NOTE_ESCALATION_UNCONFIGURED = "LLM not configured"
NOTE_SCHEMA_INVALID = "schema is invalid; repair not attempted"

DEFAULT_BATCH_CONCURRENCY = 8


@dataclass(slots=True)
class _RunState:
    trace_id: str
    state: PipelineState = PipelineState.PARSING
    diagnostics: list[Diagnostic] = field(default_factory=list)
    repairs: list[RepairTag] = field(default_factory=list)

    def add_repair(self, tag: RepairTag) -> None:
        if tag not in self.repairs:
            self.repairs.append(tag)


class PipelineOrchestrator:
    """Per-process pipeline driver; safe to share across concurrent runs."""

    def __init__(
        self,
        *,
        validator: ValidationStrategy | None = None,
        repair_client: ExternalRepairClient | None = None,
        logger: Any | None = None,
        timer: TimerFn | None = None,
    ) -> None:
        self._validator: ValidationStrategy = (
            validator if validator is not None else SchemaValidator()
        )
        self._repair_client = repair_client
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._timer = timer if timer is not None else time.perf_counter

    @property
    def repair_client(self) -> ExternalRepairClient | None:
        return self._repair_client

    async def run(
        self,
        raw: object,
        schema: SchemaLike | None = None,
        options: PipelineOptions | None = None,
        *,
        trace_id: str | None = None,
    ) -> PipelineResult:
        opts = options if options is not None else PipelineOptions()
        run = _RunState(trace_id=trace_id or generate_trace_id())

        try:
            value = self._parse(raw, run)
            value = await self._validate_or_escalate(value, schema, opts, run)
            return self._finalize(value, schema, opts, run)
        except PipelineError as exc:
            return self._terminate(exc, run)

    def _parse(self, raw: object, run: _RunState) -> JSONValue:
        run.state = PipelineState.PARSING
        started = self._timer()
        outcome = try_parse(raw)
        self._record(run, DiagnosticStep.PARSE, outcome.ok, outcome.note, started)
        if not outcome.ok:
            raise ParseError(outcome.note)
        if outcome.repaired:
            run.add_repair(RepairTag.JSONREPAIR)
        return outcome.value

    async def _validate_or_escalate(
        self,
        value: JSONValue,
        schema: SchemaLike | None,
        options: PipelineOptions,
        run: _RunState,
    ) -> JSONValue:
        run.state = PipelineState.VALIDATING
        started = self._timer()
        first = self._validator.validate(value, schema, coerce=options.coerce)
        self._record(run, DiagnosticStep.VALIDATE, first.ok, first.note, started)
        if first.ok:
            return first.coerced

        if first.schema_error:
            self._record(
                run, DiagnosticStep.ESCALATION_SKIPPED, False, NOTE_SCHEMA_INVALID, self._timer()
            )
            raise PayloadValidationError(first.errors, schema_error=True)
        client = self._repair_client
        if options.disable_llm or client is None:
            note = NOTE_ESCALATION_DISABLED if options.disable_llm else NOTE_ESCALATION_UNCONFIGURED
            self._record(run, DiagnosticStep.ESCALATION_SKIPPED, False, note, self._timer())
            raise PayloadValidationError(first.errors)

        repaired = await self._escalate(client, value, schema, options, run)

        run.state = PipelineState.REVALIDATING
        started = self._timer()
        second = self._validator.validate(repaired, schema, coerce=options.coerce)
        self._record(run, DiagnosticStep.REVALIDATE, second.ok, second.note, started)
        if not second.ok:
            raise RevalidationError(second.errors)
        return second.coerced

    async def _escalate(
        self,
        client: ExternalRepairClient,
        value: JSONValue,
        schema: SchemaLike | None,
        options: PipelineOptions,
        run: _RunState,
    ) -> JSONValue:
        run.state = PipelineState.ESCALATING
        started = self._timer()
        outbound = redact_by_path(value, options.redact_paths)
        outcome = await client.repair(canonicalize(outbound), schema)
        self._record(run, DiagnosticStep.ESCALATION, outcome.ok, outcome.note, started)
        if not outcome.ok:
            raise EscalationError(outcome.note)
        run.add_repair(RepairTag.LLM)
        return outcome.value

    def _finalize(
        self,
        value: JSONValue,
        schema: SchemaLike | None,
        options: PipelineOptions,
        run: _RunState,
    ) -> PipelineResult:
        run.state = PipelineState.FINALIZING
        if options.drop_unknown and schema is not None:
            started = self._timer()
            try:
                value = prune_unknown(value, schema)
            except re.error as exc:
                self._record(run, DiagnosticStep.PRUNE, False, f"prune skipped: {exc}", started)
            else:
                self._record(run, DiagnosticStep.PRUNE, True, "pruned", started)

        started = self._timer()
        final = redact_by_path(value, options.redact_paths)
        cid = content_id(final)
        self._record(run, DiagnosticStep.FINALIZE, True, cid, started)

        decision = Decision.ACCEPT_WITH_REPAIRS if run.repairs else Decision.ACCEPT
        return self._complete(run, decision, value=final, cid=cid)

    def _terminate(self, error: PipelineError, run: _RunState) -> PipelineResult:
        return self._complete(run, error.decision)

    def _complete(
        self,
        run: _RunState,
        decision: Decision,
        *,
        value: JSONValue = None,
        cid: str | None = None,
    ) -> PipelineResult:
        run.state = PipelineState.DONE
        self._logger.info(
            "pipeline_decision",
            trace_id=run.trace_id,
            decision=str(decision),
            repairs=[str(tag) for tag in run.repairs],
            cid=cid,
        )
        return PipelineResult(
            ok=decision.accepted,
            decision=decision,
            value=value if decision.accepted else None,
            repairs=tuple(run.repairs),
            diagnostics=tuple(run.diagnostics),
            cid=cid,
            trace_id=run.trace_id,
        )

    def _record(
        self,
        run: _RunState,
        step: DiagnosticStep,
        ok: bool,
        note: str | None,
        started: float,
    ) -> None:
        elapsed_ms = max(0, int((self._timer() - started) * 1000))
        run.diagnostics.append(Diagnostic(step=str(step), ok=ok, note=note, elapsed_ms=elapsed_ms))
        self._logger.info(
            "pipeline_stage",
            trace_id=run.trace_id,
            state=str(run.state),
            step=str(step),
            ok=ok,
            elapsed_ms=elapsed_ms,
        )


@dataclass(frozen=True, slots=True)
class BatchItem:
    """One payload of a batch with its own schema and options."""

    raw: object
    schema: SchemaLike | None = None
    options: PipelineOptions | None = None
    trace_id: str | None = None


def build_default_orchestrator(
    *,
    api_key_env: str | None = None,
    logger: Any | None = None,
) -> PipelineOrchestrator:
    """Orchestrator backed by the OpenAI backend with an unbounded repair cache."""

    backend = (
        OpenAIRepairBackend(api_key_env=api_key_env)
        if api_key_env is not None
        else OpenAIRepairBackend()
    )
    client = ExternalRepairClient(backend, logger=logger)
    return PipelineOrchestrator(repair_client=client, logger=logger)


def build_orchestrator_from_config(
    config: Mapping[str, object],
    *,
    backend: RepairBackend | None = None,
    logger: Any | None = None,
) -> PipelineOrchestrator:
    """Wire models, deadline, cache, and backend from the ``[repair]`` section.

    ``backend`` replaces the OpenAI adapter; the CLI tests inject scripted fakes here.
    """

    section = config.get("repair")
    repair = section if isinstance(section, Mapping) else {}
    timeout = float(repair.get("timeout_seconds", DEFAULT_REPAIR_TIMEOUT_SECONDS))
    if backend is None:
        base_url = repair.get("base_url")
        backend = OpenAIRepairBackend(
            api_key_env=str(repair.get("api_key_env", DEFAULT_API_KEY_ENV)),
            base_url=base_url if isinstance(base_url, str) and base_url else None,
            timeout_seconds=timeout,
        )
    cache = build_repair_cache(
        enabled=bool(repair.get("cache_enabled", True)),
        max_entries=int(repair.get("cache_max_entries", 0)),
    )
    fallback = repair.get("fallback_model", DEFAULT_FALLBACK_MODEL)
    client = ExternalRepairClient(
        backend,
        primary_model=str(repair.get("primary_model", DEFAULT_PRIMARY_MODEL)),
        fallback_model=fallback if isinstance(fallback, str) else None,
        timeout_seconds=timeout,
        cache=cache,
        logger=logger,
    )
    return PipelineOrchestrator(repair_client=client, logger=logger)


def options_from_config(config: Mapping[str, object]) -> PipelineOptions:
    """Default run options from the ``[pipeline]`` section."""

    section = config.get("pipeline")
    return PipelineOptions.from_mapping(section if isinstance(section, Mapping) else {})


@lru_cache(maxsize=1)
def default_orchestrator() -> PipelineOrchestrator:
    return build_default_orchestrator()


async def run_pipeline(
    raw: object,
    schema: SchemaLike | None = None,
    options: PipelineOptions | Mapping[str, object] | None = None,
    *,
    orchestrator: PipelineOrchestrator | None = None,
    trace_id: str | None = None,
) -> PipelineResult:
    """Run one payload through the pipeline; never raises for payload problems."""

    resolved = options if isinstance(options, PipelineOptions) or options is None else (
        PipelineOptions.from_mapping(options)
    )
    engine = orchestrator if orchestrator is not None else default_orchestrator()
    return await engine.run(raw, schema, resolved, trace_id=trace_id)


async def run_batch(
    items: Iterable[BatchItem | object],
    schema: SchemaLike | None = None,
    options: PipelineOptions | None = None,
    *,
    orchestrator: PipelineOrchestrator | None = None,
    max_concurrency: int = DEFAULT_BATCH_CONCURRENCY,
) -> list[PipelineResult]:
    """Run independent payloads concurrently; results keep input order.

    Bare items use the shared ``schema`` and ``options``; ``BatchItem`` entries
    carry their own.
    """

    engine = orchestrator if orchestrator is not None else default_orchestrator()
    batch = [
        item if isinstance(item, BatchItem) else BatchItem(raw=item, schema=schema, options=options)
        for item in items
    ]

    async def _run_one(item: BatchItem) -> PipelineResult:
        return await engine.run(item.raw, item.schema, item.options, trace_id=item.trace_id)

    pool: WorkerPool[PipelineResult] = WorkerPool(max_concurrency=max_concurrency)
    return await pool.map(_run_one, batch)


__all__ = [
    "BatchItem",
    "DEFAULT_BATCH_CONCURRENCY",
    "NOTE_ESCALATION_DISABLED",
    "NOTE_ESCALATION_UNCONFIGURED",
    "PipelineOrchestrator",
    "build_default_orchestrator",
    "build_orchestrator_from_config",
    "default_orchestrator",
    "options_from_config",
    "run_batch",
    "run_pipeline",
]

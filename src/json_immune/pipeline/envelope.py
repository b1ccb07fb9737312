"""
json-immune — request envelopes and run records

File: src/json_immune/pipeline/envelope.py

Purpose
- Helpers for surfaces that wrap the pipeline: request envelope parsing,
  tenant redaction merge, the audit record of one run, and the response shape.

Functional requirements
- Envelope ``json`` is payload text or an object; ``schema`` is optional.
- Envelope options default to ``coerce=true, dropUnknown=true, redactPaths=[],
  disableLLM=false``.
- ``forward_url``, when present, must be an absolute http(s) URL.
- Redaction paths merge as an ordered union (request paths first).
- A run is billable when external repair contributed to the result.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final
from urllib.parse import urlsplit

from json_immune.constants import RUN_RECORD_SCHEMA_VERSION
from json_immune.domain.ids import generate_trace_id
from json_immune.domain.models import Decision, PipelineOptions, PipelineResult, RepairTag
from json_immune.utils.canonical import JSONValue

_ALLOWED_FORWARD_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https"})
_ENVELOPE_KEYS: Final[frozenset[str]] = frozenset({"json", "schema", "options", "forward_url"})
_ENVELOPE_OPTION_DEFAULTS: Final[dict[str, object]] = {
    "coerce": True,
    "dropUnknown": True,
    "redactPaths": [],
    "disableLLM": False,
}


class RequestEnvelopeError(ValueError):
    """Raised for malformed request envelopes."""


@dataclass(frozen=True, slots=True)
class RunRequest:
    payload: str | dict[str, JSONValue]
    schema: Mapping[str, object] | bool | None
    options: PipelineOptions
    forward_url: str | None = None


@dataclass(frozen=True, slots=True)
class RunRecord:
    """Audit row persisted by callers for every run."""

    trace_id: str
    tenant_id: str
    cid: str
    decision: Decision
    repairs: tuple[str, ...]
    created_at: str
    schema_version: int = RUN_RECORD_SCHEMA_VERSION

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": self.schema_version,
            "trace_id": self.trace_id,
            "tenant_id": self.tenant_id,
            "cid": self.cid,
            "decision": str(self.decision),
            "repairs": list(self.repairs),
            "created_at": self.created_at,
        }


def parse_run_request(data: object) -> RunRequest:
    if not isinstance(data, Mapping):
        raise RequestEnvelopeError("request body must be an object")

    unknown = sorted(str(key) for key in data if key not in _ENVELOPE_KEYS)
    if unknown:
        raise RequestEnvelopeError(f"unknown request fields: {', '.join(unknown)}")

    if "json" not in data:
        raise RequestEnvelopeError("json is required")
    payload = data["json"]
    if isinstance(payload, Mapping):
        payload = dict(payload)
    elif not isinstance(payload, str):
        raise RequestEnvelopeError("json must be a string or an object")

    schema = data.get("schema")
    if schema is not None and not isinstance(schema, (Mapping, bool)):
        raise RequestEnvelopeError("schema must be an object, a boolean, or null")

    raw_options = data.get("options")
    if raw_options is None:
        raw_options = {}
    if not isinstance(raw_options, Mapping):
        raise RequestEnvelopeError("options must be an object")
    merged: dict[str, object] = dict(_ENVELOPE_OPTION_DEFAULTS)
    merged.update(raw_options)
    try:
        options = PipelineOptions.from_mapping(merged)
    except TypeError as exc:
        raise RequestEnvelopeError(str(exc)) from exc

    forward_url = data.get("forward_url")
    if forward_url is not None:
        forward_url = validate_forward_url(forward_url)

    return RunRequest(payload=payload, schema=schema, options=options, forward_url=forward_url)


def validate_forward_url(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RequestEnvelopeError("forward_url must be a non-empty string")
    candidate = value.strip()
    parts = urlsplit(candidate)
    if parts.scheme.lower() not in _ALLOWED_FORWARD_SCHEMES or not parts.hostname:
        raise RequestEnvelopeError("forward_url must be http(s) URL")
    return candidate


def merge_redact_paths(
    options: PipelineOptions,
    tenant_paths: Iterable[str] | None,
) -> PipelineOptions:
    """Return ``options`` with tenant default paths appended (duplicates removed)."""

    extra = [path for path in (tenant_paths or ()) if isinstance(path, str)]
    if not extra:
        return options
    return options.with_redact_paths([*options.redact_paths, *extra])


def build_run_record(
    result: PipelineResult,
    *,
    tenant_id: str,
    trace_id: str | None = None,
    now: datetime | None = None,
) -> RunRecord:
    moment = now if now is not None else datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return RunRecord(
        trace_id=trace_id or result.trace_id or generate_trace_id(),
        tenant_id=tenant_id,
        cid=result.cid or "",
        decision=result.decision,
        repairs=tuple(str(tag) for tag in result.repairs),
        created_at=moment.astimezone(UTC).isoformat().replace("+00:00", "Z"),
    )


def build_response(
    result: PipelineResult,
    *,
    trace_id: str,
    elapsed_ms: int,
) -> dict[str, JSONValue]:
    """Response body returned to callers of a run."""

    return {
        "trace_id": trace_id,
        "cid": result.cid,
        "decision": str(result.decision),
        "repairs": [str(tag) for tag in result.repairs],
        "final": result.value if result.ok else None,
        "diagnostics": [item.to_dict() for item in result.diagnostics],
        "ms": elapsed_ms,
    }


def is_billable(result: PipelineResult) -> bool:
    return RepairTag.LLM in result.repairs


__all__ = [
    "RequestEnvelopeError",
    "RunRecord",
    "RunRequest",
    "build_response",
    "build_run_record",
    "is_billable",
    "merge_redact_paths",
    "parse_run_request",
    "validate_forward_url",
]

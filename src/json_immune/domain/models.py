"""Pipeline result, diagnostic, and option models with canonical serialization."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

from json_immune.utils.canonical import JSONValue

_MAX_NOTE_CHARS: Final[int] = 2000


class Decision(StrEnum):
    """Terminal verdict of one pipeline run."""

    ACCEPT = "ACCEPT"
    ACCEPT_WITH_REPAIRS = "ACCEPT_WITH_REPAIRS"
    QUARANTINE = "QUARANTINE"
    REJECT = "REJECT"

    @property
    def accepted(self) -> bool:
        return self in (Decision.ACCEPT, Decision.ACCEPT_WITH_REPAIRS)


class RepairTag(StrEnum):
    """Kind of repair that altered the payload."""

    JSONREPAIR = "jsonrepair"
    LLM = "llm"


class PipelineState(StrEnum):
    PARSING = "parsing"
    VALIDATING = "validating"
    ESCALATING = "escalating"
    REVALIDATING = "revalidating"
    FINALIZING = "finalizing"
    DONE = "done"


class DiagnosticStep(StrEnum):
    PARSE = "parse/repair"
    VALIDATE = "schema.validate"
    ESCALATION_SKIPPED = "llm.skip"
    ESCALATION = "llm.fallback"
    REVALIDATE = "schema.revalidate"
    PRUNE = "prune"
    FINALIZE = "finalize"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One stage observation; run diagnostics are ordered and append-only."""

    step: str
    ok: bool
    note: str | None = None
    elapsed_ms: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.step, str) or not self.step.strip():
            raise ValueError("Diagnostic.step must be a non-empty string")
        if self.note is not None and len(self.note) > _MAX_NOTE_CHARS:
            object.__setattr__(self, "note", self.note[: _MAX_NOTE_CHARS - 3] + "...")
        if self.elapsed_ms is not None and self.elapsed_ms < 0:
            raise ValueError("Diagnostic.elapsed_ms must be >= 0")

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"step": str(self.step), "ok": self.ok}
        if self.note is not None:
            payload["note"] = self.note
        if self.elapsed_ms is not None:
            payload["ms"] = self.elapsed_ms
        return payload


@dataclass(frozen=True, slots=True)
class PipelineOptions:
    """Per-run switches supplied by the caller."""

    coerce: bool = True
    drop_unknown: bool = False
    redact_paths: tuple[str, ...] = ()
    disable_llm: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "redact_paths", _normalize_paths(self.redact_paths))

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> PipelineOptions:
        """Build options from snake_case or camelCase keys; unknown keys are ignored."""

        if not data:
            return cls()
        defaults = cls()
        return cls(
            coerce=_read_bool(data, ("coerce",), defaults.coerce),
            drop_unknown=_read_bool(data, ("drop_unknown", "dropUnknown"), defaults.drop_unknown),
            redact_paths=_read_paths(data, ("redact_paths", "redactPaths")),
            disable_llm=_read_bool(data, ("disable_llm", "disableLLM"), defaults.disable_llm),
        )

    def with_redact_paths(self, paths: Iterable[str]) -> PipelineOptions:
        return PipelineOptions(
            coerce=self.coerce,
            drop_unknown=self.drop_unknown,
            redact_paths=tuple(paths),
            disable_llm=self.disable_llm,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "coerce": self.coerce,
            "drop_unknown": self.drop_unknown,
            "redact_paths": list(self.redact_paths),
            "disable_llm": self.disable_llm,
        }


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Decision plus the accepted payload, repair tags, and stage diagnostics.

    ``value`` and ``cid`` are only meaningful when ``ok`` is true.
    """

    ok: bool
    decision: Decision
    value: JSONValue = None
    repairs: tuple[RepairTag, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    cid: str | None = None
    trace_id: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.ok != self.decision.accepted:
            raise ValueError(f"ok={self.ok} is inconsistent with decision {self.decision}")
        if self.ok and self.cid is None:
            raise ValueError("accepted results require a content id")
        if len(set(self.repairs)) != len(self.repairs):
            raise ValueError("repair tags must not repeat")

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "ok": self.ok,
            "decision": str(self.decision),
            "repairs": [str(tag) for tag in self.repairs],
            "diagnostics": [item.to_dict() for item in self.diagnostics],
        }
        if self.ok:
            payload["json"] = self.value
            payload["cid"] = self.cid
        if self.trace_id is not None:
            payload["trace_id"] = self.trace_id
        return payload


def _normalize_paths(paths: object) -> tuple[str, ...]:
    if isinstance(paths, str):
        raise TypeError("redact_paths must be a sequence of strings, not a string")
    if not isinstance(paths, Iterable):
        raise TypeError("redact_paths must be a sequence of strings")
    out: list[str] = []
    for item in paths:
        if not isinstance(item, str):
            raise TypeError(f"redact path must be a string, got {type(item).__name__}")
        cleaned = item.strip()
        if cleaned and cleaned not in out:
            out.append(cleaned)
    return tuple(out)


def _read_bool(data: Mapping[str, object], keys: tuple[str, ...], default: bool) -> bool:
    for key in keys:
        if key not in data:
            continue
        value = data[key]
        if not isinstance(value, bool):
            raise TypeError(f"option {key!r} must be a boolean")
        return value
    return default


def _read_paths(data: Mapping[str, object], keys: tuple[str, ...]) -> tuple[str, ...]:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        return _normalize_paths(value)
    return ()


__all__ = [
    "Decision",
    "Diagnostic",
    "DiagnosticStep",
    "PipelineOptions",
    "PipelineResult",
    "PipelineState",
    "RepairTag",
]

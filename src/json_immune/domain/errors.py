"""
json-immune — pipeline error taxonomy

File: src/json_immune/domain/errors.py

Purpose
- Typed failures raised by pipeline stages and mapped to a decision by the orchestrator.

Functional requirements
- Each error carries the decision it maps to and a short, secret-free note.
- None of these errors escapes ``run_pipeline``.
"""

from __future__ import annotations

from collections.abc import Sequence

from json_immune.domain.models import Decision


class PipelineError(Exception):
    """Base class for stage failures that end a run with a non-accepting decision."""

    decision: Decision = Decision.REJECT

    def __init__(self, note: str) -> None:
        self.note = " ".join(str(note).split()) or self.__class__.__name__
        super().__init__(self.note)


class ParseError(PipelineError):
    """Input could not be parsed, even after syntax repair."""

    decision = Decision.REJECT


class PayloadValidationError(PipelineError):
    """Parsed payload does not conform to the schema."""

    decision = Decision.REJECT

    def __init__(self, errors: Sequence[str], *, schema_error: bool = False) -> None:
        self.errors = tuple(errors)
        self.schema_error = schema_error
        super().__init__("; ".join(self.errors) or "schema validation failed")


class EscalationError(PipelineError):
    """External repair did not produce a JSON document."""

    decision = Decision.QUARANTINE


class RevalidationError(PipelineError):
    """Externally repaired payload still does not conform to the schema."""

    decision = Decision.QUARANTINE

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = tuple(errors)
        super().__init__("; ".join(self.errors) or "schema revalidation failed")


__all__ = [
    "EscalationError",
    "ParseError",
    "PayloadValidationError",
    "PipelineError",
    "RevalidationError",
]

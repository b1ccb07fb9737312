"""Domain models, identifiers, and the pipeline error taxonomy."""

from json_immune.domain.errors import (
    EscalationError,
    ParseError,
    PayloadValidationError,
    PipelineError,
    RevalidationError,
)
from json_immune.domain.ids import generate_run_id, generate_trace_id
from json_immune.domain.models import (
    Decision,
    Diagnostic,
    DiagnosticStep,
    PipelineOptions,
    PipelineResult,
    PipelineState,
    RepairTag,
)

__all__ = [
    "Decision",
    "Diagnostic",
    "DiagnosticStep",
    "EscalationError",
    "ParseError",
    "PayloadValidationError",
    "PipelineError",
    "PipelineOptions",
    "PipelineResult",
    "PipelineState",
    "RepairTag",
    "RevalidationError",
    "generate_run_id",
    "generate_trace_id",
]

"""Pipeline orchestration and the envelope helpers used by outer surfaces."""

from json_immune.pipeline.envelope import (
    RequestEnvelopeError,
    RunRecord,
    RunRequest,
    build_response,
    build_run_record,
    is_billable,
    merge_redact_paths,
    parse_run_request,
)
from json_immune.pipeline.orchestrator import (
    BatchItem,
    PipelineOrchestrator,
    build_default_orchestrator,
    build_orchestrator_from_config,
    options_from_config,
    run_batch,
    run_pipeline,
)

__all__ = [
    "BatchItem",
    "PipelineOrchestrator",
    "RequestEnvelopeError",
    "RunRecord",
    "RunRequest",
    "build_default_orchestrator",
    "build_orchestrator_from_config",
    "build_response",
    "build_run_record",
    "is_billable",
    "merge_redact_paths",
    "options_from_config",
    "parse_run_request",
    "run_batch",
    "run_pipeline",
]

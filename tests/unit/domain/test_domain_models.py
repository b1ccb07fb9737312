"""
json-immune — unit tests for domain models

File: tests/unit/domain/test_domain_models.py

What this test file should cover
- Decision acceptance and result invariants.
- Option parsing from snake_case and camelCase mappings.
- Diagnostic truncation and serialization.
- Error-to-decision mapping.
"""

from __future__ import annotations

import pytest

from json_immune.domain.errors import (
    EscalationError,
    ParseError,
    PayloadValidationError,
    RevalidationError,
)
from json_immune.domain.models import (
    Decision,
    Diagnostic,
    PipelineOptions,
    PipelineResult,
    RepairTag,
)


def test_only_accept_decisions_are_accepted() -> None:
    assert Decision.ACCEPT.accepted
    assert Decision.ACCEPT_WITH_REPAIRS.accepted
    assert not Decision.QUARANTINE.accepted
    assert not Decision.REJECT.accepted


def test_result_ok_must_match_decision() -> None:
    with pytest.raises(ValueError, match="inconsistent"):
        PipelineResult(ok=True, decision=Decision.REJECT)


def test_accepted_result_needs_content_id() -> None:
    with pytest.raises(ValueError, match="content id"):
        PipelineResult(ok=True, decision=Decision.ACCEPT, value={})


def test_repair_tags_must_be_unique() -> None:
    with pytest.raises(ValueError, match="repeat"):
        PipelineResult(
            ok=True,
            decision=Decision.ACCEPT_WITH_REPAIRS,
            value={},
            cid="sha256:x",
            repairs=(RepairTag.LLM, RepairTag.LLM),
        )


def test_options_from_camel_and_snake_case() -> None:
    camel = PipelineOptions.from_mapping(
        {"dropUnknown": True, "redactPaths": ["a", " a ", "b"], "disableLLM": True, "x": 1}
    )
    snake = PipelineOptions.from_mapping({"coerce": False, "redact_paths": []})

    assert camel == PipelineOptions(drop_unknown=True, redact_paths=("a", "b"), disable_llm=True)
    assert snake == PipelineOptions(coerce=False)
    assert PipelineOptions.from_mapping(None) == PipelineOptions()


@pytest.mark.parametrize(
    "data",
    [{"coerce": 1}, {"redactPaths": "a.b"}, {"redact_paths": ["a", 3]}],
)
def test_options_type_errors(data: dict[str, object]) -> None:
    with pytest.raises(TypeError):
        PipelineOptions.from_mapping(data)


def test_options_round_trip_through_dict() -> None:
    options = PipelineOptions(drop_unknown=True, redact_paths=("card.number",))

    assert PipelineOptions.from_mapping(options.to_dict()) == options


def test_diagnostic_serialization_and_truncation() -> None:
    long_note = Diagnostic(step="llm.fallback", ok=False, note="x" * 5000, elapsed_ms=4)

    assert len(long_note.note or "") == 2000
    assert long_note.note.endswith("...")  # type: ignore[union-attr]
    assert Diagnostic(step="finalize", ok=True).to_dict() == {"step": "finalize", "ok": True}
    assert long_note.to_dict()["ms"] == 4


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [({"step": " "}, "step"), ({"step": "parse/repair", "elapsed_ms": -1}, "elapsed_ms")],
)
def test_invalid_diagnostics(kwargs: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Diagnostic(ok=True, **kwargs)  # type: ignore[arg-type]


def test_errors_map_to_decisions() -> None:
    assert ParseError("bad").decision is Decision.REJECT
    assert PayloadValidationError(["/a x [type]"]).decision is Decision.REJECT
    assert EscalationError("LLM error: boom").decision is Decision.QUARANTINE
    assert RevalidationError(["/a x [type]"]).decision is Decision.QUARANTINE


def test_error_notes_are_single_line() -> None:
    error = PayloadValidationError(["/a one\nline [type]", "/b two [type]"])

    assert error.note == "/a one line [type]; /b two [type]"
    assert ParseError("  ").note == "ParseError"

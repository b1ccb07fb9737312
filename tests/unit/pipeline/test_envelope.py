"""Unit tests for request envelopes, run records, and response bodies."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from json_immune.constants import RUN_RECORD_SCHEMA_VERSION
from json_immune.domain.models import (
    Decision,
    Diagnostic,
    PipelineOptions,
    PipelineResult,
    RepairTag,
)
from json_immune.pipeline.envelope import (
    RequestEnvelopeError,
    build_response,
    build_run_record,
    is_billable,
    merge_redact_paths,
    parse_run_request,
    validate_forward_url,
)


def _accepted(*repairs: RepairTag) -> PipelineResult:
    return PipelineResult(
        ok=True,
        decision=Decision.ACCEPT_WITH_REPAIRS if repairs else Decision.ACCEPT,
        value={"a": 1},
        repairs=repairs,
        diagnostics=(Diagnostic(step="finalize", ok=True, note="sha256:x", elapsed_ms=0),),
        cid="sha256:x",
        trace_id="trc-result",
    )


def test_envelope_defaults() -> None:
    request = parse_run_request({"json": "{a: 1}"})

    assert request.payload == "{a: 1}"
    assert request.schema is None
    assert request.forward_url is None
    assert request.options == PipelineOptions(
        coerce=True, drop_unknown=True, redact_paths=(), disable_llm=False
    )


def test_envelope_options_are_read_in_camel_case() -> None:
    request = parse_run_request(
        {
            "json": {"a": 1},
            "schema": {"type": "object"},
            "options": {"dropUnknown": False, "redactPaths": ["a"], "disableLLM": True},
            "forward_url": " https://hooks.example.com/in ",
        }
    )

    assert request.payload == {"a": 1}
    assert request.options.disable_llm
    assert not request.options.drop_unknown
    assert request.options.redact_paths == ("a",)
    assert request.forward_url == "https://hooks.example.com/in"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ([], "request body must be an object"),
        ({}, "json is required"),
        ({"json": 5}, "json must be a string or an object"),
        ({"json": "{}", "schema": "x"}, "schema must be"),
        ({"json": "{}", "options": []}, "options must be an object"),
        ({"json": "{}", "options": {"coerce": "yes"}}, "must be a boolean"),
        ({"json": "{}", "extra": 1}, "unknown request fields: extra"),
        ({"json": "{}", "forward_url": "ftp://x"}, "forward_url must be http"),
    ],
)
def test_malformed_envelopes(body: object, message: str) -> None:
    with pytest.raises(RequestEnvelopeError, match=message):
        parse_run_request(body)


@pytest.mark.parametrize("url", ["", "   ", "not a url", "http://", "file:///etc/passwd", 3])
def test_forward_url_validation(url: object) -> None:
    with pytest.raises(RequestEnvelopeError):
        validate_forward_url(url)


def test_tenant_redact_paths_merge_as_ordered_union() -> None:
    options = PipelineOptions(redact_paths=("card.number", "ssn"))

    merged = merge_redact_paths(options, ["ssn", "card.cvv"])

    assert merged.redact_paths == ("card.number", "ssn", "card.cvv")
    assert merge_redact_paths(options, None) is options


def test_run_record_uses_utc_zulu_timestamps() -> None:
    moment = datetime(2025, 3, 14, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    record = build_run_record(_accepted(RepairTag.LLM), tenant_id="acme", now=moment)

    assert record.to_dict() == {
        "schema_version": RUN_RECORD_SCHEMA_VERSION,
        "trace_id": "trc-result",
        "tenant_id": "acme",
        "cid": "sha256:x",
        "decision": "ACCEPT_WITH_REPAIRS",
        "repairs": ["llm"],
        "created_at": "2025-03-14T12:00:00Z",
    }


def test_run_record_for_rejection_has_empty_cid() -> None:
    rejected = PipelineResult(ok=False, decision=Decision.REJECT)

    record = build_run_record(
        rejected, tenant_id="acme", trace_id="trc-x", now=datetime(2025, 1, 1, tzinfo=UTC)
    )

    assert record.cid == ""
    assert record.trace_id == "trc-x"


def test_response_body_and_billing() -> None:
    body = build_response(_accepted(RepairTag.JSONREPAIR), trace_id="trc-1", elapsed_ms=12)

    assert body == {
        "trace_id": "trc-1",
        "cid": "sha256:x",
        "decision": "ACCEPT_WITH_REPAIRS",
        "repairs": ["jsonrepair"],
        "final": {"a": 1},
        "diagnostics": [{"step": "finalize", "ok": True, "note": "sha256:x", "ms": 0}],
        "ms": 12,
    }
    assert not is_billable(_accepted(RepairTag.JSONREPAIR))
    assert is_billable(_accepted(RepairTag.JSONREPAIR, RepairTag.LLM))

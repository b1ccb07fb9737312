"""
json-immune — CLI integration tests

File: tests/integration/test_cli.py

What this test file should cover
- ``run`` end to end with packaged and file schemas, stdin, and scripted repair backends.
- Exit codes for accepted, rejected, and misconfigured invocations.
- ``batch`` ordering and summary, ``config`` redaction and profiles.
- Forwarding policy output and per-run JSON-lines logs without payload bodies.
"""

from __future__ import annotations

import io
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from json_immune.ui.cli import run_cli

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def _isolated_workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in ("IMMUNE_PROFILE", "IMMUNE_PIPELINE_DISABLE_LLM", "IMMUNE_PIPELINE_COERCE"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def _write(path: Path, text: str) -> str:
    path.write_text(text, encoding="utf-8")
    return str(path)


def _payment_text(*, amount: str = '"12.50"') -> str:
    stamp = datetime.now(UTC).isoformat()
    return f'{{amount: {amount}, currency: "USD", timestamp: "{stamp}"}}'


def _output(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    return json.loads(capsys.readouterr().out)


def test_run_repairs_and_accepts_payment(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _write(tmp_path / "payment.txt", _payment_text())

    code = run_cli(["run", "-f", payload, "--builtin-schema", "payment", "--trace-id", "trc-cli"])

    body = _output(capsys)
    assert code == 0
    assert body["decision"] == "ACCEPT_WITH_REPAIRS"
    assert body["repairs"] == ["jsonrepair"]
    assert body["final"]["amount"] == 12.5
    assert body["ok"] is True
    assert body["billable"] is False
    assert body["trace_id"] == "trc-cli"
    assert body["policy"] == {"allow": True}
    assert body["record"]["tenant_id"] == "local"
    assert body["record"]["cid"] == body["cid"]
    assert str(body["cid"]).startswith("sha256:")


def test_rejected_payload_exits_with_one(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _write(tmp_path / "payment.txt", _payment_text(amount='"lots"'))

    code = run_cli(["run", "-f", payload, "--builtin-schema", "payment", "--disable-llm"])

    body = _output(capsys)
    assert code == 1
    assert body["decision"] == "REJECT"
    assert body["final"] is None
    assert body["diagnostics"][-1] == {
        "step": "llm.skip",
        "ok": False,
        "note": "LLM disabled via options",
        "ms": body["diagnostics"][-1]["ms"],
    }


def test_external_repair_is_billable_and_redacted(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], scripted_backend
) -> None:
    schema = _write(
        tmp_path / "schema.json",
        json.dumps({"type": "object", "properties": {"amount": {"type": "number"}}}),
    )
    payload = _write(tmp_path / "in.json", '{"amount": "many", "card": {"number": "4111"}}')
    backend = scripted_backend('{"amount": 5, "card": {"number": "***REDACTED***"}}')

    code = run_cli(
        ["run", "-f", payload, "--schema", schema, "--redact", "card.number"], backend=backend
    )

    body = _output(capsys)
    assert code == 0
    assert body["repairs"] == ["llm"]
    assert body["billable"] is True
    assert body["final"] == {"amount": 5, "card": {"number": "***REDACTED***"}}
    assert "4111" not in backend.calls[0].user_prompt


def test_quarantine_when_repair_service_fails(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], scripted_backend
) -> None:
    payload = _write(tmp_path / "payment.txt", _payment_text(amount='"lots"'))
    backend = scripted_backend(RuntimeError("boom"), RuntimeError("down"))

    code = run_cli(["run", "-f", payload, "--builtin-schema", "payment"], backend=backend)

    body = _output(capsys)
    assert code == 1
    assert body["decision"] == "QUARANTINE"
    assert body["diagnostics"][-1]["note"] == "LLM error: down; primary: boom"
    assert backend.models == ["gpt-4o-mini", "gpt-4o"]


def test_payload_from_stdin(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("[1, 2,"))

    code = run_cli(["run", "-f", "-"])

    body = _output(capsys)
    assert code == 0
    assert body["final"] == [1, 2]


def test_run_writes_logs_without_payload(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    payload = _write(tmp_path / "secret.json", '{"note": "do-not-log-me"}')

    assert run_cli(["run", "-f", payload, "--trace-id", "trc-logs", "--tenant-id", "acme"]) == 0
    capsys.readouterr()

    log_path = tmp_path / "logs" / "trc-logs" / "immune.jsonl"
    lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert lines
    assert "do-not-log-me" not in log_path.read_text(encoding="utf-8")
    assert {line["trace_id"] for line in lines} == {"trc-logs"}
    assert {line["tenant_id"] for line in lines} == {"acme"}
    assert lines[-1]["event"] == "pipeline_decision"


def test_forwarding_policy_is_reported(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write(
        tmp_path / "immune.toml",
        '[policy]\nenabled = true\nforward_allow_hosts = ["hooks.example.com"]\n',
    )
    payload = _write(tmp_path / "in.json", '{"a": 1}')

    allowed = run_cli(["run", "-f", payload, "--forward-url", "https://hooks.example.com/x"])
    allowed_body = _output(capsys)
    denied = run_cli(["run", "-f", payload, "--forward-url", "https://other.example/x"])
    denied_body = _output(capsys)

    assert allowed == denied == 0
    assert allowed_body["policy"] == {"allow": True}
    assert denied_body["policy"] == {"allow": False, "reason": "host_not_allowlisted"}


@pytest.mark.parametrize(
    ("argv", "message"),
    [
        (["run", "-f", "missing.json"], "payload file not found"),
        (["run", "-f", "in.json", "--builtin-schema", "invoice"], "unknown built-in schema"),
        (["run", "-f", "in.json", "--schema", "bad.json"], "is not valid JSON"),
        (["run", "-f", "in.json", "--forward-url", "ftp://x"], "forward_url must be http"),
        (["run", "-f", "in.json", "--profile", "turbo"], "profile 'turbo' is not defined"),
        (["run", "-f", "in.json", "--tenant-id", " "], "--tenant-id cannot be empty"),
        (["batch", "in.json", "--max-concurrency", "0"], "--max-concurrency"),
    ],
)
def test_usage_errors_exit_with_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], argv: list[str], message: str
) -> None:
    _write(tmp_path / "in.json", "{}")
    _write(tmp_path / "bad.json", "{nope")

    code = run_cli(argv)

    assert code == 2
    assert message in capsys.readouterr().err


def test_batch_reports_each_file_in_order(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    good = _write(tmp_path / "good.json", '{"a": 1}')
    fixed = _write(tmp_path / "fixed.txt", "{a: 2,}")
    broken = _write(tmp_path / "broken.txt", "definitely not json")

    code = run_cli(["batch", good, fixed, broken, "--max-concurrency", "2"])

    body = _output(capsys)
    assert code == 1
    assert [entry["file"] for entry in body["results"]] == [good, fixed, broken]
    assert [entry["decision"] for entry in body["results"]] == [
        "ACCEPT",
        "ACCEPT_WITH_REPAIRS",
        "REJECT",
    ]
    assert body["summary"] == {"ACCEPT": 1, "ACCEPT_WITH_REPAIRS": 1, "REJECT": 1}
    assert str(body["batch_id"]).startswith("run-")
    assert all("ms" not in entry for entry in body["results"])
    assert (tmp_path / "logs" / str(body["batch_id"]) / "immune.jsonl").is_file()


def test_config_command_shows_profile_and_redacts(capsys: pytest.CaptureFixture[str]) -> None:
    code = run_cli(["config", "--profile", "strict"])

    body = _output(capsys)
    assert code == 0
    assert body["command"] == "config"
    assert body["active_profile"] == "strict"
    assert body["config"]["pipeline"]["coerce"] is False
    assert body["config"]["repair"]["api_key_env"] == "<redacted>"


def test_config_env_override_is_visible(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("IMMUNE_REPAIR_PRIMARY_MODEL", "env-model")

    assert run_cli(["config"]) == 0
    assert _output(capsys)["config"]["repair"]["primary_model"] == "env-model"


def test_options_from_config_profile_apply_to_runs(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], scripted_backend
) -> None:
    payload = _write(tmp_path / "in.json", '{"amount": "3"}')
    schema = _write(
        tmp_path / "schema.json",
        json.dumps({"type": "object", "properties": {"amount": {"type": "number"}}}),
    )
    backend = scripted_backend('{"amount": 3}')

    code = run_cli(
        ["run", "-f", payload, "--schema", schema, "--profile", "offline"], backend=backend
    )

    body = _output(capsys)
    assert code == 0
    assert body["repairs"] == []
    assert body["final"] == {"amount": 3}

    code = run_cli(
        ["run", "-f", payload, "--schema", schema, "--profile", "strict"], backend=backend
    )

    body = _output(capsys)
    assert code == 0
    assert body["repairs"] == ["llm"]
    assert len(backend.calls) == 1

"""
json-immune — end-to-end smoke test

File: tests/smoke/test_end_to_end.py

Purpose
- Run ``python -m json_immune`` as a subprocess against sample payloads, offline,
  and check exit codes, the JSON decision, and the per-run log file.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


def _run_cli(
    workdir: Path, *args: str, stdin: str | None = None
) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("IMMUNE_")}
    env.pop("OPENAI_API_KEY", None)
    existing_pythonpath = env.get("PYTHONPATH")
    env["PYTHONPATH"] = (
        str(SRC_PATH) if not existing_pythonpath else f"{SRC_PATH}{os.pathsep}{existing_pythonpath}"
    )
    return subprocess.run(
        [sys.executable, "-m", "json_immune", *args],
        cwd=workdir,
        env=env,
        input=stdin,
        capture_output=True,
        text=True,
        check=False,
        timeout=60,
    )


@pytest.mark.smoke
def test_payment_payload_round_trip(tmp_path: Path) -> None:
    stamp = datetime.now(UTC).isoformat()
    payload = tmp_path / "payment.txt"
    payload.write_text(
        f"{{amount: '19.99', currency: 'EUR', timestamp: '{stamp}', debug: true,}}",
        encoding="utf-8",
    )

    completed = _run_cli(
        tmp_path,
        "run",
        "-f",
        str(payload),
        "--builtin-schema",
        "payment",
        "--trace-id",
        "trc-smoke",
    )

    assert completed.returncode == 0, completed.stderr
    body = json.loads(completed.stdout)
    assert body["decision"] == "ACCEPT_WITH_REPAIRS"
    assert body["final"] == {"amount": 19.99, "currency": "EUR", "timestamp": stamp}
    assert (tmp_path / "logs" / "trc-smoke" / "immune.jsonl").is_file()


@pytest.mark.smoke
def test_missing_credentials_quarantine_offline(tmp_path: Path) -> None:
    stamp = datetime.now(UTC).isoformat()
    payload = json.dumps({"amount": "a lot", "currency": "USD", "timestamp": stamp})

    completed = _run_cli(
        tmp_path, "run", "-f", "-", "--builtin-schema", "payment", stdin=payload
    )

    assert completed.returncode == 1
    body = json.loads(completed.stdout)
    assert body["decision"] == "QUARANTINE"
    assert body["diagnostics"][-1]["note"] == "OPENAI_API_KEY not set; LLM disabled"


@pytest.mark.smoke
def test_config_errors_exit_with_two(tmp_path: Path) -> None:
    (tmp_path / "immune.toml").write_text("[repair]\napi_key = 'sk-inline'\n", encoding="utf-8")

    completed = _run_cli(tmp_path, "config")

    assert completed.returncode == 2
    assert "embedded secret values are forbidden" in completed.stderr

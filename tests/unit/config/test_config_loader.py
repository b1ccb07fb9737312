"""
json-immune — unit tests for the runtime config loader

File: tests/unit/config/test_config_loader.py

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env coercion for booleans, numbers, and comma-separated lists.
- Profile selection and path normalization.
- Load errors for missing files, bad TOML, and bad env values.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from json_immune.config.loader import (
    ENV_OVERRIDES,
    ConfigLoadError,
    dump_effective_config,
    env_name,
    env_overrides,
    load_config,
)
from json_immune.config.schema import ConfigValidationError


def _write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "immune.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["pipeline"]["coerce"] is True
    assert config["observability"]["log_dir"] == (tmp_path / "logs").resolve().as_posix()


def test_file_values_override_defaults(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path,
        '[repair]\nprimary_model = "file-model"\n\n[observability]\nlog_dir = "out/logs"\n',
    )

    config = load_config(path, environ={})

    assert config["repair"]["primary_model"] == "file-model"
    assert config["repair"]["fallback_model"] == "gpt-4o"
    assert config["observability"]["log_dir"] == (tmp_path.resolve() / "out/logs").as_posix()


def test_env_overrides_file_and_cli_overrides_env(tmp_path: Path) -> None:
    path = _write_config(tmp_path, '[repair]\nprimary_model = "file-model"\n')
    environ = {
        "IMMUNE_REPAIR_PRIMARY_MODEL": "env-model",
        "IMMUNE_REPAIR_TIMEOUT_SECONDS": "3",
        "IMMUNE_PIPELINE_COERCE": "off",
        "IMMUNE_POLICY_FORWARD_ALLOW_HOSTS": "Hooks.example.com, b.example",
    }

    config = load_config(
        path,
        environ=environ,
        cli_overrides={"repair.primary_model": "cli-model"},
    )

    assert config["repair"]["primary_model"] == "cli-model"
    assert config["repair"]["timeout_seconds"] == 3.0
    assert config["pipeline"]["coerce"] is False
    assert config["policy"]["forward_allow_hosts"] == ["hooks.example.com", "b.example"]


def test_optional_base_url_binding(tmp_path: Path) -> None:
    config = load_config(
        _write_config(tmp_path, ""), environ={"IMMUNE_REPAIR_BASE_URL": "http://proxy:8080/v1"}
    )

    assert config["repair"]["base_url"] == "http://proxy:8080/v1"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("IMMUNE_REPAIR_CACHE_MAX_ENTRIES", "many"),
        ("IMMUNE_REPAIR_TIMEOUT_SECONDS", "soon"),
        ("IMMUNE_PIPELINE_DISABLE_LLM", "maybe"),
    ],
)
def test_bad_env_values_fail(tmp_path: Path, name: str, value: str) -> None:
    with pytest.raises(ConfigLoadError, match=name):
        load_config(_write_config(tmp_path, ""), environ={name: value})


def test_profile_selection_order(tmp_path: Path) -> None:
    path = _write_config(tmp_path, "")

    from_env = load_config(path, environ={"IMMUNE_PROFILE": "offline"})
    from_cli = load_config(
        path, environ={"IMMUNE_PROFILE": "offline"}, cli_overrides={"profile": "strict"}
    )
    explicit = load_config(
        path,
        profile="permissive",
        environ={"IMMUNE_PROFILE": "offline"},
        cli_overrides={"profile": "strict"},
    )

    assert from_env["pipeline"]["disable_llm"] is True
    assert from_cli["pipeline"]["coerce"] is False
    assert from_cli["pipeline"]["disable_llm"] is False
    assert explicit["pipeline"]["coerce"] is True


def test_env_overrides_apply_on_top_of_profile(tmp_path: Path) -> None:
    config = load_config(
        _write_config(tmp_path, ""),
        profile="strict",
        environ={"IMMUNE_PIPELINE_COERCE": "true"},
    )

    assert config["pipeline"]["coerce"] is True
    assert config["pipeline"]["drop_unknown"] is True


def test_unknown_profile_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigValidationError):
        load_config(_write_config(tmp_path, ""), profile="turbo", environ={})


def test_missing_explicit_file_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})


def test_invalid_toml_fails(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(_write_config(tmp_path, "[repair\n"), environ={})


def test_embedded_secret_in_file_fails(tmp_path: Path) -> None:
    path = _write_config(tmp_path, '[repair]\napi_key = "sk-live-123456"\n')

    with pytest.raises(ConfigValidationError, match="embedded secret"):
        load_config(path, environ={})


def test_effective_config_dump_is_redacted_and_sorted(tmp_path: Path) -> None:
    config = load_config(_write_config(tmp_path, ""), environ={})

    dumped = dump_effective_config(config)

    assert json.loads(dumped)["repair"]["api_key_env"] == "<redacted>"
    assert dumped == dump_effective_config(config)
    assert dumped.startswith('{"meta":')


def test_only_declared_keys_are_read_from_the_environment(tmp_path: Path) -> None:
    config = load_config(
        _write_config(tmp_path, ""),
        environ={
            "IMMUNE_META_SCHEMA_VERSION": "99",
            "IMMUNE_PROFILES_STRICT_POLICY_ENABLED": "false",
            "IMMUNE_REPAIR_CACHE_MAX_ENTRIES": " 32 ",
        },
    )

    assert config["meta"]["schema_version"] == 1
    assert config["profiles"]["strict"]["policy"]["enabled"] is True
    assert config["repair"]["cache_max_entries"] == 32


def test_every_declared_key_maps_to_a_prefixed_variable() -> None:
    assert env_name("repair.cache_max_entries") == "IMMUNE_REPAIR_CACHE_MAX_ENTRIES"
    assert all(env_name(key).startswith("IMMUNE_") for key in ENV_OVERRIDES)
    assert env_overrides({"IMMUNE_PIPELINE_REDACT_PATHS": "a.b, ,c"}) == {
        "pipeline": {"redact_paths": ["a.b", "c"]}
    }

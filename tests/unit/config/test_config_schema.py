"""
json-immune — unit tests for configuration schema validation

File: tests/unit/config/test_config_schema.py

What this test file should cover
- Defaults validate and built-in profiles exist.
- Structured issues for wrong types, unknown fields, and embedded secrets.
- Profile overlays and schema version guidance.
- Redacted dumps.
"""

from __future__ import annotations

import pytest

from json_immune.config.schema import (
    BUILTIN_PROFILE_NAMES,
    ConfigSchemaVersion,
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
    migration_guidance,
    validate_config,
)


def _issue_paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert set(BUILTIN_PROFILE_NAMES) <= set(result.config["profiles"])


def test_default_config_is_a_fresh_copy() -> None:
    config = default_config()
    config["pipeline"]["redact_paths"].append("x")

    assert default_config()["pipeline"]["redact_paths"] == []


@pytest.mark.parametrize(
    ("section", "key", "value", "path"),
    [
        ("pipeline", "coerce", "yes", "pipeline.coerce"),
        ("repair", "timeout_seconds", 0, "repair.timeout_seconds"),
        ("repair", "provider", "local", "repair.provider"),
        ("repair", "api_key_env", "not-an-env", "repair.api_key_env"),
        ("repair", "cache_max_entries", -1, "repair.cache_max_entries"),
        ("policy", "forward_allow_hosts", "a.example", "policy.forward_allow_hosts"),
        ("observability", "log_level", "TRACE", "observability.log_level"),
    ],
)
def test_invalid_values_are_reported_by_path(
    section: str, key: str, value: object, path: str
) -> None:
    config = merge_config(default_config(), {section: {key: value}})

    assert _issue_paths(config) == [path]


def test_unknown_fields_and_embedded_secrets_are_rejected() -> None:
    config = merge_config(default_config(), {"repair": {"api_key": "sk-live", "colour": "red"}})

    issues = {issue.path: issue.message for issue in validate_config(config).issues}

    assert issues["repair.colour"] == "unknown field"
    assert "embedded secret values are forbidden" in issues["repair.api_key"]


def test_missing_sections_are_required() -> None:
    config = default_config()
    del config["policy"]  # type: ignore[misc]

    assert _issue_paths(config) == ["policy"]


def test_hosts_are_lowercased_and_deduplicated() -> None:
    config = merge_config(
        default_config(), {"policy": {"forward_allow_hosts": ["A.example", "a.example "]}}
    )

    validated = assert_valid_config(config)

    assert validated["policy"]["forward_allow_hosts"] == ["a.example"]


def test_profile_overlays_apply() -> None:
    strict = apply_profile_overlay(default_config(), "strict")
    offline = apply_profile_overlay(default_config(), "offline")

    assert strict["pipeline"]["coerce"] is False
    assert strict["pipeline"]["drop_unknown"] is True
    assert strict["policy"]["enabled"] is True
    assert offline["pipeline"]["disable_llm"] is True
    assert offline["repair"]["cache_enabled"] is False


def test_unknown_profile_fails() -> None:
    with pytest.raises(ConfigValidationError, match="profile 'turbo' is not defined"):
        apply_profile_overlay(default_config(), "turbo")


def test_profile_overlays_are_validated_partially() -> None:
    overlay = {"profiles": {"fast": {"repair": {"timeout_seconds": "1"}}}}
    config = merge_config(default_config(), overlay)

    assert _issue_paths(config) == ["profiles.fast.repair.timeout_seconds"]


def test_schema_version_mismatch_explains_migration() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": ConfigSchemaVersion + 1}})

    result = validate_config(config)

    assert not result.is_valid
    assert "upgrade the json-immune runtime" in result.issues[0].message
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


def test_redacted_dump_masks_env_references() -> None:
    dumped = dump_redacted(default_config())

    assert dumped["repair"]["api_key_env"] == "<redacted>"
    assert dumped["repair"]["primary_model"] == default_config()["repair"]["primary_model"]


def test_non_object_config_is_rejected() -> None:
    result = validate_config(["not", "a", "mapping"])

    assert result.config is None
    assert result.issues[0].path == "<root>"

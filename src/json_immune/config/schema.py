"""
json-immune — configuration schema and validation.

File: src/json_immune/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support profile overlays (strict/offline/permissive built in).
- Forbid embedded secrets; credentials are referenced through ``*_env`` names.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from json_immune.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_API_KEY_ENV,
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_PRIMARY_MODEL,
    DEFAULT_REPAIR_TIMEOUT_SECONDS,
    LOG_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "offline", "permissive")
SECTION_NAMES: Final[tuple[str, ...]] = ("pipeline", "repair", "policy", "observability")
REPAIR_PROVIDERS: Final[tuple[str, ...]] = ("openai",)
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "credential", "credentials"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)


class MetaConfig(TypedDict):
    schema_version: int


class PipelineConfig(TypedDict):
    coerce: bool
    drop_unknown: bool
    disable_llm: bool
    redact_paths: list[str]


class RepairConfig(TypedDict):
    provider: Literal["openai"]
    primary_model: str
    fallback_model: str
    timeout_seconds: float
    api_key_env: str
    cache_enabled: bool
    cache_max_entries: int
    base_url: NotRequired[str]


class PolicyConfig(TypedDict):
    enabled: bool
    forward_allow_hosts: list[str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    pipeline: dict[str, object]
    repair: dict[str, object]
    policy: dict[str, object]
    observability: dict[str, object]


class ImmuneConfig(TypedDict):
    meta: MetaConfig
    pipeline: PipelineConfig
    repair: RepairConfig
    policy: PolicyConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ImmuneConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "pipeline": {
        "coerce": True,
        "drop_unknown": False,
        "disable_llm": False,
        "redact_paths": [],
    },
    "repair": {
        "provider": "openai",
        "primary_model": DEFAULT_PRIMARY_MODEL,
        "fallback_model": DEFAULT_FALLBACK_MODEL,
        "timeout_seconds": DEFAULT_REPAIR_TIMEOUT_SECONDS,
        "api_key_env": DEFAULT_API_KEY_ENV,
        "cache_enabled": True,
        "cache_max_entries": 0,
    },
    "policy": {
        "enabled": False,
        "forward_allow_hosts": [],
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": f"{LOG_DIR}/",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "pipeline": {"coerce": False, "drop_unknown": True},
            "policy": {"enabled": True},
        },
        "offline": {
            "pipeline": {"disable_llm": True},
            "repair": {"cache_enabled": False},
        },
        "permissive": {},
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector, bool], dict[str, Any]]


def default_config() -> ImmuneConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade immune.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the json-immune runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None or not profile.strip():
        return materialized
    selected = profile.strip()

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )
    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay_raw), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping) or selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a redacted representation for logs and ``json-immune config``."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    return redact_config(config)


def _validate_root(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"meta", "profiles", *SECTION_NAMES}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, {"meta", *SECTION_NAMES}, path, issues)

    out: dict[str, Any] = {}
    meta_raw = payload.get("meta")
    if meta_raw is not None:
        meta = _as_object(meta_raw, _join(path, "meta"), issues)
        if meta is not None:
            out["meta"] = _validate_meta(meta, _join(path, "meta"), issues)

    for section in SECTION_NAMES:
        raw = payload.get(section)
        if raw is None:
            continue
        section_path = _join(path, section)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is not None:
            out[section] = _SECTION_VALIDATORS[section](section_obj, section_path, issues, False)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_path = _join(path, "profiles")
        profiles_obj = _as_object(profiles_raw, profiles_path, issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, profiles_path, issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        key_path = _join(path, "schema_version")
        parsed = _as_int(payload["schema_version"], key_path, issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(key_path, migration_guidance(parsed))
    return out


def _validate_pipeline(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"coerce", "drop_unknown", "disable_llm", "redact_paths"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("coerce", "drop_unknown", "disable_llm"):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "redact_paths" in payload:
        paths = _as_str_list(payload["redact_paths"], _join(path, "redact_paths"), issues)
        if paths is not None:
            out["redact_paths"] = paths
    return out


def _validate_repair(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {
        "provider",
        "primary_model",
        "fallback_model",
        "timeout_seconds",
        "api_key_env",
        "base_url",
        "cache_enabled",
        "cache_max_entries",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed - {"base_url"}, path, issues)

    out: dict[str, Any] = {}
    if "provider" in payload:
        provider = _as_enum(
            payload["provider"], _join(path, "provider"), issues, allowed_values=REPAIR_PROVIDERS
        )
        if provider is not None:
            out["provider"] = provider
    for key in ("primary_model", "fallback_model", "base_url"):
        if key in payload:
            parsed_text = _as_str(payload[key], _join(path, key), issues)
            if parsed_text is not None:
                out[key] = parsed_text
    if "timeout_seconds" in payload:
        key_path = _join(path, "timeout_seconds")
        timeout = _as_float(payload["timeout_seconds"], key_path, issues, minimum=0.0)
        if timeout is not None:
            if timeout == 0:
                issues.add(key_path, "must be > 0")
            else:
                out["timeout_seconds"] = timeout
    if "api_key_env" in payload:
        env_name = _as_env_name(payload["api_key_env"], _join(path, "api_key_env"), issues)
        if env_name is not None:
            out["api_key_env"] = env_name
    if "cache_enabled" in payload:
        enabled = _as_bool(payload["cache_enabled"], _join(path, "cache_enabled"), issues)
        if enabled is not None:
            out["cache_enabled"] = enabled
    if "cache_max_entries" in payload:
        max_entries = _as_int(
            payload["cache_max_entries"], _join(path, "cache_max_entries"), issues, minimum=0
        )
        if max_entries is not None:
            out["cache_max_entries"] = max_entries
    return out


def _validate_policy(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"enabled", "forward_allow_hosts"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "enabled" in payload:
        enabled = _as_bool(payload["enabled"], _join(path, "enabled"), issues)
        if enabled is not None:
            out["enabled"] = enabled
    if "forward_allow_hosts" in payload:
        hosts = _as_str_list(
            payload["forward_allow_hosts"], _join(path, "forward_allow_hosts"), issues
        )
        if hosts is not None:
            out["forward_allow_hosts"] = [host.lower() for host in hosts]
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, partial: bool
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stdout", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        level = _as_enum(
            payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if level is not None:
            out["log_level"] = level
    if "log_dir" in payload:
        log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if log_dir is not None:
            out["log_dir"] = log_dir
    for key in ("log_to_stdout", "redact_secrets"):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


_SECTION_VALIDATORS: Final[dict[str, _SectionValidator]] = {
    "pipeline": _validate_pipeline,
    "repair": _validate_repair,
    "policy": _validate_policy,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in sorted(payload):
        profile_path = _join(path, name)
        if not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.add(profile_path, "profile names must match ^[a-z][a-z0-9_-]*$")
            continue
        overlay = _as_object(payload[name], profile_path, issues)
        if overlay is None:
            continue
        _reject_unknown_keys(overlay, set(SECTION_NAMES), profile_path, issues)
        validated: dict[str, Any] = {}
        for section in SECTION_NAMES:
            raw = overlay.get(section)
            if raw is None:
                continue
            section_path = _join(profile_path, section)
            section_obj = _as_object(raw, section_path, issues)
            if section_obj is not None:
                validated[section] = _SECTION_VALIDATORS[section](
                    section_obj, section_path, issues, True
                )
        out[name] = validated
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None and parsed not in out:
            out.append(parsed)
    return out


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: OPENAI_API_KEY)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = _deep_copy_mapping(existing) if isinstance(existing, Mapping) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, (list, tuple)):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            item = value[key]
            if _key_is_sensitive_for_redaction(key) and not isinstance(item, bool):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(item, key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


def _key_is_sensitive_for_redaction(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return True
    return _looks_sensitive_key(normalized)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "ImmuneConfig",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ProfileOverlay",
    "SECTION_NAMES",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]

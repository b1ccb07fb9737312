"""
json-immune — runtime config loader.

File: src/json_immune/config/loader.py

Purpose
- Build the effective config from defaults, ``immune.toml``, ``IMMUNE_*`` environment
  variables, and CLI overrides, in that order of increasing precedence.

Functional requirements
- Only the keys in ``ENV_OVERRIDES`` are read from the environment; lists are
  comma-separated, booleans accept true/false/1/0/yes/no/on/off.
- A profile (``strict``, ``offline``, ``permissive`` or a file-defined one) is selected by
  argument, then CLI override ``profile``, then ``IMMUNE_PROFILE``, and overlays the file
  config before env and CLI values apply.
- ``observability.log_dir`` is resolved relative to the config file's directory.
- The result is schema-validated; embedded secrets are rejected there.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Final

from json_immune.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "immune.toml"
ENV_PREFIX: Final[str] = "IMMUNE_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _as_text(raw: str) -> object:
    return raw


def _as_flag(raw: str) -> object:
    lowered = raw.lower()
    if lowered in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if lowered in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _as_int(raw: str) -> object:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _as_seconds(raw: str) -> object:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


def _as_list(raw: str) -> object:
    return [item.strip() for item in raw.split(",") if item.strip()]


# Dotted config key -> parser for its IMMUNE_<SECTION>_<KEY> environment variable.
ENV_OVERRIDES: Final[dict[str, Callable[[str], object]]] = {
    "pipeline.coerce": _as_flag,
    "pipeline.drop_unknown": _as_flag,
    "pipeline.disable_llm": _as_flag,
    "pipeline.redact_paths": _as_list,
    "repair.provider": _as_text,
    "repair.primary_model": _as_text,
    "repair.fallback_model": _as_text,
    "repair.timeout_seconds": _as_seconds,
    "repair.api_key_env": _as_text,
    "repair.base_url": _as_text,
    "repair.cache_enabled": _as_flag,
    "repair.cache_max_entries": _as_int,
    "policy.enabled": _as_flag,
    "policy.forward_allow_hosts": _as_list,
    "observability.log_level": _as_text,
    "observability.log_dir": _as_text,
    "observability.log_to_stdout": _as_flag,
    "observability.redact_secrets": _as_flag,
}


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence: CLI > env > file > defaults.

    Without ``config_path`` an ``immune.toml`` in the working directory is used if present;
    an explicit path must exist.
    """

    path = (
        Path.cwd() / DEFAULT_CONFIG_FILE
        if config_path is None
        else Path(config_path).expanduser()
    ).resolve()
    env = os.environ if environ is None else environ
    cli = dict(cli_overrides or {})

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )
    selected = _select_profile(profile, cli, env)
    if selected is not None:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, env_overrides(env))
    config = merge_config(config, _nest(item for item in cli.items() if item[0] != "profile"))
    config = assert_valid_config(config, active_profile=selected)
    return normalize_paths(config, base_dir=path.parent)


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Nested overrides taken from ``IMMUNE_*`` variables present in ``environ``."""

    found: list[tuple[str, object]] = []
    for key, parse in ENV_OVERRIDES.items():
        name = env_name(key)
        raw = environ.get(name)
        if raw is None:
            continue
        try:
            found.append((key, parse(raw.strip())))
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {key} {exc}") from exc
    return _nest(found)


def env_name(key: str) -> str:
    return ENV_PREFIX + key.replace(".", "_").upper()


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve configured path fields relative to ``base_dir`` as POSIX strings."""

    resolved = merge_config({}, config)
    for section, key in PATH_FIELDS:
        table = resolved.get(section)
        if not isinstance(table, dict) or not isinstance(table.get(key), str):
            continue
        candidate = Path(os.path.expandvars(table[key])).expanduser()
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        table[key] = Path(os.path.normpath(candidate)).as_posix()
    return resolved


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    return dump_redacted(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Deterministic JSON of the redacted effective config."""

    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _select_profile(
    explicit: str | None, cli: Mapping[str, object], environ: Mapping[str, str]
) -> str | None:
    if explicit is not None:
        return explicit.strip() or None
    from_cli = cli.get("profile")
    if from_cli is not None:
        if not isinstance(from_cli, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
        return from_cli.strip() or None
    return environ.get(PROFILE_ENV, "").strip() or None


def _nest(items: Iterable[tuple[str, object]]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for dotted, value in sorted(items, key=lambda item: item[0]):
        parts = [part for part in dotted.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid override key {dotted!r}")
        cursor = nested
        for part in parts[:-1]:
            child = cursor.get(part)
            if not isinstance(child, dict):
                child = cursor[part] = {}
            cursor = child
        cursor[parts[-1]] = merge_config({}, value) if isinstance(value, Mapping) else value
    return nested


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_OVERRIDES",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "effective_config",
    "env_name",
    "env_overrides",
    "load_config",
    "normalize_paths",
]

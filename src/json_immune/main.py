"""Executable CLI entrypoint for ``json_immune``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from json_immune.config import ConfigLoadError, ConfigValidationError
from json_immune.escalation.providers.base import ProviderError
from json_immune.pipeline.envelope import RequestEnvelopeError
from json_immune.validation.builtin import UnknownSchemaError

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Process exit-code contract."""

    SUCCESS = 0
    PAYLOAD_REJECTED = 1
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


_CONFIG_ERROR_TYPES: tuple[type[BaseException], ...] = (
    ConfigLoadError,
    ConfigValidationError,
    RequestEnvelopeError,
    UnknownSchemaError,
    FileNotFoundError,
    IsADirectoryError,
    PermissionError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and normalize every outcome to an ``ExitCode`` value."""

    try:
        from json_immune.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except KeyboardInterrupt:
        _write_stderr("interrupted")
        return int(ExitCode.INTERNAL_ERROR)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def console_entrypoint() -> None:
    raise SystemExit(cli_entrypoint())


def route_exception(exc: BaseException) -> ExitCode:
    for item in _iter_exception_chain(exc):
        if isinstance(item, _CONFIG_ERROR_TYPES):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, ProviderError):
            return ExitCode.PROVIDER_ERROR
        if isinstance(item, ModuleNotFoundError) and item.name == "openai":
            return ExitCode.PROVIDER_ERROR
    return ExitCode.INTERNAL_ERROR


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in {int(code) for code in ExitCode}:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint", "console_entrypoint", "route_exception"]

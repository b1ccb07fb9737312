"""Command-line interface router for json-immune."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from json_immune.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from json_immune.domain.ids import generate_run_id, generate_trace_id
from json_immune.domain.models import PipelineOptions, PipelineResult
from json_immune.escalation.providers.base import RepairBackend
from json_immune.observability import correlation_scope, setup_logging, shutdown_logging
from json_immune.pipeline import (
    BatchItem,
    PipelineOrchestrator,
    RequestEnvelopeError,
    build_orchestrator_from_config,
    build_response,
    build_run_record,
    is_billable,
    merge_redact_paths,
    options_from_config,
    run_batch,
)
from json_immune.pipeline.envelope import validate_forward_url
from json_immune.pipeline.orchestrator import DEFAULT_BATCH_CONCURRENCY
from json_immune.policy import PolicyDecision, evaluate_forwarding_policy
from json_immune.utils.canonical import JSONValue
from json_immune.validation.builtin import (
    UnknownSchemaError,
    list_builtin_schemas,
    load_builtin_schema,
)

DEFAULT_TENANT_ID: Final[str] = "local"
STDIN_MARKER: Final[str] = "-"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class CommandContext:
    """Collaborators injected into command handlers (tests swap the backend)."""

    backend: RepairBackend | None = None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="json-immune",
        description=(
            "json-immune — repair, validate, and content-address JSON payloads.\n\n"
            "Common workflows:\n"
            "  json-immune run -f payload.json --builtin-schema payment\n"
            "  json-immune batch a.json b.json --schema schema.json\n"
            "  json-immune config --profile strict\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./immune.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")

    payload_options = argparse.ArgumentParser(add_help=False)
    schema_group = payload_options.add_mutually_exclusive_group()
    schema_group.add_argument("--schema", dest="schema_path", default=None, help="JSON Schema file")
    schema_group.add_argument(
        "--builtin-schema",
        default=None,
        help=f"Bundled schema name ({', '.join(list_builtin_schemas()) or 'none'})",
    )
    payload_options.add_argument(
        "--redact",
        action="append",
        dest="redact_paths",
        default=None,
        metavar="PATH",
        help="Dot path replaced before external repair and in the output (repeatable)",
    )
    payload_options.add_argument(
        "--drop-unknown",
        action="store_true",
        default=None,
        help="Remove properties the schema does not declare",
    )
    payload_options.add_argument(
        "--no-coerce",
        dest="coerce",
        action="store_false",
        default=None,
        help="Disable string/number/boolean coercion during validation",
    )
    payload_options.add_argument(
        "--disable-llm",
        action="store_true",
        default=None,
        help="Never escalate to the external repair service",
    )
    payload_options.add_argument("--tenant-id", default=DEFAULT_TENANT_ID, help="Audit tenant id")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common, payload_options],
        help="Run one payload through the pipeline",
        description=(
            "Repair and validate one payload and print the decision as JSON.\n"
            "Exit code 0 when accepted, 1 when quarantined or rejected.\n\n"
            "Examples:\n"
            "  json-immune run -f payload.json --builtin-schema payment\n"
            "  cat payload.txt | json-immune run -f - --disable-llm\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument(
        "-f", "--file", dest="payload_path", required=True, help="Payload file, or - for stdin"
    )
    run_parser.add_argument("--forward-url", default=None, help="Downstream URL to check")
    run_parser.add_argument("--trace-id", default=None, help="Trace id (default: generated)")
    run_parser.set_defaults(handler=_cmd_run)

    # batch ---------------------------------------------------------------
    batch_parser = subparsers.add_parser(
        "batch",
        parents=[common, payload_options],
        help="Run many payload files concurrently",
        description=(
            "Run independent payload files with a shared schema and options.\n"
            "Exit code 0 when every payload is accepted, 1 otherwise.\n\n"
            "Examples:\n"
            "  json-immune batch inbox/*.json --builtin-schema payment\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    batch_parser.add_argument("payload_paths", nargs="+", help="Payload files")
    batch_parser.add_argument(
        "--max-concurrency",
        type=int,
        default=DEFAULT_BATCH_CONCURRENCY,
        help=f"Concurrent runs (default: {DEFAULT_BATCH_CONCURRENCY})",
    )
    batch_parser.set_defaults(handler=_cmd_batch)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n"
            "Sensitive values are redacted.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None, *, backend: RepairBackend | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace, CommandContext(backend=backend))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace, context: CommandContext) -> int:
    config = _load_effective_config(args)
    payload = _read_payload(args.payload_path)
    schema = _resolve_schema(args)
    options = _resolve_options(args, config)
    tenant_id = _tenant_id(args)
    trace_id = _optional_str(args.trace_id) or generate_trace_id()
    policy = _evaluate_policy(args.forward_url, config)

    orchestrator = build_orchestrator_from_config(config, backend=context.backend)
    handle = setup_logging(_section(config, "observability"), run_id=trace_id)
    try:
        with correlation_scope(trace_id=trace_id, tenant_id=tenant_id):
            started = time.perf_counter()
            result = asyncio.run(orchestrator.run(payload, schema, options, trace_id=trace_id))
            elapsed_ms = int((time.perf_counter() - started) * 1000)
    finally:
        shutdown_logging(handle)

    body = _result_body(result, trace_id=trace_id, tenant_id=tenant_id, elapsed_ms=elapsed_ms)
    body["policy"] = policy.to_dict()
    _emit_json(body)
    return 0 if result.ok else 1


def _cmd_batch(args: argparse.Namespace, context: CommandContext) -> int:
    if args.max_concurrency < 1:
        raise CLIError("--max-concurrency must be >= 1")
    config = _load_effective_config(args)
    paths = [str(path) for path in args.payload_paths]
    payloads = [_read_payload(path) for path in paths]
    schema = _resolve_schema(args)
    options = _resolve_options(args, config)
    tenant_id = _tenant_id(args)
    batch_id = generate_run_id()
    trace_ids = [generate_trace_id() for _ in paths]

    orchestrator = build_orchestrator_from_config(config, backend=context.backend)
    items = [
        BatchItem(raw=payload, schema=schema, options=options, trace_id=trace_id)
        for payload, trace_id in zip(payloads, trace_ids, strict=True)
    ]
    handle = setup_logging(_section(config, "observability"), run_id=batch_id)
    try:
        with correlation_scope(batch_id=batch_id, tenant_id=tenant_id):
            started = time.perf_counter()
            results = asyncio.run(
                _run_batch(orchestrator, items, max_concurrency=args.max_concurrency)
            )
            elapsed_ms = int((time.perf_counter() - started) * 1000)
    finally:
        shutdown_logging(handle)

    entries: list[dict[str, Any]] = []
    for path, trace_id, result in zip(paths, trace_ids, results, strict=True):
        entry = _result_body(result, trace_id=trace_id, tenant_id=tenant_id, elapsed_ms=None)
        entry["file"] = path
        entries.append(entry)
    decisions = Counter(str(result.decision) for result in results)
    _emit_json(
        {
            "batch_id": batch_id,
            "ms": elapsed_ms,
            "results": entries,
            "summary": dict(sorted(decisions.items())),
        }
    )
    return 0 if all(result.ok for result in results) else 1


def _cmd_config(args: argparse.Namespace, context: CommandContext) -> int:
    del context
    config = _load_effective_config(args)
    _emit_json(
        {
            "command": "config",
            "active_profile": _optional_str(args.profile),
            "config": effective_config(config),
        }
    )
    return 0


async def _run_batch(
    orchestrator: PipelineOrchestrator,
    items: Sequence[BatchItem],
    *,
    max_concurrency: int,
) -> list[PipelineResult]:
    return await run_batch(items, orchestrator=orchestrator, max_concurrency=max_concurrency)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _result_body(
    result: PipelineResult,
    *,
    trace_id: str,
    tenant_id: str,
    elapsed_ms: int | None,
) -> dict[str, Any]:
    body: dict[str, Any] = build_response(result, trace_id=trace_id, elapsed_ms=elapsed_ms or 0)
    if elapsed_ms is None:
        body.pop("ms", None)
    body["ok"] = result.ok
    body["billable"] = is_billable(result)
    body["record"] = build_run_record(result, tenant_id=tenant_id, trace_id=trace_id).to_dict()
    return body


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))
    try:
        return load_config(config_path, profile=profile)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _read_payload(path_arg: str) -> str:
    if path_arg == STDIN_MARKER:
        return sys.stdin.read()
    path = Path(path_arg).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CLIError(f"payload file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"unable to read payload file {path}: {exc}") from exc


def _resolve_schema(args: argparse.Namespace) -> dict[str, JSONValue] | bool | None:
    builtin = _optional_str(getattr(args, "builtin_schema", None))
    if builtin is not None:
        try:
            return load_builtin_schema(builtin)
        except UnknownSchemaError as exc:
            raise CLIError(str(exc)) from exc

    schema_path = _optional_str(getattr(args, "schema_path", None))
    if schema_path is None:
        return None
    path = Path(schema_path).expanduser()
    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CLIError(f"schema file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"unable to read schema file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CLIError(f"schema file {path} is not valid JSON: {exc}") from exc
    if not isinstance(loaded, (dict, bool)):
        raise CLIError(f"schema file {path} must hold an object or a boolean")
    return loaded


def _resolve_options(args: argparse.Namespace, config: Mapping[str, object]) -> PipelineOptions:
    base = options_from_config(config)
    options = PipelineOptions(
        coerce=base.coerce if args.coerce is None else bool(args.coerce),
        drop_unknown=base.drop_unknown if args.drop_unknown is None else bool(args.drop_unknown),
        redact_paths=tuple(args.redact_paths or ()),
        disable_llm=base.disable_llm if args.disable_llm is None else bool(args.disable_llm),
    )
    return merge_redact_paths(options, base.redact_paths)


def _evaluate_policy(forward_url: str | None, config: Mapping[str, object]) -> PolicyDecision:
    url: str | None = None
    if forward_url is not None:
        try:
            url = validate_forward_url(forward_url)
        except RequestEnvelopeError as exc:
            raise CLIError(str(exc)) from exc
    policy = _section(config, "policy")
    hosts = policy.get("forward_allow_hosts", [])
    return evaluate_forwarding_policy(
        url,
        [host for host in hosts if isinstance(host, str)] if isinstance(hosts, list) else [],
        enabled=bool(policy.get("enabled", False)),
    )


def _section(config: Mapping[str, object], name: str) -> dict[str, object]:
    section = config.get(name)
    return dict(section) if isinstance(section, Mapping) else {}


def _tenant_id(args: argparse.Namespace) -> str:
    tenant = _optional_str(getattr(args, "tenant_id", None))
    if tenant is None:
        raise CLIError("--tenant-id cannot be empty")
    return tenant


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


__all__ = ["CLIError", "CommandContext", "build_parser", "run_cli"]

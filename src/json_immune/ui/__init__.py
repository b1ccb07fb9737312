"""Command-line surface for json-immune."""

from json_immune.ui.cli import CLIError, build_parser, run_cli

__all__ = ["CLIError", "build_parser", "run_cli"]

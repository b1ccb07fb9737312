"""Module entrypoint for ``python -m json_immune``."""

from __future__ import annotations

from json_immune.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

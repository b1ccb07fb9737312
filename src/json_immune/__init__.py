"""
json-immune — package root

File: src/json_immune/__init__.py

Purpose
- Package root for the JSON immune pipeline: structural repair, schema validation,
  bounded external repair escalation, and content addressing of accepted payloads.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).

Non-functional requirements
- Keep import time small; heavy submodules are imported by their callers.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

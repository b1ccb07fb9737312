"""External repair escalation: prompt, cache, client, and backends."""

from json_immune.escalation.cache import (
    BoundedRepairCache,
    InMemoryRepairCache,
    NullRepairCache,
    RepairCache,
    build_repair_cache,
)
from json_immune.escalation.client import ExternalRepairClient, RepairOutcome
from json_immune.escalation.prompt import RepairPrompt, render_repair_prompt

__all__ = [
    "BoundedRepairCache",
    "ExternalRepairClient",
    "InMemoryRepairCache",
    "NullRepairCache",
    "RepairCache",
    "RepairOutcome",
    "RepairPrompt",
    "build_repair_cache",
    "render_repair_prompt",
]
